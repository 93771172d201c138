"""Cleanup service for sessions that vanished without a clean disconnect."""

import asyncio

from loguru import logger

from lanxfer.config import settings
from lanxfer.services.registry import RoomRegistry, room_registry


class CleanupService:
    """Service that periodically evicts stale sessions from the registry."""

    def __init__(
        self,
        registry: RoomRegistry,
        interval_seconds: int = settings.sweep_interval_seconds,
    ):
        """Initialize cleanup service.

        Args:
            registry: Registry to sweep
            interval_seconds: How often to run cleanup
        """
        self.registry = registry
        self.interval = interval_seconds
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self):
        """Start the cleanup service background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self):
        """Stop the cleanup service."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run_loop(self):
        """Main cleanup loop."""
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                self.cleanup()
            except Exception as e:
                # Log error but don't crash
                logger.error("[Cleanup] sweep failed: {!r}", e)

    def cleanup(self) -> int:
        """Run one sweep.

        Returns:
            Number of sessions evicted
        """
        evicted = self.registry.prune_stale()
        if evicted:
            logger.info("[Cleanup] evicted {} stale sessions", evicted)
        return evicted


# Singleton instance
cleanup_service = CleanupService(room_registry)
