"""Relay connection with a fixed-delay reconnect loop."""

import asyncio

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException

from lanxfer.client.transfer import TransferEngine
from lanxfer.config import settings
from lanxfer.exceptions import NotConnectedError
from lanxfer.models.message import JoinRoom, encode_control
from lanxfer.models.room import parse_room_code


class RelayClient:
    """Keeps one party connected to a relay room.

    On every (re)connect the client sends ``join-room`` before anything
    else. When the connection is lost the transfer engine abandons all
    in-flight transfers and the client retries after a fixed delay, forever,
    until ``stop()`` is called. Nothing carries over between connections.
    """

    def __init__(
        self,
        url: str,
        room_code: str,
        engine: TransferEngine,
        reconnect_delay: float | None = None,
    ):
        """Initialize the client.

        Args:
            url: Relay WebSocket URL, e.g. ``ws://192.168.1.20:3001/api/ws``
            room_code: Room to join on every connect
            engine: Transfer engine fed with incoming frames
            reconnect_delay: Seconds between attempts (default from settings)
        """
        self.url = url
        self.room_code = parse_room_code(room_code)
        self.engine = engine
        self.reconnect_delay = (
            settings.reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self.attempts = 0

        self._ws = None
        self._running = False
        self._connected = asyncio.Event()
        engine.bind(self)

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._connected.is_set()

    async def send_text(self, text: str) -> None:
        await self._send(text)

    async def send_bytes(self, data: bytes) -> None:
        await self._send(data)

    async def _send(self, payload: str | bytes) -> None:
        ws = self._ws
        if ws is None:
            raise NotConnectedError("Not connected to the relay")
        try:
            await ws.send(payload)
        except ConnectionClosed as e:
            raise NotConnectedError("Relay connection closed") from e

    async def wait_connected(self, timeout: float | None = None) -> None:
        """Wait until the client has joined its room."""
        await asyncio.wait_for(self._connected.wait(), timeout)

    async def run(self) -> None:
        """Connect and process frames until stopped, reconnecting on loss."""
        self._running = True
        while self._running:
            self.attempts += 1
            try:
                await self._connect_once()
            except InvalidURI:
                raise
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning("[Client] relay connection lost: {!r}", e)
            finally:
                self._ws = None
                self._connected.clear()
                self.engine.abandon()

            if not self._running:
                break
            logger.info("[Client] reconnecting in {}s", self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)

    async def _connect_once(self) -> None:
        async with websockets.connect(self.url, max_size=None) as ws:
            self._ws = ws
            await ws.send(encode_control(JoinRoom(room=self.room_code)))
            self._connected.set()
            logger.info("[Client] connected to {} in room {}", self.url, self.room_code)

            # Frames are handled one at a time to keep chunk order
            async for message in ws:
                await self.engine.handle_message(message)

        logger.info("[Client] relay closed the connection")

    async def stop(self) -> None:
        """Stop reconnecting and close the current connection."""
        self._running = False
        ws = self._ws
        if ws is not None:
            await ws.close()
