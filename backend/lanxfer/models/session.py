"""Relay-side session model."""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone

from starlette.websockets import WebSocket, WebSocketState


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    """Generate a secure random session ID."""
    return secrets.token_urlsafe(12)


@dataclass(eq=False)
class Session:
    """One WebSocket connection to the relay.

    Sessions compare by identity. ``room_code`` stays ``None`` until the
    client joins a room, and messages from an unaffiliated session reach
    nobody.
    """

    websocket: WebSocket
    id: str = field(default_factory=generate_session_id)
    room_code: str | None = None
    connected_at: datetime = field(default_factory=utc_now)
    closed: bool = False

    @property
    def is_open(self) -> bool:
        """Check if the connection is accepted and not yet closed."""
        if self.closed:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    @property
    def is_stale(self) -> bool:
        """Check if the connection went away without a clean disconnect."""
        return (
            self.closed
            or self.websocket.client_state == WebSocketState.DISCONNECTED
            or self.websocket.application_state == WebSocketState.DISCONNECTED
        )

    async def send(self, payload: str | bytes, binary: bool) -> None:
        """Send ``payload`` unmodified as a binary or text frame."""
        if binary:
            await self.websocket.send_bytes(payload)
        else:
            await self.websocket.send_text(payload)

    def __repr__(self) -> str:
        return f"<Session {self.id} room={self.room_code}>"
