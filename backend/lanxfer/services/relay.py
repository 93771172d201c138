"""Per-session relay dispatcher."""

from loguru import logger

from lanxfer.models.message import JoinRoom, parse_control
from lanxfer.models.room import normalize_room_code
from lanxfer.models.session import Session
from lanxfer.services.registry import RoomRegistry


class RelayDispatcher:
    """Handles the message stream of one relay session.

    A ``join-room`` control message with a non-blank room is consumed and
    moves the session into that room. Everything else, text or binary, is
    forwarded unmodified to the other members of the session's current
    room. The dispatcher never looks inside forwarded payloads.
    """

    def __init__(self, session: Session, registry: RoomRegistry):
        self.session = session
        self.registry = registry

    async def handle_text(self, text: str) -> int:
        """Process a text frame.

        Returns:
            Number of peers the frame was forwarded to (0 for a join)
        """
        message = parse_control(text)
        if isinstance(message, JoinRoom):
            room = normalize_room_code(message.room)
            if room:
                self.registry.join(self.session, room)
                return 0
            logger.debug(
                "[Relay] session {} sent a join with a blank room", self.session.id
            )
            return 0

        return await self.registry.broadcast(self.session, text, binary=False)

    async def handle_binary(self, data: bytes) -> int:
        """Forward a binary frame.

        Returns:
            Number of peers the frame was forwarded to
        """
        return await self.registry.broadcast(self.session, data, binary=True)

    def close(self) -> None:
        """Release the session when its connection ends."""
        self.session.closed = True
        self.registry.leave(self.session)
