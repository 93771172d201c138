"""Room registry: which sessions share which room."""

from loguru import logger

from lanxfer.models.room import normalize_room_code
from lanxfer.models.session import Session


class RoomRegistry:
    """Tracks room membership for relay sessions.

    Each room maps session IDs to sessions. A session belongs to at most one
    room. Rooms exist only while they have members.

    All access happens on the event loop. Broadcasts iterate over a snapshot
    of the room and evict failed peers only after the loop, so members may
    join or leave while a broadcast is suspended in a send.
    """

    def __init__(self):
        # room_code -> {session_id -> Session}
        self.rooms: dict[str, dict[str, Session]] = {}

    def join(self, session: Session, room_code: str) -> str:
        """Move a session into a room.

        The session leaves its previous room first. Joining the room it is
        already in changes nothing.

        Args:
            session: Session to affiliate
            room_code: Target room code, in any letter case

        Returns:
            The canonical room code
        """
        code = normalize_room_code(room_code)
        if session.room_code != code:
            self.leave(session)
        self.rooms.setdefault(code, {})[session.id] = session
        session.room_code = code
        logger.info(
            "[Registry] session {} joined room {} ({} present)",
            session.id, code, len(self.rooms[code]),
        )
        return code

    def leave(self, session: Session) -> None:
        """Remove a session from its room, if it is in one."""
        code = session.room_code
        if code is None:
            return

        members = self.rooms.get(code)
        if members is not None and members.pop(session.id, None) is not None:
            if not members:
                del self.rooms[code]
            logger.info(
                "[Registry] session {} left room {} ({} remaining)",
                session.id, code, len(members),
            )
        session.room_code = None

    async def broadcast(
        self, sender: Session, payload: str | bytes, binary: bool
    ) -> int:
        """Send a payload to every other open session in the sender's room.

        A peer whose send fails is evicted. Nothing is retried or buffered.

        Args:
            sender: Originating session, never sent to
            payload: Frame body, forwarded unmodified
            binary: Send as a binary frame rather than text

        Returns:
            Number of peers the payload was delivered to
        """
        code = sender.room_code
        if code is None:
            logger.debug(
                "[Registry] dropped message from unaffiliated session {}", sender.id
            )
            return 0

        sent = 0
        failed: list[Session] = []
        for peer in list(self.rooms.get(code, {}).values()):
            if peer is sender or not peer.is_open:
                continue
            try:
                await peer.send(payload, binary)
                sent += 1
            except Exception as e:
                logger.warning(
                    "[Registry] send to session {} in room {} failed: {!r}",
                    peer.id, code, e,
                )
                failed.append(peer)

        # Failed peers count as disconnected
        for peer in failed:
            peer.closed = True
            self.leave(peer)

        if sent == 0:
            logger.info("[Registry] broadcast dropped: no peers in room {}", code)
        return sent

    def members(self, room_code: str) -> list[Session]:
        """Get the sessions currently in a room."""
        return list(self.rooms.get(normalize_room_code(room_code), {}).values())

    def count(self, room_code: str) -> int:
        """Get the number of sessions in a room."""
        return len(self.rooms.get(normalize_room_code(room_code), {}))

    @property
    def session_count(self) -> int:
        """Get the number of affiliated sessions across all rooms."""
        return sum(len(members) for members in self.rooms.values())

    def prune_stale(self) -> int:
        """Evict every member whose connection has gone away.

        Returns:
            Number of sessions evicted
        """
        stale = [
            session
            for members in list(self.rooms.values())
            for session in list(members.values())
            if session.is_stale
        ]
        for session in stale:
            self.leave(session)
        return len(stale)


# Global room registry
room_registry = RoomRegistry()
