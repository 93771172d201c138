"""WebSocket relay endpoints."""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from lanxfer.models.room import is_valid_room_code
from lanxfer.models.session import Session
from lanxfer.services.registry import room_registry
from lanxfer.services.relay import RelayDispatcher

router = APIRouter(tags=["websocket"])

# Close code for a malformed room path
CLOSE_INVALID_ROOM = 4000


@router.websocket("/ws")
async def relay_endpoint(websocket: WebSocket):
    """Relay connection that joins a room with a ``join-room`` message.

    Until the client joins, its messages are dropped and it receives nothing.
    """
    await websocket.accept()
    await _serve(Session(websocket=websocket))


@router.websocket("/ws/{room_code}")
async def relay_room_endpoint(websocket: WebSocket, room_code: str):
    """Relay connection addressed to a room by its path.

    The session is affiliated before the handshake completes. A later
    ``join-room`` message still moves it to another room.
    """
    if not is_valid_room_code(room_code):
        await websocket.close(code=CLOSE_INVALID_ROOM, reason="Invalid room code")
        return

    session = Session(websocket=websocket)
    room_registry.join(session, room_code)
    try:
        await websocket.accept()
    except Exception:
        room_registry.leave(session)
        raise
    await _serve(session)


async def _serve(session: Session) -> None:
    """Process a session's frames in order until it disconnects."""
    dispatcher = RelayDispatcher(session, room_registry)
    websocket = session.websocket
    logger.info(
        "[Relay] session {} connected ({} affiliated sessions)",
        session.id, room_registry.session_count,
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            if message.get("bytes") is not None:
                await dispatcher.handle_binary(message["bytes"])
            elif message.get("text") is not None:
                await dispatcher.handle_text(message["text"])
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("[Relay] session {} error: {!r}", session.id, e)
    finally:
        dispatcher.close()
        logger.info(
            "[Relay] session {} disconnected ({} affiliated sessions)",
            session.id, room_registry.session_count,
        )
