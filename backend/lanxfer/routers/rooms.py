"""Room lookup routes."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from lanxfer.exceptions import InvalidRoomCodeError
from lanxfer.models.room import generate_room_code, parse_room_code
from lanxfer.services.registry import room_registry

router = APIRouter(prefix="/rooms", tags=["rooms"])


# Response models
class RoomCodeResponse(BaseModel):
    """Freshly generated room code."""

    code: str


class RoomStatusResponse(BaseModel):
    """Room presence response body."""

    code: str
    peers: int


# Routes
@router.post("", response_model=RoomCodeResponse)
async def create_room():
    """Generate a new room code.

    Rooms are not stored; a room exists while sessions are joined to it.
    Keys are generated by the clients and never pass through the relay.
    """
    return RoomCodeResponse(code=generate_room_code())


@router.get("/{code}", response_model=RoomStatusResponse)
async def get_room(code: str):
    """Get the number of sessions currently joined to a room."""
    try:
        room_code = parse_room_code(code)
    except InvalidRoomCodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid room code",
        )

    return RoomStatusResponse(code=room_code, peers=room_registry.count(room_code))
