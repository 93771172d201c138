"""Control messages carried in WebSocket text frames.

Only ``join-room`` is interpreted by the relay. ``file-meta`` and
``file-end`` travel peer to peer and are handled by the transfer engine.
"""

from typing import Annotated, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    TypeAdapter,
    ValidationError,
)

DEFAULT_MIME_TYPE = "application/octet-stream"


class JoinRoom(BaseModel):
    """Client -> relay: affiliate this connection with a room."""

    type: Literal["join-room"] = "join-room"
    room: StrictStr


class FileMeta(BaseModel):
    """Peer -> peer: announces an outbound transfer.

    ``tag`` is the hex-encoded stream tag prefixed to every binary frame of
    the transfer. Peers that do not tag their frames leave it out.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    type: Literal["file-meta"] = "file-meta"
    id: str
    name: str
    size: int = Field(..., ge=0)
    mime_type: str = Field(
        default=DEFAULT_MIME_TYPE,
        validation_alias=AliasChoices("mime", "mimeType", "mime_type"),
        serialization_alias="mime",
    )
    tag: str | None = Field(default=None, pattern=r"^[0-9a-fA-F]{16}$")


class FileEnd(BaseModel):
    """Peer -> peer: all chunks of a transfer have been sent."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    type: Literal["file-end"] = "file-end"
    id: str


ControlMessage = Annotated[
    Union[JoinRoom, FileMeta, FileEnd], Field(discriminator="type")
]

_control_adapter = TypeAdapter(ControlMessage)


def parse_control(text: str) -> JoinRoom | FileMeta | FileEnd | None:
    """Parse a text frame into a control message.

    Returns None for anything that is not a well-formed control message:
    invalid JSON, unknown types and missing or mistyped fields alike.
    """
    try:
        return _control_adapter.validate_json(text)
    except ValidationError:
        return None


def encode_control(message: JoinRoom | FileMeta | FileEnd) -> str:
    """Serialize a control message for a text frame."""
    return message.model_dump_json(by_alias=True, exclude_none=True)
