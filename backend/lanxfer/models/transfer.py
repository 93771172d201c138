"""File transfer model."""

import enum
import itertools
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from lanxfer.models.message import DEFAULT_MIME_TYPE

_sequence = itertools.count(1)


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def generate_transfer_id() -> str:
    """Generate a transfer ID that sorts by creation time.

    Format is ``<epoch milliseconds>-<process-local sequence>-<random hex>``.
    The random part keeps IDs from two freshly started peers apart.
    """
    return f"{int(time.time() * 1000)}-{next(_sequence)}-{secrets.token_hex(4)}"


class TransferStatus(enum.Enum):
    """Status of a file transfer."""

    SENT = "sent"  # Fully streamed (outbound, unconfirmed)
    PENDING = "pending"  # Meta received, no chunk yet
    RECEIVING = "receiving"  # Accumulating chunks
    RECEIVED = "received"  # Reassembled and delivered
    ERROR = "error"  # Decryption or reassembly failed


class TransferDirection(enum.Enum):
    """Direction of a file transfer."""

    OUTBOUND = "outbound"
    INBOUND = "inbound"


@dataclass
class Artifact:
    """A reassembled inbound file ready for delivery."""

    transfer_id: str
    name: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(eq=False)
class Transfer:
    """One file moving in one direction.

    Inbound transfers collect decrypted fragments in receipt order.
    Outbound transfers keep a reference to their source so they can be
    sent again.
    """

    id: str
    name: str
    size: int
    direction: TransferDirection
    status: TransferStatus
    mime_type: str = DEFAULT_MIME_TYPE
    transferred_bytes: int = 0
    fragments: list[bytes] = field(default_factory=list)
    source: bytes | Path | None = None
    stream_tag: bytes | None = None
    artifact: Artifact | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def progress(self) -> int:
        """Percentage of the declared size transferred so far."""
        if self.size <= 0:
            return 0
        return self.transferred_bytes * 100 // self.size

    @property
    def is_active(self) -> bool:
        """Check if an inbound transfer still accepts chunks."""
        return self.direction == TransferDirection.INBOUND and self.status in (
            TransferStatus.PENDING,
            TransferStatus.RECEIVING,
        )

    @property
    def is_complete(self) -> bool:
        """Check if every declared byte was transferred."""
        return self.transferred_bytes == self.size

    def __repr__(self) -> str:
        return (
            f"<Transfer {self.id} {self.direction.value} status={self.status.value}>"
        )
