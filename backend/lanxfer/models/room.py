"""Room code helpers."""

import re
import secrets

from lanxfer.config import settings
from lanxfer.exceptions import InvalidRoomCodeError

# Only unambiguous characters (no 0/O, 1/I) when generating
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

# Anything alphanumeric is accepted when joining
ROOM_CODE_PATTERN = re.compile(r"^[0-9A-Z]{%d}$" % settings.room_code_length)


def generate_room_code() -> str:
    """Generate a human-readable room code."""
    return "".join(
        secrets.choice(ROOM_CODE_ALPHABET) for _ in range(settings.room_code_length)
    )


def normalize_room_code(code: str) -> str:
    """Canonicalize a room code: surrounding whitespace stripped, uppercased."""
    return code.strip().upper()


def is_valid_room_code(code: str) -> bool:
    """Check that a code is a well-formed room code, in any letter case."""
    return bool(ROOM_CODE_PATTERN.match(normalize_room_code(code)))


def parse_room_code(code: str) -> str:
    """Normalize and validate a room code.

    Raises:
        InvalidRoomCodeError: If the code is not well-formed
    """
    normalized = normalize_room_code(code)
    if not ROOM_CODE_PATTERN.match(normalized):
        raise InvalidRoomCodeError(f"Invalid room code: {code!r}")
    return normalized
