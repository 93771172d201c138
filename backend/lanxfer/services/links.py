"""Shareable room links.

A link carries the room code, and optionally the shared key, in the URL
fragment so neither ever reaches an HTTP server:

    http://192.168.1.20:3000/#code-AB12CD&key=<url-safe base64>
"""

import re
from dataclasses import dataclass

from lanxfer.exceptions import InvalidKeyError, InvalidRoomCodeError, InvalidShareLinkError
from lanxfer.models.room import parse_room_code
from lanxfer.services.crypto import decode_key, encode_key

_CODE_RE = re.compile(r"code-([0-9A-Z]+)", re.IGNORECASE)
_KEY_RE = re.compile(r"key=([A-Za-z0-9_\-]+=*)")


@dataclass(frozen=True)
class ShareLink:
    """Room code and optional key parsed from a link."""

    room_code: str
    key: bytes | None = None


def build_share_link(base_url: str, room_code: str, key: bytes | None = None) -> str:
    """Build a link that lets another device join a room.

    Args:
        base_url: Page URL, any existing fragment is replaced
        room_code: Room to join
        key: Shared key, omitted for plaintext mode

    Returns:
        Link with the room code and key in its fragment
    """
    fragment = f"code-{parse_room_code(room_code)}"
    if key is not None:
        fragment += f"&key={encode_key(key)}"
    return f"{base_url.split('#', 1)[0]}#{fragment}"


def parse_share_link(link: str) -> ShareLink:
    """Extract the room code and key from a full link or a bare fragment.

    Raises:
        InvalidShareLinkError: If there is no valid room code or the key is malformed
    """
    fragment = link.split("#", 1)[1] if "#" in link else link

    code_match = _CODE_RE.search(fragment)
    if not code_match:
        raise InvalidShareLinkError("Link does not contain a room code")
    try:
        room_code = parse_room_code(code_match.group(1))
    except InvalidRoomCodeError as e:
        raise InvalidShareLinkError(str(e)) from e

    key = None
    key_match = _KEY_RE.search(fragment)
    if key_match:
        try:
            key = decode_key(key_match.group(1))
        except InvalidKeyError as e:
            raise InvalidShareLinkError(f"Link carries a malformed key: {e}") from e

    return ShareLink(room_code=room_code, key=key)
