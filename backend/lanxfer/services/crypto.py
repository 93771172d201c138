"""Per-chunk authenticated encryption.

The relay never holds a key. Each party builds an ``EncryptionContext`` from
the key carried in the share link fragment, and every binary chunk is sealed
on its own:

    nonce (12 bytes) || ciphertext || tag (16 bytes)

with AES-256-GCM and a fresh random nonce per chunk. A party without a key
runs in plaintext mode, where encrypt and decrypt return their input.
Callers are expected to tell the user when that happens.
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from lanxfer.exceptions import AuthenticationError, InvalidKeyError

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
FRAME_OVERHEAD = NONCE_SIZE + TAG_SIZE


def generate_key() -> bytes:
    """Generate a random 256-bit key."""
    return AESGCM.generate_key(bit_length=KEY_SIZE * 8)


def encode_key(key: bytes) -> str:
    """Encode a key as unpadded URL-safe base64, as used in share links."""
    return base64.urlsafe_b64encode(key).rstrip(b"=").decode("ascii")


def decode_key(text: str) -> bytes:
    """Decode a URL-safe base64 key, with or without padding.

    Raises:
        InvalidKeyError: If the text is not base64 or not 32 bytes long
    """
    padded = text.strip() + "=" * (-len(text.strip()) % 4)
    try:
        key = base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidKeyError("Key is not valid URL-safe base64") from e

    if len(key) != KEY_SIZE:
        raise InvalidKeyError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    return key


class EncryptionContext:
    """Symmetric key and AEAD operations for one party."""

    def __init__(self, key: bytes | None = None):
        """Initialize the context.

        Args:
            key: 32-byte shared key, or None for plaintext mode
        """
        if key is not None and len(key) != KEY_SIZE:
            raise InvalidKeyError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
        self._key = key
        self._aead = AESGCM(key) if key is not None else None

    @classmethod
    def generate(cls) -> "EncryptionContext":
        """Create a context with a fresh random key."""
        return cls(generate_key())

    @classmethod
    def from_encoded(cls, text: str | None) -> "EncryptionContext":
        """Create a context from a share link key, or plaintext mode for None."""
        if not text:
            return cls()
        return cls(decode_key(text))

    @property
    def enabled(self) -> bool:
        """Check if chunks are encrypted."""
        return self._aead is not None

    @property
    def mode(self) -> str:
        """Human-readable name of the active mode."""
        return "aes-256-gcm" if self.enabled else "plaintext"

    @property
    def key(self) -> bytes | None:
        return self._key

    @property
    def encoded_key(self) -> str | None:
        """The key in share link form."""
        return encode_key(self._key) if self._key is not None else None

    def encrypt(self, plaintext: bytes) -> bytes:
        """Seal one chunk.

        Args:
            plaintext: Chunk bytes

        Returns:
            ``nonce || ciphertext || tag``, or the chunk itself in plaintext mode
        """
        if self._aead is None:
            return bytes(plaintext)
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, bytes(plaintext), None)

    def decrypt(self, frame: bytes) -> bytes:
        """Open one sealed chunk.

        Args:
            frame: ``nonce || ciphertext || tag``

        Returns:
            Chunk plaintext, or the frame itself in plaintext mode

        Raises:
            AuthenticationError: If the frame does not verify under the key
        """
        if self._aead is None:
            return bytes(frame)
        if len(frame) < FRAME_OVERHEAD:
            raise AuthenticationError(
                f"Frame of {len(frame)} bytes is too short to be encrypted"
            )
        nonce, sealed = bytes(frame[:NONCE_SIZE]), bytes(frame[NONCE_SIZE:])
        try:
            return self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            raise AuthenticationError(
                "Chunk failed authentication (wrong key, tampered or unencrypted)"
            ) from e

    def fingerprint(self) -> str | None:
        """Short digest of the key for out-of-band comparison.

        Both parties holding the same key see the same four groups of five
        digits. Returns None in plaintext mode.
        """
        if self._key is None:
            return None

        digest = hashlib.sha256(self._key).digest()
        groups = []
        for i in range(0, 20, 5):
            chunk = int.from_bytes(digest[i : i + 5], "big")
            groups.append(f"{chunk % 100000:05d}")
        return " ".join(groups)

    def __repr__(self) -> str:
        return f"<EncryptionContext mode={self.mode}>"
