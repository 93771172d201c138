"""Exceptions raised by the relay and the transfer engine."""


class LanXferError(Exception):
    """Base class for all errors raised by this package."""


class AuthenticationError(LanXferError):
    """An encrypted frame failed authentication.

    Raised for a tag mismatch, a wrong key, a truncated frame, or a plaintext
    frame arriving while encryption is enabled. These cases cannot be told
    apart from the ciphertext alone.
    """


class InvalidRoomCodeError(LanXferError, ValueError):
    """A room code is not a 6 character alphanumeric token."""


class InvalidShareLinkError(LanXferError, ValueError):
    """A share link carries no room code or a malformed key."""


class TransferInProgressError(LanXferError):
    """An outbound transfer is already streaming."""


class NotConnectedError(LanXferError):
    """The relay connection is not open."""


class UnknownTransferError(LanXferError, KeyError):
    """No transfer is registered under the given id."""


class InvalidKeyError(InvalidShareLinkError):
    """A shared key is not valid URL-safe base64 for 32 bytes."""
