"""Service modules."""

from lanxfer.services.crypto import EncryptionContext
from lanxfer.services.registry import RoomRegistry
from lanxfer.services.relay import RelayDispatcher

__all__ = ["EncryptionContext", "RelayDispatcher", "RoomRegistry"]
