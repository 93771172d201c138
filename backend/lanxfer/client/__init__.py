"""Participant side: transfer engine and relay connection."""

from lanxfer.client.connection import RelayClient
from lanxfer.client.transfer import TransferEngine

__all__ = ["RelayClient", "TransferEngine"]
