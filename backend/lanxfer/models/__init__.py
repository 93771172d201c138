"""Data models."""

from lanxfer.models.message import FileEnd, FileMeta, JoinRoom
from lanxfer.models.session import Session
from lanxfer.models.transfer import Artifact, Transfer, TransferDirection, TransferStatus

__all__ = [
    "Artifact",
    "FileEnd",
    "FileMeta",
    "JoinRoom",
    "Session",
    "Transfer",
    "TransferDirection",
    "TransferStatus",
]
