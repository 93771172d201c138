"""Chunked file transfer over a room relay.

Sending a file produces, in order:

    text    {"type": "file-meta", "id", "name", "size", "mime", "tag"}
    binary  tag || encrypt(chunk 0)
    binary  tag || encrypt(chunk 1)
    ...
    text    {"type": "file-end", "id"}

``tag`` is a random 8-byte stream tag chosen per transfer, so frames of
overlapping inbound transfers are routed to the right one. Frames from
peers that do not tag (no ``tag`` in their meta) are attributed whole to
the most recently announced untagged transfer that is still receiving.

There is no acknowledgement: an outbound transfer is marked ``sent`` as
soon as it starts streaming.
"""

import asyncio
import inspect
import secrets
from contextlib import aclosing
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Protocol

import aiofiles
from loguru import logger

from lanxfer.config import settings
from lanxfer.exceptions import (
    AuthenticationError,
    NotConnectedError,
    TransferInProgressError,
    UnknownTransferError,
)
from lanxfer.models.message import (
    DEFAULT_MIME_TYPE,
    FileEnd,
    FileMeta,
    encode_control,
    parse_control,
)
from lanxfer.models.transfer import (
    Artifact,
    Transfer,
    TransferDirection,
    TransferStatus,
    generate_transfer_id,
)
from lanxfer.services.crypto import EncryptionContext

STREAM_TAG_SIZE = 8

DECRYPTION_HINT = "Check that both devices use the same room code and key."


class Channel(Protocol):
    """Outbound side of a relay connection."""

    @property
    def is_open(self) -> bool: ...

    async def send_text(self, text: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...


Hook = Callable[..., Any]


class TransferEngine:
    """Sends and receives files for one party.

    Hooks may be plain functions or coroutine functions:

    - ``on_change(transfer)``: a transfer was created or changed status
    - ``on_progress(transfer)``: a chunk was sent or accepted
    - ``on_artifact(artifact)``: an inbound file was reassembled
    - ``on_error(transfer, message)``: an inbound transfer failed
    """

    def __init__(
        self,
        crypto: EncryptionContext | None = None,
        chunk_size: int = settings.chunk_size,
        tag_frames: bool = True,
    ):
        """Initialize the engine.

        Args:
            crypto: Encryption context, plaintext mode if omitted
            chunk_size: Plaintext bytes per binary frame
            tag_frames: Prefix outbound frames with a stream tag
        """
        self.crypto = crypto or EncryptionContext()
        self.chunk_size = chunk_size
        self.tag_frames = tag_frames
        self.transfers: dict[str, Transfer] = {}

        self.on_change: Hook | None = None
        self.on_progress: Hook | None = None
        self.on_artifact: Hook | None = None
        self.on_error: Hook | None = None

        self._channel: Channel | None = None
        self._outbound: Transfer | None = None
        # stream tag -> inbound transfer id
        self._streams: dict[bytes, str] = {}
        # most recent untagged inbound transfer
        self._untagged_id: str | None = None

    def bind(self, channel: Channel) -> None:
        """Attach the connection outbound frames are written to."""
        self._channel = channel

    @property
    def is_sending(self) -> bool:
        return self._outbound is not None

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def get(self, transfer_id: str) -> Transfer:
        """Get a transfer by ID.

        Raises:
            UnknownTransferError: If no such transfer exists
        """
        try:
            return self.transfers[transfer_id]
        except KeyError:
            raise UnknownTransferError(transfer_id) from None

    def list_transfers(self) -> list[Transfer]:
        """All known transfers, newest first."""
        return sorted(self.transfers.values(), key=lambda t: t.created_at, reverse=True)

    def evict(self, transfer_id: str) -> Transfer:
        """Forget a transfer and release its buffers."""
        transfer = self.get(transfer_id)
        del self.transfers[transfer_id]
        if transfer.stream_tag is not None:
            self._streams.pop(transfer.stream_tag, None)
        if self._untagged_id == transfer_id:
            self._untagged_id = None
        return transfer

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(
        self,
        source: bytes | Path,
        name: str,
        mime_type: str | None = None,
        transfer_id: str | None = None,
    ) -> Transfer:
        """Stream a file to every other party in the room.

        The transfer is registered as ``sent`` before the first chunk goes
        out. If the connection drops or ``cancel()`` is called mid-stream,
        sending stops and no ``file-end`` is emitted, so the transfer keeps
        a byte count below its size.

        Args:
            source: File contents, or a path read chunk by chunk
            name: Display name announced to peers
            mime_type: Media type announced to peers
            transfer_id: Reuse an ID, a fresh one is assigned otherwise

        Returns:
            The outbound transfer

        Raises:
            NotConnectedError: If the relay connection is not open
            TransferInProgressError: If another file is being sent
        """
        channel = self._channel
        if channel is None or not channel.is_open:
            raise NotConnectedError("Not connected to the relay")
        if self._outbound is not None:
            raise TransferInProgressError("A file is already being sent")

        transfer = Transfer(
            id=transfer_id or generate_transfer_id(),
            name=name,
            size=_source_size(source),
            direction=TransferDirection.OUTBOUND,
            status=TransferStatus.SENT,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            source=source,
            stream_tag=secrets.token_bytes(STREAM_TAG_SIZE) if self.tag_frames else None,
        )
        self._outbound = transfer
        try:
            self.transfers[transfer.id] = transfer
            await self._emit(self.on_change, transfer)
            await self._stream(channel, transfer)
        except NotConnectedError:
            logger.warning(
                "[Transfer] connection lost while sending {}: {} of {} bytes sent",
                transfer.id, transfer.transferred_bytes, transfer.size,
            )
        finally:
            if self._outbound is transfer:
                self._outbound = None

        return transfer

    async def resend(self, transfer_id: str, new_id: bool = False) -> Transfer:
        """Send an outbound transfer again from its held source.

        Args:
            transfer_id: ID of a previous outbound transfer
            new_id: Announce under a fresh ID instead of the original one
        """
        previous = self.get(transfer_id)
        if previous.direction != TransferDirection.OUTBOUND or previous.source is None:
            raise UnknownTransferError(f"{transfer_id} is not a resendable outbound transfer")

        return await self.send(
            previous.source,
            previous.name,
            previous.mime_type,
            transfer_id=None if new_id else previous.id,
        )

    def cancel(self) -> bool:
        """Stop the outbound transfer before its next chunk.

        Returns:
            True if a transfer was being sent
        """
        was_sending = self._outbound is not None
        self._outbound = None
        return was_sending

    async def _stream(self, channel: Channel, transfer: Transfer) -> None:
        meta = FileMeta(
            id=transfer.id,
            name=transfer.name,
            size=transfer.size,
            mime_type=transfer.mime_type,
            tag=transfer.stream_tag.hex() if transfer.stream_tag else None,
        )
        await channel.send_text(encode_control(meta))
        logger.info(
            "[Transfer] sending {} ({}, {} bytes, {})",
            transfer.id, transfer.name, transfer.size, self.crypto.mode,
        )

        prefix = transfer.stream_tag or b""
        async with aclosing(self._read_chunks(transfer.source)) as chunks:
            async for chunk in chunks:
                if self._outbound is not transfer:
                    logger.info(
                        "[Transfer] sending {} cancelled after {} bytes",
                        transfer.id, transfer.transferred_bytes,
                    )
                    return
                if not channel.is_open:
                    raise NotConnectedError("Relay connection closed")

                await channel.send_bytes(prefix + self.crypto.encrypt(chunk))
                transfer.transferred_bytes += len(chunk)
                logger.debug(
                    "[Transfer] sent chunk of {} ({} / {} bytes)",
                    transfer.id, transfer.transferred_bytes, transfer.size,
                )
                await self._emit(self.on_progress, transfer)

                # Let other tasks run between chunks
                await asyncio.sleep(0)

        await channel.send_text(encode_control(FileEnd(id=transfer.id)))
        logger.info("[Transfer] sent {} ({} bytes)", transfer.id, transfer.transferred_bytes)

    async def _read_chunks(self, source: bytes | Path) -> AsyncIterator[bytes]:
        if isinstance(source, Path):
            async with aiofiles.open(source, "rb") as f:
                while chunk := await f.read(self.chunk_size):
                    yield chunk
        else:
            view = memoryview(source)
            for offset in range(0, len(view), self.chunk_size):
                yield bytes(view[offset : offset + self.chunk_size])

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    async def handle_message(self, message: str | bytes) -> None:
        """Process one frame received from the relay."""
        if isinstance(message, str):
            await self.handle_text(message)
        else:
            await self.handle_binary(message)

    async def handle_text(self, text: str) -> None:
        """Process a text frame from a peer."""
        message = parse_control(text)
        if isinstance(message, FileMeta):
            await self._open_inbound(message)
        elif isinstance(message, FileEnd):
            await self._finish_inbound(message.id)
        else:
            logger.debug("[Transfer] ignoring non-protocol text message")

    async def handle_binary(self, data: bytes) -> None:
        """Decrypt a chunk and append it to the transfer it belongs to.

        Chunks are appended in the order this method is awaited, so callers
        must not process frames of one connection concurrently.
        """
        transfer, payload = self._route(data)
        if transfer is None:
            logger.debug(
                "[Transfer] discarding {} byte frame with no receiving transfer", len(data)
            )
            return

        try:
            plaintext = self.crypto.decrypt(payload)
        except AuthenticationError as e:
            await self._fail(transfer, f"Decryption failed: {e}. {DECRYPTION_HINT}")
            return

        transfer.fragments.append(plaintext)
        transfer.transferred_bytes += len(plaintext)
        if transfer.status == TransferStatus.PENDING:
            transfer.status = TransferStatus.RECEIVING
            await self._emit(self.on_change, transfer)
        logger.debug(
            "[Transfer] received chunk of {} ({} / {} bytes, {}%)",
            transfer.id, transfer.transferred_bytes, transfer.size, transfer.progress,
        )
        await self._emit(self.on_progress, transfer)

    def abandon(self) -> None:
        """Drop all in-flight state after the relay connection is lost.

        An outbound transfer stops before its next chunk. Inbound transfers
        stay ``pending``/``receiving`` but no longer accept frames.
        """
        if self._outbound is not None:
            logger.warning("[Transfer] abandoning outbound transfer")
        self._outbound = None
        self._streams.clear()
        self._untagged_id = None

    def _route(self, data: bytes) -> tuple[Transfer | None, bytes]:
        if len(data) >= STREAM_TAG_SIZE:
            transfer_id = self._streams.get(bytes(data[:STREAM_TAG_SIZE]))
            if transfer_id is not None:
                transfer = self.transfers.get(transfer_id)
                if transfer is not None and transfer.is_active:
                    return transfer, data[STREAM_TAG_SIZE:]
                # Late frame of a finished or failed stream
                return None, data

        if self._untagged_id is not None:
            transfer = self.transfers.get(self._untagged_id)
            if transfer is not None and transfer.is_active:
                return transfer, data
        return None, data

    async def _open_inbound(self, meta: FileMeta) -> None:
        previous = self.transfers.get(meta.id)
        if previous is not None and previous.direction == TransferDirection.OUTBOUND:
            logger.warning(
                "[Transfer] ignoring meta for {}: ID belongs to an outbound transfer", meta.id
            )
            return
        if previous is not None and previous.stream_tag is not None:
            self._streams.pop(previous.stream_tag, None)

        tag = bytes.fromhex(meta.tag) if meta.tag else None
        transfer = Transfer(
            id=meta.id,
            name=meta.name,
            size=meta.size,
            direction=TransferDirection.INBOUND,
            status=TransferStatus.PENDING,
            mime_type=meta.mime_type,
            stream_tag=tag,
        )
        self.transfers[meta.id] = transfer

        if tag is not None:
            self._streams[tag] = meta.id
            if self._untagged_id == meta.id:
                self._untagged_id = None
        else:
            self._untagged_id = meta.id

        logger.info(
            "[Transfer] receiving {} ({}, {} bytes)", meta.id, meta.name, meta.size
        )
        await self._emit(self.on_change, transfer)

    async def _finish_inbound(self, transfer_id: str) -> Artifact | None:
        transfer = self.transfers.get(transfer_id)
        if transfer is None or not transfer.is_active or not transfer.fragments:
            logger.debug("[Transfer] nothing to finalize for {}", transfer_id)
            return None

        data = b"".join(transfer.fragments)
        transfer.fragments = []
        if self._untagged_id == transfer_id:
            self._untagged_id = None

        if len(data) != transfer.size:
            await self._fail(
                transfer,
                f"Reassembly failed: received {len(data)} of {transfer.size} bytes",
            )
            return None

        artifact = Artifact(
            transfer_id=transfer.id,
            name=transfer.name,
            mime_type=transfer.mime_type,
            data=data,
        )
        transfer.artifact = artifact
        transfer.status = TransferStatus.RECEIVED
        logger.info("[Transfer] received {} ({} bytes)", transfer.id, artifact.size)

        await self._emit(self.on_artifact, artifact)
        await self._emit(self.on_change, transfer)
        return artifact

    async def _fail(self, transfer: Transfer, message: str) -> None:
        transfer.status = TransferStatus.ERROR
        transfer.error = message
        transfer.fragments = []
        if self._untagged_id == transfer.id:
            self._untagged_id = None

        logger.warning("[Transfer] {} failed: {}", transfer.id, message)
        await self._emit(self.on_error, transfer, message)
        await self._emit(self.on_change, transfer)

    @staticmethod
    async def _emit(hook: Hook | None, *args: Any) -> None:
        if hook is None:
            return
        # Hook errors are logged and never reach the connection loop
        try:
            result = hook(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("[Transfer] {} hook failed", getattr(hook, "__name__", hook))


def _source_size(source: bytes | Path) -> int:
    if isinstance(source, Path):
        return source.stat().st_size
    return len(source)
