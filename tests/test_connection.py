"""Tests for the relay client reconnect loop."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from websockets.exceptions import InvalidURI

from conftest import CaptureChannel
from lanxfer.client.connection import RelayClient
from lanxfer.client.transfer import TransferEngine
from lanxfer.exceptions import InvalidRoomCodeError, NotConnectedError

URL = "ws://relay.test/api/ws"


class FakeConnection:
    """Stands in for a websockets client connection."""

    def __init__(self, incoming=()):
        self.incoming = list(incoming)
        self.sent: list[str | bytes] = []
        self.closed = False

    async def send(self, message):
        self.sent.append(message)

    async def close(self):
        self.closed = True

    async def __aiter__(self):
        for message in self.incoming:
            yield message


def install_connect(monkeypatch, script):
    """Patch websockets.connect to play ``script`` one attempt at a time.

    Each entry is a FakeConnection, an exception to raise, or a callable run
    before raising OSError.
    """
    calls = []

    @asynccontextmanager
    async def connect(url, **kwargs):
        calls.append((url, kwargs))
        step = script.pop(0)
        if isinstance(step, FakeConnection):
            yield step
            return
        if isinstance(step, BaseException):
            raise step
        step()
        raise OSError("connection refused")

    monkeypatch.setattr("lanxfer.client.connection.websockets.connect", connect)
    return calls


async def outgoing_frames(data: bytes, name: str) -> list[str | bytes]:
    channel = CaptureChannel()
    sender = TransferEngine(chunk_size=1000)
    sender.bind(channel)
    await sender.send(data, name)
    return channel.frames


class TestRelayClient:
    def test_rejects_invalid_room_code(self):
        with pytest.raises(InvalidRoomCodeError):
            RelayClient(URL, "nope", TransferEngine())

    def test_default_reconnect_delay(self):
        client = RelayClient(URL, "ab12cd", TransferEngine())
        assert client.reconnect_delay == 1.5
        assert client.room_code == "AB12CD"

    @pytest.mark.asyncio
    async def test_send_requires_connection(self):
        client = RelayClient(URL, "AB12CD", TransferEngine())
        assert not client.is_open
        with pytest.raises(NotConnectedError):
            await client.send_text("hello")
        with pytest.raises(NotConnectedError):
            await client.engine.send(b"data", "a.bin")

    @pytest.mark.asyncio
    async def test_joins_first_and_dispatches_frames(self, monkeypatch):
        frames = await outgoing_frames(b"x" * 2500, "a.bin")
        connection = FakeConnection(incoming=frames)
        engine = TransferEngine()
        client = RelayClient(URL, "ab12cd", engine, reconnect_delay=0)
        artifacts, open_during_receive = [], []

        def on_artifact(artifact):
            artifacts.append(artifact)
            open_during_receive.append(client.is_open)

        engine.on_artifact = on_artifact
        calls = install_connect(
            monkeypatch, [connection, lambda: setattr(client, "_running", False)]
        )

        await client.run()

        assert calls[0] == (URL, {"max_size": None})
        assert json.loads(connection.sent[0]) == {"type": "join-room", "room": "AB12CD"}
        assert len(artifacts) == 1
        assert artifacts[0].data == b"x" * 2500
        assert open_during_receive == [True]
        assert not client.is_open

    @pytest.mark.asyncio
    async def test_reconnects_until_stopped(self, monkeypatch):
        client = RelayClient(URL, "AB12CD", TransferEngine(), reconnect_delay=0)
        first, second = FakeConnection(), FakeConnection()
        install_connect(
            monkeypatch,
            [
                first,
                OSError("network unreachable"),
                second,
                lambda: setattr(client, "_running", False),
            ],
        )

        await client.run()

        assert client.attempts == 4
        # Every connection announces its room again
        assert len(first.sent) == 1
        assert first.sent == second.sent

    @pytest.mark.asyncio
    async def test_invalid_uri_is_not_retried(self, monkeypatch):
        client = RelayClient("not a url", "AB12CD", TransferEngine(), reconnect_delay=0)
        install_connect(monkeypatch, [InvalidURI("not a url", "scheme isn't ws or wss")])

        with pytest.raises(InvalidURI):
            await client.run()
        assert client.attempts == 1

    @pytest.mark.asyncio
    async def test_connection_loss_abandons_inbound_routing(self, monkeypatch):
        frames = await outgoing_frames(b"y" * 2500, "partial.bin")
        meta, first_chunk, *rest = frames
        engine = TransferEngine()
        client = RelayClient(URL, "AB12CD", engine, reconnect_delay=0)
        install_connect(
            monkeypatch,
            [
                FakeConnection(incoming=[meta, first_chunk]),
                FakeConnection(incoming=rest[:-1]),
                lambda: setattr(client, "_running", False),
            ],
        )

        await client.run()

        (transfer,) = engine.list_transfers()
        assert transfer.transferred_bytes == 1000
        assert transfer.artifact is None

    @pytest.mark.asyncio
    async def test_stop_closes_connection(self):
        client = RelayClient(URL, "AB12CD", TransferEngine())
        connection = AsyncMock()
        client._ws = connection

        await client.stop()

        connection.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_every_retry_waits_the_same_fixed_delay(self, monkeypatch):
        client = RelayClient(URL, "AB12CD", TransferEngine())
        install_connect(
            monkeypatch,
            [
                OSError("refused"),
                FakeConnection(),
                OSError("refused"),
                OSError("refused"),
                lambda: setattr(client, "_running", False),
            ],
        )
        delays = []

        async def record_sleep(delay):
            delays.append(delay)

        with monkeypatch.context() as m:
            m.setattr("lanxfer.client.connection.asyncio.sleep", record_sleep)
            await client.run()

        assert client.attempts == 5
        assert delays == [1.5, 1.5, 1.5, 1.5]

    @pytest.mark.asyncio
    async def test_hook_error_keeps_the_connection(self, monkeypatch):
        first = await outgoing_frames(b"a" * 1500, "first.bin")
        second = await outgoing_frames(b"b" * 1500, "second.bin")
        engine = TransferEngine()
        client = RelayClient(URL, "AB12CD", engine, reconnect_delay=0)
        saved = []

        async def save(artifact):
            if artifact.name == "first.bin":
                raise OSError("permission denied")
            saved.append(artifact.name)

        engine.on_artifact = save
        install_connect(
            monkeypatch,
            [
                FakeConnection(incoming=first + second),
                lambda: setattr(client, "_running", False),
            ],
        )

        await client.run()

        assert client.attempts == 2
        assert saved == ["second.bin"]
