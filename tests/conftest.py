"""Shared fakes for relay and transfer tests."""

from __future__ import annotations

import pytest
from starlette.websockets import WebSocketState

from lanxfer.models.session import Session
from lanxfer.services.registry import RoomRegistry


class FakeWebSocket:
    """Records frames the relay sends to one peer."""

    def __init__(self, fail: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.fail = fail
        self.sent: list[str | bytes] = []

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(text)

    async def send_bytes(self, data: bytes) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(data)


class CaptureChannel:
    """Channel that keeps every frame a transfer engine writes."""

    def __init__(self):
        self.is_open = True
        self.frames: list[str | bytes] = []

    async def send_text(self, text: str) -> None:
        self.frames.append(text)

    async def send_bytes(self, data: bytes) -> None:
        self.frames.append(data)

    @property
    def binary_frames(self) -> list[bytes]:
        return [f for f in self.frames if isinstance(f, bytes)]

    @property
    def text_frames(self) -> list[str]:
        return [f for f in self.frames if isinstance(f, str)]


def make_session(fail: bool = False) -> Session:
    return Session(websocket=FakeWebSocket(fail=fail))


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def channel() -> CaptureChannel:
    return CaptureChannel()
