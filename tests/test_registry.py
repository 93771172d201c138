"""Tests for room membership and broadcast."""

from __future__ import annotations

import pytest
from starlette.websockets import WebSocketState

from conftest import make_session


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


class TestMembership:
    def test_join_canonicalizes_code(self, registry):
        s = make_session()
        code = registry.join(s, " ab12cd ")
        assert code == "AB12CD"
        assert s.room_code == "AB12CD"
        assert registry.members("ab12cd") == [s]

    def test_join_same_room_is_idempotent(self, registry):
        s = make_session()
        registry.join(s, "AB12CD")
        registry.join(s, "ab12cd")
        assert registry.count("AB12CD") == 1

    def test_rejoin_replaces_previous_room(self, registry):
        s = make_session()
        registry.join(s, "AAAAAA")
        registry.join(s, "BBBBBB")
        assert s.room_code == "BBBBBB"
        assert registry.count("AAAAAA") == 0
        assert "AAAAAA" not in registry.rooms
        assert registry.members("BBBBBB") == [s]

    def test_leave_removes_empty_room(self, registry):
        s = make_session()
        registry.join(s, "AB12CD")
        registry.leave(s)
        assert s.room_code is None
        assert registry.rooms == {}

    def test_leave_keeps_other_members(self, registry):
        a, b = make_session(), make_session()
        registry.join(a, "AB12CD")
        registry.join(b, "AB12CD")
        registry.leave(a)
        assert registry.members("AB12CD") == [b]

    def test_leave_unaffiliated_is_noop(self, registry):
        registry.leave(make_session())
        assert registry.rooms == {}

    def test_session_count(self, registry):
        for code in ("AAAAAA", "AAAAAA", "BBBBBB"):
            registry.join(make_session(), code)
        assert registry.session_count == 3


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_delivers_verbatim_to_room_peers_only(self, registry):
        a, b, c, outsider = (make_session() for _ in range(4))
        for s in (a, b, c):
            registry.join(s, "AB12CD")
        registry.join(outsider, "ZZZZZZ")

        sent = await registry.broadcast(a, "hello", binary=False)

        assert sent == 2
        assert b.websocket.sent == ["hello"]
        assert c.websocket.sent == ["hello"]
        assert a.websocket.sent == []
        assert outsider.websocket.sent == []

    @pytest.mark.asyncio
    async def test_binary_frames_stay_binary(self, registry):
        a, b = make_session(), make_session()
        registry.join(a, "AB12CD")
        registry.join(b, "AB12CD")

        payload = bytes(range(256))
        await registry.broadcast(a, payload, binary=True)

        assert b.websocket.sent == [payload]
        assert isinstance(b.websocket.sent[0], bytes)

    @pytest.mark.asyncio
    async def test_unaffiliated_sender_reaches_nobody(self, registry):
        lonely, member = make_session(), make_session()
        registry.join(member, "AB12CD")

        sent = await registry.broadcast(lonely, "hello", binary=False)

        assert sent == 0
        assert member.websocket.sent == []

    @pytest.mark.asyncio
    async def test_unaffiliated_session_receives_nothing(self, registry):
        a, b, lonely = make_session(), make_session(), make_session()
        registry.join(a, "AB12CD")
        registry.join(b, "AB12CD")

        await registry.broadcast(a, "hello", binary=False)

        assert lonely.websocket.sent == []

    @pytest.mark.asyncio
    async def test_no_peers_is_not_an_error(self, registry):
        a = make_session()
        registry.join(a, "AB12CD")
        assert await registry.broadcast(a, b"x", binary=True) == 0

    @pytest.mark.asyncio
    async def test_skips_sessions_that_are_not_open(self, registry):
        a, closing = make_session(), make_session()
        registry.join(a, "AB12CD")
        registry.join(closing, "AB12CD")
        closing.websocket.application_state = WebSocketState.DISCONNECTED

        assert await registry.broadcast(a, "hello", binary=False) == 0
        assert closing.websocket.sent == []

    @pytest.mark.asyncio
    async def test_failed_peer_is_evicted(self, registry):
        a, broken, healthy = make_session(), make_session(fail=True), make_session()
        for s in (a, broken, healthy):
            registry.join(s, "AB12CD")

        sent = await registry.broadcast(a, "first", binary=False)

        assert sent == 1
        assert healthy.websocket.sent == ["first"]
        assert broken not in registry.members("AB12CD")
        assert broken.room_code is None
        assert broken.closed

        # Later broadcasts never try the evicted peer again
        broken.websocket.fail = False
        await registry.broadcast(a, "second", binary=False)
        assert broken.websocket.sent == []
        assert healthy.websocket.sent == ["first", "second"]

    @pytest.mark.asyncio
    async def test_membership_change_during_broadcast(self, registry):
        a, b, c = make_session(), make_session(), make_session()
        late = make_session()
        registry.join(a, "AB12CD")
        registry.join(b, "AB12CD")
        registry.join(c, "AB12CD")

        original_send = b.websocket.send_text

        async def send_and_churn(text):
            registry.leave(c)
            registry.join(late, "AB12CD")
            await original_send(text)

        b.websocket.send_text = send_and_churn

        sent = await registry.broadcast(a, "hello", binary=False)

        assert sent >= 1
        assert b.websocket.sent == ["hello"]
        assert set(registry.members("AB12CD")) == {a, b, late}


# ---------------------------------------------------------------------------
# Stale sessions
# ---------------------------------------------------------------------------


class TestPruneStale:
    def test_evicts_disconnected_sessions(self, registry):
        live, dead, handshaking = make_session(), make_session(), make_session()
        for s in (live, dead, handshaking):
            registry.join(s, "AB12CD")
        dead.websocket.client_state = WebSocketState.DISCONNECTED
        handshaking.websocket.application_state = WebSocketState.CONNECTING

        assert registry.prune_stale() == 1
        assert set(registry.members("AB12CD")) == {live, handshaking}

    def test_evicts_closed_sessions(self, registry):
        s = make_session()
        registry.join(s, "AB12CD")
        s.closed = True
        assert registry.prune_stale() == 1
        assert registry.rooms == {}
