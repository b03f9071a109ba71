"""
Tests for the chat session state machine.

Tests verify:
- Join notices (private welcome, join notice to others, online set)
- A failed welcome closes the session without join or leave notices
- Chat relay excludes the sender
- Malformed frames are dropped without a state change
- Close is idempotent and announces the departure once
- Operations on a closed session raise SessionClosed
"""

import asyncio

import pytest

from chat_gateway.components.connection.registry import Connection
from chat_gateway.components.core.constants import WSCloseCode
from chat_gateway.components.core.exceptions import SessionClosed
from chat_gateway.components.events.messages import SystemMessage
from chat_gateway.core.session import SessionState, normalize_display_name
from shared.config.settings import settings
from tests.conftest import FakeWebSocket


class TestNormalizeDisplayName:
    """Client-requested names are cleaned or rejected."""

    def test_strips_whitespace(self):
        assert normalize_display_name("  alice  ", 32) == "alice"

    def test_truncates(self):
        assert normalize_display_name("a" * 50, 10) == "a" * 10

    @pytest.mark.parametrize("name", [None, "", "   ", "bad\nname", "tab\there"])
    def test_unusable_names(self, name):
        assert normalize_display_name(name, 32) is None


class TestJoin:
    """CONNECTING -> ACTIVE."""

    @pytest.mark.asyncio
    async def test_first_join(self, make_session, registry):
        session = make_session()

        assert await session.join() is True

        assert session.state is SessionState.ACTIVE
        assert session.display_name == "User1"
        assert session.websocket.sent == [
            {"type": "system", "content": "Welcome to the chat, User1!"},
            {"type": "userlist", "users": ["User1"]},
        ]
        assert await registry.snapshot() == ["User1"]

    @pytest.mark.asyncio
    async def test_second_join_notifies_others(self, make_session):
        alice = make_session(requested_name="alice")
        bob = make_session(requested_name="bob")
        await alice.join()
        alice.websocket.sent.clear()

        await bob.join()

        assert alice.websocket.sent == [
            {"type": "system", "content": "bob joined the chat"},
            {"type": "userlist", "users": ["alice", "bob"]},
        ]
        assert bob.websocket.sent == [
            {"type": "system", "content": "Welcome to the chat, bob!"},
            {"type": "userlist", "users": ["alice", "bob"]},
        ]

    @pytest.mark.asyncio
    async def test_join_twice_is_noop(self, make_session):
        session = make_session()
        await session.join()
        sent_before = list(session.websocket.sent)

        assert await session.join() is True
        assert session.websocket.sent == sent_before

    @pytest.mark.asyncio
    async def test_requested_name_in_use_is_rejected(self, make_session, registry, metrics):
        first = make_session(requested_name="alice")
        await first.join()
        dup = make_session(requested_name="alice")

        assert await dup.join() is False

        assert dup.state is SessionState.CLOSED
        assert dup.websocket.close_codes == [WSCloseCode.NAME_IN_USE]
        assert await registry.snapshot() == ["alice"]
        assert metrics.get_snapshot()["connections_rejected_name"] == 1
        # No join notice went out for the rejected session
        assert all("joined" not in f.get("content", "") for f in first.websocket.sent[2:])

    @pytest.mark.asyncio
    async def test_generated_name_clash_draws_a_new_name(self, make_session, registry):
        squatter = make_session(requested_name="User1")
        await squatter.join()
        session = make_session()

        assert await session.join() is True
        assert session.display_name == "User2"
        assert await registry.snapshot() == ["User1", "User2"]

    @pytest.mark.asyncio
    async def test_duplicate_id_retries_with_fresh_id(self, make_session, registry):
        await registry.register(Connection(id=500, websocket=FakeWebSocket()), "ghost")
        session = make_session(connection_id=500)

        assert await session.join() is True
        assert session.connection_id != 500
        assert session.connection_id in registry

    @pytest.mark.asyncio
    async def test_failed_welcome_leaves_quietly(self, make_session, registry):
        alice = make_session(requested_name="alice")
        await alice.join()
        alice.websocket.sent.clear()
        bob = make_session(websocket=FakeWebSocket(fail_send=True), requested_name="bob")

        assert await bob.join() is False

        assert bob.state is SessionState.CLOSED
        assert bob.websocket.close_codes == [WSCloseCode.SEND_FAILED]
        assert await registry.snapshot() == ["alice"]
        assert alice.websocket.sent == []

    @pytest.mark.asyncio
    async def test_failed_welcome_through_manager_announces_nothing(self, manager):
        alice = await manager.connect(FakeWebSocket(), requested_name="alice")
        await alice.join()
        alice.websocket.sent.clear()
        bob = await manager.connect(FakeWebSocket(fail_send=True), requested_name="bob")

        assert await bob.join() is False

        assert bob.state is SessionState.CLOSED
        assert bob.websocket.close_codes == [WSCloseCode.SEND_FAILED]
        assert await manager.registry.snapshot() == ["alice"]
        assert alice.websocket.sent == []
        assert manager.metrics.get_snapshot()["connections_torn_down"] == 1


class TestHandleFrame:
    """Inbound frames while ACTIVE."""

    @pytest.mark.asyncio
    async def test_chat_reaches_others_not_sender(self, make_session):
        a, b, c = make_session(), make_session(), make_session()
        for s in (a, b, c):
            await s.join()
        for s in (a, b, c):
            s.websocket.sent.clear()

        assert await a.handle_frame('{"type": "chat", "content": "hi"}') is True

        expected = [{"type": "chat", "sender": "User1", "content": "hi"}]
        assert a.websocket.sent == []
        assert b.websocket.sent == expected
        assert c.websocket.sent == expected

    @pytest.mark.asyncio
    async def test_chat_timestamp_when_enabled(self, make_session, monkeypatch):
        monkeypatch.setattr(settings, "chat_include_timestamp", True)
        a, b = make_session(), make_session()
        await a.join()
        await b.join()

        await a.handle_frame('{"type": "chat", "content": "hi"}')

        frame = b.websocket.of_type("chat")[-1]
        assert isinstance(frame["timestamp"], int)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [
            "not json",
            '{"type": "typing"}',
            '{"type": "chat"}',
            '{"type": "chat", "content": 1}',
            None,
        ],
    )
    async def test_malformed_frame_is_dropped(self, make_session, metrics, data):
        a, b = make_session(), make_session()
        await a.join()
        await b.join()
        b.websocket.sent.clear()

        assert await a.handle_frame(data) is False

        assert a.state is SessionState.ACTIVE
        assert b.websocket.sent == []
        assert metrics.get_snapshot()["frames_dropped"] == 1

    @pytest.mark.asyncio
    async def test_oversize_frame_is_dropped(self, make_session, monkeypatch):
        monkeypatch.setattr(settings, "ws_max_message_size", 32)
        a, b = make_session(), make_session()
        await a.join()
        await b.join()
        b.websocket.sent.clear()

        frame = '{"type": "chat", "content": "%s"}' % ("x" * 64)
        assert await a.handle_frame(frame) is False
        assert b.websocket.sent == []


class TestClose:
    """ACTIVE -> CLOSED."""

    @pytest.mark.asyncio
    async def test_leave_announced_once(self, make_session, registry):
        alice, bob = make_session(requested_name="alice"), make_session(requested_name="bob")
        await alice.join()
        await bob.join()
        alice.websocket.sent.clear()

        await bob.close(reason="bye")
        await bob.close(reason="bye again")

        assert alice.websocket.sent == [
            {"type": "system", "content": "bob left the chat"},
            {"type": "userlist", "users": ["alice"]},
        ]
        assert bob.state is SessionState.CLOSED
        assert bob.websocket.close_codes == [WSCloseCode.NORMAL]
        assert await registry.snapshot() == ["alice"]

    @pytest.mark.asyncio
    async def test_close_without_announce(self, make_session):
        alice, bob = make_session(), make_session()
        await alice.join()
        await bob.join()
        alice.websocket.sent.clear()

        await bob.close(code=WSCloseCode.GOING_AWAY, announce=False)

        assert alice.websocket.sent == []
        assert bob.websocket.close_codes == [WSCloseCode.GOING_AWAY]

    @pytest.mark.asyncio
    async def test_close_before_join_sends_nothing(self, make_session):
        watcher = make_session()
        await watcher.join()
        watcher.websocket.sent.clear()
        pending = make_session()

        await pending.close()

        assert pending.state is SessionState.CLOSED
        assert watcher.websocket.sent == []

    @pytest.mark.asyncio
    async def test_operations_after_close_raise(self, make_session):
        session = make_session()
        await session.join()
        await session.close()

        with pytest.raises(SessionClosed):
            await session.handle_frame('{"type": "chat", "content": "late"}')
        with pytest.raises(SessionClosed):
            await session.send(SystemMessage("late"))
        with pytest.raises(SessionClosed):
            await session.join()


class TestRun:
    """Full session lifecycle driven by inbound frames."""

    @pytest.mark.asyncio
    async def test_run_relays_then_leaves_on_disconnect(self, make_session, registry):
        watcher = make_session(requested_name="watcher")
        await watcher.join()
        watcher.websocket.sent.clear()

        ws = FakeWebSocket()
        ws.push_text('{"type": "chat", "content": "one"}')
        ws.push_bytes(b"\x00\x01")
        ws.push_text('{"type": "chat", "content": "two"}')
        ws.push_disconnect()
        session = make_session(websocket=ws, requested_name="talker")

        await asyncio.wait_for(session.run(), timeout=2.0)

        assert session.state is SessionState.CLOSED
        assert await registry.snapshot() == ["watcher"]
        contents = [f["content"] for f in watcher.websocket.sent if f["type"] != "userlist"]
        assert contents == ["talker joined the chat", "one", "two", "talker left the chat"]

    @pytest.mark.asyncio
    async def test_peer_send_failure_closes_session_and_announces(self, make_session, router):
        closed = []

        async def on_teardown(connection):
            closed.append(connection.id)
            await broken.close(reason="Send failed", code=WSCloseCode.SEND_FAILED)

        router.set_teardown_callback(on_teardown)
        alice = make_session(requested_name="alice")
        broken = make_session(websocket=FakeWebSocket(), requested_name="broken")
        await alice.join()
        await broken.join()
        broken.websocket.fail_send = True
        alice.websocket.sent.clear()

        await alice.handle_frame('{"type": "chat", "content": "hello?"}')

        assert closed == [broken.connection_id]
        assert broken.state is SessionState.CLOSED
        assert {"type": "system", "content": "broken left the chat"} in alice.websocket.sent
        assert alice.websocket.sent[-1] == {"type": "userlist", "users": ["alice"]}
