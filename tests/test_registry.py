"""
Tests for the connection registry.

Tests verify:
- Join order is preserved in snapshots
- Id and name clashes are rejected
- Unregistering an absent id is a no-op
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from hypothesis import given, settings, strategies as st

from chat_gateway.components.connection.registry import Connection, ConnectionRegistry
from chat_gateway.components.core.exceptions import DisplayNameTaken, DuplicateConnection


def make_connection(connection_id: int) -> Connection:
    return Connection(id=connection_id, websocket=MagicMock())


class TestConnectionRegistry:
    """Registry operations."""

    @pytest.mark.asyncio
    async def test_register_assigns_name_and_returns_id(self, registry):
        conn = make_connection(1)
        assert await registry.register(conn, "alice") == 1
        assert conn.name == "alice"
        assert 1 in registry
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_snapshot_is_in_join_order(self, registry):
        for i, name in enumerate(["carol", "alice", "bob"], start=1):
            await registry.register(make_connection(i), name)
        assert await registry.snapshot() == ["carol", "alice", "bob"]

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, registry):
        await registry.register(make_connection(1), "alice")
        snapshot = await registry.snapshot()
        snapshot.append("mallory")
        assert await registry.snapshot() == ["alice"]

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, registry):
        await registry.register(make_connection(1), "alice")
        with pytest.raises(DuplicateConnection) as exc_info:
            await registry.register(make_connection(1), "bob")
        assert exc_info.value.connection_id == 1
        assert await registry.snapshot() == ["alice"]

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, registry):
        await registry.register(make_connection(1), "alice")
        conn = make_connection(2)
        with pytest.raises(DisplayNameTaken):
            await registry.register(conn, "alice")
        assert conn.name is None
        assert 2 not in registry

    @pytest.mark.asyncio
    async def test_name_reusable_after_leave(self, registry):
        await registry.register(make_connection(1), "alice")
        await registry.unregister(1)
        await registry.register(make_connection(2), "alice")
        assert await registry.snapshot() == ["alice"]

    @pytest.mark.asyncio
    async def test_unregister_returns_connection(self, registry):
        conn = make_connection(1)
        await registry.register(conn, "alice")
        assert await registry.unregister(1) is conn
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_unregister_absent_is_noop(self, registry):
        await registry.register(make_connection(1), "alice")
        assert await registry.unregister(99) is None
        assert await registry.unregister(99) is None
        assert await registry.snapshot() == ["alice"]

    @pytest.mark.asyncio
    async def test_concurrent_registrations_all_land(self, registry):
        await asyncio.gather(
            *[registry.register(make_connection(i), f"user{i}") for i in range(50)]
        )
        assert len(registry) == 50
        assert len(set(await registry.snapshot())) == 50

    def test_get_stats(self, registry):
        assert registry.get_stats() == {"online": 0, "alive": 0}


class TestConnection:
    """Connection handle behaviour."""

    def test_name_assigned_once(self):
        conn = make_connection(1)
        conn.assign_name("alice")
        conn.assign_name("alice")
        with pytest.raises(ValueError):
            conn.assign_name("bob")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        from tests.conftest import FakeWebSocket

        ws = FakeWebSocket()
        conn = Connection(id=1, websocket=ws)
        assert await conn.close(code=1001) is True
        assert await conn.close(code=1001) is False
        assert ws.close_codes == [1001]
        assert conn.alive is False

    @pytest.mark.asyncio
    async def test_send_after_close_raises(self):
        from tests.conftest import FakeWebSocket
        from chat_gateway.components.events.messages import SystemMessage

        conn = Connection(id=1, websocket=FakeWebSocket())
        await conn.close()
        with pytest.raises(ConnectionError):
            await conn.send(SystemMessage("x"), timeout=1.0)


class TestRegistryProperties:
    """Property-based tests for the online set."""

    @given(
        ops=st.lists(
            st.tuples(st.booleans(), st.integers(min_value=0, max_value=9)),
            max_size=40,
        )
    )
    @settings(max_examples=50, deadline=None)
    def test_snapshot_matches_live_names_in_join_order(self, ops):
        """Property: after any join/leave sequence, snapshot == live names in join order."""

        async def run():
            registry = ConnectionRegistry()
            expected: list[str] = []
            for join, slot in ops:
                name = f"user{slot}"
                if join:
                    if name in expected:
                        with pytest.raises(DisplayNameTaken):
                            await registry.register(make_connection(100 + slot), name)
                    else:
                        await registry.register(make_connection(slot), name)
                        expected.append(name)
                else:
                    removed = await registry.unregister(slot)
                    if name in expected:
                        assert removed is not None
                        expected.remove(name)
                    else:
                        assert removed is None
                assert await registry.snapshot() == expected

        asyncio.run(run())
