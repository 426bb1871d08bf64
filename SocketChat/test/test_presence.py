"""
Unit tests for PresenceRegistry and RoomChannels.
"""

import asyncio

import pytest

from SocketChat.core.server.presence import PresenceRegistry
from SocketChat.core.server.rooms import RoomChannels

from SocketChat.test.helpers import FakeConnection


class TestPresenceRegistry:
    """Tests for identity -> handle tracking."""

    @pytest.mark.asyncio
    async def test_first_register_transitions(self):
        """Test only the first handle reports an online transition."""
        registry = PresenceRegistry()
        c1, c2 = FakeConnection("u1"), FakeConnection("u1")

        first = await registry.register("u1", c1)
        second = await registry.register("u1", c2)

        assert first.transitioned is True
        assert second.transitioned is False
        assert registry.is_online("u1")
        assert len(registry.connections_for("u1")) == 2

    @pytest.mark.asyncio
    async def test_offline_only_after_last_handle(self):
        """Test an identity stays online until its last handle goes."""
        registry = PresenceRegistry()
        c1, c2 = FakeConnection("u1"), FakeConnection("u1")
        await registry.register("u1", c1)
        await registry.register("u1", c2)

        change = await registry.unregister(c1.conn_id)
        assert change.transitioned is False
        assert registry.is_online("u1")

        change = await registry.unregister(c2.conn_id)
        assert change.transitioned is True
        assert not registry.is_online("u1")
        assert registry.connections_for("u1") == []
        assert registry.owner_of(c2.conn_id) is None

    @pytest.mark.asyncio
    async def test_unregister_unknown_handle(self):
        """Test unregistering twice is harmless."""
        registry = PresenceRegistry()
        conn = FakeConnection("u1")
        await registry.register("u1", conn)
        await registry.unregister(conn.conn_id)

        assert await registry.unregister(conn.conn_id) is None
        assert await registry.unregister("nope") is None

    @pytest.mark.asyncio
    async def test_list_online_sorted(self):
        """Test the online snapshot is sorted and deduplicated."""
        registry = PresenceRegistry()
        for user in ("zed", "amy", "amy", "kim"):
            await registry.register(user, FakeConnection(user))
        assert registry.list_online() == ["amy", "kim", "zed"]
        assert len(registry) == 4

    @pytest.mark.asyncio
    async def test_concurrent_connect_disconnect(self):
        """Test exactly one online and one offline transition under concurrency."""
        registry = PresenceRegistry()
        conns = [FakeConnection("u1") for _ in range(20)]

        registered = await asyncio.gather(*(registry.register("u1", c) for c in conns))
        assert sum(r.transitioned for r in registered) == 1

        removed = await asyncio.gather(*(registry.unregister(c.conn_id) for c in conns))
        assert sum(r.transitioned for r in removed) == 1
        assert not registry.is_online("u1")
        assert len(registry) == 0


class TestRoomChannels:
    """Tests for live channel subscriptions."""

    @pytest.mark.asyncio
    async def test_subscribe_idempotent(self):
        """Test subscribing twice keeps one subscription."""
        channels = RoomChannels()
        conn = FakeConnection("u1")

        assert await channels.subscribe("r1", conn) is True
        assert await channels.subscribe("r1", conn) is False
        assert channels.subscribers("r1") == [conn]
        assert channels.rooms_for(conn.conn_id) == {"r1"}

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        """Test unsubscribing removes both index entries."""
        channels = RoomChannels()
        conn = FakeConnection("u1")
        await channels.subscribe("r1", conn)

        assert await channels.unsubscribe("r1", conn.conn_id) is True
        assert await channels.unsubscribe("r1", conn.conn_id) is False
        assert channels.subscribers("r1") == []
        assert channels.rooms_for(conn.conn_id) == set()

    @pytest.mark.asyncio
    async def test_drop_connection_leaves_every_room(self):
        """Test dropping a connection clears all its subscriptions only."""
        channels = RoomChannels()
        a, b = FakeConnection("a"), FakeConnection("b")
        for room in ("r1", "r2", "r3"):
            await channels.subscribe(room, a)
        await channels.subscribe("r2", b)

        assert await channels.drop_connection(a.conn_id) == ["r1", "r2", "r3"]
        assert channels.subscribers("r1") == []
        assert channels.subscribers("r2") == [b]
        assert not channels.is_subscribed("r3", a.conn_id)
        assert await channels.drop_connection(a.conn_id) == []
