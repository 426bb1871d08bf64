"""
Tests for private and group message fan-out.

Tests cover:
- Persist-then-deliver for private messages
- Multi-connection recipients and offline recipients
- Group broadcast and the membership check
- Repository failures surfacing as per-event errors
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from SocketChat.test.helpers import FakeConnection, connect, frame


class TestPrivateMessages:

    @pytest.mark.asyncio
    async def test_send_private_persists_and_acks(self, chat_server, store, users):
        """Test one stored message, one ack to the sender, one delivery to the recipient."""
        alice_session, alice_conn = await connect(chat_server, users.alice)
        _, bob_conn = await connect(chat_server, users.bob)
        alice_conn.clear()
        bob_conn.clear()

        await alice_session.handle_frame(frame("privateMessage", {"recipientId": users.bob.id, "content": " hi Bob "}))

        history = await store.private_history(users.alice.id, users.bob.id)
        assert len(history) == 1
        stored = history[0]
        assert (stored.sender_id, stored.recipient_id, stored.group_id) == (users.alice.id, users.bob.id, None)
        assert stored.content == "hi Bob"

        acks = alice_conn.events("messageSent")
        assert len(acks) == 1
        assert acks[0]["id"] == stored.id
        assert acks[0]["sender"] == {"id": users.alice.id, "firstName": "Alice", "lastName": "Anders"}
        assert acks[0]["recipient"] == users.bob.id
        assert acks[0]["group"] is None
        assert acks[0]["isRead"] is False
        assert bob_conn.events("privateMessage") == acks
        assert alice_conn.events("privateMessage") == []

    @pytest.mark.asyncio
    async def test_recipient_offline(self, chat_server, store, users):
        """Test an offline recipient is not an error and the message is kept."""
        session, conn = await connect(chat_server, users.alice)
        conn.clear()

        await session.handle_frame(frame("privateMessage", {"recipientId": users.bob.id, "content": "later"}))

        assert conn.names() == ["messageSent"]
        history = await store.private_history(users.bob.id, users.alice.id)
        assert [m.content for m in history] == ["later"]

    @pytest.mark.asyncio
    async def test_every_recipient_connection_receives(self, chat_server, users):
        """Test delivery reaches all of the recipient's live connections."""
        session, _ = await connect(chat_server, users.alice)
        _, bob_phone = await connect(chat_server, users.bob)
        _, bob_laptop = await connect(chat_server, users.bob)

        await session.handle_frame(frame("privateMessage", {"recipientId": users.bob.id, "content": "ping"}))

        assert len(bob_phone.events("privateMessage")) == 1
        assert len(bob_laptop.events("privateMessage")) == 1

    @pytest.mark.asyncio
    async def test_dead_peer_does_not_affect_sender(self, chat_server, users):
        """Test a failing recipient transport is isolated from the sender."""
        session, alice_conn = await connect(chat_server, users.alice)
        _, bob_conn = await connect(chat_server, users.bob)
        bob_conn.fail_sends = True
        alice_conn.clear()

        await session.handle_frame(frame("privateMessage", {"recipientId": users.bob.id, "content": "ping"}))

        assert alice_conn.names() == ["messageSent"]

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, chat_server, store, users):
        session, conn = await connect(chat_server, users.alice)
        conn.clear()

        await session.handle_frame(frame("privateMessage", {"recipientId": "ghost", "content": "hello"}))

        assert conn.frames == [{"event": "error", "data": {"message": "Recipient not found"}}]
        assert await store.private_history(users.alice.id, "ghost") == []

    @pytest.mark.asyncio
    async def test_too_long(self, chat_server, users):
        session, conn = await connect(chat_server, users.alice)
        conn.clear()

        await session.handle_frame(frame("privateMessage", {"recipientId": users.bob.id, "content": "x" * 1001}))

        assert conn.events("error") == [{"message": "Message cannot exceed 1000 characters"}]

    @pytest.mark.asyncio
    async def test_persistence_failure(self, chat_server, store, users):
        """Test a repository failure becomes a generic send error and nothing is delivered."""
        session, alice_conn = await connect(chat_server, users.alice)
        _, bob_conn = await connect(chat_server, users.bob)
        alice_conn.clear()
        bob_conn.clear()
        store.create_message = AsyncMock(side_effect=RuntimeError("disk full"))

        await session.handle_frame(frame("privateMessage", {"recipientId": users.bob.id, "content": "hello"}))

        assert alice_conn.frames == [{"event": "error", "data": {"message": "Error sending message"}}]
        assert bob_conn.sent == []


class TestGroupMessages:

    @pytest.mark.asyncio
    async def test_broadcast_includes_sender(self, chat_server, store, users, group):
        """Test every subscriber, the sender included, gets the message."""
        await store.add_group_member(group.id, users.bob.id)
        alice_session, alice_conn = await connect(chat_server, users.alice)
        bob_session, bob_conn = await connect(chat_server, users.bob)
        _, carol_conn = await connect(chat_server, users.carol)
        await alice_session.handle_frame(frame("joinGroup", {"groupId": group.id}))
        await bob_session.handle_frame(frame("joinGroup", {"groupId": group.id}))
        for conn in (alice_conn, bob_conn, carol_conn):
            conn.clear()

        await alice_session.handle_frame(frame("groupMessage", {"groupId": group.id, "content": "hello room"}))

        history = await store.group_history(group.id)
        assert len(history) == 1
        assert history[0].recipient_id is None
        for conn in (alice_conn, bob_conn):
            payloads = conn.events("groupMessage")
            assert len(payloads) == 1
            assert payloads[0]["group"] == group.id
            assert payloads[0]["recipient"] is None
            assert payloads[0]["content"] == "hello room"
        assert carol_conn.sent == []

    @pytest.mark.asyncio
    async def test_member_not_subscribed_gets_nothing_live(self, chat_server, store, users, group):
        """Test delivery follows live subscriptions, not durable membership."""
        await store.add_group_member(group.id, users.bob.id)
        alice_session, _ = await connect(chat_server, users.alice)
        _, bob_conn = await connect(chat_server, users.bob)
        bob_conn.clear()

        await alice_session.handle_frame(frame("groupMessage", {"groupId": group.id, "content": "hi"}))

        assert bob_conn.sent == []
        assert len(await store.group_history(group.id)) == 1

    @pytest.mark.asyncio
    async def test_non_member_forbidden(self, chat_server, store, users, group):
        """Test a non-member post is refused, unstored and unbroadcast."""
        alice_session, alice_conn = await connect(chat_server, users.alice)
        carol_session, carol_conn = await connect(chat_server, users.carol)
        await alice_session.handle_frame(frame("joinGroup", {"groupId": group.id}))
        alice_conn.clear()
        carol_conn.clear()

        await carol_session.handle_frame(frame("groupMessage", {"groupId": group.id, "content": "let me in"}))

        assert carol_conn.frames == [{"event": "error", "data": {"message": "You are not a member of this group"}}]
        assert alice_conn.sent == []
        assert await store.group_history(group.id) == []

    @pytest.mark.asyncio
    async def test_unknown_group(self, chat_server, users):
        session, conn = await connect(chat_server, users.alice)
        conn.clear()

        await session.handle_frame(frame("groupMessage", {"groupId": "missing", "content": "hi"}))

        assert conn.events("error") == [{"message": "Group not found"}]

    @pytest.mark.asyncio
    async def test_router_skips_closed_connections(self, chat_server, users, group):
        """Test a closed subscriber is skipped without error."""
        alice_session, alice_conn = await connect(chat_server, users.alice)
        await alice_session.handle_frame(frame("joinGroup", {"groupId": group.id}))
        ghost = FakeConnection(users.alice.id)
        await chat_server.channels.subscribe(group.id, ghost)
        ghost.open = False
        alice_conn.clear()

        await alice_session.handle_frame(frame("groupMessage", {"groupId": group.id, "content": "hi"}))

        assert len(alice_conn.events("groupMessage")) == 1
        assert ghost.sent == []


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_slow_write_does_not_block_other_connections(self, chat_server, store, users, monkeypatch):
        """Test one connection waiting on the repository leaves the others free."""
        gate = asyncio.Event()
        create_message = store.create_message

        async def gated(sender_id, content, **kwargs):
            if sender_id == users.alice.id:
                await gate.wait()
            return await create_message(sender_id, content, **kwargs)

        monkeypatch.setattr(store, "create_message", gated)
        alice_session, alice_conn = await connect(chat_server, users.alice)
        bob_session, bob_conn = await connect(chat_server, users.bob)
        _, carol_conn = await connect(chat_server, users.carol)
        alice_conn.clear()
        bob_conn.clear()

        stuck = asyncio.create_task(
            alice_session.handle_frame(frame("privateMessage", {"recipientId": users.carol.id, "content": "slow"}))
        )
        await asyncio.sleep(0)
        await asyncio.wait_for(
            bob_session.handle_frame(frame("privateMessage", {"recipientId": users.carol.id, "content": "fast"})),
            timeout=1,
        )

        assert not stuck.done()
        assert [m["content"] for m in bob_conn.events("messageSent")] == ["fast"]
        assert [m["content"] for m in carol_conn.events("privateMessage")] == ["fast"]

        gate.set()
        await asyncio.wait_for(stuck, timeout=1)
        assert [m["content"] for m in alice_conn.events("messageSent")] == ["slow"]
        assert [m["content"] for m in carol_conn.events("privateMessage")] == ["fast", "slow"]
