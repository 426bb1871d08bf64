"""
Repository tests, run against both the in-memory and the SQLite store.
"""

import sqlite3

import pytest
import pytest_asyncio

from SocketChat.core.storage import InMemoryChatStore, SQLiteChatStore, open_store, seed_demo_data
from SocketChat.core.storage.models import ChatMessage, Group


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def repo(request, tmp_path):
    if request.param == "memory":
        store = InMemoryChatStore()
    else:
        store = SQLiteChatStore(str(tmp_path / "chat.db"))
    yield store
    await store.close()


@pytest_asyncio.fixture
async def pair(repo):
    a = await repo.create_user("Ann", "A", "Ann@Example.com")
    b = await repo.create_user("Ben", "B", "ben@example.com")
    return a, b


class TestUsers:

    @pytest.mark.asyncio
    async def test_create_and_get(self, repo, pair):
        """Test users round-trip and e-mails are normalized."""
        a, _ = pair
        loaded = await repo.get_user(a.id)
        assert loaded.email == "ann@example.com"
        assert loaded.is_verified is True
        assert loaded.summary() == {"id": a.id, "firstName": "Ann", "lastName": "A"}

    @pytest.mark.asyncio
    async def test_duplicate_email(self, repo, pair):
        """Test duplicate e-mail is rejected."""
        with pytest.raises(ValueError):
            await repo.create_user("Other", "A", "ann@example.com")

    @pytest.mark.asyncio
    async def test_list_excludes_caller(self, repo, pair):
        """Test list_users can exclude one id."""
        a, b = pair
        assert [u.id for u in await repo.list_users(exclude=a.id)] == [b.id]
        assert len(await repo.list_users()) == 2

    @pytest.mark.asyncio
    async def test_missing_user(self, repo):
        assert await repo.get_user("missing") is None

    @pytest.mark.asyncio
    async def test_page_and_recent(self, repo, pair):
        a, b = pair
        c = await repo.create_user("Cat", "C", "cat@example.com")

        assert [u.id for u in await repo.page_users(0, 2)] == [a.id, b.id]
        assert [u.id for u in await repo.page_users(2, 2)] == [c.id]
        assert [u.id for u in await repo.recent_users(2)] == [c.id, b.id]

    @pytest.mark.asyncio
    async def test_update_user(self, repo, pair):
        a, _ = pair
        updated = await repo.update_user(a.id, last_name="Able", role="admin")

        assert (updated.first_name, updated.last_name, updated.role) == ("Ann", "Able", "admin")
        assert (await repo.get_user(a.id)).last_name == "Able"
        assert await repo.update_user("ghost", first_name="X") is None

    @pytest.mark.asyncio
    async def test_delete_user_cascades(self, repo, pair):
        """Test a deleted user's groups, memberships and messages go with them."""
        a, b = pair
        owned = await repo.create_group("Owned", a.id)
        other = await repo.create_group("Other", b.id)
        await repo.add_group_member(owned.id, b.id)
        await repo.add_group_member(other.id, a.id)
        await repo.create_message(b.id, "in owned", group_id=owned.id)
        await repo.create_message(b.id, "in other", group_id=other.id)
        await repo.create_message(a.id, "to ben", recipient_id=b.id)

        assert await repo.delete_user(a.id) is True
        assert await repo.delete_user(a.id) is False

        assert await repo.get_user(a.id) is None
        assert await repo.get_group(owned.id) is None
        assert (await repo.get_group(other.id)).members == [b.id]
        assert [m.content for m in await repo.group_history(other.id)] == ["in other"]
        assert await repo.private_history(a.id, b.id) == []
        assert (await repo.stats())["messages"] == 1

    @pytest.mark.asyncio
    async def test_stats(self, repo, pair):
        a, _ = pair
        await repo.create_user("Ada", "Admin", "ada@example.com", role="admin", is_verified=False)
        group = await repo.create_group("Room", a.id)
        await repo.create_message(a.id, "hi", group_id=group.id)

        assert await repo.stats() == {"users": 3, "admins": 1, "verifiedUsers": 2, "groups": 1, "messages": 1}


class TestGroups:

    @pytest.mark.asyncio
    async def test_creator_is_member(self, repo, pair):
        """Test the creator is enrolled on creation."""
        a, _ = pair
        group = await repo.create_group("Room", a.id, "desc")
        assert group.members == [a.id]
        assert (await repo.get_group(group.id)).creator_id == a.id
        assert (await repo.get_group_by_name("Room")).id == group.id

    @pytest.mark.asyncio
    async def test_unique_name(self, repo, pair):
        a, _ = pair
        await repo.create_group("Room", a.id)
        with pytest.raises(ValueError):
            await repo.create_group("Room", a.id)

    @pytest.mark.asyncio
    async def test_add_member_is_set_semantics(self, repo, pair):
        """Test adding twice leaves one entry."""
        a, b = pair
        group = await repo.create_group("Room", a.id)
        await repo.add_group_member(group.id, b.id)
        updated = await repo.add_group_member(group.id, b.id)
        assert updated.members == [a.id, b.id]

    @pytest.mark.asyncio
    async def test_remove_member_keeps_creator(self, repo, pair):
        """Test the creator can never be removed."""
        a, b = pair
        group = await repo.create_group("Room", a.id)
        await repo.add_group_member(group.id, b.id)

        assert (await repo.remove_group_member(group.id, b.id)).members == [a.id]
        assert (await repo.remove_group_member(group.id, a.id)).members == [a.id]

    @pytest.mark.asyncio
    async def test_membership_on_missing_group(self, repo, pair):
        a, _ = pair
        assert await repo.add_group_member("missing", a.id) is None
        assert await repo.remove_group_member("missing", a.id) is None

    @pytest.mark.asyncio
    async def test_list_groups_in_creation_order(self, repo, pair):
        a, _ = pair
        first = await repo.create_group("First", a.id)
        second = await repo.create_group("Second", a.id)
        assert [g.id for g in await repo.list_groups()] == [first.id, second.id]


class TestMessages:

    @pytest.mark.asyncio
    async def test_private_history_both_directions(self, repo, pair):
        """Test history holds both directions, oldest first."""
        a, b = pair
        m1 = await repo.create_message(a.id, "hi", recipient_id=b.id)
        m2 = await repo.create_message(b.id, "hey", recipient_id=a.id)

        history = await repo.private_history(a.id, b.id)
        assert [m.id for m in history] == [m1.id, m2.id]
        assert all(m.group_id is None for m in history)

    @pytest.mark.asyncio
    async def test_mark_read(self, repo, pair):
        """Test only messages from sender to recipient are marked."""
        a, b = pair
        await repo.create_message(a.id, "one", recipient_id=b.id)
        await repo.create_message(a.id, "two", recipient_id=b.id)
        await repo.create_message(b.id, "back", recipient_id=a.id)

        assert await repo.mark_read(a.id, b.id) == 2
        assert await repo.mark_read(a.id, b.id) == 0
        history = await repo.private_history(a.id, b.id)
        assert [m.is_read for m in history] == [True, True, False]

    @pytest.mark.asyncio
    async def test_group_history(self, repo, pair):
        a, b = pair
        group = await repo.create_group("Room", a.id)
        message = await repo.create_message(a.id, "hello room", group_id=group.id)
        await repo.create_message(a.id, "private", recipient_id=b.id)

        history = await repo.group_history(group.id)
        assert [m.id for m in history] == [message.id]
        assert history[0].recipient_id is None
        assert (await repo.get_message(message.id)).content == "hello room"

    @pytest.mark.asyncio
    async def test_exactly_one_destination(self, repo, pair):
        """Test a message must target a user or a group, not both or neither."""
        a, b = pair
        group = await repo.create_group("Room", a.id)
        with pytest.raises(ValueError):
            await repo.create_message(a.id, "both", recipient_id=b.id, group_id=group.id)
        with pytest.raises(ValueError):
            await repo.create_message(a.id, "neither")


class TestSQLiteSpecifics:

    @pytest.mark.asyncio
    async def test_check_constraint(self, tmp_path):
        """Test the schema itself refuses a message with two destinations."""
        store = SQLiteChatStore(str(tmp_path / "chat.db"))
        a = await store.create_user("Ann", "A", "ann@example.com")
        group = await store.create_group("Room", a.id)
        with pytest.raises(sqlite3.IntegrityError):
            store._conn.execute(
                "INSERT INTO messages(id, sender_id, recipient_id, group_id, content, created_at) "
                "VALUES('x', ?, ?, ?, 'c', 0)",
                (a.id, a.id, group.id),
            )
        await store.close()

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, tmp_path):
        path = str(tmp_path / "chat.db")
        store = SQLiteChatStore(path)
        a = await store.create_user("Ann", "A", "ann@example.com")
        await store.create_group("Room", a.id)
        await store.close()

        reopened = SQLiteChatStore(path)
        group = await reopened.get_group_by_name("Room")
        assert group.members == [a.id]
        await reopened.close()


class TestHelpers:

    def test_open_store(self, tmp_path):
        assert isinstance(open_store(None), InMemoryChatStore)
        assert isinstance(open_store(str(tmp_path / "x.db")), SQLiteChatStore)

    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self):
        store = InMemoryChatStore()
        first = await seed_demo_data(store)
        second = await seed_demo_data(store)

        assert first["group"].id == second["group"].id
        assert len(await store.list_users()) == 2
        assert len(first["group"].members) == 2

    def test_message_model_rejects_ambiguous(self):
        with pytest.raises(ValueError):
            ChatMessage("id", "s", "c", recipient_id="r", group_id="g")

    def test_group_dedupes_members(self):
        group = Group("g", "Room", "c", members=["x", "c", "x"])
        assert group.members == ["c", "x"]
