"""
Persistence for users, groups and messages.

Two interchangeable repositories share one async method set:
``InMemoryChatStore`` (tests, local runs) and ``SQLiteChatStore``.
"""

import logging
from typing import Optional, Union

from SocketChat.core.storage.memory import InMemoryChatStore
from SocketChat.core.storage.models import ChatMessage, Group, User, isoformat, new_id
from SocketChat.core.storage.sqlite import SQLiteChatStore

logger = logging.getLogger(__name__)

ChatStore = Union[InMemoryChatStore, SQLiteChatStore]


def open_store(db_path: Optional[str] = None) -> ChatStore:
    """
    Open the repository for the given database path.

    Args:
        db_path: SQLite file path; ``None`` selects the in-memory store

    Returns:
        A ready-to-use repository
    """
    if not db_path:
        logger.info("Using in-memory chat store")
        return InMemoryChatStore()
    return SQLiteChatStore(db_path)


async def seed_demo_data(store: ChatStore) -> dict:
    """
    Create two verified users and a shared group for local runs.

    Existing data is left alone; an already-seeded database is detected by
    the group name.

    Returns:
        Mapping with the created (or found) ``users`` and ``group``
    """
    from SocketChat.core.server.auth import create_access_token

    existing = await store.get_group_by_name("General")
    if existing is not None:
        logger.info("Demo data already present (group %s)", existing.id)
        users = [await store.get_user(uid) for uid in existing.members]
        return {"users": [u for u in users if u is not None], "group": existing}

    alice = await store.create_user("Alice", "Anders", "alice@example.com")
    bob = await store.create_user("Bob", "Brown", "bob@example.com")
    group = await store.create_group("General", alice.id, "Everyone is welcome")
    group = await store.add_group_member(group.id, bob.id)

    for user in (alice, bob):
        logger.info("Seeded %s <%s> token=%s", user.display_name, user.email,
                    create_access_token(user.id))
    return {"users": [alice, bob], "group": group}


__all__ = [
    'User',
    'Group',
    'ChatMessage',
    'new_id',
    'isoformat',
    'InMemoryChatStore',
    'SQLiteChatStore',
    'ChatStore',
    'open_store',
    'seed_demo_data',
]
