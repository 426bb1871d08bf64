"""
Test configuration and fixtures for SocketChat tests.

Provides:
- In-memory repository seeded with users and a group
- A ConnectionServer wired to that repository
- Token factory
"""

import pytest
import pytest_asyncio

from SocketChat.core.server import ConnectionServer, create_access_token
from SocketChat.core.storage import InMemoryChatStore
from SocketChat.core.storage.models import Group, User

from SocketChat.test.helpers import ChatUsers


@pytest.fixture
def store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest_asyncio.fixture
async def users(store: InMemoryChatStore) -> ChatUsers:
    alice = await store.create_user("Alice", "Anders", "alice@example.com")
    bob = await store.create_user("Bob", "Brown", "bob@example.com")
    carol = await store.create_user("Carol", "Clark", "carol@example.com")
    unverified = await store.create_user("Uma", "Unset", "uma@example.com", is_verified=False)
    return ChatUsers(alice, bob, carol, unverified, [alice, bob, carol, unverified])


@pytest_asyncio.fixture
async def group(store: InMemoryChatStore, users: ChatUsers) -> Group:
    """'Lobby', created by Alice; Bob and Carol are not members."""
    return await store.create_group("Lobby", users.alice.id, "Main room")


@pytest.fixture
def chat_server(store: InMemoryChatStore) -> ConnectionServer:
    return ConnectionServer(store)


@pytest.fixture
def token_for():
    def _make(user: User, **kwargs) -> str:
        return create_access_token(user.id, **kwargs)
    return _make


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (real sockets)"
    )
