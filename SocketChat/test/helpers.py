"""
Test doubles shared by the SocketChat test-suite.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Tuple

from SocketChat.core.server import ConnectionServer, ConnectionSession, Identity
from SocketChat.core.storage.models import User


class FakeConnection:
    """Transport double; every frame sent is kept for inspection."""

    def __init__(self, user_id: str = "", fail_sends: bool = False):
        self.conn_id = uuid.uuid4().hex
        self.user_id = user_id
        self.sent: List[str] = []
        self.open = True
        self.fail_sends = fail_sends
        self.close_calls: List[Tuple[int, str]] = []

    async def send(self, message: str) -> bool:
        if not self.open or self.fail_sends:
            return False
        self.sent.append(message)
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.open = False
        self.close_calls.append((code, reason))

    def is_open(self) -> bool:
        return self.open

    @property
    def frames(self) -> List[dict]:
        return [json.loads(raw) for raw in self.sent]

    def names(self) -> List[str]:
        return [f["event"] for f in self.frames]

    def events(self, name: str) -> List[Any]:
        """Payloads of every sent event called ``name``, in order."""
        return [f["data"] for f in self.frames if f["event"] == name]

    def clear(self) -> None:
        self.sent.clear()



class StalledConnection(FakeConnection):
    """Transport whose sends hang until ``release`` is set."""

    def __init__(self, user_id: str = ""):
        super().__init__(user_id)
        self.release = asyncio.Event()

    async def send(self, message: str) -> bool:
        await self.release.wait()
        return await super().send(message)


async def settle(predicate, timeout: float = 1.0) -> bool:
    """Yield to the loop until ``predicate()`` holds or ``timeout`` passes."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


@dataclass
class ChatUsers:
    alice: User
    bob: User
    carol: User
    unverified: User
    all: List[User] = field(default_factory=list)


def frame(event: str, data: Any = None) -> str:
    return json.dumps({"event": event, "data": data})


async def connect(server: ConnectionServer, user: User) -> Tuple[ConnectionSession, FakeConnection]:
    """Open a session for ``user`` over a fresh FakeConnection."""
    conn = FakeConnection(user.id)
    session = await server.open_session(Identity.from_user(user), conn)
    return session, conn

