"""In-memory chat repository.

Used by the test-suite and by ``python -m SocketChat server`` when no
database file is configured. Plain dicts and lists; every method is a
coroutine so callers treat it exactly like the SQLite store.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from SocketChat.core.storage.models import ChatMessage, Group, User, new_id

logger = logging.getLogger(__name__)


class InMemoryChatStore:
    """Dict-backed chat repository; state lives as long as the instance."""

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._groups: Dict[str, Group] = {}
        self._messages: List[ChatMessage] = []

    # --------------------------- users ---------------------------
    async def create_user(
        self,
        first_name: str,
        last_name: str,
        email: str,
        is_verified: bool = True,
        role: str = "user",
    ) -> User:
        email = email.strip().lower()
        if any(u.email == email for u in self._users.values()):
            raise ValueError(f"User with email {email} already exists")
        user = User(new_id(), first_name, last_name, email, is_verified=is_verified, role=role)
        self._users[user.id] = user
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def list_users(self, exclude: Optional[str] = None) -> List[User]:
        users = [u for u in self._users.values() if u.id != exclude]
        return sorted(users, key=lambda u: (u.first_name, u.last_name))

    async def page_users(self, offset: int = 0, limit: int = 10) -> List[User]:
        """Users in sign-up order."""
        users = sorted(self._users.values(), key=lambda u: u.created_at)
        return users[offset:offset + limit]

    async def recent_users(self, limit: int = 5) -> List[User]:
        newest = reversed(list(self._users.values()))
        return sorted(newest, key=lambda u: u.created_at, reverse=True)[:limit]

    async def update_user(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        if first_name is not None:
            user.first_name = first_name
        if last_name is not None:
            user.last_name = last_name
        if role is not None:
            user.role = role
        return user

    async def delete_user(self, user_id: str) -> bool:
        """
        Remove a user with their messages and memberships.

        Groups the user created go too, along with their history.
        """
        if self._users.pop(user_id, None) is None:
            return False
        owned = {g.id for g in self._groups.values() if g.creator_id == user_id}
        for group_id in owned:
            del self._groups[group_id]
        for group in self._groups.values():
            if user_id in group.members:
                group.members.remove(user_id)
        self._messages = [
            m for m in self._messages
            if m.sender_id != user_id and m.recipient_id != user_id and m.group_id not in owned
        ]
        return True

    async def stats(self) -> Dict[str, int]:
        users = list(self._users.values())
        return {
            "users": len(users),
            "admins": sum(1 for u in users if u.role == "admin"),
            "verifiedUsers": sum(1 for u in users if u.is_verified),
            "groups": len(self._groups),
            "messages": len(self._messages),
        }

    # --------------------------- groups ---------------------------
    async def create_group(self, name: str, creator_id: str, description: str = "") -> Group:
        if await self.get_group_by_name(name) is not None:
            raise ValueError(f"Group {name} already exists")
        group = Group(new_id(), name, creator_id, description=description)
        self._groups[group.id] = group
        return group

    async def get_group(self, group_id: str) -> Optional[Group]:
        return self._groups.get(group_id)

    async def get_group_by_name(self, name: str) -> Optional[Group]:
        return next((g for g in self._groups.values() if g.name == name), None)

    async def list_groups(self) -> List[Group]:
        return sorted(self._groups.values(), key=lambda g: g.created_at)

    async def add_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        group = self._groups.get(group_id)
        if group is None:
            return None
        if user_id not in group.members:
            group.members.append(user_id)
        return group

    async def remove_group_member(self, group_id: str, user_id: str) -> Optional[Group]:
        group = self._groups.get(group_id)
        if group is None:
            return None
        if user_id != group.creator_id and user_id in group.members:
            group.members.remove(user_id)
        return group

    # --------------------------- messages ---------------------------
    async def create_message(
        self,
        sender_id: str,
        content: str,
        recipient_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            new_id(),
            sender_id,
            content,
            recipient_id=recipient_id,
            group_id=group_id,
            created_at=time.time(),
        )
        self._messages.append(message)
        return message

    async def get_message(self, message_id: str) -> Optional[ChatMessage]:
        return next((m for m in self._messages if m.id == message_id), None)

    async def private_history(self, user_a: str, user_b: str) -> List[ChatMessage]:
        pair = {(user_a, user_b), (user_b, user_a)}
        return [m for m in self._messages if m.is_private and (m.sender_id, m.recipient_id) in pair]

    async def group_history(self, group_id: str) -> List[ChatMessage]:
        return [m for m in self._messages if m.group_id == group_id]

    async def mark_read(self, sender_id: str, recipient_id: str) -> int:
        count = 0
        for m in self._messages:
            if m.sender_id == sender_id and m.recipient_id == recipient_id and not m.is_read:
                m.is_read = True
                count += 1
        return count

    async def close(self) -> None:
        logger.debug("In-memory store closed (%d messages)", len(self._messages))
