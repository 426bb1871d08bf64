"""
Contracts shared by the server components.

Concrete classes satisfy these structurally; nothing here needs to be
subclassed. Keeping the seams as protocols lets the tests drive the core
with a fake transport and the in-memory repository.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from SocketChat.core.storage.models import ChatMessage, Group, User


@dataclass(frozen=True)
class Identity:
    """
    Authenticated user snapshot taken at handshake.

    Never re-fetched while the connection lives.
    """
    user_id: str
    first_name: str
    last_name: str
    email: str
    is_verified: bool = True
    role: str = "user"

    @classmethod
    def from_user(cls, user: 'User') -> 'Identity':
        return cls(
            user_id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            is_verified=user.is_verified,
            role=user.role,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def summary(self) -> Dict[str, Any]:
        return {"id": self.user_id, "firstName": self.first_name, "lastName": self.last_name}


@dataclass
class AuthResult:
    """Result of an authentication attempt."""
    success: bool
    identity: Optional[Identity] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


@runtime_checkable
class TransportConnection(Protocol):
    """One live, bidirectional client connection."""

    conn_id: str

    @abstractmethod
    async def send(self, message: str) -> bool:
        """Send a text frame; False when the peer is gone."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        ...

    @abstractmethod
    def is_open(self) -> bool:
        ...


@runtime_checkable
class ChatRepository(Protocol):
    """Async persistence for users, groups and messages."""

    async def create_user(self, first_name: str, last_name: str, email: str,
                          is_verified: bool = True, role: str = "user") -> 'User': ...

    async def get_user(self, user_id: str) -> Optional['User']: ...

    async def list_users(self, exclude: Optional[str] = None) -> List['User']: ...

    async def page_users(self, offset: int = 0, limit: int = 10) -> List['User']: ...

    async def recent_users(self, limit: int = 5) -> List['User']: ...

    async def update_user(self, user_id: str, first_name: Optional[str] = None,
                          last_name: Optional[str] = None, role: Optional[str] = None) -> Optional['User']: ...

    async def delete_user(self, user_id: str) -> bool: ...

    async def stats(self) -> Dict[str, int]: ...

    async def create_group(self, name: str, creator_id: str, description: str = "") -> 'Group': ...

    async def get_group(self, group_id: str) -> Optional['Group']: ...

    async def get_group_by_name(self, name: str) -> Optional['Group']: ...

    async def list_groups(self) -> List['Group']: ...

    async def add_group_member(self, group_id: str, user_id: str) -> Optional['Group']: ...

    async def remove_group_member(self, group_id: str, user_id: str) -> Optional['Group']: ...

    async def create_message(self, sender_id: str, content: str,
                             recipient_id: Optional[str] = None,
                             group_id: Optional[str] = None) -> 'ChatMessage': ...

    async def get_message(self, message_id: str) -> Optional['ChatMessage']: ...

    async def private_history(self, user_a: str, user_b: str) -> List['ChatMessage']: ...

    async def group_history(self, group_id: str) -> List['ChatMessage']: ...

    async def mark_read(self, sender_id: str, recipient_id: str) -> int: ...

    async def close(self) -> None: ...


__all__ = [
    'Identity',
    'AuthResult',
    'TransportConnection',
    'ChatRepository',
]
