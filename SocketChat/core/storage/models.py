"""
Durable entities: users, groups and messages.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def new_id() -> str:
    return uuid.uuid4().hex


def isoformat(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class User:
    id: str
    first_name: str
    last_name: str
    email: str
    is_verified: bool = False
    role: str = "user"
    created_at: float = field(default_factory=time.time)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def summary(self) -> Dict[str, Any]:
        """Sender/member shape embedded in events."""
        return {"id": self.id, "firstName": self.first_name, "lastName": self.last_name}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "role": self.role,
            "isVerified": self.is_verified,
            "createdAt": isoformat(self.created_at),
        }


@dataclass
class Group:
    """
    A durable chat room.

    The creator is always a member; ``members`` keeps join order and never
    holds duplicates.
    """
    id: str
    name: str
    creator_id: str
    description: str = ""
    members: List[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        seen = []
        for member in [self.creator_id, *self.members]:
            if member not in seen:
                seen.append(member)
        self.members = seen

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members

    def to_dict(self, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "creator": self.creator_id,
            "members": list(self.members),
            "memberCount": len(self.members),
            "createdAt": isoformat(self.created_at),
        }
        if viewer_id is not None:
            data["isMember"] = self.is_member(viewer_id)
        return data


@dataclass
class ChatMessage:
    """
    A persisted message.

    Exactly one of ``recipient_id`` (private) and ``group_id`` (group) is set.
    Only ``is_read`` changes after creation.
    """
    id: str
    sender_id: str
    content: str
    recipient_id: Optional[str] = None
    group_id: Optional[str] = None
    is_read: bool = False
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if self.recipient_id is None and self.group_id is None:
            raise ValueError("Message must have either a recipient or a group")
        if self.recipient_id is not None and self.group_id is not None:
            raise ValueError("Message cannot have both a recipient and a group")

    @property
    def is_private(self) -> bool:
        return self.recipient_id is not None

    def to_dict(self, sender: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Wire shape of the message.

        Args:
            sender: Denormalized sender summary; the bare id is used when omitted
        """
        return {
            "id": self.id,
            "sender": sender if sender is not None else {"id": self.sender_id},
            "recipient": self.recipient_id,
            "group": self.group_id,
            "content": self.content,
            "isRead": self.is_read,
            "createdAt": isoformat(self.created_at),
        }


__all__ = ['User', 'Group', 'ChatMessage', 'new_id', 'isoformat']
