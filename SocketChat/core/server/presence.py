"""Presence tracking for SocketChat.

Tracks which identities are online across multiple connections.

Design:
- An identity may hold any number of live connection handles.
- An identity is online iff it has at least one handle.
- The registry is an instance owned by the connection server; every
  mutation runs under an ``asyncio.Lock`` so concurrent connects and
  disconnects of the same identity see a consistent transition.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from SocketChat.core.server.interfaces import TransportConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresenceChange:
    """
    Outcome of a register/unregister call.

    ``transitioned`` is True when the identity went offline -> online
    (register) or online -> offline (unregister).
    """
    user_id: str
    handle: str
    transitioned: bool


class PresenceRegistry:
    """
    Identity -> live connection handles.

    Owned by one connection server and injected wherever presence is read,
    so the REST health check and the socket layer see the same view.
    """

    def __init__(self):
        # user -> conn_id -> connection
        self._by_user: Dict[str, Dict[str, TransportConnection]] = {}
        # conn_id -> user
        self._owner: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def register(self, user_id: str, connection: TransportConnection) -> PresenceChange:
        async with self._lock:
            conns = self._by_user.setdefault(user_id, {})
            first = not conns
            conns[connection.conn_id] = connection
            self._owner[connection.conn_id] = user_id
        logger.debug("Registered %s for %s (online transition: %s)", connection.conn_id, user_id, first)
        return PresenceChange(user_id, connection.conn_id, first)

    async def unregister(self, handle: str) -> Optional[PresenceChange]:
        """
        Remove one handle.

        Returns:
            The change, or None when the handle was not registered
        """
        async with self._lock:
            user_id = self._owner.pop(handle, None)
            if user_id is None:
                return None
            conns = self._by_user.get(user_id, {})
            conns.pop(handle, None)
            last = not conns
            if last:
                self._by_user.pop(user_id, None)
        logger.debug("Unregistered %s for %s (offline transition: %s)", handle, user_id, last)
        return PresenceChange(user_id, handle, last)

    def is_online(self, user_id: str) -> bool:
        return bool(self._by_user.get(user_id))

    def list_online(self) -> List[str]:
        return sorted(self._by_user.keys())

    def connections_for(self, user_id: str) -> List[TransportConnection]:
        return list((self._by_user.get(user_id) or {}).values())

    def all_connections(self) -> List[Tuple[str, TransportConnection]]:
        """Snapshot of (user_id, connection) for every live handle."""
        return [(user, conn) for user, conns in self._by_user.items() for conn in conns.values()]

    def owner_of(self, handle: str) -> Optional[str]:
        return self._owner.get(handle)

    def __len__(self) -> int:
        return len(self._owner)


__all__ = ['PresenceRegistry', 'PresenceChange']
