"""
Room channels and the join/leave workflow.

``RoomChannels`` is the live side of a group: which connections currently
receive its broadcasts. Durable membership lives in the repository and is
changed through ``ChatService``; ``RoomMembershipManager`` keeps the two in
step for socket clients.
"""

import asyncio
import logging
from typing import Dict, List, Set

from SocketChat.core.message.protocol import Event, OutboundEvent
from SocketChat.core.server.interfaces import Identity, TransportConnection
from SocketChat.core.server.presence import PresenceRegistry
from SocketChat.core.server.service import ChatService
from SocketChat.core.storage.models import Group

logger = logging.getLogger(__name__)


class RoomChannels:
    """
    Live subscriptions, indexed both ways.

    Mutations are serialized by an ``asyncio.Lock``; reads return copies so
    a fan-out in progress is not affected by a concurrent unsubscribe.
    """

    def __init__(self):
        # room -> conn_id -> connection
        self._subscribers: Dict[str, Dict[str, TransportConnection]] = {}
        # conn_id -> rooms
        self._rooms: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, room_id: str, connection: TransportConnection) -> bool:
        """Subscribe a connection; returns False if it already was."""
        async with self._lock:
            members = self._subscribers.setdefault(room_id, {})
            if connection.conn_id in members:
                return False
            members[connection.conn_id] = connection
            self._rooms.setdefault(connection.conn_id, set()).add(room_id)
        return True

    async def unsubscribe(self, room_id: str, handle: str) -> bool:
        async with self._lock:
            return self._discard(room_id, handle)

    async def drop_connection(self, handle: str) -> List[str]:
        """Remove a connection from every channel; returns the rooms it left."""
        async with self._lock:
            rooms = sorted(self._rooms.get(handle, ()))
            for room_id in rooms:
                self._discard(room_id, handle)
        if rooms:
            logger.debug("Dropped %s from %d room channel(s)", handle, len(rooms))
        return rooms

    def _discard(self, room_id: str, handle: str) -> bool:
        members = self._subscribers.get(room_id)
        if not members or handle not in members:
            return False
        del members[handle]
        if not members:
            del self._subscribers[room_id]
        rooms = self._rooms.get(handle)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self._rooms[handle]
        return True

    def subscribers(self, room_id: str) -> List[TransportConnection]:
        return list((self._subscribers.get(room_id) or {}).values())

    def rooms_for(self, handle: str) -> Set[str]:
        return set(self._rooms.get(handle, ()))

    def is_subscribed(self, room_id: str, handle: str) -> bool:
        return handle in (self._subscribers.get(room_id) or {})


async def evict_user(
    channels: RoomChannels,
    presence: PresenceRegistry,
    room_id: str,
    user_id: str,
) -> List[TransportConnection]:
    """
    Unsubscribe every live connection of ``user_id`` from a room channel.

    Returns:
        The connections that were subscribed
    """
    evicted = []
    for connection in presence.connections_for(user_id):
        if await channels.unsubscribe(room_id, connection.conn_id):
            evicted.append(connection)
    if evicted:
        logger.debug("Evicted %d connection(s) of %s from %s", len(evicted), user_id, room_id)
    return evicted


class RoomMembershipManager:
    """
    Join and leave for socket clients.

    Durable membership is written first; the live channel and the
    notifications follow only once the write succeeded.
    """

    def __init__(self, service: ChatService, channels: RoomChannels, router, presence: PresenceRegistry):
        self._service = service
        self._channels = channels
        self._router = router
        self._presence = presence

    async def join(self, identity: Identity, connection: TransportConnection, group_id: str) -> Group:
        group = await self._service.enrol(identity.user_id, group_id)
        await self._channels.subscribe(group.id, connection)

        await self._router.send_to_room(
            group.id,
            Event.outbound(OutboundEvent.USER_JOINED_GROUP, {"groupId": group.id, "user": identity.summary()}),
        )
        await self._router.send_to_connection(
            connection,
            Event.outbound(OutboundEvent.JOINED_GROUP, {"groupId": group.id, "name": group.name}),
        )
        return group

    async def leave(self, identity: Identity, connection: TransportConnection, group_id: str) -> Group:
        group = await self._service.withdraw(identity.user_id, group_id)
        await self._channels.unsubscribe(group.id, connection.conn_id)
        # a non-member must not keep receiving the room on any device
        others = [c for c in await evict_user(self._channels, self._presence, group.id, identity.user_id)
                  if c.conn_id != connection.conn_id]

        await self._router.send_to_room(
            group.id,
            Event.outbound(OutboundEvent.USER_LEFT_GROUP, {"groupId": group.id, "user": identity.summary()}),
        )
        await self._router.deliver(
            [connection, *others],
            Event.outbound(OutboundEvent.LEFT_GROUP, {"groupId": group.id, "name": group.name}),
        )
        return group


__all__ = ['RoomChannels', 'RoomMembershipManager', 'evict_user']
