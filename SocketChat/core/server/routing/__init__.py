"""
Outbound event delivery.

Every send is isolated: a dead or slow peer never raises into the caller
and never blocks delivery to the others. Transports are expected to queue
frames rather than wait on the network; one that does not accept a frame
within the send timeout is treated as stalled and closed.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Iterable, List, Optional, Set

from SocketChat.config import config
from SocketChat.core.message.protocol import Event
from SocketChat.core.server.interfaces import TransportConnection
from SocketChat.core.server.presence import PresenceRegistry

if TYPE_CHECKING:
    from SocketChat.core.server.rooms import RoomChannels

logger = logging.getLogger(__name__)


class DeliveryStatus(Enum):
    """Status of a single delivery."""
    DELIVERED = auto()
    FAILED = auto()
    CLOSED = auto()


@dataclass
class DeliveryResult:
    """Result of delivering one event to one connection."""
    status: DeliveryStatus
    conn_id: str
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED


class MessageRouter:
    """
    Routes events to connections, users, rooms or everyone.

    Args:
        presence: Registry used to resolve users to connections
        channels: Room channels used for room broadcasts
        send_timeout: Seconds a transport gets to accept a frame (default: config.SEND_TIMEOUT)
    """

    STALLED_CODE = 1008
    STALLED_REASON = "Send timed out"

    def __init__(self, presence: PresenceRegistry, channels: 'RoomChannels', send_timeout: Optional[float] = None):
        self._presence = presence
        self._channels = channels
        self._send_timeout = config.SEND_TIMEOUT if send_timeout is None else send_timeout
        self._closing: Set[asyncio.Task] = set()

    async def deliver(
        self,
        connections: Iterable[TransportConnection],
        event: Event,
    ) -> List[DeliveryResult]:
        """Send ``event`` to each connection concurrently."""
        frame = event.serialize()
        targets = list(connections)
        if not targets:
            return []
        return list(await asyncio.gather(*(self._send_one(c, frame, event.name) for c in targets)))

    async def _send_one(self, connection: TransportConnection, frame: str, name: str) -> DeliveryResult:
        if not connection.is_open():
            return DeliveryResult(DeliveryStatus.CLOSED, connection.conn_id)
        try:
            ok = await asyncio.wait_for(connection.send(frame), self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Send of %s to %s stalled; closing connection", name, connection.conn_id)
            self._close_stalled(connection)
            return DeliveryResult(DeliveryStatus.FAILED, connection.conn_id, error="Send timed out")
        except Exception as e:
            logger.exception("Error sending %s to %s", name, connection.conn_id)
            return DeliveryResult(DeliveryStatus.FAILED, connection.conn_id, error=str(e))
        if not ok:
            logger.debug("Send of %s to %s failed", name, connection.conn_id)
            return DeliveryResult(DeliveryStatus.FAILED, connection.conn_id, error="Send failed")
        return DeliveryResult(DeliveryStatus.DELIVERED, connection.conn_id)

    def _close_stalled(self, connection: TransportConnection) -> None:
        task = asyncio.get_running_loop().create_task(
            connection.close(self.STALLED_CODE, self.STALLED_REASON)
        )
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def send_to_connection(self, connection: TransportConnection, event: Event) -> DeliveryResult:
        results = await self.deliver([connection], event)
        return results[0]

    async def send_to_user(self, user_id: str, event: Event) -> List[DeliveryResult]:
        """Send to every live connection of ``user_id``; none is not an error."""
        return await self.deliver(self._presence.connections_for(user_id), event)

    async def send_to_room(self, room_id: str, event: Event) -> List[DeliveryResult]:
        return await self.deliver(self._channels.subscribers(room_id), event)

    async def broadcast(self, event: Event, exclude: Optional[Iterable[str]] = None) -> List[DeliveryResult]:
        """
        Send to every live connection.

        Args:
            event: Event to send
            exclude: Connection handles to skip
        """
        skip = set(exclude or ())
        targets = [c for _, c in self._presence.all_connections() if c.conn_id not in skip]
        return await self.deliver(targets, event)


__all__ = ['MessageRouter', 'DeliveryStatus', 'DeliveryResult']
