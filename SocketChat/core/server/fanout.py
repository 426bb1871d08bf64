"""
Private and group message fan-out.
"""

import logging
from typing import Any, Dict

from SocketChat.core.message.protocol import Event, OutboundEvent
from SocketChat.core.server.interfaces import Identity, TransportConnection
from SocketChat.core.server.routing import MessageRouter
from SocketChat.core.server.service import ChatService

logger = logging.getLogger(__name__)


class MessageFanout:
    """
    Persist, then deliver.

    Nothing is sent unless the repository write succeeded; delivery
    failures to individual peers are logged by the router and never
    reach the sender.
    """

    def __init__(self, service: ChatService, router: MessageRouter):
        self._service = service
        self._router = router

    async def send_private(
        self,
        sender: Identity,
        connection: TransportConnection,
        recipient_id: str,
        content: str,
    ) -> Dict[str, Any]:
        payload = await self._service.post_private(sender, recipient_id, content)

        results = await self._router.send_to_user(
            recipient_id, Event.outbound(OutboundEvent.PRIVATE_MESSAGE, payload)
        )
        if not any(r.delivered for r in results):
            logger.debug("Recipient %s offline; message %s stored only", recipient_id, payload["id"])

        await self._router.send_to_connection(
            connection, Event.outbound(OutboundEvent.MESSAGE_SENT, payload)
        )
        return payload

    async def send_group(self, sender: Identity, group_id: str, content: str) -> Dict[str, Any]:
        payload = await self._service.post_group(sender, group_id, content)
        results = await self._router.send_to_room(
            group_id, Event.outbound(OutboundEvent.GROUP_MESSAGE, payload)
        )
        logger.debug("Group message %s delivered to %d/%d subscriber(s)",
                     payload["id"], sum(r.delivered for r in results), len(results))
        return payload


__all__ = ['MessageFanout']
