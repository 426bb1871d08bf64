"""
Per-connection session.

A ConnectionSession lives from a successful handshake until the socket
closes. It owns the snapshotted identity, turns inbound frames into
handler calls and reports per-event failures back to its own client.
"""

import logging
from typing import Any, Awaitable, Callable, Mapping, Union

from SocketChat.core.exceptions import ChatError
from SocketChat.core.message.protocol import Event, EventPayload, InboundEvent, OutboundEvent, parse_inbound
from SocketChat.core.server.interfaces import Identity, TransportConnection

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Error processing event"

Handler = Callable[['ConnectionSession', EventPayload], Awaitable[Any]]


def check_dispatch_table(table: Mapping[InboundEvent, Handler]) -> Mapping[InboundEvent, Handler]:
    """Fail fast if any inbound event has no handler."""
    missing = [kind.value for kind in InboundEvent if kind not in table]
    if missing:
        raise RuntimeError(f"No handler registered for inbound event(s): {', '.join(missing)}")
    return table


class ConnectionSession:
    """
    One authenticated live connection.

    Attributes:
        identity: Snapshot taken at handshake
        connection: Transport used for outbound frames
    """

    def __init__(
        self,
        identity: Identity,
        connection: TransportConnection,
        handlers: Mapping[InboundEvent, Handler],
    ):
        self.identity = identity
        self.connection = connection
        self._handlers = handlers
        self.events_handled = 0

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def conn_id(self) -> str:
        return self.connection.conn_id

    @property
    def is_active(self) -> bool:
        return self.connection.is_open()

    async def emit(self, kind: OutboundEvent, data: Any = None) -> bool:
        return await self.connection.send(Event.outbound(kind, data).serialize())

    async def emit_error(self, message: str) -> bool:
        return await self.connection.send(Event.error(message).serialize())

    async def handle_frame(self, raw: Union[str, bytes]) -> None:
        """
        Decode and dispatch one inbound frame.

        Never raises for event-level failures: ChatError is reported with its
        message, anything else is logged with a traceback and reported
        generically. The connection stays open either way.
        """
        try:
            event = Event.deserialize(raw)
            kind, payload = parse_inbound(event)
            await self._handlers[kind](self, payload)
            self.events_handled += 1
        except ChatError as e:
            logger.warning("Event from %s (%s) rejected: %s", self.user_id, self.conn_id, e)
            await self.emit_error(e.message)
        except Exception:
            logger.exception("Unexpected error handling event from %s (%s)", self.user_id, self.conn_id)
            await self.emit_error(GENERIC_ERROR)

    def __repr__(self) -> str:
        return f"ConnectionSession(user_id={self.user_id!r}, conn_id={self.conn_id!r})"


__all__ = ['ConnectionSession', 'Handler', 'GENERIC_ERROR', 'check_dispatch_table']
