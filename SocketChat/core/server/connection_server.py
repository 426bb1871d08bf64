"""
WebSocket connection server that composes all server components.

Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                      ConnectionServer                        │
    │  ┌──────────────┐  ┌──────────────┐  ┌────────────────────┐  │
    │  │ Auth         │  │ Presence     │  │ Room Channels      │  │
    │  │ Middleware   │  │ Registry     │  │ + Membership Mgr   │  │
    │  └──────────────┘  └──────────────┘  └────────────────────┘  │
    │  ┌──────────────┐  ┌──────────────┐  ┌────────────────────┐  │
    │  │ Connection   │  │ Message      │  │ Message            │  │
    │  │ Sessions     │  │ Router       │  │ Fan-out            │  │
    │  └──────────────┘  └──────────────┘  └────────────────────┘  │
    └──────────────────────────────────────────────────────────────┘

Connection lifecycle:
    1. handshake: token checked in ``process_request``; failures get HTTP 401
    2. open: presence register -> ``onlineUsers`` -> ``userOnline`` to peers
    3. events: processed one at a time, in arrival order, per connection
    4. close: presence unregister -> ``userOffline`` to peers -> channels dropped
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Dict, List, Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from SocketChat.config import config
from SocketChat.core.message.protocol import (
    Event,
    GroupMessagePayload,
    GroupRefPayload,
    InboundEvent,
    OutboundEvent,
    PrivateMessagePayload,
)
from SocketChat.core.server.auth import AuthenticationMiddleware, JWTTokenVerifier
from SocketChat.core.server.fanout import MessageFanout
from SocketChat.core.server.interfaces import ChatRepository, Identity, TransportConnection
from SocketChat.core.server.presence import PresenceRegistry
from SocketChat.core.server.rooms import RoomChannels, RoomMembershipManager
from SocketChat.core.server.routing import MessageRouter
from SocketChat.core.server.service import ChatService
from SocketChat.core.server.session import ConnectionSession, Handler, check_dispatch_table
from SocketChat.core.server.transport import WebSocketConnection

logger = logging.getLogger(__name__)


class ConnectionServer:
    """
    Accepts authenticated WebSocket connections and runs their sessions.

    Presence and room channels belong to this instance; two servers in one
    process share nothing but the repository.

    Example:
        server = ConnectionServer(store)
        async with server.run("localhost", 8765):
            await asyncio.Future()
    """

    def __init__(
        self,
        repository: ChatRepository,
        verifier: Optional[JWTTokenVerifier] = None,
        presence: Optional[PresenceRegistry] = None,
        channels: Optional[RoomChannels] = None,
    ):
        """
        Initialize the server.

        Args:
            repository: Persistence for users, groups and messages
            verifier: Token verifier (creates a JWT verifier over ``repository`` if None)
            presence: Presence registry (creates a fresh one if None)
            channels: Room channels (creates fresh ones if None)
        """
        self._repository = repository
        self._verifier = verifier if verifier is not None else JWTTokenVerifier(repository)
        self._auth_middleware = AuthenticationMiddleware(self._verifier)

        self._presence = presence if presence is not None else PresenceRegistry()
        self._channels = channels if channels is not None else RoomChannels()
        self._router = MessageRouter(self._presence, self._channels)

        self._service = ChatService(repository)
        self._rooms = RoomMembershipManager(self._service, self._channels, self._router, self._presence)
        self._fanout = MessageFanout(self._service, self._router)

        self._handlers = self._build_dispatch_table()
        self._sessions: Dict[str, ConnectionSession] = {}
        # identities resolved during the handshake, picked up by the handler
        self._pending: "weakref.WeakKeyDictionary[ServerConnection, Identity]" = weakref.WeakKeyDictionary()

        self._server: Optional[Server] = None
        self._host: Optional[str] = None
        self._running = False

        logger.info("ConnectionServer initialized")

    # ------------------------------------------------------------------ dispatch
    def _build_dispatch_table(self) -> Dict[InboundEvent, Handler]:
        table: Dict[InboundEvent, Handler] = {
            InboundEvent.PRIVATE_MESSAGE: self._on_private_message,
            InboundEvent.JOIN_GROUP: self._on_join_group,
            InboundEvent.LEAVE_GROUP: self._on_leave_group,
            InboundEvent.GROUP_MESSAGE: self._on_group_message,
        }
        return check_dispatch_table(table)

    async def _on_private_message(self, session: ConnectionSession, payload: PrivateMessagePayload) -> None:
        await self._fanout.send_private(session.identity, session.connection, payload.recipientId, payload.content)

    async def _on_join_group(self, session: ConnectionSession, payload: GroupRefPayload) -> None:
        await self._rooms.join(session.identity, session.connection, payload.groupId)

    async def _on_leave_group(self, session: ConnectionSession, payload: GroupRefPayload) -> None:
        await self._rooms.leave(session.identity, session.connection, payload.groupId)

    async def _on_group_message(self, session: ConnectionSession, payload: GroupMessagePayload) -> None:
        await self._fanout.send_group(session.identity, payload.groupId, payload.content)

    # ------------------------------------------------------------------ sessions
    async def open_session(self, identity: Identity, connection: TransportConnection) -> ConnectionSession:
        """
        Register a freshly authenticated connection.

        Sends the online snapshot to the new client and announces the
        identity to everyone else if this is its first live connection.
        """
        session = ConnectionSession(identity, connection, self._handlers)
        self._sessions[connection.conn_id] = session

        change = await self._presence.register(identity.user_id, connection)
        await session.emit(OutboundEvent.ONLINE_USERS, self._presence.list_online())
        if change.transitioned:
            await self._router.broadcast(
                Event.outbound(OutboundEvent.USER_ONLINE, identity.user_id),
                exclude=[connection.conn_id],
            )

        logger.info("User %s connected (%s)", identity.user_id, connection.conn_id)
        return session

    async def close_session(self, session: ConnectionSession) -> None:
        """
        Tear a session down. Safe to call more than once.

        Room channels are dropped silently: durable membership is unchanged,
        so no ``userLeftGroup`` is sent.
        """
        self._sessions.pop(session.conn_id, None)
        change = await self._presence.unregister(session.conn_id)
        if change is not None and change.transitioned:
            await self._router.broadcast(Event.outbound(OutboundEvent.USER_OFFLINE, session.user_id))
        await self._channels.drop_connection(session.conn_id)

        if change is not None:
            logger.info("User %s disconnected (%s)", session.user_id, session.conn_id)

    # ------------------------------------------------------------------ websockets glue
    async def _process_request(self, websocket: ServerConnection, request: Request) -> Optional[Response]:
        result = await self._auth_middleware.authenticate_request(request)
        if not result.success:
            logger.warning("Handshake rejected from %s: %s",
                           websocket.remote_address, result.error_message)
            return websocket.respond(HTTPStatus.UNAUTHORIZED, f"{result.error_message}\n")
        self._pending[websocket] = result.identity
        return None

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        identity = self._pending.pop(websocket, None)
        if identity is None:
            await websocket.close(code=1008, reason="Unauthorized")
            return

        connection = WebSocketConnection(websocket, identity.user_id)
        session = await self.open_session(identity, connection)
        try:
            async for raw in websocket:
                await session.handle_frame(raw)
        except ConnectionClosed as e:
            logger.debug("Connection %s closed: %s", connection.conn_id, e)
        finally:
            await self.close_session(session)
            await connection.close()

    # ------------------------------------------------------------------ lifecycle
    @asynccontextmanager
    async def run(self, host: str = None, port: int = None):
        """
        Run the server as an async context manager.

        Yields:
            The server instance
        """
        await self.start(host, port)
        try:
            yield self
        finally:
            await self.stop()

    async def start(self, host: str = None, port: int = None) -> None:
        self._host = host or config.DEFAULT_HOST
        port = config.DEFAULT_SERVER_PORT if port is None else port
        self._server = await serve(
            self._handle_connection,
            self._host,
            port,
            process_request=self._process_request,
        )
        self._running = True
        logger.info("WebSocket server started on ws://%s:%s", self._host, self.port)

    async def stop(self) -> None:
        self._running = False
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        logger.info("WebSocket server stopped")

    async def serve_forever(self, host: str = None, port: int = None) -> None:
        async with self.run(host, port):
            await asyncio.Future()

    # ------------------------------------------------------------------ accessors
    @property
    def port(self) -> Optional[int]:
        """Bound port; useful when started with port 0."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def presence(self) -> PresenceRegistry:
        return self._presence

    @property
    def channels(self) -> RoomChannels:
        return self._channels

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def service(self) -> ChatService:
        return self._service

    @property
    def verifier(self) -> JWTTokenVerifier:
        return self._verifier

    @property
    def sessions(self) -> List[ConnectionSession]:
        return list(self._sessions.values())

    def get_online_users(self) -> List[str]:
        return self._presence.list_online()


def create_server(repository: ChatRepository, **kwargs) -> ConnectionServer:
    """Factory function to create a configured connection server."""
    return ConnectionServer(repository, **kwargs)


__all__ = ['ConnectionServer', 'create_server']
