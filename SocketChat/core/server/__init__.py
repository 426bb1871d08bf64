"""
Server module for SocketChat.

Architecture Overview:
---------------------

1. **Authentication** (`auth/`)
   - JWTTokenVerifier: validates a bearer token and resolves the user
   - AuthenticationMiddleware: handshake-request wrapper
   - DefaultTokenExtractor: header / query / cookie lookup

2. **Transport** (`transport/`)
   - WebSocketConnection: connection wrapper with its own handle

3. **Presence** (`presence.py`)
   - PresenceRegistry: identity -> live handles, owned by the server

4. **Rooms** (`rooms.py`)
   - RoomChannels: live channel subscriptions
   - RoomMembershipManager: join/leave workflow

5. **Routing** (`routing/`)
   - MessageRouter: isolated, concurrent delivery

6. **Policy** (`service.py`, `fanout.py`)
   - ChatService: validation, authorization, persistence
   - MessageFanout: private and group delivery

7. **Sessions** (`session/`) and **ConnectionServer** (`connection_server.py`)
"""

from SocketChat.core.server.auth import (
    AuthenticationMiddleware,
    DefaultTokenExtractor,
    JWTTokenVerifier,
    create_access_token,
)
from SocketChat.core.server.connection_server import ConnectionServer, create_server
from SocketChat.core.server.fanout import MessageFanout
from SocketChat.core.server.interfaces import AuthResult, ChatRepository, Identity, TransportConnection
from SocketChat.core.server.presence import PresenceChange, PresenceRegistry
from SocketChat.core.server.rooms import RoomChannels, RoomMembershipManager, evict_user
from SocketChat.core.server.routing import DeliveryResult, DeliveryStatus, MessageRouter
from SocketChat.core.server.service import ChatService
from SocketChat.core.server.session import ConnectionSession
from SocketChat.core.server.transport import WebSocketConnection

__all__ = [
    'AuthResult',
    'ChatRepository',
    'Identity',
    'TransportConnection',

    'JWTTokenVerifier',
    'AuthenticationMiddleware',
    'DefaultTokenExtractor',
    'create_access_token',

    'WebSocketConnection',

    'PresenceRegistry',
    'PresenceChange',

    'RoomChannels',
    'RoomMembershipManager',
    'evict_user',

    'MessageRouter',
    'DeliveryResult',
    'DeliveryStatus',

    'ChatService',
    'MessageFanout',

    'ConnectionSession',
    'ConnectionServer',
    'create_server',
]
