from .exceptions import (
    ChatError,
    AuthenticationFailed,
    NotFound,
    Forbidden,
    ValidationFailed,
    PersistenceFailed,
)
from .message.protocol import Event, InboundEvent, OutboundEvent

__all__ = [
    'ChatError',
    'AuthenticationFailed',
    'NotFound',
    'Forbidden',
    'ValidationFailed',
    'PersistenceFailed',
    'Event',
    'InboundEvent',
    'OutboundEvent',
]
