"""
Event protocol for SocketChat.

Every WebSocket frame is a JSON text object ``{"event": <name>, "data": <payload>}``.
Inbound and outbound event names are closed enumerations; inbound payloads are
validated with pydantic models before any handler runs.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from SocketChat.config import config
from SocketChat.core.exceptions import ValidationFailed


class InboundEvent(Enum):
    """Events a client may send."""
    PRIVATE_MESSAGE = "privateMessage"
    JOIN_GROUP = "joinGroup"
    LEAVE_GROUP = "leaveGroup"
    GROUP_MESSAGE = "groupMessage"


class OutboundEvent(Enum):
    """Events the server emits."""
    ONLINE_USERS = "onlineUsers"
    USER_ONLINE = "userOnline"
    USER_OFFLINE = "userOffline"
    PRIVATE_MESSAGE = "privateMessage"
    MESSAGE_SENT = "messageSent"
    JOINED_GROUP = "joinedGroup"
    LEFT_GROUP = "leftGroup"
    USER_JOINED_GROUP = "userJoinedGroup"
    USER_LEFT_GROUP = "userLeftGroup"
    GROUP_MESSAGE = "groupMessage"
    ERROR = "error"


@dataclass
class Event:
    """
    A single named event with its payload.

    Attributes:
        name (str): Event name as it appears on the wire
        data (Any): JSON-serializable payload
    """
    name: str
    data: Any = None

    @classmethod
    def outbound(cls, kind: OutboundEvent, data: Any = None) -> 'Event':
        return cls(kind.value, data)

    @classmethod
    def error(cls, message: str) -> 'Event':
        return cls(OutboundEvent.ERROR.value, {"message": message})

    def serialize(self) -> str:
        """
        Serialize the event to a JSON text frame.

        Returns:
            str: JSON representation of the event
        """
        return json.dumps({"event": self.name, "data": self.data})

    @classmethod
    def deserialize(cls, raw: Union[str, bytes]) -> 'Event':
        """
        Create an Event from a received frame.

        Args:
            raw: Text or binary frame

        Returns:
            Event: Deserialized event

        Raises:
            ValidationFailed: If the frame is not a JSON object with a string ``event``
        """
        try:
            obj = json.loads(raw)
        except (TypeError, ValueError):
            raise ValidationFailed("Malformed event: expected a JSON object")
        if not isinstance(obj, dict) or not isinstance(obj.get("event"), str):
            raise ValidationFailed("Malformed event: missing event name")
        return cls(name=obj["event"], data=obj.get("data"))


class EventPayload(BaseModel):
    """Base for inbound payloads. Strings are stripped before validation."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    required_message: ClassVar[str] = "Invalid payload"

    @classmethod
    def parse(cls, data: Any) -> 'EventPayload':
        """
        Validate raw payload data.

        Raises:
            ValidationFailed: With a client-facing message
        """
        if not isinstance(data, dict):
            raise ValidationFailed(cls.required_message)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            kinds = {err["type"] for err in e.errors()}
            if kinds == {"string_too_long"}:
                raise ValidationFailed(
                    f"Message cannot exceed {config.MAX_MESSAGE_LENGTH} characters"
                ) from e
            raise ValidationFailed(cls.required_message) from e


MessageContent = Annotated[str, Field(min_length=1, max_length=config.MAX_MESSAGE_LENGTH)]


class PrivateMessagePayload(EventPayload):
    required_message: ClassVar[str] = "Recipient ID and message content are required"

    recipientId: str = Field(min_length=1)
    content: MessageContent


class GroupRefPayload(EventPayload):
    required_message: ClassVar[str] = "Group ID is required"

    groupId: str = Field(min_length=1)


class GroupMessagePayload(EventPayload):
    required_message: ClassVar[str] = "Group ID and message content are required"

    groupId: str = Field(min_length=1)
    content: MessageContent


PAYLOAD_MODELS: Dict[InboundEvent, Type[EventPayload]] = {
    InboundEvent.PRIVATE_MESSAGE: PrivateMessagePayload,
    InboundEvent.JOIN_GROUP: GroupRefPayload,
    InboundEvent.LEAVE_GROUP: GroupRefPayload,
    InboundEvent.GROUP_MESSAGE: GroupMessagePayload,
}


def parse_inbound(event: Event) -> Tuple[InboundEvent, EventPayload]:
    """
    Resolve an inbound event to its kind and validated payload.

    Raises:
        ValidationFailed: Unknown event name or invalid payload
    """
    try:
        kind = InboundEvent(event.name)
    except ValueError:
        raise ValidationFailed(f"Unknown event: {event.name}")
    return kind, PAYLOAD_MODELS[kind].parse(event.data)


__all__ = [
    'InboundEvent',
    'OutboundEvent',
    'Event',
    'EventPayload',
    'PrivateMessagePayload',
    'GroupRefPayload',
    'GroupMessagePayload',
    'PAYLOAD_MODELS',
    'parse_inbound',
]
