"""Message model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class MessageType(str, Enum):
    """Message type values matching the message_type database enum."""

    DIRECT = "direct"
    GROUP = "group"
    ANNOUNCEMENT = "announcement"

    @classmethod
    def from_string(cls, value: str | None) -> "MessageType":
        """Parse a message type, defaulting to DIRECT for unknown values."""
        if value:
            lowered = value.lower()
            for message_type in cls:
                if message_type.value == lowered:
                    return message_type
        return cls.DIRECT


class Message(TypedDict):
    """Message table row representation.

    Direct messages carry recipient_id, group messages carry group_id,
    announcements carry neither.
    """

    id: UUID
    sender_id: UUID
    recipient_id: UUID | None
    group_id: UUID | None
    content: str
    message_type: MessageType
    is_read: bool
    created_at: datetime


class MessageCreate(TypedDict, total=False):
    """Data required to insert a new message."""

    sender_id: str
    recipient_id: str
    group_id: str
    content: str
    message_type: str
    is_read: bool
