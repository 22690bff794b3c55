"""Database model type definitions."""

from src.models.conversation import ConversationFilter, MessageGroup, MessageGroupMember
from src.models.message import Message, MessageType
from src.models.profile import Profile, UserRole

__all__ = [
    "ConversationFilter",
    "Message",
    "MessageGroup",
    "MessageGroupMember",
    "MessageType",
    "Profile",
    "UserRole",
]
