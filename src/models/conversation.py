"""Conversation and message group type definitions."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class ConversationFilter(str, Enum):
    """Conversation list filter options."""

    ALL = "all"
    DIRECT = "direct"
    GROUPS = "groups"


class MessageGroup(TypedDict):
    """Message group table row representation.

    school_id is None for cross-school groups created by a superadmin.
    """

    id: UUID
    school_id: UUID | None
    name: str
    type: str | None
    created_by: UUID
    created_at: datetime


class MessageGroupMember(TypedDict):
    """Membership row linking a profile to a message group."""

    group_id: UUID
    user_id: UUID
