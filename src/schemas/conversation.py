"""Conversation schemas for the chat inbox."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.conversation import ConversationFilter
from src.models.profile import UserRole
from src.schemas.message import MessageEntity
from src.services.role_hierarchy import can_initiate

PREVIEW_LENGTH = 50


class ConversationEntity(BaseModel):
    """A direct or group conversation in the user's inbox.

    For direct conversations the id is the other participant's profile ID.
    For group conversations it is the group ID.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(description="Other user's ID or group ID")
    name: str = Field(description="Participant or group name")
    avatar_url: str | None = Field(default=None, description="Participant avatar URL")
    is_group: bool = Field(default=False, description="Whether this is a group conversation")
    last_message: MessageEntity | None = Field(default=None, description="Most recent message")
    unread_count: int = Field(default=0, description="Unread messages for the viewer")
    participant_ids: list[str] = Field(default_factory=list, description="Participant profile IDs")
    group_type: str | None = Field(default=None, description="Group type for group conversations")
    created_at: datetime | None = Field(default=None, description="Group creation timestamp")
    participant_role: UserRole | None = Field(
        default=None, description="Other participant's role for direct conversations"
    )

    @property
    def is_direct(self) -> bool:
        return not self.is_group

    @property
    def has_unread(self) -> bool:
        return self.unread_count > 0

    @property
    def last_activity_time(self) -> datetime | None:
        """Time of the last message, falling back to creation time."""
        if self.last_message is not None:
            return self.last_message.created_at
        return self.created_at

    @property
    def last_message_preview(self) -> str:
        """Short preview of the last message for inbox rows."""
        if self.last_message is None:
            return ""
        content = self.last_message.content
        if len(content) > PREVIEW_LENGTH:
            return f"{content[:PREVIEW_LENGTH]}..."
        return content

    def can_user_initiate(self, role: UserRole | str | None) -> bool:
        """Check whether a user with the given role may write here.

        Group conversations are always open to their members.
        """
        if self.is_group:
            return True
        return can_initiate(role, self.participant_role)

    def matches(self, conversation_filter: ConversationFilter) -> bool:
        """Check whether the conversation belongs in a filtered view."""
        if conversation_filter == ConversationFilter.DIRECT:
            return self.is_direct
        if conversation_filter == ConversationFilter.GROUPS:
            return self.is_group
        return True


class ConversationListResponse(BaseModel):
    """Snapshot of the conversation directory."""

    model_config = ConfigDict(from_attributes=True)

    conversations: list[ConversationEntity] = Field(description="Conversations in view")
    filter: ConversationFilter = Field(description="Filter applied to the list")
    is_loading: bool = Field(default=False, description="Whether a refresh is in flight")
    error: str | None = Field(default=None, description="Last refresh error, if any")


class ConversationFilterUpdate(BaseModel):
    """Request body for changing the selected conversation filter."""

    filter: ConversationFilter = Field(description="New filter selection")


class UnreadCountResponse(BaseModel):
    """Total unread message count for the caller."""

    unread_count: int = Field(description="Unread messages across all conversations")
