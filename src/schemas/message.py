"""Message schemas for chat threads and sends."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.message import MessageType
from src.schemas.user import display_name


def _optional_id(value: Any) -> str | None:
    return str(value) if value else None


class MessageEntity(BaseModel):
    """A single chat message as seen by the current user."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(description="Message ID")
    sender_id: str = Field(description="Sender profile ID")
    sender_name: str | None = Field(default=None, description="Sender display name")
    sender_avatar_url: str | None = Field(default=None, description="Sender avatar URL")
    recipient_id: str | None = Field(default=None, description="Recipient for direct messages")
    recipient_name: str | None = Field(default=None, description="Recipient display name")
    group_id: str | None = Field(default=None, description="Group for group messages")
    content: str = Field(description="Message body")
    type: MessageType = Field(default=MessageType.DIRECT, description="Message type")
    is_read: bool = Field(default=False, description="Whether the recipient has read it")
    created_at: datetime = Field(description="Send timestamp")
    current_user_id: str | None = Field(default=None, description="Viewer profile ID")

    @property
    def is_from_me(self) -> bool:
        """Whether the viewing user sent this message."""
        return self.current_user_id is not None and self.sender_id == self.current_user_id

    @classmethod
    def from_row(cls, row: dict[str, Any], current_user_id: str | None = None) -> "MessageEntity":
        """Build a message from a messages row with joined sender/recipient profiles.

        Args:
            row: Row from the messages table. The optional "sender" and
                "recipient" keys hold joined profile columns.
            current_user_id: ID of the user viewing the message.

        Returns:
            MessageEntity: Parsed message.
        """
        sender = row.get("sender") or {}
        recipient = row.get("recipient") or {}
        return cls(
            id=str(row["id"]),
            sender_id=str(row["sender_id"]),
            sender_name=display_name(
                sender.get("first_name"), sender.get("last_name"), sender.get("role")
            ),
            sender_avatar_url=sender.get("avatar_url"),
            recipient_id=_optional_id(row.get("recipient_id")),
            recipient_name=display_name(
                recipient.get("first_name"), recipient.get("last_name"), recipient.get("role")
            ),
            group_id=_optional_id(row.get("group_id")),
            content=row.get("content") or "",
            type=MessageType.from_string(row.get("message_type")),
            is_read=bool(row.get("is_read", False)),
            created_at=row.get("created_at") or datetime.now(timezone.utc),
            current_user_id=current_user_id,
        )


class MessageCreate(BaseModel):
    """Request body for sending a message."""

    content: str = Field(min_length=1, max_length=10000, description="Message body")


class AnnouncementCreate(BaseModel):
    """Request body for a school-wide announcement."""

    content: str = Field(min_length=1, max_length=10000, description="Announcement body")


class MessageThreadResponse(BaseModel):
    """Snapshot of one open message thread."""

    model_config = ConfigDict(from_attributes=True)

    conversation_id: str = Field(description="Other user's ID or group ID")
    is_group: bool = Field(description="Whether the thread is a group thread")
    messages: list[MessageEntity] = Field(description="Messages, newest first")
    is_loading: bool = Field(description="Whether a page fetch is in flight")
    has_more: bool = Field(description="Whether older messages may exist")
    error: str | None = Field(default=None, description="Last fetch error, if any")


class SendMessageResponse(BaseModel):
    """Outcome of a send attempt."""

    sent: bool = Field(description="Whether the message was sent")
    error: str | None = Field(default=None, description="Failure reason when not sent")
