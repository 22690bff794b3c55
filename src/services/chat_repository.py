"""Chat backend interface consumed by the chat stores."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable

from src.schemas.conversation import ConversationEntity
from src.schemas.group import DEFAULT_GROUP_TYPE, MessageGroupEntity
from src.schemas.message import MessageEntity
from src.schemas.user import AppUser

DEFAULT_PAGE_SIZE = 50

# Zero-argument callable returning the authenticated user, or None.
CurrentUserProvider = Callable[[], AppUser | None]


class ChatError(Exception):
    """Raised when a chat backend operation fails.

    The message reads "Failed to <operation>: <reason>" so it can be shown
    to the user as is.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ChatRepository(ABC):
    """Conversations, messages, recipients and groups for one user.

    Streams are async iterators that run until the consumer stops iterating
    or the task consuming them is cancelled.
    """

    @abstractmethod
    async def get_conversations(self) -> list[ConversationEntity]:
        """Fetch all direct and group conversations, most recent first."""

    @abstractmethod
    def subscribe_to_conversations(self) -> AsyncIterator[list[ConversationEntity]]:
        """Stream the full conversation list each time it changes."""

    @abstractmethod
    async def get_direct_messages(
        self,
        other_user_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        before_id: str | None = None,
    ) -> list[MessageEntity]:
        """Fetch a page of a direct thread, newest first.

        Args:
            other_user_id: The other participant.
            limit: Maximum messages to return.
            before_id: Only return messages older than this message.
        """

    @abstractmethod
    async def get_group_messages(
        self,
        group_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        before_id: str | None = None,
    ) -> list[MessageEntity]:
        """Fetch a page of a group thread, newest first."""

    @abstractmethod
    def subscribe_to_messages(self) -> AsyncIterator[MessageEntity]:
        """Stream every new message relevant to the user, unfiltered."""

    @abstractmethod
    async def send_direct_message(self, recipient_id: str, content: str) -> MessageEntity:
        pass

    @abstractmethod
    async def send_group_message(self, group_id: str, content: str) -> MessageEntity:
        pass

    @abstractmethod
    async def send_announcement(self, content: str) -> MessageEntity:
        pass

    @abstractmethod
    async def mark_direct_messages_as_read(self, other_user_id: str) -> None:
        pass

    @abstractmethod
    async def mark_group_messages_as_read(self, group_id: str) -> None:
        pass

    @abstractmethod
    async def get_total_unread_count(self) -> int:
        pass

    @abstractmethod
    def subscribe_to_unread_count(self) -> AsyncIterator[int]:
        """Stream the total unread count each time it changes."""

    @abstractmethod
    async def get_available_recipients(self) -> list[AppUser]:
        """Fetch the users the current user is allowed to contact."""

    @abstractmethod
    async def search_users(self, query: str) -> list[AppUser]:
        """Search available recipients by name or email."""

    @abstractmethod
    async def create_group(
        self,
        name: str,
        member_ids: list[str],
        type: str = DEFAULT_GROUP_TYPE,
    ) -> MessageGroupEntity:
        """Create a group with the current user and the given members."""

    @abstractmethod
    async def get_user_groups(self) -> list[MessageGroupEntity]:
        pass

    @abstractmethod
    async def get_group(self, group_id: str) -> MessageGroupEntity | None:
        pass

    @abstractmethod
    async def add_group_member(self, group_id: str, user_id: str) -> None:
        pass

    @abstractmethod
    async def remove_group_member(self, group_id: str, user_id: str) -> None:
        pass

    @abstractmethod
    async def leave_group(self, group_id: str) -> None:
        """Remove the current user from a group."""
