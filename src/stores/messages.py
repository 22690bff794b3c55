"""Message thread store for one open conversation."""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field

from src.schemas.message import MessageEntity
from src.services.chat_repository import DEFAULT_PAGE_SIZE, ChatRepository
from src.stores.base import Store
from src.stores.conversations import ConversationDirectory
from src.stores.unread import UnreadCounter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatMessagesState:
    """Messages of one thread, newest first."""

    messages: list[MessageEntity] = field(default_factory=list)
    is_loading: bool = True
    has_more: bool = True
    error: str | None = None

    def copy_with(self, **changes) -> "ChatMessagesState":
        """Copy the state, clearing error unless a new one is given."""
        changes.setdefault("error", None)
        return dataclasses.replace(self, **changes)


class MessageThreadStore(Store[ChatMessagesState]):
    """Loads, paginates and live-updates the messages of one conversation.

    Pages are fetched newest first. Pushed messages are prepended and older
    pages are appended to the tail. Pagination and pushes are not
    serialized against each other, so a page that resolves after a push
    still lands below it.
    """

    def __init__(
        self,
        repository: ChatRepository,
        conversation_id: str,
        is_group: bool,
        conversations: ConversationDirectory | None = None,
        unread: UnreadCounter | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        """Initialize the thread store.

        Args:
            repository: Chat backend.
            conversation_id: Other participant's ID, or the group ID.
            is_group: Whether the thread is a group thread.
            conversations: Directory refreshed after marking the thread read.
            unread: Unread counter refreshed after marking the thread read.
            page_size: Messages per page.
        """
        super().__init__(ChatMessagesState())
        self.repository = repository
        self.conversation_id = conversation_id
        self.is_group = is_group
        self.conversations = conversations
        self.unread = unread
        self.page_size = page_size
        # Bumped by refresh() so pages requested before it are dropped.
        self._generation = 0

    async def start(self) -> None:
        """Subscribe to pushes, mark the thread read and load the first page."""
        self._listen(self.repository.subscribe_to_messages(), self._on_message)
        self._spawn(self._mark_as_read())
        await self._load_first_page()

    async def _fetch(self, before_id: str | None = None) -> list[MessageEntity]:
        if self.is_group:
            return await self.repository.get_group_messages(
                self.conversation_id, limit=self.page_size, before_id=before_id
            )
        return await self.repository.get_direct_messages(
            self.conversation_id, limit=self.page_size, before_id=before_id
        )

    async def _load_first_page(self) -> None:
        generation = self._generation
        try:
            messages = await self._fetch()
        except Exception as e:
            logger.warning("Failed to load messages for %s: %s", self.conversation_id, e)
            if generation == self._generation:
                self._set_state(self.state.copy_with(is_loading=False, error=str(e)))
            return
        if generation == self._generation:
            self._set_state(
                self.state.copy_with(
                    messages=messages,
                    is_loading=False,
                    has_more=len(messages) >= self.page_size,
                )
            )

    def _belongs_here(self, message: MessageEntity) -> bool:
        if self.is_group:
            return message.group_id == self.conversation_id
        return self.conversation_id in (message.sender_id, message.recipient_id)

    def _on_message(self, message: MessageEntity) -> None:
        if not self._belongs_here(message):
            return
        self._set_state(self.state.copy_with(messages=[message, *self.state.messages]))
        self._spawn(self._mark_as_read())

    async def load_more(self) -> None:
        """Fetch the page older than the oldest loaded message."""
        state = self.state
        if not self.mounted or state.is_loading or not state.has_more or not state.messages:
            return

        generation = self._generation
        self._set_state(state.copy_with(is_loading=True))
        try:
            older = await self._fetch(before_id=state.messages[-1].id)
        except Exception as e:
            logger.warning("Failed to load older messages for %s: %s", self.conversation_id, e)
            if generation == self._generation:
                self._set_state(self.state.copy_with(is_loading=False, error=str(e)))
            return
        if generation == self._generation:
            self._set_state(
                self.state.copy_with(
                    messages=[*self.state.messages, *older],
                    is_loading=False,
                    has_more=len(older) >= self.page_size,
                )
            )

    async def refresh(self) -> None:
        """Drop loaded messages and fetch the first page again."""
        if not self.mounted:
            return
        self._generation += 1
        self._set_state(self.state.copy_with(messages=[], is_loading=True))
        await self._load_first_page()

    async def _mark_as_read(self) -> None:
        if not self.mounted:
            return
        try:
            if self.is_group:
                await self.repository.mark_group_messages_as_read(self.conversation_id)
            else:
                await self.repository.mark_direct_messages_as_read(self.conversation_id)

            # Owned by the refreshed stores, which outlive this thread.
            refreshes = [
                store._spawn(store.refresh())
                for store in (self.conversations, self.unread)
                if store is not None
            ]
            await asyncio.shield(asyncio.gather(*(t for t in refreshes if t is not None)))
        except Exception as e:
            logger.debug("Mark as read failed for %s: %s", self.conversation_id, e)
