"""Live conversation list and the conversation filter selection."""

import logging
from dataclasses import dataclass, field

from src.models.conversation import ConversationFilter
from src.schemas.conversation import ConversationEntity
from src.services.chat_repository import ChatRepository
from src.stores.base import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationsState:
    """Cached conversation list.

    While loading or after a failed fetch the list is empty and the
    directory exposes no conversations.
    """

    conversations: list[ConversationEntity] = field(default_factory=list)
    is_loading: bool = False
    error: str | None = None


class ConversationDirectory(Store[ConversationsState]):
    """Authoritative, live-updated list of the user's conversations."""

    def __init__(self, repository: ChatRepository) -> None:
        super().__init__(ConversationsState(is_loading=True))
        self.repository = repository

    async def start(self) -> None:
        """Open the push subscription and load the initial list."""
        self._listen(self.repository.subscribe_to_conversations(), self._on_conversations)
        await self._load()

    def _on_conversations(self, conversations: list[ConversationEntity]) -> None:
        self._set_state(ConversationsState(conversations=conversations))

    async def _load(self) -> None:
        try:
            conversations = await self.repository.get_conversations()
        except Exception as e:
            logger.warning("Failed to load conversations: %s", e)
            self._set_state(ConversationsState(error=str(e)))
            return
        self._set_state(ConversationsState(conversations=conversations))

    async def refresh(self) -> None:
        """Reload the full list, replacing whatever is cached."""
        if not self.mounted:
            return
        self._set_state(ConversationsState(is_loading=True))
        await self._load()

    @property
    def conversations(self) -> list[ConversationEntity]:
        """Cached conversations, or an empty list while loading or errored."""
        state = self.state
        if state.is_loading or state.error is not None:
            return []
        return state.conversations

    def filtered(self, conversation_filter: ConversationFilter) -> list[ConversationEntity]:
        """Conversations matching a filter, in directory order."""
        return [c for c in self.conversations if c.matches(conversation_filter)]


class ConversationFilterSelection(Store[ConversationFilter]):
    """The conversation filter currently selected by the user."""

    def __init__(self) -> None:
        super().__init__(ConversationFilter.ALL)

    def set_filter(self, conversation_filter: ConversationFilter) -> None:
        self._set_state(conversation_filter)
