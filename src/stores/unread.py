"""Live total unread message count."""

import logging

from src.services.chat_repository import ChatRepository
from src.stores.base import Store

logger = logging.getLogger(__name__)


class UnreadCounter(Store[int]):
    """Total unread messages for the user, kept live by a push stream."""

    def __init__(self, repository: ChatRepository) -> None:
        super().__init__(0)
        self.repository = repository

    async def start(self) -> None:
        self._listen(self.repository.subscribe_to_unread_count(), self._set_state)
        await self._load()

    async def _load(self) -> None:
        try:
            count = await self.repository.get_total_unread_count()
        except Exception as e:
            logger.debug("Failed to load unread count: %s", e)
            return
        self._set_state(count)

    async def refresh(self) -> None:
        if not self.mounted:
            return
        await self._load()
