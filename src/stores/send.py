"""Send pipeline tracking one in-flight message send."""

import logging
from dataclasses import dataclass

from src.services.chat_repository import ChatRepository
from src.stores.base import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendMessageState:
    is_sending: bool = False
    error: str | None = None


class SendPipeline(Store[SendMessageState]):
    """Sends messages and reports the outcome of the latest attempt.

    Sent messages reach open threads through their push subscriptions,
    never directly from here.
    """

    def __init__(self, repository: ChatRepository) -> None:
        super().__init__(SendMessageState())
        self.repository = repository

    async def send_message(self, conversation_id: str, content: str, is_group: bool) -> bool:
        """Send a message to a direct or group conversation.

        Args:
            conversation_id: Recipient profile ID or group ID.
            content: Message body.
            is_group: Whether the conversation is a group.

        Returns:
            bool: True if the message was sent.
        """
        self._set_state(SendMessageState(is_sending=True))
        try:
            if is_group:
                await self.repository.send_group_message(conversation_id, content)
            else:
                await self.repository.send_direct_message(conversation_id, content)
        except Exception as e:
            logger.warning("Send to %s failed: %s", conversation_id, e)
            self._set_state(SendMessageState(error=str(e)))
            return False
        self._set_state(SendMessageState())
        return True

    def clear_error(self) -> None:
        self._set_state(SendMessageState())
