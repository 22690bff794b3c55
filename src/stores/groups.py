"""One-shot group creation."""

import logging
from dataclasses import dataclass

from src.schemas.group import DEFAULT_GROUP_TYPE, MessageGroupEntity
from src.services.chat_repository import ChatRepository
from src.stores.base import Store
from src.stores.conversations import ConversationDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateGroupState:
    is_creating: bool = False
    created_group: MessageGroupEntity | None = None
    error: str | None = None


class GroupCreation(Store[CreateGroupState]):
    """Creates groups and folds them into the conversation directory."""

    def __init__(
        self,
        repository: ChatRepository,
        conversations: ConversationDirectory | None = None,
    ) -> None:
        super().__init__(CreateGroupState())
        self.repository = repository
        self.conversations = conversations

    async def create_group(
        self,
        name: str,
        member_ids: list[str],
        group_type: str = DEFAULT_GROUP_TYPE,
    ) -> MessageGroupEntity | None:
        """Create a group with the current user and the given members.

        Args:
            name: Group name.
            member_ids: Profile IDs to add besides the creator.
            group_type: Group type stored with the group.

        Returns:
            MessageGroupEntity | None: The new group, or None on failure.
        """
        self._set_state(CreateGroupState(is_creating=True))
        try:
            group = await self.repository.create_group(name, member_ids, group_type)
        except Exception as e:
            logger.warning("Failed to create group %r: %s", name, e)
            self._set_state(CreateGroupState(error=str(e)))
            return None

        self._set_state(CreateGroupState(created_group=group))
        if self.conversations is not None:
            await self.conversations.refresh()
        return group

    def reset(self) -> None:
        self._set_state(CreateGroupState())
