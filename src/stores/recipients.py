"""Directory of users the current user may contact."""

import logging
from dataclasses import dataclass, field

from src.schemas.user import AppUser
from src.services.chat_repository import ChatRepository, CurrentUserProvider
from src.services.role_hierarchy import can_initiate
from src.stores.base import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecipientsState:
    recipients: list[AppUser] = field(default_factory=list)
    is_loading: bool = False
    error: str | None = None


class RecipientDirectory(Store[RecipientsState]):
    """Contactable users, filtered by the role hierarchy."""

    def __init__(self, repository: ChatRepository, current_user: CurrentUserProvider) -> None:
        """Initialize the directory.

        Args:
            repository: Chat backend.
            current_user: Returns the signed-in user, or None.
        """
        super().__init__(RecipientsState(is_loading=True))
        self.repository = repository
        self.current_user = current_user

    async def start(self) -> None:
        await self._load()

    async def refresh(self) -> None:
        if not self.mounted:
            return
        self._set_state(RecipientsState(is_loading=True))
        await self._load()

    async def _load(self) -> None:
        try:
            recipients = await self.repository.get_available_recipients()
        except Exception as e:
            logger.warning("Failed to load recipients: %s", e)
            self._set_state(RecipientsState(error=str(e)))
            return
        self._set_state(RecipientsState(recipients=recipients))

    @property
    def filtered(self) -> list[AppUser]:
        """Recipients the current user may start a conversation with.

        Empty while loading or after a failed load. Unfiltered when nobody
        is signed in.
        """
        state = self.state
        if state.is_loading or state.error is not None:
            return []
        user = self.current_user()
        if user is None:
            return state.recipients
        return [r for r in state.recipients if can_initiate(user.role, r.role)]

    async def search(self, query: str) -> list[AppUser]:
        """Search recipients by name or email.

        An empty query returns the cached recipients. Failures return an
        empty list.
        """
        if not query:
            return self.state.recipients
        try:
            return await self.repository.search_users(query)
        except Exception as e:
            logger.warning("Recipient search failed: %s", e)
            return []
