"""Profile lookups for the authenticated caller."""

import logging
from typing import Any
from uuid import UUID

from src.core.supabase import get_supabase_client
from src.schemas.user import AppUser

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id, email, role, school_id, first_name, last_name, avatar_url, created_at"


class ProfileService:
    """Service for reading school profiles."""

    def __init__(self) -> None:
        """Initialize profile service with Supabase client."""
        self.client = get_supabase_client()

    async def get_profile(self, user_id: UUID | str) -> dict[str, Any] | None:
        """Get a profile row by ID.

        Args:
            user_id: The auth user ID, which is also the profile ID.

        Returns:
            dict | None: The profile data or None if not found.
        """
        response = (
            self.client.table("profiles")
            .select(PROFILE_COLUMNS)
            .eq("id", str(user_id))
            .maybe_single()
            .execute()
        )
        if response is None or not response.data:
            return None
        return response.data

    async def get_app_user(self, user_id: UUID | str) -> AppUser | None:
        """Get the chat user for a profile ID.

        Returns:
            AppUser | None: The user, or None if the profile is missing or
                has no recognised role.
        """
        profile = await self.get_profile(user_id)
        if profile is None:
            return None
        users = AppUser.from_rows([profile])
        if not users:
            logger.warning("Profile %s cannot be used for chat", user_id)
            return None
        return users[0]
