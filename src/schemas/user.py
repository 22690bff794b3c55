"""User schemas for chat participants and recipients."""

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.profile import UserRole
from src.services.role_hierarchy import can_initiate

logger = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({UserRole.SUPERADMIN, UserRole.BIGADMIN, UserRole.ADMIN})


def display_name(
    first_name: str | None,
    last_name: str | None,
    role: str | None = None,
) -> str | None:
    """Build the name shown for a profile in chat.

    Superadmins are shown as "Admin {first_name}" so their last name stays
    private.

    Args:
        first_name: Profile first name.
        last_name: Profile last name.
        role: Raw role name of the profile.

    Returns:
        str | None: Display name, or None when the profile has no name.
    """
    if UserRole.from_string(role) == UserRole.SUPERADMIN and first_name:
        return f"Admin {first_name}"
    name = " ".join(part for part in (first_name, last_name) if part)
    return name or None


class AppUser(BaseModel):
    """Authenticated or contactable user loaded from the profiles table."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(description="Profile ID")
    email: str = Field(description="User email")
    role: UserRole = Field(description="User role")
    first_name: str | None = Field(default=None, description="First name")
    last_name: str | None = Field(default=None, description="Last name")
    school_id: str | None = Field(default=None, description="School the user belongs to")
    avatar_url: str | None = Field(default=None, description="Avatar image URL")
    created_at: datetime | None = Field(default=None, description="Profile creation timestamp")

    @property
    def full_name(self) -> str:
        """First and last name, whichever are set, falling back to email."""
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email

    @property
    def has_admin_privileges(self) -> bool:
        """Whether the user may act as a school administrator."""
        return self.role in ADMIN_ROLES

    def can_message(self, other: "AppUser") -> bool:
        """Check whether this user may start a conversation with another."""
        return can_initiate(self.role, other.role)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AppUser":
        """Build a user from a profiles row.

        Args:
            row: Row from the profiles table.

        Returns:
            AppUser: Parsed user.

        Raises:
            ValueError: If the row has no id or an unknown role.
        """
        role = UserRole.from_string(row.get("role"))
        if not row.get("id") or role is None:
            raise ValueError(f"Invalid profile row: {row.get('id')!r}")
        school_id = row.get("school_id")
        return cls(
            id=str(row["id"]),
            email=row.get("email") or "",
            role=role,
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            school_id=str(school_id) if school_id else None,
            avatar_url=row.get("avatar_url"),
            created_at=row.get("created_at"),
        )

    @classmethod
    def from_rows(cls, rows: list[dict[str, Any]]) -> list["AppUser"]:
        """Parse profile rows, skipping any that are malformed."""
        users = []
        for row in rows:
            try:
                users.append(cls.from_row(row))
            except ValueError as e:
                logger.warning("Skipping profile row: %s", e)
        return users


class RecipientListResponse(BaseModel):
    """Response for recipient listing and search."""

    model_config = ConfigDict(from_attributes=True)

    recipients: list[AppUser] = Field(description="Users the caller can contact")
    is_loading: bool = Field(default=False, description="Whether a load is in flight")
    error: str | None = Field(default=None, description="Last load error, if any")


class CanInitiateResponse(BaseModel):
    """Response for a role hierarchy check."""

    initiator_role: UserRole = Field(description="Caller's role")
    target_role: str = Field(description="Role being contacted")
    allowed: bool = Field(description="Whether the caller may start the conversation")
