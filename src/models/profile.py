"""Profile model type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class UserRole(str, Enum):
    """User role values matching the profiles.role database enum."""

    SUPERADMIN = "superadmin"
    BIGADMIN = "bigadmin"
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"

    @classmethod
    def from_string(cls, value: str | None) -> "UserRole | None":
        """Parse a role name case-insensitively.

        Args:
            value: Raw role name, possibly None.

        Returns:
            UserRole | None: The matching role or None if unknown.
        """
        if value is None:
            return None
        lowered = value.lower()
        for role in cls:
            if role.value == lowered:
                return role
        return None


class Profile(TypedDict):
    """Profile table row representation.

    Represents a user profile stored in the profiles table.
    Maps directly to the database schema.
    """

    id: UUID
    email: str | None
    role: UserRole
    school_id: UUID | None
    first_name: str | None
    last_name: str | None
    avatar_url: str | None
    created_at: datetime
