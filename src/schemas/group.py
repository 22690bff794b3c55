"""Message group schemas."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.schemas.user import AppUser

DEFAULT_GROUP_TYPE = "custom"


class GroupMemberEntity(BaseModel):
    """A membership row, optionally with the member's profile."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(description="Membership ID")
    group_id: str = Field(description="Group ID")
    user_id: str = Field(description="Member profile ID")
    user: AppUser | None = Field(default=None, description="Member profile")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "GroupMemberEntity":
        """Build a member from a message_group_members row.

        Rows without their own id get "{group_id}_{user_id}".
        """
        group_id = str(row["group_id"])
        user_id = str(row["user_id"])
        profile = row.get("user") or row.get("profile")
        users = AppUser.from_rows([profile]) if profile else []
        return cls(
            id=str(row.get("id") or f"{group_id}_{user_id}"),
            group_id=group_id,
            user_id=user_id,
            user=users[0] if users else None,
        )


class MessageGroupEntity(BaseModel):
    """A message group with its members."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(description="Group ID")
    school_id: str | None = Field(default=None, description="Owning school, None for cross-school")
    name: str = Field(description="Group name")
    type: str = Field(default=DEFAULT_GROUP_TYPE, description="Group type")
    created_by: str = Field(description="Creator profile ID")
    created_at: datetime = Field(description="Creation timestamp")
    members: list[GroupMemberEntity] = Field(default_factory=list, description="Group members")

    @property
    def member_count(self) -> int:
        return len(self.members)

    def is_member(self, user_id: str) -> bool:
        return any(member.user_id == user_id for member in self.members)

    def is_creator(self, user_id: str) -> bool:
        return self.created_by == user_id

    @classmethod
    def from_row(
        cls,
        row: dict[str, Any],
        members: list[dict[str, Any]] | None = None,
    ) -> "MessageGroupEntity":
        """Build a group from a message_groups row.

        Args:
            row: Row from the message_groups table.
            members: Membership rows. Defaults to the row's nested "members".

        Returns:
            MessageGroupEntity: Parsed group.
        """
        member_rows = members if members is not None else row.get("members") or []
        school_id = row.get("school_id")
        return cls(
            id=str(row["id"]),
            school_id=str(school_id) if school_id else None,
            name=row.get("name") or "",
            type=row.get("type") or DEFAULT_GROUP_TYPE,
            created_by=str(row.get("created_by") or ""),
            created_at=row.get("created_at") or datetime.now(timezone.utc),
            members=[
                GroupMemberEntity.from_row({"group_id": row["id"], **member})
                for member in member_rows
            ],
        )


class GroupCreate(BaseModel):
    """Request body for creating a group."""

    name: str = Field(min_length=1, max_length=255, description="Group name")
    member_ids: list[str] = Field(default_factory=list, description="Members besides the creator")
    type: str = Field(default=DEFAULT_GROUP_TYPE, description="Group type")


class GroupMemberAdd(BaseModel):
    """Request body for adding a member to a group."""

    user_id: str = Field(description="Profile ID to add")


class GroupListResponse(BaseModel):
    """Groups the caller belongs to."""

    groups: list[MessageGroupEntity] = Field(description="Member groups")


class CreateGroupResponse(BaseModel):
    """Outcome of a create-group attempt."""

    group: MessageGroupEntity | None = Field(default=None, description="Created group")
    error: str | None = Field(default=None, description="Failure reason when not created")
