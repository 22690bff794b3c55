"""Role hierarchy rules for deciding who may start a conversation."""

from src.models.profile import UserRole

# Lower number = higher authority.
ROLE_HIERARCHY: dict[str, int] = {
    UserRole.SUPERADMIN.value: 0,
    UserRole.BIGADMIN.value: 1,
    UserRole.ADMIN.value: 2,
    UserRole.TEACHER.value: 3,
    UserRole.PARENT.value: 4,
    UserRole.STUDENT.value: 5,
}

UNKNOWN_ROLE_LEVEL = 999


def level_of(role: UserRole | str | None) -> int:
    """Get the hierarchy level for a role.

    Args:
        role: A UserRole, a raw role name, or None.

    Returns:
        int: The role's level, or UNKNOWN_ROLE_LEVEL for unset or unmapped roles.
    """
    if role is None:
        return UNKNOWN_ROLE_LEVEL
    name = role.value if isinstance(role, UserRole) else str(role)
    return ROLE_HIERARCHY.get(name.lower(), UNKNOWN_ROLE_LEVEL)


def can_initiate(
    initiator: UserRole | str | None,
    target: UserRole | str | None,
) -> bool:
    """Check whether the initiator may start a conversation with the target.

    Higher or equal authority may always initiate with equal or lower
    authority. Lower authority may never initiate with higher authority.

    Args:
        initiator: Role of the user starting the conversation.
        target: Role of the user being contacted.

    Returns:
        bool: True if the conversation may be initiated.
    """
    return level_of(initiator) <= level_of(target)
