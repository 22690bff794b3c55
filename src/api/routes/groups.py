"""Message group API routes."""

import logging

from fastapi import APIRouter, Response, status

from src.api.deps import ChatSessionDep
from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.schemas.group import (
    CreateGroupResponse,
    GroupCreate,
    GroupListResponse,
    GroupMemberAdd,
    MessageGroupEntity,
)
from src.services.chat_session import ChatSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


async def member_group(session: ChatSession, group_id: str) -> MessageGroupEntity:
    """Get a group the caller belongs to.

    Raises:
        NotFoundError: If the group does not exist.
        AuthorizationError: If the caller is not a member.
    """
    group = await session.group_details(group_id)
    if group is None:
        raise NotFoundError("Group not found")
    if not group.is_member(session.user.id):
        raise AuthorizationError("You are not a member of this group")
    return group


@router.get(
    "",
    response_model=GroupListResponse,
    summary="List groups",
    description="Returns the groups the caller belongs to, with their members.",
)
async def list_groups(session: ChatSessionDep) -> GroupListResponse:
    return GroupListResponse(groups=await session.user_groups())


@router.post(
    "",
    response_model=CreateGroupResponse,
    summary="Create a group",
    description="Creates a group with the caller and the given members. Failures "
    "are reported in the response body.",
)
async def create_group(data: GroupCreate, session: ChatSessionDep) -> CreateGroupResponse:
    """Create a group and refresh the caller's conversation list.

    Args:
        data: Group name, members and type.
        session: The caller's chat session.

    Returns:
        CreateGroupResponse: The created group or the failure reason.
    """
    creation = session.group_creation
    group = await creation.create_group(data.name, data.member_ids, data.type)
    response = CreateGroupResponse(group=group, error=creation.state.error)
    creation.reset()
    return response


@router.get(
    "/{group_id}",
    response_model=MessageGroupEntity,
    summary="Get group details",
    responses={404: {"description": "Group not found"}},
)
async def get_group(group_id: str, session: ChatSessionDep) -> MessageGroupEntity:
    return await member_group(session, group_id)


@router.post(
    "/{group_id}/members",
    response_model=MessageGroupEntity,
    status_code=status.HTTP_201_CREATED,
    summary="Add a group member",
)
async def add_group_member(
    group_id: str,
    data: GroupMemberAdd,
    session: ChatSessionDep,
) -> MessageGroupEntity:
    await member_group(session, group_id)
    await session.add_group_member(group_id, data.user_id)
    logger.info("User %s added %s to group %s", session.user.id, data.user_id, group_id)
    return await member_group(session, group_id)


@router.delete(
    "/{group_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a group member",
    description="Only the group creator may remove other members.",
)
async def remove_group_member(
    group_id: str,
    user_id: str,
    session: ChatSessionDep,
) -> Response:
    group = await member_group(session, group_id)
    if user_id != session.user.id and not group.is_creator(session.user.id):
        raise AuthorizationError("Only the group creator can remove members")
    await session.remove_group_member(group_id, user_id)
    logger.info("User %s removed %s from group %s", session.user.id, user_id, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{group_id}/leave",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Leave a group",
)
async def leave_group(group_id: str, session: ChatSessionDep) -> Response:
    await member_group(session, group_id)
    await session.leave_group(group_id)
    logger.info("User %s left group %s", session.user.id, group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
