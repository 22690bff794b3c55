"""Message thread and announcement API routes."""

import logging

from fastapi import APIRouter, Query, Response, status

from src.api.deps import AdminUser, ChatSessionDep
from src.api.middleware.error_handler import AuthorizationError
from src.api.routes.groups import member_group
from src.schemas.message import (
    AnnouncementCreate,
    MessageCreate,
    MessageEntity,
    MessageThreadResponse,
    SendMessageResponse,
)
from src.services.chat_session import ChatSession
from src.stores.messages import MessageThreadStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations/{conversation_id}/messages", tags=["messages"])
announcements_router = APIRouter(prefix="/announcements", tags=["announcements"])

IsGroup = Query(default=False, description="Whether the conversation is a group")


async def _open_thread(
    session: ChatSession, conversation_id: str, is_group: bool
) -> MessageThreadStore:
    """Open a thread, checking group membership before the first open."""
    if is_group and session.get_thread(conversation_id, True) is None:
        await member_group(session, conversation_id)
    return await session.open_thread(conversation_id, is_group)


def _thread_response(thread: MessageThreadStore) -> MessageThreadResponse:
    state = thread.state
    return MessageThreadResponse(
        conversation_id=thread.conversation_id,
        is_group=thread.is_group,
        messages=state.messages,
        is_loading=state.is_loading,
        has_more=state.has_more,
        error=state.error,
    )


@router.get(
    "",
    response_model=MessageThreadResponse,
    summary="Open a message thread",
    description="Returns the loaded messages of a conversation, newest first. "
    "The first call loads the first page and marks the conversation read.",
)
async def get_messages(
    conversation_id: str,
    session: ChatSessionDep,
    is_group: bool = IsGroup,
) -> MessageThreadResponse:
    thread = await _open_thread(session, conversation_id, is_group)
    return _thread_response(thread)


@router.post(
    "/more",
    response_model=MessageThreadResponse,
    summary="Load older messages",
    description="Appends the next page of older messages to the thread.",
)
async def load_more_messages(
    conversation_id: str,
    session: ChatSessionDep,
    is_group: bool = IsGroup,
) -> MessageThreadResponse:
    thread = await _open_thread(session, conversation_id, is_group)
    await thread.load_more()
    return _thread_response(thread)


@router.post(
    "/refresh",
    response_model=MessageThreadResponse,
    summary="Reload a message thread",
)
async def refresh_messages(
    conversation_id: str,
    session: ChatSessionDep,
    is_group: bool = IsGroup,
) -> MessageThreadResponse:
    thread = await _open_thread(session, conversation_id, is_group)
    await thread.refresh()
    return _thread_response(thread)


@router.post(
    "",
    response_model=SendMessageResponse,
    summary="Send a message",
    description="Sends a message to a direct or group conversation. Backend failures "
    "are reported in the response body. Starting a direct conversation the role "
    "hierarchy forbids returns 403.",
)
async def send_message(
    conversation_id: str,
    data: MessageCreate,
    session: ChatSessionDep,
    is_group: bool = IsGroup,
) -> SendMessageResponse:
    """Send a message through the session's send pipeline.

    Args:
        conversation_id: Recipient profile ID or group ID.
        data: Message body.
        session: The caller's chat session.
        is_group: Whether the conversation is a group.

    Returns:
        SendMessageResponse: Whether the message was sent and why not.

    Raises:
        AuthorizationError: If a new direct conversation breaks the role
            hierarchy.
    """
    if not is_group and not session.can_message(conversation_id):
        raise AuthorizationError("You cannot start a conversation with this user")
    sent = await session.send.send_message(conversation_id, data.content, is_group)
    return SendMessageResponse(sent=sent, error=None if sent else session.send.state.error)


@router.delete(
    "/thread",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close a message thread",
    description="Stops live updates for the thread and releases it.",
)
async def close_thread(
    conversation_id: str,
    session: ChatSessionDep,
    is_group: bool = IsGroup,
) -> Response:
    await session.close_thread(conversation_id, is_group)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@announcements_router.post(
    "",
    response_model=MessageEntity,
    status_code=status.HTTP_201_CREATED,
    summary="Send an announcement",
    description="Sends a school-wide announcement. Requires admin privileges.",
)
async def send_announcement(
    data: AnnouncementCreate,
    admin: AdminUser,
    session: ChatSessionDep,
) -> MessageEntity:
    message = await session.send_announcement(data.content)
    logger.info("Announcement %s sent by %s", message.id, admin.id)
    return message
