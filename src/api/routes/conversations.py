"""Conversation list API routes."""

import logging

from fastapi import APIRouter, Query

from src.api.deps import ChatSessionDep
from src.models.conversation import ConversationFilter
from src.schemas.conversation import ConversationFilterUpdate, ConversationListResponse
from src.services.chat_session import ChatSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


def conversation_list_response(
    session: ChatSession,
    conversation_filter: ConversationFilter | None = None,
) -> ConversationListResponse:
    """Snapshot the session's conversation directory.

    Args:
        session: The caller's chat session.
        conversation_filter: Filter to apply. Defaults to the session's
            selected filter.

    Returns:
        ConversationListResponse: Filtered conversations and load status.
    """
    selected = conversation_filter or session.filter_selection.state
    state = session.directory.state
    return ConversationListResponse(
        conversations=session.directory.filtered(selected),
        filter=selected,
        is_loading=state.is_loading,
        error=state.error,
    )


@router.get(
    "",
    response_model=ConversationListResponse,
    summary="List conversations",
    description="Returns the caller's direct and group conversations, most recent first.",
)
async def list_conversations(
    session: ChatSessionDep,
    conversation_filter: ConversationFilter | None = Query(
        default=None,
        alias="filter",
        description="all, direct or groups. Defaults to the selected filter.",
    ),
) -> ConversationListResponse:
    return conversation_list_response(session, conversation_filter)


@router.post(
    "/refresh",
    response_model=ConversationListResponse,
    summary="Refresh conversations",
    description="Reloads the conversation list from the database.",
)
async def refresh_conversations(session: ChatSessionDep) -> ConversationListResponse:
    await session.directory.refresh()
    return conversation_list_response(session)


@router.put(
    "/filter",
    response_model=ConversationListResponse,
    summary="Select conversation filter",
    description="Stores the caller's filter selection and returns the filtered list.",
)
async def set_conversation_filter(
    data: ConversationFilterUpdate,
    session: ChatSessionDep,
) -> ConversationListResponse:
    session.filter_selection.set_filter(data.filter)
    logger.debug("User %s selected filter %s", session.user.id, data.filter.value)
    return conversation_list_response(session)
