"""Unread count and live chat event routes."""

import asyncio
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from src.api.deps import ChatSessionDep
from src.api.routes.conversations import conversation_list_response
from src.schemas.conversation import UnreadCountResponse
from src.services.chat_session import ChatSession
from src.stores.conversations import ConversationsState

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

KEEPALIVE_SECONDS = 15.0


def format_sse(event: str, data: str) -> str:
    """Format one Server-Sent Events message."""
    return f"event: {event}\ndata: {data}\n\n"


@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Get unread count",
    description="Total unread messages across direct and group conversations.",
)
async def get_unread_count(session: ChatSessionDep) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=session.unread.state)


async def chat_events(
    session: ChatSession,
    request: Request,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Stream unread count and conversation list changes for a session.

    The current values are sent first. A comment line is sent after each
    quiet period so proxies keep the connection open.

    Args:
        session: The caller's chat session.
        request: Incoming request, polled for client disconnects.
        keepalive_seconds: Quiet period before a keepalive comment.

    Yields:
        str: Formatted SSE messages.
    """
    queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()

    def on_unread(count: int) -> None:
        queue.put_nowait(("unread", UnreadCountResponse(unread_count=count).model_dump_json()))

    def on_conversations(_: ConversationsState) -> None:
        queue.put_nowait(("conversations", conversation_list_response(session).model_dump_json()))

    unsubscribers = [
        session.unread.subscribe(on_unread),
        session.directory.subscribe(on_conversations),
    ]
    on_unread(session.unread.state)
    on_conversations(session.directory.state)
    logger.debug("Event stream opened for user %s", session.user.id)
    try:
        while True:
            try:
                event, data = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                if await request.is_disconnected():
                    break
                session.touch()
                yield ": keepalive\n\n"
                continue
            session.touch()
            yield format_sse(event, data)
    finally:
        for unsubscribe in unsubscribers:
            unsubscribe()
        logger.debug("Event stream closed for user %s", session.user.id)


@router.get(
    "/events",
    summary="Live chat events",
    description="Server-Sent Events stream of 'unread' and 'conversations' updates.",
)
async def stream_events(request: Request, session: ChatSessionDep) -> StreamingResponse:
    return StreamingResponse(
        chat_events(session, request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
