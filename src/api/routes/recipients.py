"""Recipient directory API routes."""

from fastapi import APIRouter, Query

from src.api.deps import ChatSessionDep
from src.schemas.user import CanInitiateResponse, RecipientListResponse
from src.services.role_hierarchy import can_initiate

router = APIRouter(prefix="/recipients", tags=["recipients"])


@router.get(
    "",
    response_model=RecipientListResponse,
    summary="List contactable users",
    description="Returns the users the caller may start a conversation with.",
)
async def list_recipients(session: ChatSessionDep) -> RecipientListResponse:
    state = session.recipients.state
    return RecipientListResponse(
        recipients=session.recipients.filtered,
        is_loading=state.is_loading,
        error=state.error,
    )


@router.post(
    "/refresh",
    response_model=RecipientListResponse,
    summary="Reload contactable users",
)
async def refresh_recipients(session: ChatSessionDep) -> RecipientListResponse:
    await session.recipients.refresh()
    return await list_recipients(session)


@router.get(
    "/search",
    response_model=RecipientListResponse,
    summary="Search contactable users",
    description="Case-insensitive search by name or email. An empty query returns everyone.",
)
async def search_recipients(
    session: ChatSessionDep,
    q: str = Query(default="", max_length=100, description="Name or email fragment"),
) -> RecipientListResponse:
    return RecipientListResponse(recipients=await session.recipients.search(q))


@router.get(
    "/can-initiate/{role}",
    response_model=CanInitiateResponse,
    summary="Check role hierarchy",
    description="Whether the caller may start a conversation with a user of the given role.",
)
async def check_can_initiate(role: str, session: ChatSessionDep) -> CanInitiateResponse:
    return CanInitiateResponse(
        initiator_role=session.user.role,
        target_role=role,
        allowed=can_initiate(session.user.role, role),
    )
