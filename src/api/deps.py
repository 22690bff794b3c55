"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.schemas.auth import UserContext
from src.schemas.user import AppUser
from src.services.chat_session import ChatSession, ChatSessionRegistry, get_chat_session_registry
from src.services.profile_service import ProfileService


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return decode_jwt(parts[1]).to_user_context()

    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    except ValueError as e:
        # sub claim is not a UUID
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


CurrentUser = Annotated[UserContext, Depends(get_current_user)]


async def get_current_app_user(user: CurrentUser) -> AppUser:
    """Load the caller's school profile.

    Args:
        user: The authenticated user context from JWT.

    Returns:
        AppUser: The caller as a chat user.

    Raises:
        NotFoundError: If the caller has no usable profile.
    """
    app_user = await ProfileService().get_app_user(user.user_id)
    if app_user is None:
        raise NotFoundError("Profile not found")
    return app_user


CurrentAppUser = Annotated[AppUser, Depends(get_current_app_user)]


def get_session_registry() -> ChatSessionRegistry:
    """Get the process-wide chat session registry."""
    return get_chat_session_registry()


SessionRegistry = Annotated[ChatSessionRegistry, Depends(get_session_registry)]


async def get_chat_session(user: CurrentAppUser, registry: SessionRegistry) -> ChatSession:
    """Get or start the caller's chat session."""
    return await registry.get_or_create(user)


ChatSessionDep = Annotated[ChatSession, Depends(get_chat_session)]


async def require_admin(user: CurrentAppUser) -> AppUser:
    """Require a caller with school administrator privileges.

    Raises:
        AuthorizationError: If the caller lacks admin privileges.
    """
    if not user.has_admin_privileges:
        raise AuthorizationError("Only administrators can send announcements")
    return user


AdminUser = Annotated[AppUser, Depends(require_admin)]
