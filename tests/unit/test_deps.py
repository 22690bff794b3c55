"""Unit tests for FastAPI dependency injection functions."""

import time
from typing import Any
from unittest.mock import AsyncMock, patch
from uuid import UUID

import pytest
from fastapi import HTTPException

from src.api.deps import get_chat_session, get_current_app_user, get_current_user, require_admin
from src.api.middleware.auth import AuthError, AuthErrorCode
from src.api.middleware.error_handler import AuthorizationError, NotFoundError
from src.models.profile import UserRole
from src.schemas.auth import TokenPayload, UserContext
from src.services.chat_session import ChatSessionRegistry


def make_payload(sub: str = "550e8400-e29b-41d4-a716-446655440000") -> TokenPayload:
    now = int(time.time())
    return TokenPayload(sub=sub, email="test@example.com", role="authenticated",
                        exp=now + 3600, iat=now)


class TestGetCurrentUser:
    """Tests for get_current_user dependency."""

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_extracts_user_context_correctly(self, mock_decode: Any) -> None:
        """Test get_current_user extracts UserContext from valid token."""
        mock_decode.return_value = make_payload()

        user = await get_current_user("Bearer valid-token")

        assert isinstance(user, UserContext)
        assert str(user.user_id) == "550e8400-e29b-41d4-a716-446655440000"
        assert user.email == "test@example.com"
        mock_decode.assert_called_once_with("valid-token")

    @pytest.mark.asyncio
    async def test_raises_401_for_missing_header(self) -> None:
        """Test get_current_user raises 401 when Authorization header is missing."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("")

        assert exc_info.value.status_code == 401
        assert "Authorization header required" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_raises_401_for_invalid_header_format(self) -> None:
        """Test get_current_user raises 401 for invalid header format."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("invalid-token")

        assert exc_info.value.status_code == 401
        assert "Invalid authorization header format" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_raises_401_for_wrong_scheme(self) -> None:
        """Test get_current_user raises 401 for non-Bearer scheme."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Basic some-credentials")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_raises_401_for_expired_token(self, mock_decode: Any) -> None:
        """Test get_current_user raises 401 for expired token."""
        mock_decode.side_effect = AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Bearer expired-token")

        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.detail.lower()

    @pytest.mark.asyncio
    @patch("src.api.deps.decode_jwt")
    async def test_raises_401_for_non_uuid_subject(self, mock_decode: Any) -> None:
        """Test get_current_user rejects tokens whose subject is not a UUID."""
        mock_decode.return_value = make_payload(sub="service-account")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user("Bearer token")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid token subject"


class TestGetCurrentAppUser:
    """Tests for get_current_app_user dependency."""

    @pytest.mark.asyncio
    async def test_returns_profile(self, make_user) -> None:
        """Test that the caller's profile is loaded."""
        app_user = make_user()
        context = UserContext(user_id=UUID("550e8400-e29b-41d4-a716-446655440000"))

        with patch("src.api.deps.ProfileService") as mock_service:
            mock_service.return_value.get_app_user = AsyncMock(return_value=app_user)
            result = await get_current_app_user(context)

        assert result == app_user
        mock_service.return_value.get_app_user.assert_awaited_once_with(context.user_id)

    @pytest.mark.asyncio
    async def test_raises_not_found_without_profile(self) -> None:
        """Test that callers without a usable profile get 404."""
        context = UserContext(user_id=UUID("550e8400-e29b-41d4-a716-446655440000"))

        with patch("src.api.deps.ProfileService") as mock_service:
            mock_service.return_value.get_app_user = AsyncMock(return_value=None)
            with pytest.raises(NotFoundError) as exc_info:
                await get_current_app_user(context)

        assert exc_info.value.status_code == 404


class TestRequireAdmin:
    """Tests for require_admin dependency."""

    @pytest.mark.asyncio
    async def test_allows_admin_roles(self, make_user) -> None:
        """Test that administrators pass."""
        admin = make_user(role=UserRole.BIGADMIN)
        assert await require_admin(admin) is admin

    @pytest.mark.asyncio
    async def test_rejects_teacher(self, make_user) -> None:
        """Test that non-administrators are refused."""
        with pytest.raises(AuthorizationError) as exc_info:
            await require_admin(make_user(role=UserRole.TEACHER))

        assert exc_info.value.status_code == 403


class TestGetChatSession:
    """Tests for get_chat_session dependency."""

    @pytest.mark.asyncio
    async def test_starts_session_for_caller(self, make_user, fake_repository) -> None:
        """Test that the caller's session is created through the registry."""
        registry = ChatSessionRegistry(repository_factory=lambda user: fake_repository)
        user = make_user()

        session = await get_chat_session(user, registry)

        assert session.user == user
        assert registry.get(user.id) is session
        await registry.close_all()
