"""Pytest configuration and fixtures."""

import asyncio
import os
from collections.abc import AsyncIterator, Callable, Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-unit-tests-0123456789")
os.environ.setdefault("JWT_ALGORITHM", "HS256")

from src.models.profile import UserRole  # noqa: E402
from src.schemas.conversation import ConversationEntity  # noqa: E402
from src.schemas.group import GroupMemberEntity, MessageGroupEntity  # noqa: E402
from src.schemas.message import MessageEntity  # noqa: E402
from src.schemas.user import AppUser  # noqa: E402
from src.services.chat_repository import DEFAULT_PAGE_SIZE, ChatRepository  # noqa: E402

CURRENT_USER_ID = "11111111-1111-1111-1111-111111111111"
BASE_TIME = datetime(2026, 1, 13, 10, 0, tzinfo=timezone.utc)


class FakeChatRepository(ChatRepository):
    """In-memory chat backend with queue-backed push streams.

    Pages queued in `pages` are returned by message fetches in order.
    Setting `errors[method_name]` makes that method raise. Setting
    `fetch_gate` holds message fetches until the event is set.
    """

    def __init__(self, user_id: str = CURRENT_USER_ID) -> None:
        self.user_id = user_id
        self.conversations: list[ConversationEntity] = []
        self.pages: list[list[MessageEntity]] = []
        self.unread_count = 0
        self.recipients: list[AppUser] = []
        self.groups: dict[str, MessageGroupEntity] = {}
        self.errors: dict[str, Exception] = {}
        self.fetch_gate: asyncio.Event | None = None
        self.calls: list[tuple[Any, ...]] = []
        self.sent: list[MessageEntity] = []
        self.message_queues: list[asyncio.Queue] = []
        self.conversation_queues: list[asyncio.Queue] = []
        self.unread_queues: list[asyncio.Queue] = []

    def _raise_if_failing(self, name: str) -> None:
        error = self.errors.get(name)
        if error is not None:
            raise error

    async def _stream(self, queues: list[asyncio.Queue]) -> AsyncIterator[Any]:
        queue: asyncio.Queue = asyncio.Queue()
        queues.append(queue)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            queues.remove(queue)

    def push_message(self, message: MessageEntity) -> None:
        for queue in self.message_queues:
            queue.put_nowait(message)

    def push_conversations(self, conversations: list[ConversationEntity] | Exception) -> None:
        for queue in self.conversation_queues:
            queue.put_nowait(conversations)

    def push_unread_count(self, count: int | Exception) -> None:
        for queue in self.unread_queues:
            queue.put_nowait(count)

    def count_calls(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def get_conversations(self) -> list[ConversationEntity]:
        self.calls.append(("get_conversations",))
        self._raise_if_failing("get_conversations")
        return list(self.conversations)

    def subscribe_to_conversations(self) -> AsyncIterator[list[ConversationEntity]]:
        return self._stream(self.conversation_queues)

    async def _fetch_page(self, name: str, conversation_id: str, limit: int, before_id: str | None):
        self.calls.append((name, conversation_id, limit, before_id))
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        self._raise_if_failing(name)
        return self.pages.pop(0) if self.pages else []

    async def get_direct_messages(
        self, other_user_id: str, limit: int = DEFAULT_PAGE_SIZE, before_id: str | None = None
    ) -> list[MessageEntity]:
        return await self._fetch_page("get_direct_messages", other_user_id, limit, before_id)

    async def get_group_messages(
        self, group_id: str, limit: int = DEFAULT_PAGE_SIZE, before_id: str | None = None
    ) -> list[MessageEntity]:
        return await self._fetch_page("get_group_messages", group_id, limit, before_id)

    def subscribe_to_messages(self) -> AsyncIterator[MessageEntity]:
        return self._stream(self.message_queues)

    def _new_message(self, **fields: Any) -> MessageEntity:
        return MessageEntity(
            id=f"sent-{len(self.sent) + 1}",
            sender_id=self.user_id,
            created_at=BASE_TIME,
            current_user_id=self.user_id,
            **fields,
        )

    async def send_direct_message(self, recipient_id: str, content: str) -> MessageEntity:
        self.calls.append(("send_direct_message", recipient_id, content))
        self._raise_if_failing("send_direct_message")
        message = self._new_message(recipient_id=recipient_id, content=content)
        self.sent.append(message)
        return message

    async def send_group_message(self, group_id: str, content: str) -> MessageEntity:
        self.calls.append(("send_group_message", group_id, content))
        self._raise_if_failing("send_group_message")
        message = self._new_message(group_id=group_id, content=content, type="group")
        self.sent.append(message)
        return message

    async def send_announcement(self, content: str) -> MessageEntity:
        self.calls.append(("send_announcement", content))
        self._raise_if_failing("send_announcement")
        message = self._new_message(content=content, type="announcement")
        self.sent.append(message)
        return message

    async def mark_direct_messages_as_read(self, other_user_id: str) -> None:
        self.calls.append(("mark_direct_messages_as_read", other_user_id))
        self._raise_if_failing("mark_direct_messages_as_read")

    async def mark_group_messages_as_read(self, group_id: str) -> None:
        self.calls.append(("mark_group_messages_as_read", group_id))
        self._raise_if_failing("mark_group_messages_as_read")

    async def get_total_unread_count(self) -> int:
        self.calls.append(("get_total_unread_count",))
        self._raise_if_failing("get_total_unread_count")
        return self.unread_count

    def subscribe_to_unread_count(self) -> AsyncIterator[int]:
        return self._stream(self.unread_queues)

    async def get_available_recipients(self) -> list[AppUser]:
        self.calls.append(("get_available_recipients",))
        self._raise_if_failing("get_available_recipients")
        return list(self.recipients)

    async def search_users(self, query: str) -> list[AppUser]:
        self.calls.append(("search_users", query))
        self._raise_if_failing("search_users")
        needle = query.lower()
        return [u for u in self.recipients if needle in u.full_name.lower()]

    async def create_group(
        self, name: str, member_ids: list[str], type: str = "custom"
    ) -> MessageGroupEntity:
        self.calls.append(("create_group", name, tuple(member_ids), type))
        self._raise_if_failing("create_group")
        group_id = f"group-{len(self.groups) + 1}"
        members = [
            GroupMemberEntity(id=f"{group_id}_{user_id}", group_id=group_id, user_id=user_id)
            for user_id in [self.user_id, *member_ids]
        ]
        group = MessageGroupEntity(
            id=group_id,
            name=name,
            type=type,
            created_by=self.user_id,
            created_at=BASE_TIME,
            members=members,
        )
        self.groups[group_id] = group
        return group

    async def get_user_groups(self) -> list[MessageGroupEntity]:
        self.calls.append(("get_user_groups",))
        self._raise_if_failing("get_user_groups")
        return [g for g in self.groups.values() if g.is_member(self.user_id)]

    async def get_group(self, group_id: str) -> MessageGroupEntity | None:
        self.calls.append(("get_group", group_id))
        self._raise_if_failing("get_group")
        return self.groups.get(group_id)

    def _replace_members(self, group_id: str, user_ids: list[str]) -> None:
        group = self.groups[group_id]
        members = [
            GroupMemberEntity(id=f"{group_id}_{user_id}", group_id=group_id, user_id=user_id)
            for user_id in user_ids
        ]
        self.groups[group_id] = group.model_copy(update={"members": members})

    async def add_group_member(self, group_id: str, user_id: str) -> None:
        self.calls.append(("add_group_member", group_id, user_id))
        self._raise_if_failing("add_group_member")
        current = [m.user_id for m in self.groups[group_id].members]
        self._replace_members(group_id, [*current, user_id])

    async def remove_group_member(self, group_id: str, user_id: str) -> None:
        self.calls.append(("remove_group_member", group_id, user_id))
        self._raise_if_failing("remove_group_member")
        current = [m.user_id for m in self.groups[group_id].members]
        self._replace_members(group_id, [u for u in current if u != user_id])

    async def leave_group(self, group_id: str) -> None:
        await self.remove_group_member(group_id, self.user_id)


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def fake_repository() -> FakeChatRepository:
    """Provide an in-memory chat backend for the signed-in test user."""
    return FakeChatRepository()


@pytest.fixture
def fake_repository_class() -> type[FakeChatRepository]:
    """Provide the in-memory backend class for building per-user backends."""
    return FakeChatRepository


@pytest.fixture
def settle() -> Callable[..., Any]:
    """Provide a coroutine that lets pending tasks run.

    Push streams and fire-and-forget side effects run as separate tasks,
    so tests yield to the event loop before asserting on their effects.
    """

    async def _settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def make_user() -> Callable[..., AppUser]:
    """Provide a factory for AppUser instances."""

    def _make_user(
        user_id: str = CURRENT_USER_ID,
        role: UserRole = UserRole.TEACHER,
        first_name: str | None = "Test",
        last_name: str | None = "User",
        email: str = "test@example.com",
        school_id: str | None = "school-1",
    ) -> AppUser:
        return AppUser(
            id=user_id,
            email=email,
            role=role,
            first_name=first_name,
            last_name=last_name,
            school_id=school_id,
        )

    return _make_user


@pytest.fixture
def make_message() -> Callable[..., MessageEntity]:
    """Provide a factory for MessageEntity instances.

    Messages with a higher `minutes` value are newer.
    """

    def _make_message(
        message_id: str,
        sender_id: str = "other-user",
        recipient_id: str | None = CURRENT_USER_ID,
        group_id: str | None = None,
        content: str = "Hello",
        minutes: int = 0,
    ) -> MessageEntity:
        return MessageEntity(
            id=message_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            group_id=group_id,
            content=content,
            type="group" if group_id else "direct",
            created_at=BASE_TIME + timedelta(minutes=minutes),
            current_user_id=CURRENT_USER_ID,
        )

    return _make_message


@pytest.fixture
def make_conversation() -> Callable[..., ConversationEntity]:
    """Provide a factory for ConversationEntity instances."""

    def _make_conversation(
        conversation_id: str,
        is_group: bool = False,
        name: str | None = None,
        unread_count: int = 0,
    ) -> ConversationEntity:
        return ConversationEntity(
            id=conversation_id,
            name=name or f"Conversation {conversation_id}",
            is_group=is_group,
            unread_count=unread_count,
        )

    return _make_conversation
