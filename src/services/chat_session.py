"""Per-user chat sessions and the process-wide session registry."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from src.schemas.group import MessageGroupEntity
from src.schemas.message import MessageEntity
from src.schemas.user import AppUser
from src.services.chat_repository import DEFAULT_PAGE_SIZE, ChatRepository
from src.services.supabase_chat_repository import SupabaseChatRepository
from src.stores.conversations import ConversationDirectory, ConversationFilterSelection
from src.stores.groups import GroupCreation
from src.stores.messages import MessageThreadStore
from src.stores.recipients import RecipientDirectory
from src.stores.send import SendPipeline
from src.stores.unread import UnreadCounter

logger = logging.getLogger(__name__)

DEFAULT_MAX_THREADS = 20

RepositoryFactory = Callable[[AppUser], ChatRepository]


class ChatSession:
    """All chat stores for one signed-in user.

    The directory, unread counter and recipients live as long as the
    session. Thread stores are opened per conversation and closed
    explicitly or when the session is disposed.
    At most max_threads stay open; opening another closes the least
    recently used one.
    """

    def __init__(
        self,
        user: AppUser,
        repository: ChatRepository,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_threads: int = DEFAULT_MAX_THREADS,
    ) -> None:
        self.user = user
        self.repository = repository
        self.page_size = page_size
        self.max_threads = max_threads
        self.directory = ConversationDirectory(repository)
        self.unread = UnreadCounter(repository)
        self.recipients = RecipientDirectory(repository, lambda: self.user)
        self.send = SendPipeline(repository)
        self.group_creation = GroupCreation(repository, self.directory)
        self.filter_selection = ConversationFilterSelection()
        self.threads: dict[tuple[str, bool], MessageThreadStore] = {}
        self.last_used = time.monotonic()
        self._threads_lock = asyncio.Lock()
        self._start_task: asyncio.Task | None = None

    def touch(self) -> None:
        self.last_used = time.monotonic()

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_used

    async def start(self) -> None:
        """Load the long-lived stores and open their subscriptions."""
        await asyncio.gather(
            self.directory.start(),
            self.unread.start(),
            self.recipients.start(),
        )
        logger.info("Chat session started for user %s", self.user.id)

    async def ensure_started(self) -> None:
        """Start the session once; concurrent callers wait for the same start."""
        if self._start_task is None:
            self._start_task = asyncio.ensure_future(self.start())
        await asyncio.shield(self._start_task)

    async def open_thread(self, conversation_id: str, is_group: bool) -> MessageThreadStore:
        """Get the thread store for a conversation, starting it on first use."""
        key = (conversation_id, is_group)
        async with self._threads_lock:
            thread = self.threads.pop(key, None)
            if thread is not None:
                self.threads[key] = thread
            else:
                thread = MessageThreadStore(
                    self.repository,
                    conversation_id,
                    is_group,
                    conversations=self.directory,
                    unread=self.unread,
                    page_size=self.page_size,
                )
                self.threads[key] = thread
                await thread.start()
                while len(self.threads) > self.max_threads:
                    oldest = next(iter(self.threads))
                    logger.debug("Closing least recently used thread %s", oldest[0])
                    await self.threads.pop(oldest).dispose()
        return thread

    def get_thread(self, conversation_id: str, is_group: bool) -> MessageThreadStore | None:
        return self.threads.get((conversation_id, is_group))

    def can_message(self, user_id: str) -> bool:
        """Check whether the user may send a direct message to user_id.

        Replies in an existing conversation are always allowed. New
        conversations need the target among the role-filtered recipients.
        """
        if any(c.id == user_id and not c.is_group for c in self.directory.conversations):
            return True
        return any(r.id == user_id for r in self.recipients.filtered)

    async def close_thread(self, conversation_id: str, is_group: bool) -> bool:
        """Dispose a thread store.

        Returns:
            bool: True if the thread was open.
        """
        thread = self.threads.pop((conversation_id, is_group), None)
        if thread is None:
            return False
        await thread.dispose()
        return True

    async def user_groups(self) -> list[MessageGroupEntity]:
        return await self.repository.get_user_groups()

    async def group_details(self, group_id: str) -> MessageGroupEntity | None:
        return await self.repository.get_group(group_id)

    async def add_group_member(self, group_id: str, user_id: str) -> None:
        await self.repository.add_group_member(group_id, user_id)
        await self.directory.refresh()

    async def remove_group_member(self, group_id: str, user_id: str) -> None:
        await self.repository.remove_group_member(group_id, user_id)
        await self.directory.refresh()

    async def leave_group(self, group_id: str) -> None:
        await self.repository.leave_group(group_id)
        await self.close_thread(group_id, True)
        await self.directory.refresh()

    async def send_announcement(self, content: str) -> MessageEntity:
        return await self.repository.send_announcement(content)

    async def dispose(self) -> None:
        """Dispose every store and close all push subscriptions."""
        threads = list(self.threads.values())
        self.threads.clear()
        await asyncio.gather(
            *(thread.dispose() for thread in threads),
            self.directory.dispose(),
            self.unread.dispose(),
            self.recipients.dispose(),
            self.send.dispose(),
            self.group_creation.dispose(),
            self.filter_selection.dispose(),
        )
        logger.info("Chat session closed for user %s", self.user.id)


@dataclass
class ChatSessionRegistryConfig:
    """Configuration for chat session lifetime."""

    ttl_seconds: int = 1800
    cleanup_interval_seconds: int = 300
    page_size: int = DEFAULT_PAGE_SIZE
    max_open_threads: int = DEFAULT_MAX_THREADS

    @classmethod
    def from_settings(cls) -> "ChatSessionRegistryConfig":
        """Create config from application settings."""
        from src.core.config import get_settings
        settings = get_settings()
        return cls(
            ttl_seconds=settings.chat_session_ttl_seconds,
            cleanup_interval_seconds=settings.chat_session_cleanup_interval_seconds,
            page_size=settings.chat_page_size,
            max_open_threads=settings.chat_max_open_threads,
        )


def _supabase_repository(user: AppUser) -> ChatRepository:
    return SupabaseChatRepository(user.id)


class ChatSessionRegistry:
    """Chat sessions keyed by user ID, evicted after a period of inactivity."""

    def __init__(
        self,
        config: ChatSessionRegistryConfig | None = None,
        repository_factory: RepositoryFactory | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            config: Optional session lifetime configuration.
            repository_factory: Builds the chat backend for a user.
                Defaults to SupabaseChatRepository.
        """
        self.config = config or ChatSessionRegistryConfig()
        self.repository_factory = repository_factory or _supabase_repository
        self._sessions: dict[str, ChatSession] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._sessions)

    async def get_or_create(self, user: AppUser) -> ChatSession:
        """Get the user's session, starting a new one if needed.

        Only callers for the same user wait on a session that is still
        starting.
        """
        session = self._sessions.get(user.id)
        if session is None:
            session = ChatSession(
                user,
                self.repository_factory(user),
                page_size=self.config.page_size,
                max_threads=self.config.max_open_threads,
            )
            self._sessions[user.id] = session
        else:
            session.user = user
        session.touch()
        await session.ensure_started()
        return session

    def get(self, user_id: str) -> ChatSession | None:
        return self._sessions.get(user_id)

    async def remove(self, user_id: str) -> bool:
        async with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        await session.dispose()
        return True

    async def cleanup(self) -> int:
        """Dispose sessions idle for longer than the TTL.

        Returns:
            int: Number of sessions evicted.
        """
        async with self._lock:
            expired = [
                user_id
                for user_id, session in self._sessions.items()
                if session.idle_seconds() > self.config.ttl_seconds
            ]
            sessions = [self._sessions.pop(user_id) for user_id in expired]
        for session in sessions:
            await session.dispose()
        return len(sessions)

    async def close_all(self) -> int:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await session.dispose()
        if sessions:
            logger.info("Closed %d chat sessions", len(sessions))
        return len(sessions)

    async def start_cleanup_task(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Chat session cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Chat session cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        """Background loop to evict idle sessions."""
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            count = await self.cleanup()
            if count > 0:
                logger.debug("Evicted %d idle chat sessions", count)


# Global singleton instance
_chat_session_registry: ChatSessionRegistry | None = None


def get_chat_session_registry() -> ChatSessionRegistry:
    """Get or create the global chat session registry."""
    global _chat_session_registry
    if _chat_session_registry is None:
        _chat_session_registry = ChatSessionRegistry(ChatSessionRegistryConfig.from_settings())
    return _chat_session_registry


async def init_chat_sessions() -> ChatSessionRegistry:
    """Initialize the session registry with its cleanup task. Call at app startup."""
    registry = get_chat_session_registry()
    await registry.start_cleanup_task()
    return registry


async def shutdown_chat_sessions() -> None:
    """Stop the cleanup task and close every session. Call at app shutdown."""
    global _chat_session_registry
    if _chat_session_registry:
        await _chat_session_registry.stop_cleanup_task()
        await _chat_session_registry.close_all()
        _chat_session_registry = None
