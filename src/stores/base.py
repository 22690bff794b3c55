"""Observable state container shared by the chat stores."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Item = TypeVar("Item")

Listener = Callable[[T], None]


class Store(Generic[T]):
    """Holds one piece of state and notifies listeners when it changes.

    Push subscriptions and fire-and-forget side effects run as tasks owned
    by the store. After dispose() the store is no longer mounted: state
    writes are discarded and every owned task is cancelled.
    """

    def __init__(self, initial_state: T) -> None:
        self._state = initial_state
        self._listeners: list[Listener[T]] = []
        self._tasks: set[asyncio.Task] = set()
        self._mounted = True

    @property
    def state(self) -> T:
        return self._state

    @property
    def mounted(self) -> bool:
        return self._mounted

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """Register a listener called with each new state.

        Args:
            listener: Callable receiving the new state.

        Returns:
            Callable: Function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: T) -> bool:
        """Replace the state and notify listeners.

        Returns:
            bool: False if the store was disposed and the write was dropped.
        """
        if not self._mounted:
            return False
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("%s listener failed", type(self).__name__)
        return True

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task | None:
        """Run a coroutine as a task owned by this store."""
        if not self._mounted:
            if asyncio.iscoroutine(coro):
                coro.close()
            return None
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _listen(
        self,
        stream: AsyncIterator[Item],
        on_item: Callable[[Item], None],
    ) -> asyncio.Task | None:
        """Consume a push stream for the lifetime of the store.

        Stream failures are logged and end the subscription; the last
        state is kept.
        """

        async def consume() -> None:
            try:
                async for item in stream:
                    if not self._mounted:
                        break
                    on_item(item)
            except Exception as e:
                logger.warning("%s stream failed: %s", type(self).__name__, e)
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()

        return self._spawn(consume())

    async def dispose(self) -> None:
        """Stop accepting state writes and cancel owned tasks."""
        if not self._mounted:
            return
        self._mounted = False
        self._listeners.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
