"""Unit tests for the Store base class."""

import asyncio

import pytest

from src.stores.base import Store


class CounterStore(Store[int]):
    def __init__(self) -> None:
        super().__init__(0)

    def set(self, value: int) -> bool:
        return self._set_state(value)


async def numbers(*values: int):
    for value in values:
        yield value


class TestStore:
    """Tests for state changes and listeners."""

    def test_notifies_listeners(self) -> None:
        """Test that listeners receive each new state."""
        store = CounterStore()
        seen = []
        store.subscribe(seen.append)

        store.set(1)
        store.set(2)

        assert store.state == 2
        assert seen == [1, 2]

    def test_unsubscribe(self) -> None:
        """Test that unsubscribed listeners are not called."""
        store = CounterStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        store.set(1)

        assert seen == []

    def test_failing_listener_does_not_block_others(self) -> None:
        """Test that one broken listener does not stop notification."""
        store = CounterStore()
        seen = []

        def broken(state: int) -> None:
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(seen.append)

        assert store.set(5) is True
        assert seen == [5]

    @pytest.mark.asyncio
    async def test_writes_dropped_after_dispose(self) -> None:
        """Test that a disposed store keeps its last state."""
        store = CounterStore()
        store.set(3)

        await store.dispose()

        assert store.set(4) is False
        assert store.state == 3
        assert store.mounted is False


class TestStoreTasks:
    """Tests for owned tasks and stream consumption."""

    @pytest.mark.asyncio
    async def test_listen_applies_items(self, settle) -> None:
        """Test that streamed items are applied in order."""
        store = CounterStore()
        seen = []
        store.subscribe(seen.append)

        store._listen(numbers(1, 2, 3), store.set)
        await settle()

        assert seen == [1, 2, 3]
        await store.dispose()

    @pytest.mark.asyncio
    async def test_listen_survives_stream_failure(self, settle) -> None:
        """Test that a failing stream ends quietly and keeps the last state."""

        async def failing():
            yield 1
            raise RuntimeError("socket closed")

        store = CounterStore()
        store._listen(failing(), store.set)
        await settle()

        assert store.state == 1
        await store.dispose()

    @pytest.mark.asyncio
    async def test_dispose_cancels_tasks(self) -> None:
        """Test that dispose cancels pending tasks."""
        store = CounterStore()
        blocker = asyncio.Event()
        task = store._spawn(blocker.wait())

        await store.dispose()

        assert task is not None
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_spawn_after_dispose_is_refused(self) -> None:
        """Test that disposed stores do not start new tasks."""
        store = CounterStore()
        await store.dispose()

        assert store._spawn(asyncio.sleep(0)) is None

    @pytest.mark.asyncio
    async def test_dispose_twice(self) -> None:
        """Test that disposing twice is harmless."""
        store = CounterStore()
        await store.dispose()
        await store.dispose()

        assert store.mounted is False
