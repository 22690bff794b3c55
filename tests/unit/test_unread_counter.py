"""Unit tests for UnreadCounter."""

import pytest

from src.stores.unread import UnreadCounter


class TestUnreadCounter:
    """Tests for the live unread count."""

    @pytest.mark.asyncio
    async def test_starts_at_zero(self, fake_repository) -> None:
        """Test that the count is zero before loading."""
        assert UnreadCounter(fake_repository).state == 0

    @pytest.mark.asyncio
    async def test_start_loads_count(self, fake_repository) -> None:
        """Test that start() fetches the current total."""
        fake_repository.unread_count = 7
        counter = UnreadCounter(fake_repository)

        await counter.start()

        assert counter.state == 7
        await counter.dispose()

    @pytest.mark.asyncio
    async def test_push_updates_count(self, fake_repository, settle) -> None:
        """Test that pushed totals replace the count."""
        counter = UnreadCounter(fake_repository)
        await counter.start()
        await settle()

        fake_repository.push_unread_count(3)
        await settle()

        assert counter.state == 3
        await counter.dispose()

    @pytest.mark.asyncio
    async def test_load_failure_keeps_count(self, fake_repository) -> None:
        """Test that a failed fetch leaves the previous count."""
        fake_repository.unread_count = 4
        counter = UnreadCounter(fake_repository)
        await counter.start()

        fake_repository.errors["get_total_unread_count"] = RuntimeError("offline")
        await counter.refresh()

        assert counter.state == 4
        await counter.dispose()

    @pytest.mark.asyncio
    async def test_refresh_after_dispose_is_noop(self, fake_repository) -> None:
        """Test that a disposed counter stops fetching."""
        counter = UnreadCounter(fake_repository)
        await counter.start()
        await counter.dispose()

        await counter.refresh()

        assert fake_repository.count_calls("get_total_unread_count") == 1
