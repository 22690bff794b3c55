"""Unit tests for RecipientDirectory."""

import pytest

from src.models.profile import UserRole
from src.stores.recipients import RecipientDirectory


@pytest.fixture
def staff(make_user):
    """Provide recipients at several levels of the hierarchy."""
    return [
        make_user("principal", role=UserRole.BIGADMIN, first_name="Pat"),
        make_user("teacher-2", role=UserRole.TEACHER, first_name="Tom"),
        make_user("parent-1", role=UserRole.PARENT, first_name="Paula"),
    ]


class TestRecipientDirectory:
    """Tests for recipient loading and filtering."""

    @pytest.mark.asyncio
    async def test_filtered_by_role_hierarchy(self, fake_repository, make_user, staff) -> None:
        """Test that a teacher only sees peers and lower roles."""
        fake_repository.recipients = staff
        teacher = make_user(role=UserRole.TEACHER)
        directory = RecipientDirectory(fake_repository, lambda: teacher)

        await directory.start()

        assert [u.id for u in directory.filtered] == ["teacher-2", "parent-1"]
        assert len(directory.state.recipients) == 3

    @pytest.mark.asyncio
    async def test_unfiltered_without_user(self, fake_repository, staff) -> None:
        """Test that the full list is returned when nobody is signed in."""
        fake_repository.recipients = staff
        directory = RecipientDirectory(fake_repository, lambda: None)

        await directory.start()

        assert len(directory.filtered) == 3

    @pytest.mark.asyncio
    async def test_filter_follows_current_user(self, fake_repository, make_user, staff) -> None:
        """Test that the filter uses whoever is signed in at read time."""
        fake_repository.recipients = staff
        current = {"user": make_user(role=UserRole.PARENT)}
        directory = RecipientDirectory(fake_repository, lambda: current["user"])
        await directory.start()

        assert [u.id for u in directory.filtered] == ["parent-1"]

        current["user"] = make_user(role=UserRole.SUPERADMIN)
        assert len(directory.filtered) == 3

    def test_empty_while_loading(self, fake_repository) -> None:
        """Test that nothing is exposed before the first load."""
        directory = RecipientDirectory(fake_repository, lambda: None)
        assert directory.filtered == []

    @pytest.mark.asyncio
    async def test_load_failure(self, fake_repository) -> None:
        """Test that a failed load records the error and exposes nothing."""
        fake_repository.errors["get_available_recipients"] = RuntimeError("offline")
        directory = RecipientDirectory(fake_repository, lambda: None)

        await directory.start()

        assert directory.state.error == "offline"
        assert directory.filtered == []

    @pytest.mark.asyncio
    async def test_refresh(self, fake_repository, staff) -> None:
        """Test that refresh fetches the list again."""
        directory = RecipientDirectory(fake_repository, lambda: None)
        await directory.start()
        fake_repository.recipients = staff

        await directory.refresh()

        assert len(directory.state.recipients) == 3


class TestRecipientSearch:
    """Tests for recipient search."""

    @pytest.mark.asyncio
    async def test_empty_query_returns_cached(self, fake_repository, staff) -> None:
        """Test that an empty query does not hit the backend."""
        fake_repository.recipients = staff
        directory = RecipientDirectory(fake_repository, lambda: None)
        await directory.start()

        results = await directory.search("")

        assert len(results) == 3
        assert fake_repository.count_calls("search_users") == 0

    @pytest.mark.asyncio
    async def test_query_searches_backend(self, fake_repository, staff) -> None:
        """Test that non-empty queries are delegated."""
        fake_repository.recipients = staff
        directory = RecipientDirectory(fake_repository, lambda: None)

        results = await directory.search("tom")

        assert [u.id for u in results] == ["teacher-2"]

    @pytest.mark.asyncio
    async def test_search_failure_returns_empty(self, fake_repository) -> None:
        """Test that search errors yield no results."""
        fake_repository.errors["search_users"] = RuntimeError("offline")
        directory = RecipientDirectory(fake_repository, lambda: None)

        assert await directory.search("tom") == []
