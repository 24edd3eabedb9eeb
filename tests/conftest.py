"""Pytest fixtures for NameGuard tests."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from nameguard.spam_filter.models import CandidateIdentity, InsertSummary
from tests.factories import GUILD_ID, make_record


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables before any imports.

    This fixture runs automatically before any tests and ensures that
    Settings can be imported without validation errors.
    """
    os.environ.setdefault("DISCORD_TOKEN", "test-discord-token-placeholder")
    os.environ.setdefault("LOG_TO_FILE", "false")

    from nameguard.config import get_settings

    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def candidate():
    """A bannable member with no roles or nickname."""
    return CandidateIdentity(
        guild_id=GUILD_ID,
        guild_name="Bankless DAO",
        user_id=555,
        username="someone",
    )


@pytest.fixture
def mock_store():
    """Mock ConfigStore with nothing configured."""
    store = AsyncMock()
    store.is_allowlisted_user = AsyncMock(return_value=False)
    store.list_by_type_and_server = AsyncMock(return_value=[])
    store.list_by_server = AsyncMock(return_value=[])
    store.add_records = AsyncMock(return_value=InsertSummary())
    store.remove_record = AsyncMock(return_value=True)
    return store


@pytest.fixture
def mock_directory():
    """Mock Directory returning no members."""
    directory = AsyncMock()
    directory.members_with_roles = AsyncMock(return_value=[])
    directory.is_bannable = MagicMock(return_value=True)
    return directory


@pytest.fixture
def mock_actor():
    """Mock Actor whose side effects succeed."""
    actor = AsyncMock()
    actor.send_direct_message = AsyncMock(return_value=True)
    actor.ban = AsyncMock(return_value=True)
    return actor


@pytest.fixture
def record():
    """Factory fixture building ConfigRecords for the test guild."""
    return make_record
