"""Pytest configuration and shared fixtures.

Unit tests run without a database: engines, connections and queriers are
replaced with unittest.mock fakes (see tests/factories.py).
Database-backed tests live under tests/integration/ and need:

    TEST_DATABASE_URL: PostgreSQL connection URL with pg_uuidv7 available
"""

from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest

from mastara.core.settings import clear_settings_cache
from tests.factories import FakeTransactionManager, make_connection, make_engine


@pytest.fixture(autouse=True)
def clean_settings_cache():
    """Clear the settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clinic_id() -> UUID:
    return uuid4()


@pytest.fixture
def connection() -> MagicMock:
    return make_connection()


@pytest.fixture
def engine(connection: MagicMock) -> MagicMock:
    return make_engine(connection)


@pytest.fixture
def fake_tx_manager() -> FakeTransactionManager:
    return FakeTransactionManager()
