"""
Configuration variables and fixtures for the service layer tests.
"""

import pytest
import pytest_asyncio
import structlog

from tuplegate.config.settings import Settings
from tuplegate.service.cache import MemoryIdentityCache
from tuplegate.service.mock import MockPolicyEngine


class RecordingCache(MemoryIdentityCache):
    """
    Identity cache that keeps track of what was asked of it.
    """

    def __init__(self):
        super().__init__(maxsize=64)
        self.saved = []
        self.removed = []

    async def save(self, key: str, client_id: str) -> None:
        self.saved.append(client_id)
        await super().save(key, client_id)

    async def remove(self, client_id: str) -> None:
        self.removed.append(client_id)
        await super().remove(client_id)


@pytest_asyncio.fixture(scope="session")
def session_manager(server_settings: Settings, database):
    yield server_settings.async_manager()


@pytest_asyncio.fixture(scope="session")
def logger():
    yield structlog.get_logger()


@pytest.fixture
def engine():
    # Fresh tuples for every test; the database is shared.
    return MockPolicyEngine(
        tokens={"alice-token": "alice", "bob-token": "bob"}, timeout=0.5
    )


@pytest.fixture
def cache():
    return RecordingCache()
