"""
Core configuration
"""

import pytest_asyncio

from tuplegate.config.settings import Settings


@pytest_asyncio.fixture(scope="session")
def server_settings(tmp_path_factory):
    database = tmp_path_factory.mktemp("database") / "tuplegate.db"

    yield Settings(
        database_type="sqlite",
        database_db=str(database),
        database_echo=False,
        hash_algorithm="xxh3",
        use_mock_engine=True,
        policy_timeout=0.5,
    )


@pytest_asyncio.fixture(scope="session")
def database(server_settings: Settings):
    server_settings.sync_manager().create_all()
