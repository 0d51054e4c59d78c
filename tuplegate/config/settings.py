"""
Main settings object.
"""

from datetime import timedelta
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import URL

from .managers import AsyncSessionManager, SyncSessionManager


class Settings(BaseSettings):
    database_type: Literal["sqlite", "postgres"] = "sqlite"
    database_user: str | None = None
    database_password: str | None = None
    database_port: int | None = None
    database_host: str | None = None
    database_db: str = "tuplegate.db"

    database_echo: bool = False
    create_tables: bool = False

    # The external policy engine. Every call gets its own timeout, regardless
    # of how long the request it serves may take.
    policy_engine_url: str = "http://localhost:9090"
    policy_timeout: float = 1.0
    # Use the in-memory engine; for local development only.
    use_mock_engine: bool = False

    # Thing secrets only, as things are looked up by this hash. User secrets
    # are always salted with argon2id.
    hash_algorithm: str = "xxh3"
    password_regex: str = r"^.{8,}$"

    identity_cache_size: int = 4096
    identity_cache_ttl: timedelta = timedelta(hours=1)

    hostname: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(env_prefix="TUPLEGATE_", env_file=".env")

    @property
    def sync_driver(self) -> str:
        match self.database_type:
            case "sqlite":
                return "sqlite"
            case "postgres":
                return "postgresql+psycopg"
            case _:
                raise ValueError

    @property
    def async_driver(self) -> str:
        match self.database_type:
            case "sqlite":
                return "sqlite+aiosqlite"
            case "postgres":
                return "postgresql+asyncpg"
            case _:
                raise ValueError

    @property
    def sync_uri(self) -> URL:
        return URL.create(
            drivername=self.sync_driver,
            username=self.database_user,
            password=self.database_password,
            host=self.database_host,
            port=self.database_port,
            database=self.database_db,
        )

    def sync_manager(self) -> SyncSessionManager:
        return SyncSessionManager(connection_url=self.sync_uri, echo=self.database_echo)

    @property
    def async_uri(self) -> URL:
        return URL.create(
            drivername=self.async_driver,
            username=self.database_user,
            password=self.database_password,
            host=self.database_host,
            port=self.database_port,
            database=self.database_db,
        )

    def async_manager(self) -> AsyncSessionManager:
        return AsyncSessionManager(
            connection_url=self.async_uri, echo=self.database_echo
        )
