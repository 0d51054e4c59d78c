"""
Dependencies used by the API.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger
from structlog.typing import FilteringBoundLogger

from tuplegate.config.managers import AsyncSessionManager
from tuplegate.config.settings import Settings
from tuplegate.service.cache import IdentityCache, MemoryIdentityCache
from tuplegate.service.engine import PolicyEngine
from tuplegate.service.http_engine import HTTPPolicyEngine
from tuplegate.service.mock import MockPolicyEngine


@lru_cache
def SETTINGS() -> Settings:
    return Settings()


@lru_cache
def DATABASE_MANAGER() -> AsyncSessionManager:
    return SETTINGS().async_manager()


@lru_cache
def POLICY_ENGINE() -> PolicyEngine:
    settings = SETTINGS()

    if settings.use_mock_engine:
        return MockPolicyEngine(timeout=settings.policy_timeout)

    return HTTPPolicyEngine(
        base_url=settings.policy_engine_url, timeout=settings.policy_timeout
    )


@lru_cache
def IDENTITY_CACHE() -> IdentityCache:
    settings = SETTINGS()

    return MemoryIdentityCache(
        maxsize=settings.identity_cache_size, ttl=settings.identity_cache_ttl
    )


async def get_async_session():
    async with DATABASE_MANAGER().session() as session:
        async with session.begin():
            yield session


def logger():
    return get_logger()


bearer = HTTPBearer(auto_error=False)


def token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
) -> str:
    # A missing token is rejected by the services, as any other bad token.
    return credentials.credentials if credentials is not None else ""


SettingsDependency = Annotated[Settings, Depends(SETTINGS)]
DatabaseDependency = Annotated[AsyncSession, Depends(get_async_session)]
LoggerDependency = Annotated[FilteringBoundLogger, Depends(logger)]
EngineDependency = Annotated[PolicyEngine, Depends(POLICY_ENGINE)]
CacheDependency = Annotated[IdentityCache, Depends(IDENTITY_CACHE)]
TokenDependency = Annotated[str, Depends(token)]
