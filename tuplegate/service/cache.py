"""
Write-through cache from a thing's secret to its id, used to skip the
database when machines identify themselves.
"""

import abc
import time
from datetime import timedelta
from typing import Callable

from cachetools import TTLCache


class IdentityCache(abc.ABC):
    """
    The cache contract: `save` a key, look an `id` up by key (None on a miss)
    and `remove` every key belonging to a client id.
    """

    @abc.abstractmethod
    async def save(self, key: str, client_id: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def id(self, key: str) -> str | None:
        raise NotImplementedError

    @abc.abstractmethod
    async def remove(self, client_id: str) -> None:
        raise NotImplementedError


class EvictingTTLCache(TTLCache):
    """
    A `TTLCache` that reports every entry it drops on its own, through
    expiry or to make room, to `on_evict(key, value)`.
    """

    def __init__(
        self,
        maxsize: int,
        ttl: float,
        on_evict: Callable[[str, str], None],
        timer: Callable[[], float] = time.monotonic,
    ):
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self.on_evict = on_evict

    def expire(self, time=None):
        expired = super().expire(time)

        for key, value in expired:
            self.on_evict(key, value)

        return expired

    def popitem(self):
        key, value = super().popitem()
        self.on_evict(key, value)
        return key, value


class MemoryIdentityCache(IdentityCache):
    """
    An in-process cache. Entries expire after `ttl` and at most `maxsize` are
    kept; concurrent misses on the same key simply overwrite each other.
    """

    def __init__(
        self,
        maxsize: int = 4096,
        ttl: timedelta = timedelta(hours=1),
        timer: Callable[[], float] = time.monotonic,
    ):
        self._ids = EvictingTTLCache(
            maxsize=maxsize,
            ttl=ttl.total_seconds(),
            on_evict=self._forget,
            timer=timer,
        )
        # Reverse index so that eviction by client id finds every key. Only
        # holds keys still present in `_ids`.
        self._keys: dict[str, set[str]] = {}

    def _forget(self, key: str, client_id: str) -> None:
        keys = self._keys.get(client_id)

        if keys is None:
            return

        keys.discard(key)

        if not keys:
            del self._keys[client_id]

    async def save(self, key: str, client_id: str) -> None:
        previous = self._ids.get(key)
        if previous is not None and previous != client_id:
            self._forget(key, previous)

        self._ids[key] = client_id
        self._keys.setdefault(client_id, set()).add(key)

    async def id(self, key: str) -> str | None:
        return self._ids.get(key)

    async def remove(self, client_id: str) -> None:
        for key in self._keys.pop(client_id, set()):
            self._ids.pop(key, None)

    def __len__(self) -> int:
        return len(self._ids)
