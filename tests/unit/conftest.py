"""Shared fixtures and fakes for unit tests."""

from __future__ import annotations

import asyncio
import fnmatch
import typing as t

import pytest

from kvcache.cache.manager import CacheManager
from kvcache.cache.models import CacheEvent
from kvcache.errors import StorageError
from kvcache.storage.base import MISSING, InMemoryStorage

START_MS = 1_700_000_000_000


class FakeClock:
    """Controllable epoch-milliseconds clock."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FlakyStorage(InMemoryStorage):
    """InMemoryStorage that raises StorageError for chosen (operation, key) pairs."""

    def __init__(self, initial: t.Optional[t.Mapping[str, t.Any]] = None) -> None:
        super().__init__(initial)
        self.failures: t.Dict[str, t.Set[str]] = {"get": set(), "set": set(), "delete": set()}
        self.calls: t.List[t.Tuple[str, str]] = []

    def fail(self, op: str, key: str) -> None:
        self.failures[op].add(key)

    def heal(self) -> None:
        for keys in self.failures.values():
            keys.clear()

    def _check(self, op: str, key: str) -> None:
        self.calls.append((op, key))
        if key in self.failures[op]:
            raise StorageError(f"injected {op} failure for {key!r}")

    async def get(self, key: str, default: t.Any = MISSING) -> t.Any:
        self._check("get", key)
        return await super().get(key, default)

    async def set(self, key: str, value: t.Any) -> None:
        self._check("set", key)
        await super().set(key, value)

    async def delete(self, key: str) -> None:
        self._check("delete", key)
        await super().delete(key)


class YieldingStorage(InMemoryStorage):
    """InMemoryStorage that yields to the event loop before every call, as real I/O does."""

    async def get(self, key: str, default: t.Any = MISSING) -> t.Any:
        await asyncio.sleep(0)
        return await super().get(key, default)

    async def set(self, key: str, value: t.Any) -> None:
        await asyncio.sleep(0)
        await super().set(key, value)

    async def delete(self, key: str) -> None:
        await asyncio.sleep(0)
        await super().delete(key)


class FakeRedis:
    """Just enough of redis.asyncio.Redis (decode_responses=True) for RedisStorage."""

    def __init__(self) -> None:
        self.data: t.Dict[str, str] = {}
        self.closed = False

    async def get(self, key: str) -> t.Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def mget(self, keys: t.List[str]) -> t.List[t.Optional[str]]:
        return [self.data.get(key) for key in keys]

    async def scan_iter(self, match: str = "*", count: int = 10) -> t.AsyncIterator[str]:
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_storage():
    return InMemoryStorage()


@pytest.fixture
def flaky_storage():
    return FlakyStorage()


@pytest.fixture
def yielding_storage():
    return YieldingStorage()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def manager(memory_storage, clock):
    return CacheManager(memory_storage, clock=clock)


@pytest.fixture
def flaky_manager(flaky_storage, clock):
    return CacheManager(flaky_storage, clock=clock)


@pytest.fixture
def events():
    """List that collects events once attached with `manager.add_listener(events.append)`."""
    collected: t.List[CacheEvent] = []
    return collected
