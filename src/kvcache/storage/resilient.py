from __future__ import annotations

import typing as t

from ..utils.resilience import DEFAULT_BACKOFF_MS, CircuitBreaker, CircuitBreakerConfig, with_retries
from .base import MISSING, StorageAdapter


class ResilientStorage(StorageAdapter):
    """Runs every call of an inner adapter through a circuit breaker and a retry policy."""

    def __init__(
        self,
        inner: StorageAdapter,
        circuit_breaker: t.Optional[CircuitBreaker] = None,
        retry_attempts: int = 3,
        retry_backoff_ms: t.Optional[t.List[int]] = None,
    ) -> None:
        self._inner = inner
        self._breaker = circuit_breaker or CircuitBreaker(CircuitBreakerConfig())
        self._retry_attempts = retry_attempts
        self._retry_backoff_ms = retry_backoff_ms or list(DEFAULT_BACKOFF_MS)

    @property
    def inner(self) -> StorageAdapter:
        return self._inner

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def _call(self, op: t.Callable[[], t.Awaitable[t.Any]]) -> t.Any:
        return await self._breaker.run(lambda: with_retries(op, self._retry_attempts, self._retry_backoff_ms))

    async def get(self, key: str, default: t.Any = MISSING) -> t.Any:
        return await self._call(lambda: self._inner.get(key, default))

    async def set(self, key: str, value: t.Any) -> None:
        await self._call(lambda: self._inner.set(key, value))

    async def delete(self, key: str) -> None:
        await self._call(lambda: self._inner.delete(key))

    async def is_healthy(self) -> bool:
        return await self._inner.is_healthy()

    async def close(self) -> None:
        await self._inner.close()
