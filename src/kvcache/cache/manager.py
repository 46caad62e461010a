from __future__ import annotations

import asyncio
import logging
import math
import re
import time
import typing as t

from kvcache.errors import StorageError
from kvcache.monitoring.metrics import CacheMetrics
from kvcache.storage.base import ALL_KEYS, StorageAdapter
from kvcache.utils.locks import KeyedLock

from .models import CacheEntry, CacheEvent, CacheEventKind, CacheListener, DeleteOutcome

_logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 60 * 60 * 1000
VALUE_PREFIX = "cache_"
TIMESTAMP_PREFIX = "timestamp_"

_INT_RE = re.compile(r"^\s*[+-]?\d+\s*$")

# Read default distinct from any stored value.
_ABSENT: t.Any = object()


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


def parse_expiry(raw: t.Any) -> t.Optional[int]:
    """Parse a stored expiry row into epoch milliseconds, or None if malformed."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else None
    if isinstance(raw, str) and _INT_RE.match(raw):
        return int(raw)
    return None


class CacheManager:
    """TTL cache over a flat, non-expiring key-value store.

    Each logical entry occupies two physical rows: the value at
    ``{value_prefix}{key}`` and its absolute expiry (epoch ms) at
    ``{timestamp_prefix}{key}``. An entry is live only while its expiry row
    parses as an integer strictly greater than now; anything else reads as
    absent, and the read schedules a best-effort eviction of both rows.

    Mutations of one logical key are serialized; operations on different keys
    interleave freely at storage calls.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        *,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        value_prefix: str = VALUE_PREFIX,
        timestamp_prefix: str = TIMESTAMP_PREFIX,
        clock: t.Optional[t.Callable[[], int]] = None,
        metrics: t.Optional[CacheMetrics] = None,
    ) -> None:
        if default_ttl_ms <= 0:
            raise ValueError("default_ttl_ms must be positive")
        if not value_prefix or not timestamp_prefix:
            raise ValueError("cache key prefixes must be non-empty")
        if value_prefix.startswith(timestamp_prefix) or timestamp_prefix.startswith(value_prefix):
            raise ValueError(f"prefixes {value_prefix!r} and {timestamp_prefix!r} overlap")
        self._storage = storage
        self._default_ttl_ms = default_ttl_ms
        self._value_prefix = value_prefix
        self._timestamp_prefix = timestamp_prefix
        self._clock = clock or wall_clock_ms
        self.metrics = metrics or CacheMetrics()
        self._locks = KeyedLock()
        self._pending: t.Set[asyncio.Task] = set()
        self._listeners: t.List[CacheListener] = []

    @property
    def storage(self) -> StorageAdapter:
        return self._storage

    @property
    def default_ttl_ms(self) -> int:
        return self._default_ttl_ms

    @property
    def pending_evictions(self) -> int:
        return len(self._pending)

    def value_key(self, key: str) -> str:
        return self._value_prefix + key

    def timestamp_key(self, key: str) -> str:
        return self._timestamp_prefix + key

    # Events

    def add_listener(self, listener: CacheListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: CacheListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _emit(self, kind: CacheEventKind, key: t.Optional[str] = None, **detail: t.Any) -> None:
        if not self._listeners:
            return
        event = CacheEvent(kind=kind, key=key, detail=detail)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _logger.exception("CacheManager: listener failed for event=%s key=%s", kind.value, key)

    async def _timed(self, op: str, awaitable: t.Awaitable[t.Any]) -> t.Any:
        start = time.perf_counter()
        try:
            return await awaitable
        finally:
            self.metrics.storage_latency.observe(time.perf_counter() - start, op=op)

    # Public contract

    async def set(self, key: str, value: t.Any, ttl_ms: t.Optional[int] = None) -> t.Any:
        """Store ``value`` under ``key`` for ``ttl_ms`` milliseconds (default TTL when falsy).

        The value row is written before the expiry row; if the value write
        fails the expiry row is never written and the error propagates.
        """
        if ttl_ms is not None and ttl_ms < 0:
            raise ValueError("ttl_ms must not be negative")
        ttl = ttl_ms or self._default_ttl_ms
        async with self._locks.hold(key):
            expires_at = self._clock() + ttl
            try:
                await self._timed("set", self._storage.set(self.value_key(key), value))
                await self._timed("set", self._storage.set(self.timestamp_key(key), expires_at))
            except StorageError as exc:
                self.metrics.writes.inc(result="error")
                _logger.warning("CacheManager: set failed key=%s: %s", key, exc)
                raise
        self.metrics.writes.inc(result="ok")
        _logger.debug("CacheManager: set key=%s ttl_ms=%d expires_at=%d", key, ttl, expires_at)
        self._emit(CacheEventKind.SET, key, expires_at=expires_at, ttl_ms=ttl)
        return value

    async def get(self, key: str, default: t.Any = None) -> t.Any:
        """Return the live value for ``key`` or ``default``. Storage failures degrade to ``default``."""
        now = self._clock()
        try:
            raw_expiry = await self._timed("get", self._storage.get(self.timestamp_key(key), "0"))
        except StorageError as exc:
            return self._read_failed(key, default, exc)

        expires_at = parse_expiry(raw_expiry)
        if expires_at is not None and now < expires_at:
            try:
                value = await self._timed("get", self._storage.get(self.value_key(key), default))
            except StorageError as exc:
                return self._read_failed(key, default, exc)
            self.metrics.requests.inc(result="hit")
            self._emit(CacheEventKind.HIT, key, expires_at=expires_at)
            return value

        self.metrics.requests.inc(result="miss")
        self._emit(CacheEventKind.MISS, key, expires_at=expires_at)
        self._schedule_eviction(key)
        return default

    async def has(self, key: str) -> bool:
        """True if ``key`` holds a live, non-null value."""
        value = await self.get(key, _ABSENT)
        return value is not _ABSENT and value is not None

    async def get_entry(self, key: str) -> t.Optional[CacheEntry]:
        """Return the live entry with its expiry, without evicting anything."""
        now = self._clock()
        try:
            expires_at = parse_expiry(await self._timed("get", self._storage.get(self.timestamp_key(key), None)))
            if expires_at is None or now >= expires_at:
                return None
            value = await self._timed("get", self._storage.get(self.value_key(key), _ABSENT))
        except StorageError as exc:
            _logger.warning("CacheManager: get_entry failed key=%s: %s", key, exc)
            return None
        if value is _ABSENT:
            return None
        return CacheEntry(key=key, value=value, expires_at=expires_at)

    async def delete(self, key: str) -> DeleteOutcome:
        """Delete both rows of ``key`` concurrently and wait for both to settle.

        Succeeds if at least one row deletion succeeded; raises StorageError
        only when both failed.
        """
        async with self._locks.hold(key):
            outcome = await self._delete_rows(key)
        if not outcome.ok:
            raise StorageError(f"Failed to delete cache entry {key!r}") from outcome.errors[0]
        if outcome.errors:
            _logger.warning("CacheManager: partial delete key=%s: %s", key, outcome.errors[0])
        self.metrics.evictions.inc(reason="delete")
        self._emit(CacheEventKind.DELETE, key, rows_deleted=outcome.rows_deleted)
        return outcome

    async def clear_expired(self) -> int:
        """Evict every entry whose stored expiry is ``<= now``; return how many were removed."""
        now = self._clock()
        all_data = await self._read_all()

        expired: t.List[str] = []
        for physical, raw in all_data.items():
            if not physical.startswith(self._timestamp_prefix):
                continue
            expires_at = parse_expiry(raw)
            if expires_at is not None and expires_at <= now:
                expired.append(physical[len(self._timestamp_prefix) :])

        removed = 0
        if expired:
            results = await asyncio.gather(
                *(self._evict(key, reason="sweep", now=now) for key in expired),
                return_exceptions=True,
            )
            for key, result in zip(expired, results):
                if isinstance(result, StorageError):
                    _logger.warning("CacheManager: sweep could not delete key=%s: %s", key, result)
                elif isinstance(result, BaseException):
                    raise result
                elif result:
                    removed += 1

        _logger.info("CacheManager: clear_expired removed=%d expired=%d", removed, len(expired))
        self._emit(CacheEventKind.SWEEP, None, removed=removed, expired=len(expired))
        return removed

    async def clear_all(self) -> None:
        """Delete every row in the cache namespace, live or not."""
        all_data = await self._read_all()
        physical = [
            key
            for key in all_data
            if key.startswith(self._value_prefix) or key.startswith(self._timestamp_prefix)
        ]

        failed = 0
        if physical:
            results = await asyncio.gather(
                *(self._timed("delete", self._storage.delete(key)) for key in physical),
                return_exceptions=True,
            )
            for key, result in zip(physical, results):
                if isinstance(result, StorageError):
                    failed += 1
                    _logger.warning("CacheManager: clear_all could not delete row=%s: %s", key, result)
                elif isinstance(result, BaseException):
                    raise result
            logical = {key[len(self._timestamp_prefix) :] for key in physical if key.startswith(self._timestamp_prefix)}
            self.metrics.evictions.inc(len(logical), reason="clear")

        _logger.info("CacheManager: clear_all rows=%d failed=%d", len(physical), failed)
        self._emit(CacheEventKind.CLEAR, None, rows=len(physical), failed=failed)

    # Background evictions

    async def wait_pending(self) -> None:
        """Wait until every scheduled background eviction has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_pending()
        await self._storage.close()

    async def __aenter__(self) -> "CacheManager":
        return self

    async def __aexit__(self, *exc_info: t.Any) -> None:
        await self.aclose()

    # Internals

    def _read_failed(self, key: str, default: t.Any, exc: StorageError) -> t.Any:
        self.metrics.requests.inc(result="error")
        _logger.warning("CacheManager: read failed key=%s, returning default: %s", key, exc)
        self._emit(CacheEventKind.READ_ERROR, key, error=exc)
        return default

    async def _read_all(self) -> t.Dict[str, t.Any]:
        data = await self._timed("get_all", self._storage.get(ALL_KEYS))
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StorageError(f"Storage returned {type(data).__name__} for a full read, expected a mapping")
        return data

    async def _delete_rows(self, key: str) -> DeleteOutcome:
        results = await asyncio.gather(
            self._timed("delete", self._storage.delete(self.value_key(key))),
            self._timed("delete", self._storage.delete(self.timestamp_key(key))),
            return_exceptions=True,
        )
        errors: t.List[BaseException] = []
        for result in results:
            if isinstance(result, StorageError):
                errors.append(result)
            elif isinstance(result, BaseException):
                raise result
        return DeleteOutcome(key=key, rows_deleted=len(results) - len(errors), errors=errors)

    def _schedule_eviction(self, key: str) -> None:
        task = asyncio.get_running_loop().create_task(self._evict_quietly(key))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _evict_quietly(self, key: str) -> None:
        try:
            await self._evict(key, reason="expired_read")
        except StorageError as exc:
            _logger.warning("CacheManager: best-effort eviction failed key=%s: %s", key, exc)

    async def _evict(self, key: str, *, reason: str, now: t.Optional[int] = None) -> bool:
        """Delete an entry unless a concurrent `set` refreshed it; True if removed."""
        async with self._locks.hold(key):
            raw_expiry = await self._timed("get", self._storage.get(self.timestamp_key(key), None))
            if raw_expiry is None and now is not None:
                # swept entry already deleted by someone else
                return False
            expires_at = parse_expiry(raw_expiry)
            cutoff = self._clock() if now is None else now
            if expires_at is not None and cutoff < expires_at:
                _logger.debug("CacheManager: skip eviction key=%s, refreshed until %d", key, expires_at)
                return False
            outcome = await self._delete_rows(key)
        if not outcome.ok:
            raise StorageError(f"Failed to evict cache entry {key!r}") from outcome.errors[0]
        if raw_expiry is not None:
            self.metrics.evictions.inc(reason=reason)
        _logger.debug("CacheManager: evicted key=%s reason=%s", key, reason)
        self._emit(CacheEventKind.EVICT, key, reason=reason, rows_deleted=outcome.rows_deleted)
        return True
