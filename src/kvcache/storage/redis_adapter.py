from __future__ import annotations

import logging
import typing as t

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from ..errors import KeyNotFoundError, StorageError
from .base import ALL_KEYS, MISSING, StorageAdapter, decode_value, encode_value

_logger = logging.getLogger(__name__)

_GLOB_SPECIAL = set("*?[]\\")


def _escape_glob(text: str) -> str:
    return "".join("\\" + ch if ch in _GLOB_SPECIAL else ch for ch in text)


class RedisStorage(StorageAdapter):
    """Redis-backed storage adapter.

    - Each key is stored as a JSON string at `{prefix}:{key}`
    - Get-all scans `{prefix}:*` and fetches values with MGET in batches
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        prefix: str = "kv",
        scan_count: int = 500,
        client: t.Any = None,
    ) -> None:
        self._url = url
        self._prefix = prefix.rstrip(":")
        self._scan_count = scan_count
        self._redis = client if client is not None else redis_asyncio.from_url(url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _strip(self, physical: t.Union[str, bytes]) -> str:
        if isinstance(physical, (bytes, bytearray)):
            physical = physical.decode()
        return physical[len(self._prefix) + 1 :]

    async def _get_all(self) -> t.Dict[str, t.Any]:
        pattern = _escape_glob(self._prefix) + ":*"
        keys: t.List[str] = []
        async for physical in self._redis.scan_iter(match=pattern, count=self._scan_count):
            keys.append(physical.decode() if isinstance(physical, (bytes, bytearray)) else physical)
        result: t.Dict[str, t.Any] = {}
        for start in range(0, len(keys), self._scan_count):
            batch = keys[start : start + self._scan_count]
            values = await self._redis.mget(batch)
            for physical, raw in zip(batch, values):
                # Deleted between SCAN and MGET
                if raw is None:
                    continue
                key = self._strip(physical)
                result[key] = decode_value(key, raw)
        return result

    async def get(self, key: str, default: t.Any = MISSING) -> t.Any:
        try:
            if key == ALL_KEYS:
                return await self._get_all()
            raw = await self._redis.get(self._key(key))
        except RedisError as exc:
            raise StorageError(f"Redis get failed for key {key!r}: {exc}") from exc
        if raw is None:
            if default is MISSING:
                raise KeyNotFoundError(key)
            return default
        return decode_value(key, raw)

    async def set(self, key: str, value: t.Any) -> None:
        payload = encode_value(key, value)
        try:
            await self._redis.set(self._key(key), payload)
        except RedisError as exc:
            raise StorageError(f"Redis set failed for key {key!r}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except RedisError as exc:
            raise StorageError(f"Redis delete failed for key {key!r}: {exc}") from exc

    async def is_healthy(self) -> bool:
        try:
            pong = await self._redis.ping()
            return bool(pong)
        except RedisError:
            return False

    async def close(self) -> None:
        try:
            await self._redis.aclose()
        except RedisError as exc:  # pragma: no cover - best effort
            _logger.warning("RedisStorage: error while closing client: %s", exc)
