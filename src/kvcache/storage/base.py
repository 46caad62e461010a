from __future__ import annotations

import json
import typing as t
from abc import ABC, abstractmethod

from ..errors import KeyNotFoundError, StorageError

# Passing this as the key to ``get`` returns the whole mapping.
ALL_KEYS = ""


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: t.Any = _Missing()


def encode_value(key: str, value: t.Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise StorageError(f"Value for key {key!r} is not JSON-serializable: {exc}") from exc


def decode_value(key: str, raw: str) -> t.Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise StorageError(f"Corrupt value stored at key {key!r}") from exc


class StorageAdapter(ABC):
    """Flat, non-expiring mapping from string key to JSON-serializable value."""

    @abstractmethod
    async def get(self, key: str, default: t.Any = MISSING) -> t.Any:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: t.Any) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def is_healthy(self) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    async def get_all(self) -> t.Dict[str, t.Any]:
        return await self.get(ALL_KEYS)

    async def close(self) -> None:
        return None


class InMemoryStorage(StorageAdapter):
    """A simple in-memory adapter for dev/test.

    Values are kept JSON-encoded so that they round-trip exactly as they would
    through a persisted backend, and callers never share mutable state with
    the store.
    """

    def __init__(self, initial: t.Optional[t.Mapping[str, t.Any]] = None) -> None:
        self._data: t.Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = encode_value(key, value)

    async def get(self, key: str, default: t.Any = MISSING) -> t.Any:
        if key == ALL_KEYS:
            return {k: decode_value(k, raw) for k, raw in self._data.items()}
        raw = self._data.get(key)
        if raw is None:
            if default is MISSING:
                raise KeyNotFoundError(key)
            return default
        return decode_value(key, raw)

    async def set(self, key: str, value: t.Any) -> None:
        self._data[key] = encode_value(key, value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def is_healthy(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._data)
