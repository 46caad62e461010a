from __future__ import annotations


class CacheError(Exception):
    """Base class for all kvcache errors."""


class StorageError(CacheError):
    """A storage backend failed to read, write or delete."""


class KeyNotFoundError(StorageError, KeyError):
    """Raised by a storage ``get`` when the key is absent and no default was given."""

    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Key not found: {self.key}"


class CircuitOpenError(StorageError):
    """The circuit breaker in front of a storage backend is open."""
