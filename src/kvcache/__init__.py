"""kvcache

Expiring cache entries on top of a flat, non-expiring key-value store.
Each logical entry is kept as a value row and a parallel expiry row, so any
backend that can get, set and delete JSON values by key can serve as a TTL
cache: in memory, a JSON file, or Redis.
"""

from .cache import (
    DEFAULT_TTL_MS,
    CacheEntry,
    CacheEvent,
    CacheEventKind,
    CacheManager,
    DeleteOutcome,
)
from .errors import CacheError, CircuitOpenError, KeyNotFoundError, StorageError
from .factory import build_storage, create_cache_manager
from .storage import (
    ALL_KEYS,
    InMemoryStorage,
    JSONFileStorage,
    RedisStorage,
    ResilientStorage,
    StorageAdapter,
)
from .utils.config import CacheConfig, ResilienceConfig, Settings, StorageConfig

__all__ = [
    "CacheManager",
    "CacheEntry",
    "CacheEvent",
    "CacheEventKind",
    "DeleteOutcome",
    "DEFAULT_TTL_MS",
    "StorageAdapter",
    "InMemoryStorage",
    "JSONFileStorage",
    "RedisStorage",
    "ResilientStorage",
    "ALL_KEYS",
    "CacheError",
    "StorageError",
    "KeyNotFoundError",
    "CircuitOpenError",
    "Settings",
    "StorageConfig",
    "CacheConfig",
    "ResilienceConfig",
    "build_storage",
    "create_cache_manager",
]

__version__ = "0.1.0"
