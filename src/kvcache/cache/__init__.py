from .manager import DEFAULT_TTL_MS, TIMESTAMP_PREFIX, VALUE_PREFIX, CacheManager, parse_expiry
from .models import CacheEntry, CacheEvent, CacheEventKind, CacheListener, DeleteOutcome

__all__ = [
    "CacheManager",
    "CacheEntry",
    "CacheEvent",
    "CacheEventKind",
    "CacheListener",
    "DeleteOutcome",
    "DEFAULT_TTL_MS",
    "VALUE_PREFIX",
    "TIMESTAMP_PREFIX",
    "parse_expiry",
]
