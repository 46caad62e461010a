from .base import ALL_KEYS, MISSING, InMemoryStorage, StorageAdapter
from .json_file import JSONFileStorage
from .redis_adapter import RedisStorage
from .resilient import ResilientStorage

__all__ = [
    "ALL_KEYS",
    "MISSING",
    "StorageAdapter",
    "InMemoryStorage",
    "JSONFileStorage",
    "RedisStorage",
    "ResilientStorage",
]
