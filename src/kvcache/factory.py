from __future__ import annotations

import logging
import typing as t

from .cache.manager import CacheManager
from .storage import InMemoryStorage, JSONFileStorage, RedisStorage, ResilientStorage, StorageAdapter
from .utils.config import ResilienceConfig, Settings, StorageConfig
from .utils.resilience import CircuitBreaker, CircuitBreakerConfig

_logger = logging.getLogger(__name__)

STORAGE_TYPES = ("memory", "json", "redis")


def build_storage(config: StorageConfig, resilience: t.Optional[ResilienceConfig] = None) -> StorageAdapter:
    kind = config.type.lower()
    storage: StorageAdapter
    if kind == "memory":
        storage = InMemoryStorage()
    elif kind == "json":
        storage = JSONFileStorage(config.path)
    elif kind == "redis":
        storage = RedisStorage(config.url or "redis://localhost:6379/0", prefix=config.prefix)
    else:
        raise ValueError(f"unknown storage type {config.type!r}; expected one of {', '.join(STORAGE_TYPES)}")

    if resilience is not None and resilience.circuit_breaker_enabled:
        breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=resilience.failure_threshold,
                reset_timeout_seconds=resilience.reset_timeout_seconds,
            )
        )
        storage = ResilientStorage(
            storage,
            circuit_breaker=breaker,
            retry_attempts=resilience.retry_max_attempts,
            retry_backoff_ms=resilience.retry_backoff_ms,
        )
    _logger.debug("Built %s storage (resilient=%s)", kind, isinstance(storage, ResilientStorage))
    return storage


def create_cache_manager(settings: t.Optional[Settings] = None, **kwargs: t.Any) -> CacheManager:
    """Build a CacheManager from settings; extra kwargs go to the CacheManager constructor."""
    settings = settings or Settings()
    storage = build_storage(settings.storage, settings.resilience)
    return CacheManager(
        storage,
        default_ttl_ms=settings.cache.default_ttl_ms,
        value_prefix=settings.cache.value_prefix,
        timestamp_prefix=settings.cache.timestamp_prefix,
        **kwargs,
    )
