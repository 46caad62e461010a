"""Utility module for resilience, locking and configuration."""

from .locks import KeyedLock
from .resilience import CircuitBreaker, CircuitBreakerConfig, CircuitState, with_retries

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "KeyedLock",
    "with_retries",
]
