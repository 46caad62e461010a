from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..errors import CacheError


class ConfigError(CacheError, ValueError):
    """Configuration file or section could not be loaded."""


@dataclass
class CacheConfig:
    default_ttl_ms: int = 60 * 60 * 1000
    value_prefix: str = "cache_"
    timestamp_prefix: str = "timestamp_"


@dataclass
class StorageConfig:
    type: str = "json"  # memory | json | redis
    path: str = ".cache/storage.json"
    url: Optional[str] = None
    prefix: str = "kv"


@dataclass
class ResilienceConfig:
    circuit_breaker_enabled: bool = True
    failure_threshold: int = 5
    reset_timeout_seconds: float = 30.0
    retry_max_attempts: int = 3
    retry_backoff_ms: List[int] = dataclasses.field(default_factory=lambda: [100, 500, 2000])


@dataclass
class Settings:
    storage: StorageConfig = dataclasses.field(default_factory=StorageConfig)
    cache: CacheConfig = dataclasses.field(default_factory=CacheConfig)
    resilience: ResilienceConfig = dataclasses.field(default_factory=ResilienceConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        def build(dc_cls, key):
            values = data.get(key) or {}
            if not isinstance(values, dict):
                raise ConfigError(f"config section {key!r} must be an object")
            try:
                return dc_cls(**values)
            except TypeError as exc:
                raise ConfigError(f"invalid config section {key!r}: {exc}") from exc

        return cls(
            storage=build(StorageConfig, "storage"),
            cache=build(CacheConfig, "cache"),
            resilience=build(ResilienceConfig, "resilience"),
        )

    @classmethod
    def from_file(cls, path: Union[str, "os.PathLike[str]"]) -> "Settings":
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise ConfigError(f"could not load config file {os.fspath(path)}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"config file {os.fspath(path)} must contain a JSON object")
        return cls.from_dict(data)
