from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


def _label_key(labels: Dict[str, Any]) -> Tuple:
    return tuple(sorted(labels.items()))


@dataclass
class Counter:
    name: str
    help: str
    values: Dict[Tuple, float] = field(default_factory=dict)

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        key = _label_key(labels)
        self.values[key] = self.values.get(key, 0.0) + value

    def get(self, **labels: Any) -> float:
        return self.values.get(_label_key(labels), 0.0)


@dataclass
class Histogram:
    name: str
    help: str
    buckets: List[float]
    counts: Dict[Tuple, List[int]] = field(default_factory=dict)

    def observe(self, val: float, **labels: Any) -> None:
        key = _label_key(labels)
        if key not in self.counts:
            # last slot is the +Inf bucket
            self.counts[key] = [0 for _ in range(len(self.buckets) + 1)]
        for i, b in enumerate(self.buckets):
            if val <= b:
                self.counts[key][i] += 1
                break
        else:
            self.counts[key][-1] += 1

    def count(self, **labels: Any) -> int:
        return sum(self.counts.get(_label_key(labels), []))


@dataclass
class CacheMetrics:
    """Per-manager metric set."""

    requests: Counter = field(
        default_factory=lambda: Counter("kvcache_requests_total", "Cache reads by result (hit, miss, error)")
    )
    writes: Counter = field(default_factory=lambda: Counter("kvcache_writes_total", "Cache writes by result"))
    evictions: Counter = field(
        default_factory=lambda: Counter("kvcache_evictions_total", "Logical entries removed, by reason")
    )
    storage_latency: Histogram = field(
        default_factory=lambda: Histogram(
            "kvcache_storage_latency_seconds",
            "Storage operation latency",
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
        )
    )

    def hit_ratio(self) -> float:
        hits = self.requests.get(result="hit")
        total = hits + self.requests.get(result="miss") + self.requests.get(result="error")
        return hits / total if total else 0.0
