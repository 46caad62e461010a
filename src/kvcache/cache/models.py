from __future__ import annotations

import enum
import typing as t
from dataclasses import dataclass, field


@dataclass
class CacheEntry:
    key: str
    value: t.Any
    expires_at: int  # epoch milliseconds

    def remaining_ms(self, now_ms: int) -> int:
        return max(0, self.expires_at - now_ms)


@dataclass
class DeleteOutcome:
    """Result of deleting the two rows of one logical entry."""

    key: str
    rows_deleted: int
    errors: t.List[BaseException] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.rows_deleted > 0

    @property
    def complete(self) -> bool:
        return not self.errors


class CacheEventKind(str, enum.Enum):
    SET = "set"
    HIT = "hit"
    MISS = "miss"
    READ_ERROR = "read_error"
    DELETE = "delete"
    EVICT = "evict"
    SWEEP = "sweep"
    CLEAR = "clear"


@dataclass
class CacheEvent:
    kind: CacheEventKind
    key: t.Optional[str] = None
    detail: t.Dict[str, t.Any] = field(default_factory=dict)


CacheListener = t.Callable[[CacheEvent], None]
