"""
Balance Cache

Computed balances are cached per group id so that opening a group page
does not re-read the whole history every time.

RULES:
- Entries expire after a TTL (LedgerSettings.balance_cache_ttl_seconds)
- At most max_size groups are cached; the oldest entry is evicted first
- Any write to a group (expense, settlement, membership) invalidates it

A TTL of zero disables caching.
"""

import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

import structlog


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class _CacheEntry(Generic[T]):
    value: T
    stored_at: float


class BalanceCache(Generic[T]):
    """TTL + max-size cache keyed by group id."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_size: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._entries: dict[str, _CacheEntry[T]] = {}

    def _expired(self, entry: _CacheEntry[T], now: float) -> bool:
        return now - entry.stored_at >= self._ttl

    def _cleanup(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if self._expired(e, now)]:
            del self._entries[key]

    def get(self, group_id: str) -> Optional[T]:
        """Cached value for a group, None if missing or expired."""
        entry = self._entries.get(group_id)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            del self._entries[group_id]
            return None
        return entry.value

    def set(self, group_id: str, value: T) -> None:
        if self._ttl <= 0:
            return

        self._cleanup()
        self._entries.pop(group_id, None)

        # dicts keep insertion order, so the first key is the oldest entry
        while len(self._entries) >= self._max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("balance_cache_evicted", group_id=oldest)

        self._entries[group_id] = _CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, group_id: str) -> bool:
        """Drop a group's entry. Returns True if something was cached."""
        return self._entries.pop(group_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, group_id: str) -> bool:
        return self.get(group_id) is not None

    def __len__(self) -> int:
        self._cleanup()
        return len(self._entries)
