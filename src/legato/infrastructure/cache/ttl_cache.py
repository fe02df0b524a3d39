"""In-memory TtlCache shared by every session in the process."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final, Generic, TypeVar

from legato.application.interfaces.cache import TtlCache
from legato.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

V = TypeVar("V")

CACHE_MAX_SIZE: Final[int] = 500


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[V]):
    value: V
    expires_at: float


class InMemoryTtlCache(TtlCache[V]):
    """Dict-backed cache with lazy expiry and size-bounded pruning.

    ``clock`` is monotonic seconds and is injectable so tests can move time.
    """

    def __init__(
        self,
        max_size: int = CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry[V]] = {}
        self._max_size = max_size
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        logger.debug(LogTemplates.CACHE_HIT, key)
        return entry.value

    def put(self, key: str, value: V, ttl: float) -> None:
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        if len(self._entries) > self._max_size:
            self.prune()

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def prune(self) -> int:
        """Drop expired entries, then the oldest ones while still over capacity."""
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if entry.expires_at <= now]
        for k in expired:
            self._entries.pop(k, None)
        if expired:
            logger.debug(LogTemplates.CACHE_EXPIRED_PRUNED, len(expired))

        overflow = len(self._entries) - self._max_size
        if overflow > 0:
            # dicts keep insertion order, so the first keys are the oldest writes
            for k in list(self._entries)[:overflow]:
                self._entries.pop(k, None)
        return len(expired) + max(overflow, 0)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        logger.debug(LogTemplates.CACHE_CLEARED, count)
        return count

    def stats(self) -> dict[str, Any]:
        return {"size": len(self._entries), "max_size": self._max_size}
