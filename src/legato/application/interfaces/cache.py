"""Port interface for a keyed cache with per-entry time-to-live."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

V = TypeVar("V")


class TtlCache(ABC, Generic[V]):
    """Process-wide cache shared across sessions.

    Entries are independent keys, so concurrent sessions may read and write
    without coordination. Staleness is bounded by each entry's TTL.
    """

    @abstractmethod
    def get(self, key: str) -> V | None:
        """Return the live value for ``key`` or None when absent or expired."""
        ...

    @abstractmethod
    def put(self, key: str, value: V, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds, replacing any previous entry."""
        ...

    @abstractmethod
    def invalidate(self, key: str) -> None:
        """Drop ``key`` if present."""
        ...
