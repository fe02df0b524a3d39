# ruff: noqa: N999
"""
Domain Layer

Contains pure business logic organized by bounded contexts:
- shared/: Cross-cutting constants, types and exceptions
- music/: Track, queue, and playback events
- session/: Per-guild session aggregate
"""

from legato.domain.shared.exceptions import DomainError

__all__ = [
    "DomainError",
]
