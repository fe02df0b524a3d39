"""Cache adapters."""

from legato.infrastructure.cache.ttl_cache import InMemoryTtlCache

__all__ = ["InMemoryTtlCache"]
