"""Clock helpers: every timestamp in legato is aware UTC, on the wire it is epoch millis."""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def unix_millis(dt: datetime | None = None) -> int:
    """Milliseconds since the epoch for ``dt``, or for now when omitted."""
    moment = dt if dt is not None else utcnow()
    return int(moment.timestamp() * 1000)
