"""Annotated field types shared by the track, player and session models.

Constraints live on the type so a model field stays a one-liner::

    class Track(BaseModel):
        title: TrackTitleStr
        duration: DurationSeconds = 0
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import BeforeValidator, Field

# ── Counters and limits ─────────────────────────────────────────────

NonNegativeInt = Annotated[int, Field(ge=0)]
PositiveInt = Annotated[int, Field(gt=0)]

# ── Tracks ──────────────────────────────────────────────────────────

TrackTitleStr = Annotated[str, Field(min_length=1, max_length=500)]

DurationSeconds = Annotated[int, Field(ge=0, le=86_400)]
"""Whole seconds, capped at a day; 0 means unknown (live streams)."""

HttpUrlStr = Annotated[str, Field(pattern=r"^https?://")]

NonEmptyStr = Annotated[str, Field(min_length=1)]

# ── Player and session ──────────────────────────────────────────────

VolumePercent = Annotated[int, Field(ge=0, le=100)]

SessionIdStr = Annotated[str, Field(pattern=r"^[A-Za-z0-9]{8}$")]
"""The eight-character id that appears in dashboard links."""


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("naive datetime; expected an aware UTC timestamp")
    return value.astimezone(UTC)


UtcDatetimeField = Annotated[datetime, BeforeValidator(_as_utc)]
