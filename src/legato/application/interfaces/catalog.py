"""Port interfaces for the search and lyrics collaborators used by dashboards."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from legato.domain.music.value_objects import TrackSource
from legato.domain.shared.types import DurationSeconds, NonEmptyStr, PositiveInt


class SearchResult(BaseModel):
    """One candidate returned by a search provider."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    artist: str
    duration: DurationSeconds = 0
    thumbnail: str = ""
    url: str
    source: TrackSource = TrackSource.YOUTUBE


class LyricsData(BaseModel):
    """Lyrics for a single song."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    title: str
    artist: str
    lyrics: NonEmptyStr
    source: str
    thumbnail: str | None = None
    url: str | None = None


class SearchProvider(ABC):
    """Best-effort search; callers bound it with a timeout."""

    @abstractmethod
    async def search(
        self, query: NonEmptyStr, source: str = "youtube", limit: PositiveInt = 20
    ) -> list[SearchResult]:
        ...


class LyricsProvider(ABC):
    """Best-effort lyrics lookup; callers bound it with a timeout."""

    @abstractmethod
    async def get_lyrics(self, title: NonEmptyStr, artist: str) -> LyricsData | None:
        ...
