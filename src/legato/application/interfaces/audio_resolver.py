"""Port for turning what a user typed into tracks the player can stream."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from legato.domain.shared.types import HttpUrlStr, NonEmptyStr, PositiveInt

if TYPE_CHECKING:
    from ...domain.music.entities import Track


class AudioResolver(ABC):
    """Looks up links and search terms; the player only ever sees ``Track`` objects."""

    @abstractmethod
    async def resolve(self, query: NonEmptyStr) -> "Track | None":
        """A link is looked up directly, anything else is searched. None means no match."""
        ...

    @abstractmethod
    async def extract_playlist(self, url: HttpUrlStr, limit: PositiveInt = 50) -> list["Track"]:
        """Playlist entries in order, truncated to ``limit``; unavailable entries are skipped."""
        ...

    @abstractmethod
    async def resolve_stream_url(self, url: HttpUrlStr) -> str:
        """Media URL for ffmpeg to read, resolved fresh from the track's page URL.

        Raises:
            ResourceResolutionError: The page has no playable format.
        """
        ...

    @abstractmethod
    def is_url(self, query: NonEmptyStr) -> bool:
        ...

    @abstractmethod
    def is_playlist(self, url: HttpUrlStr) -> bool:
        ...
