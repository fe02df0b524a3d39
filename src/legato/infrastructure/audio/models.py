"""Typed views over yt-dlp: the info dicts it returns and the params it takes.

yt-dlp info dicts vary by extractor and are often sparse, so the parsing
model coerces rather than rejects.
"""

from __future__ import annotations

from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

from legato.domain.shared.types import NonEmptyStr, NonNegativeInt, PositiveInt

DEFAULT_RETRIES: Final[int] = 3
DEFAULT_SOCKET_TIMEOUT: Final[int] = 10
DEFAULT_HTTP_CHUNK_SIZE: Final[int] = 1 << 20
DEFAULT_SEARCH_LIMIT: Final[int] = 5
LOG_URL_TRUNCATE: Final[int] = 60

UNKNOWN_TITLE: Final[str] = "Unknown Title"
UNKNOWN_ARTIST: Final[str] = "Unknown Artist"

_OPTIONAL_TEXT_FIELDS = (
    "id", "webpage_url", "url", "thumbnail", "artist", "creator", "uploader", "channel",
)


def _blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


class AudioFormatInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    url: NonEmptyStr | None = None
    acodec: NonEmptyStr | None = None


class ThumbnailInfo(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    url: NonEmptyStr | None = None


class YtDlpTrackInfo(BaseModel):
    """The handful of info-dict keys a ``Track`` or ``SearchResult`` is built from.

    Flat playlist entries carry little more than ``id`` and ``title``; full
    extractions add ``webpage_url``, ``formats`` and the uploader fields.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: NonEmptyStr | None = None
    webpage_url: NonEmptyStr | None = None
    url: NonEmptyStr | None = None
    title: NonEmptyStr = UNKNOWN_TITLE
    duration: NonNegativeInt | None = None
    thumbnail: NonEmptyStr | None = None
    thumbnails: list[ThumbnailInfo] = Field(default_factory=list)
    artist: NonEmptyStr | None = None
    creator: NonEmptyStr | None = None
    uploader: NonEmptyStr | None = None
    channel: NonEmptyStr | None = None
    formats: list[AudioFormatInfo] = Field(default_factory=list)

    @field_validator(*_OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def _drop_blank_text(cls, v: Any) -> str | None:
        return None if _blank(v) else v

    @field_validator("title", mode="before")
    @classmethod
    def _default_blank_title(cls, v: Any) -> str:
        return UNKNOWN_TITLE if _blank(v) else v

    @field_validator("duration", mode="before")
    @classmethod
    def _whole_seconds(cls, v: Any) -> int | None:
        # Live streams report None; some extractors send floats or strings
        try:
            seconds = int(v)
        except (TypeError, ValueError):
            return None
        return seconds if seconds >= 0 else None

    @field_validator("thumbnails", "formats", mode="before")
    @classmethod
    def _list_or_empty(cls, v: Any) -> list[Any]:
        return v if isinstance(v, list) else []

    @property
    def display_artist(self) -> str:
        for candidate in (self.artist, self.creator, self.uploader, self.channel):
            if candidate:
                return candidate
        return UNKNOWN_ARTIST

    @property
    def best_thumbnail(self) -> str:
        """The explicit thumbnail, else the last listed one (yt-dlp sorts ascending)."""
        if self.thumbnail:
            return self.thumbnail
        return next((t.url for t in reversed(self.thumbnails) if t.url), "")


class YtDlpOpts(BaseModel):
    """``YoutubeDL`` params; callers derive variants with ``model_copy(update=...)``."""

    model_config = ConfigDict(frozen=True)

    quiet: bool = True
    no_warnings: bool = True
    noprogress: bool = True
    noplaylist: bool = True
    default_search: NonEmptyStr = "ytsearch"
    forceipv4: bool = True
    retries: PositiveInt = DEFAULT_RETRIES
    socket_timeout: PositiveInt = DEFAULT_SOCKET_TIMEOUT
    http_chunk_size: PositiveInt = DEFAULT_HTTP_CHUNK_SIZE
    format: NonEmptyStr | None = None
    skip_download: bool = True
    extract_flat: NonEmptyStr | bool = False
    playlistend: PositiveInt | None = None
