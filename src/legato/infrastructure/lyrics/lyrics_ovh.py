"""LyricsProvider backed by the public lyrics.ovh API."""

from __future__ import annotations

import logging
import re
from typing import Any, Final
from urllib.parse import quote

import aiohttp

from legato.application.interfaces.cache import TtlCache
from legato.application.interfaces.catalog import LyricsData, LyricsProvider
from legato.config.settings import ServiceSettings
from legato.domain.shared.constants import HTTPHeaders, LimitConstants
from legato.domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

LYRICS_SOURCE: Final[str] = "Lyrics.ovh"

# Video-title noise that never appears in a song's real title
_TITLE_NOISE_RES: Final[list[re.Pattern[str]]] = [
    re.compile(r"[(\[](?:official|music|lyric|audio|video)[^)\]]*[)\]]", re.IGNORECASE),
    re.compile(r"[(\[](?:lyrics|mv|m/v)[)\]]", re.IGNORECASE),
    re.compile(r"\(\s*(?:ft|feat)\..*?\)", re.IGNORECASE),
    re.compile(r"\|.*$"),
    re.compile(r"\b(?:ft|feat)\.\s*.*", re.IGNORECASE),
    re.compile(r"-\s*Topic$", re.IGNORECASE),
    re.compile(r"\s*\(.*?\)\s*$"),
    re.compile(r"\s*\[.*?\]\s*$"),
]

_ARTIST_NOISE_RES: Final[list[re.Pattern[str]]] = [
    re.compile(r"\s*-\s*Topic$", re.IGNORECASE),
    re.compile(r"VEVO$", re.IGNORECASE),
    re.compile(r"Official$", re.IGNORECASE),
    re.compile(r"\s*\(.*?\)\s*"),
]

_TITLE_SEPARATOR_RE: Final[re.Pattern[str]] = re.compile(r"[-–—]")
_ARTIST_SEPARATOR_RE: Final[re.Pattern[str]] = re.compile(r"\s*(?:,|&|×|\s[xX]\s)\s*")
_WHITESPACE_RE: Final[re.Pattern[str]] = re.compile(r"\s+")


def _squash(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_title(title: str) -> str:
    """Strip video-upload decorations such as ``(Official Video)`` or ``feat.`` credits."""
    for pattern in _TITLE_NOISE_RES:
        title = pattern.sub("", title)
    return _squash(title)


def clean_artist(artist: str) -> str:
    """Strip channel decorations such as ``- Topic`` or ``VEVO``."""
    for pattern in _ARTIST_NOISE_RES:
        artist = pattern.sub("", artist)
    return _squash(artist)


def simplify_title(title: str) -> str:
    return _squash(_TITLE_SEPARATOR_RE.split(title, maxsplit=1)[0])


def simplify_artist(artist: str) -> str:
    return _squash(_ARTIST_SEPARATOR_RE.split(artist, maxsplit=1)[0])


def cache_key(title: str, artist: str) -> str:
    return f"lyrics:{title.lower()}-{artist.lower()}"


class LyricsOvhProvider(LyricsProvider):
    """Looks up lyrics for the cleaned title, then for a simplified variant.

    Hits are cached for ``lyrics_cache_ttl_seconds``; misses are not cached.
    """

    def __init__(
        self,
        cache: TtlCache[LyricsData],
        settings: ServiceSettings | None = None,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._cache = cache
        self._settings = settings or ServiceSettings()
        self._http = http_session
        self._owns_http = http_session is None

    async def get_lyrics(self, title: str, artist: str) -> LyricsData | None:
        key = cache_key(title, artist)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        candidates: list[tuple[str, str]] = []
        cleaned = (clean_title(title), clean_artist(artist))
        candidates.append(cleaned)
        simplified = (simplify_title(cleaned[0]), simplify_artist(cleaned[1]))
        if simplified != cleaned:
            candidates.append(simplified)

        for candidate_title, candidate_artist in candidates:
            if not candidate_title or not candidate_artist:
                continue
            lyrics = await self._fetch(candidate_title, candidate_artist)
            if lyrics is not None:
                self._cache.put(key, lyrics, self._settings.lyrics_cache_ttl_seconds)
                return lyrics

        logger.info(LogTemplates.LYRICS_NOT_FOUND, title, artist)
        return None

    async def close(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.close()
            self._http = None

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                headers={HTTPHeaders.USER_AGENT: HTTPHeaders.LEGATO_USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout_seconds),
            )
            self._owns_http = True
        return self._http

    async def _fetch(self, title: str, artist: str) -> LyricsData | None:
        base = self._settings.lyrics_api_url.rstrip("/")
        url = f"{base}/{quote(artist, safe='')}/{quote(title, safe='')}"
        try:
            async with self._session().get(url) as resp:
                if resp.status != 200:
                    return None
                data: Any = await resp.json(content_type=None)
        except (aiohttp.ClientError, TimeoutError, ValueError) as exc:
            logger.debug(LogTemplates.LYRICS_REQUEST_FAILED, url, exc)
            return None

        text = data.get("lyrics") if isinstance(data, dict) else None
        if not isinstance(text, str) or len(text) < LimitConstants.MIN_LYRICS_LENGTH:
            return None

        return LyricsData(title=title, artist=artist, lyrics=text.strip(), source=LYRICS_SOURCE)
