"""AudioResolver and SearchProvider implementation using yt-dlp."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Final, cast

from yt_dlp import YoutubeDL

from legato.application.interfaces.audio_resolver import AudioResolver
from legato.application.interfaces.catalog import SearchProvider, SearchResult
from legato.config.settings import AudioSettings
from legato.domain.music.entities import Track
from legato.domain.music.value_objects import TrackSource
from legato.domain.shared.exceptions import ResourceResolutionError
from legato.domain.shared.messages import ErrorMessages, LogTemplates

from .models import (
    DEFAULT_SEARCH_LIMIT,
    LOG_URL_TRUNCATE,
    AudioFormatInfo,
    YtDlpOpts,
    YtDlpTrackInfo,
)

logger = logging.getLogger(__name__)

URL_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"https?://"),
    re.compile(r"www\."),
]

PLAYLIST_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"[?&]list="),
    re.compile(r"/playlist\?"),
    re.compile(r"/sets/"),
]

YOUTUBE_ID_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([a-zA-Z0-9_-]{11})"),
]

YOUTUBE_WATCH_URL: Final[str] = "https://www.youtube.com/watch?v={video_id}"

# yt-dlp search prefixes; "all" searches YouTube only
SEARCH_PREFIXES: Final[dict[str, str]] = {
    "youtube": "ytsearch",
    "all": "ytsearch",
    "soundcloud": "scsearch",
}


def extract_video_id(url: str) -> str | None:
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def clean_youtube_url(url: str) -> str:
    """Reduce any YouTube video link to its canonical watch URL.

    Tracking parameters, timestamps and mixed-in ``list=`` references are
    dropped. Non-video URLs are returned unchanged.
    """
    video_id = extract_video_id(url)
    if video_id:
        return YOUTUBE_WATCH_URL.format(video_id=video_id)
    return url


def _source_for(url: str) -> TrackSource:
    if "soundcloud.com" in url:
        return TrackSource.SOUNDCLOUD
    if "spotify.com" in url:
        return TrackSource.SPOTIFY
    return TrackSource.YOUTUBE


class YtDlpResolver(AudioResolver, SearchProvider):
    """Runs blocking yt-dlp extraction in worker threads."""

    def __init__(self, settings: AudioSettings | None = None) -> None:
        self._settings = settings or AudioSettings()
        self._base_opts = YtDlpOpts(format=self._settings.ytdlp_format)

    def _get_opts(self, **overrides: Any) -> YtDlpOpts:
        if overrides:
            return self._base_opts.model_copy(update=overrides)
        return self._base_opts

    def _get_playlist_opts(self, limit: int) -> YtDlpOpts:
        return self._get_opts(noplaylist=False, extract_flat="in_playlist", playlistend=limit)

    @staticmethod
    def _parse_info(data: dict[str, Any]) -> YtDlpTrackInfo:
        return YtDlpTrackInfo.model_validate(data)

    @staticmethod
    def _page_url(info: YtDlpTrackInfo) -> str | None:
        if info.id and not info.webpage_url and (info.url is None or "://" not in info.url):
            return YOUTUBE_WATCH_URL.format(video_id=info.id)
        return info.webpage_url or info.url

    def _info_to_track(self, info: YtDlpTrackInfo) -> Track | None:
        try:
            url = self._page_url(info)
            if not url:
                logger.warning(LogTemplates.YTDLP_NO_URL_IN_INFO_DICT)
                return None

            url = clean_youtube_url(url)
            return Track(
                title=info.title,
                artist=info.display_artist,
                duration=info.duration or 0,
                thumbnail=info.best_thumbnail,
                url=url,
                source=_source_for(url),
            )
        except ValueError:
            logger.exception(LogTemplates.YTDLP_FAILED_INFO_TO_TRACK)
            return None

    def _info_to_result(self, info: YtDlpTrackInfo) -> SearchResult | None:
        url = self._page_url(info)
        if not url:
            return None
        url = clean_youtube_url(url)
        return SearchResult(
            id=info.id or extract_video_id(url) or url,
            title=info.title,
            artist=info.display_artist,
            duration=info.duration or 0,
            thumbnail=info.best_thumbnail,
            url=url,
            source=_source_for(url),
        )

    @staticmethod
    def _extract_stream_from_formats(formats: list[AudioFormatInfo]) -> str | None:
        if not formats:
            return None
        audio_formats = [f for f in formats if f.acodec != "none" and f.url]
        if audio_formats:
            return audio_formats[-1].url
        return None

    def _extract_info_sync(self, url: str, **overrides: Any) -> YtDlpTrackInfo | None:
        try:
            with YoutubeDL(params=cast(Any, self._get_opts(**overrides).model_dump())) as ydl:
                data = ydl.extract_info(url, download=False)
                return self._parse_info(dict(data)) if isinstance(data, dict) else None
        except Exception:
            logger.exception(LogTemplates.YTDLP_FAILED_EXTRACT_INFO, url[:LOG_URL_TRUNCATE])
            return None

    def _search_sync(
        self, query: str, limit: int = 1, prefix: str = "ytsearch"
    ) -> list[YtDlpTrackInfo]:
        try:
            search_query = f"{prefix}{limit}:{query}"
            opts = self._get_opts(extract_flat="in_playlist")
            with YoutubeDL(params=cast(Any, opts.model_dump())) as ydl:
                data = ydl.extract_info(search_query, download=False)

                if not isinstance(data, dict):
                    return []

                entries = data.get("entries", [])
                if not isinstance(entries, list):
                    return []

                return [self._parse_info(dict(e)) for e in entries if e]
        except Exception:
            logger.exception(LogTemplates.YTDLP_FAILED_SEARCH, query)
            return []

    def _extract_playlist_sync(self, url: str, limit: int) -> list[YtDlpTrackInfo]:
        try:
            opts = self._get_playlist_opts(limit)
            with YoutubeDL(params=cast(Any, opts.model_dump())) as ydl:
                data = ydl.extract_info(url, download=False)

                if not isinstance(data, dict):
                    return []

                entries = data.get("entries", [])
                if not isinstance(entries, list):
                    return []

                return [self._parse_info(dict(e)) for e in entries[:limit] if e]
        except Exception:
            logger.exception(LogTemplates.YTDLP_FAILED_EXTRACT_PLAYLIST, url)
            return []

    async def resolve(self, query: str) -> Track | None:
        query = clean_youtube_url(query.strip())
        if self.is_url(query):
            info = await asyncio.to_thread(self._extract_info_sync, query)
        else:
            results = await asyncio.to_thread(self._search_sync, query, 1)
            info = results[0] if results else None

        if not info:
            return None
        return self._info_to_track(info)

    async def search(
        self, query: str, source: str = "youtube", limit: int = DEFAULT_SEARCH_LIMIT
    ) -> list[SearchResult]:
        prefix = SEARCH_PREFIXES.get(source.lower())
        if prefix is None:
            logger.debug(LogTemplates.YTDLP_SEARCH_SOURCE_UNSUPPORTED, source)
            return []

        cleaned = clean_youtube_url(query.strip())
        if extract_video_id(cleaned):
            info = await asyncio.to_thread(self._extract_info_sync, cleaned)
            infos = [info] if info else []
        else:
            infos = await asyncio.to_thread(self._search_sync, query, limit, prefix)

        results: list[SearchResult] = []
        for info in infos:
            result = self._info_to_result(info)
            if result is not None:
                results.append(result)
        return results

    async def extract_playlist(self, url: str, limit: int = 50) -> list[Track]:
        entries = await asyncio.to_thread(self._extract_playlist_sync, url, limit)

        # Flat extraction carries enough metadata; stream URLs are resolved at play time
        tracks: list[Track] = []
        for entry in entries:
            track = self._info_to_track(entry)
            if track:
                tracks.append(track)
        return tracks

    async def resolve_stream_url(self, url: str) -> str:
        info = await asyncio.to_thread(self._extract_info_sync, url)
        stream_url = None
        if info is not None:
            stream_url = info.url or self._extract_stream_from_formats(info.formats)
        if not stream_url:
            raise ResourceResolutionError(
                url, ErrorMessages.NO_STREAM_URL_FOR_TRACK.format(url=url)
            )
        return stream_url

    def is_url(self, query: str) -> bool:
        return any(pattern.search(query) for pattern in URL_PATTERNS)

    def is_playlist(self, url: str) -> bool:
        if extract_video_id(url):
            return False
        return any(pattern.search(url) for pattern in PLAYLIST_PATTERNS)
