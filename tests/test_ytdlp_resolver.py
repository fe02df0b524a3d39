"""
Comprehensive Unit Tests for YtDlpResolver

Tests for the yt-dlp based audio resolver infrastructure:
- URL and playlist detection
- YouTube link canonicalization
- Info model to Track / SearchResult conversion
- Resolve (URL and search), search and playlist extraction
- Stream URL resolution and failure
- Blocking yt-dlp calls driven through a mocked YoutubeDL

Uses pytest with async/await patterns and proper mocking.
"""

from unittest.mock import patch

import pytest

from legato.application.interfaces.catalog import SearchProvider
from legato.config.settings import AudioSettings
from legato.domain.music.value_objects import TrackSource
from legato.domain.shared.exceptions import ResourceResolutionError
from legato.infrastructure.audio.models import AudioFormatInfo, YtDlpTrackInfo
from legato.infrastructure.audio.ytdlp_resolver import (
    YtDlpResolver,
    clean_youtube_url,
    extract_video_id,
)

VIDEO_ID = "dQw4w9WgXcQ"
WATCH_URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"
PLAYLIST_URL = "https://www.youtube.com/playlist?list=PL1"

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def resolver():
    """Create a YtDlpResolver instance."""
    return YtDlpResolver(AudioSettings())


@pytest.fixture
def mock_info():
    """Create a yt-dlp info model for a single video."""
    return YtDlpTrackInfo(
        id=VIDEO_ID,
        webpage_url=f"https://youtube.com/watch?v={VIDEO_ID}&t=42",
        title="Test Song",
        url="https://media.example.com/stream.m4a",
        duration=180,
        thumbnail="https://example.com/thumb.jpg",
        artist="Test Artist",
        uploader="Test Channel",
    )


@pytest.fixture
def mock_ydl():
    """Patch YoutubeDL and expose the object returned by its context manager."""
    with patch("legato.infrastructure.audio.ytdlp_resolver.YoutubeDL") as ydl_cls:
        yield ydl_cls, ydl_cls.return_value.__enter__.return_value


# =============================================================================
# URL Detection Tests
# =============================================================================


class TestURLDetection:
    """Tests for is_url and is_playlist."""

    @pytest.mark.parametrize(
        "query", ["https://youtube.com/watch?v=abc", "http://example.com", "www.youtube.com/x"]
    )
    def test_is_url(self, resolver, query):
        """Should detect links by scheme or www prefix."""
        assert resolver.is_url(query)

    @pytest.mark.parametrize("query", ["never gonna give you up", ""])
    def test_is_not_url(self, resolver, query):
        """Should treat free text as a search query."""
        assert not resolver.is_url(query)

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/playlist?list=PL123",
            "https://soundcloud.com/artist/sets/album",
            "https://example.com/watch?list=PL123",
        ],
    )
    def test_is_playlist(self, resolver, url):
        """Should detect playlist links."""
        assert resolver.is_playlist(url)

    def test_video_in_playlist_is_single_video(self, resolver):
        """Should treat a watch link with a list parameter as one video."""
        assert not resolver.is_playlist(f"https://www.youtube.com/watch?v={VIDEO_ID}&list=PL123")


class TestYouTubeLinks:
    """Tests for video id extraction and URL cleaning."""

    @pytest.mark.parametrize(
        "url",
        [
            f"https://www.youtube.com/watch?v={VIDEO_ID}",
            f"https://youtu.be/{VIDEO_ID}?si=tracking",
            f"https://www.youtube.com/embed/{VIDEO_ID}",
            f"https://youtube.com/shorts/{VIDEO_ID}",
        ],
    )
    def test_extract_video_id(self, url):
        """Should find the eleven character id in every link shape."""
        assert extract_video_id(url) == VIDEO_ID

    def test_clean_drops_extra_parameters(self):
        """Should reduce links to the canonical watch URL."""
        assert clean_youtube_url(f"https://youtu.be/{VIDEO_ID}?t=10&list=PL1") == WATCH_URL

    def test_clean_leaves_other_urls(self):
        """Should leave non-YouTube URLs untouched."""
        url = "https://soundcloud.com/artist/track"
        assert clean_youtube_url(url) == url


# =============================================================================
# Conversion Tests
# =============================================================================


class TestInfoToTrack:
    """Tests for converting yt-dlp info into tracks and search results."""

    def test_info_to_track_success(self, resolver, mock_info):
        """Should build a track from the page URL, not the media URL."""
        track = resolver._info_to_track(mock_info)

        assert track is not None
        assert track.title == "Test Song"
        assert track.artist == "Test Artist"
        assert track.duration == 180
        assert track.url == WATCH_URL
        assert track.thumbnail == "https://example.com/thumb.jpg"
        assert track.source is TrackSource.YOUTUBE

    def test_flat_entry_with_only_id(self, resolver):
        """Should build a watch URL for flat playlist entries."""
        track = resolver._info_to_track(YtDlpTrackInfo(id=VIDEO_ID, title="Flat"))
        assert track.url == WATCH_URL

    def test_missing_url(self, resolver):
        """Should return None when there is no URL at all."""
        assert resolver._info_to_track(YtDlpTrackInfo(title="Nowhere")) is None

    def test_invalid_track_is_skipped(self, resolver):
        """Should return None when the info cannot form a valid track."""
        info = YtDlpTrackInfo(webpage_url="https://example.com/long", duration=100_000)
        assert resolver._info_to_track(info) is None

    @pytest.mark.parametrize(
        "fields,expected",
        [
            ({"creator": "Creator"}, "Creator"),
            ({"uploader": "Uploader", "channel": "Channel"}, "Uploader"),
            ({"channel": "Channel"}, "Channel"),
            ({}, "Unknown Artist"),
        ],
    )
    def test_artist_fallbacks(self, resolver, fields, expected):
        """Should fall back through creator, uploader and channel."""
        info = YtDlpTrackInfo(webpage_url=WATCH_URL, **fields)
        assert resolver._info_to_track(info).artist == expected

    def test_thumbnail_from_list(self, resolver):
        """Should use the last thumbnail when no single thumbnail is given."""
        info = YtDlpTrackInfo.model_validate(
            {
                "webpage_url": WATCH_URL,
                "thumbnails": [
                    {"url": "https://i.example.com/small"},
                    {"url": "https://i.example.com/big"},
                ],
            }
        )
        assert resolver._info_to_track(info).thumbnail == "https://i.example.com/big"

    def test_source_detection(self, resolver):
        """Should tag SoundCloud links with their source."""
        info = YtDlpTrackInfo(webpage_url="https://soundcloud.com/artist/track")
        assert resolver._info_to_track(info).source is TrackSource.SOUNDCLOUD

    def test_info_to_result(self, resolver, mock_info):
        """Should build a search result keyed by the video id."""
        result = resolver._info_to_result(mock_info)
        assert result.id == VIDEO_ID
        assert result.url == WATCH_URL
        assert result.thumbnail == "https://example.com/thumb.jpg"

    def test_garbage_fields_are_coerced(self):
        """Should tolerate empty strings and bad durations from yt-dlp."""
        info = YtDlpTrackInfo.model_validate(
            {"title": "", "artist": "  ", "duration": "n/a", "formats": None}
        )
        assert info.title == "Unknown Title"
        assert info.artist is None
        assert info.duration is None
        assert info.formats == []


class TestStreamURLExtraction:
    """Tests for picking a media URL from format lists."""

    def test_last_audio_format_wins(self, resolver):
        """Should choose the last format that carries audio."""
        formats = [
            AudioFormatInfo(url="https://a.example.com/low", acodec="opus"),
            AudioFormatInfo(url="https://a.example.com/high", acodec="opus"),
            AudioFormatInfo(url="https://a.example.com/video", acodec="none"),
        ]
        assert resolver._extract_stream_from_formats(formats) == "https://a.example.com/high"

    def test_no_audio(self, resolver):
        """Should return None without audio formats."""
        assert resolver._extract_stream_from_formats([]) is None
        assert (
            resolver._extract_stream_from_formats([AudioFormatInfo(url="https://v", acodec="none")])
            is None
        )


# =============================================================================
# Async API Tests
# =============================================================================


class TestResolve:
    """Tests for resolve, search and extract_playlist."""

    @pytest.mark.asyncio
    async def test_resolve_url_is_cleaned(self, resolver, mock_info):
        """Should extract the canonical URL for links."""
        with patch.object(resolver, "_extract_info_sync", return_value=mock_info) as extract:
            track = await resolver.resolve(f"  https://youtu.be/{VIDEO_ID}?list=PL1 ")

        extract.assert_called_once_with(WATCH_URL)
        assert track.title == "Test Song"

    @pytest.mark.asyncio
    async def test_resolve_search_query(self, resolver, mock_info):
        """Should take the first search hit for free text."""
        with patch.object(resolver, "_search_sync", return_value=[mock_info]) as search:
            track = await resolver.resolve("test song")

        search.assert_called_once_with("test song", 1)
        assert track.url == WATCH_URL

    @pytest.mark.asyncio
    async def test_resolve_no_results(self, resolver):
        """Should return None when nothing matches."""
        with patch.object(resolver, "_search_sync", return_value=[]):
            assert await resolver.resolve("nothing at all") is None

    @pytest.mark.asyncio
    async def test_search_text(self, resolver, mock_info):
        """Should pass the limit through and convert every hit."""
        other = YtDlpTrackInfo(id="aaaaaaaaaaa", title="Other")
        with patch.object(resolver, "_search_sync", return_value=[mock_info, other]) as search:
            results = await resolver.search("test", limit=2)

        search.assert_called_once_with("test", 2, "ytsearch")
        assert [r.id for r in results] == [VIDEO_ID, "aaaaaaaaaaa"]

    @pytest.mark.asyncio
    async def test_search_soundcloud(self, resolver):
        """Should search SoundCloud with the scsearch prefix."""
        hit = YtDlpTrackInfo(
            id="123456", title="Set", webpage_url="https://soundcloud.com/dj/set"
        )
        with patch.object(resolver, "_search_sync", return_value=[hit]) as search:
            results = await resolver.search("dj set", "soundcloud", limit=3)

        search.assert_called_once_with("dj set", 3, "scsearch")
        assert results[0].source == TrackSource.SOUNDCLOUD

    @pytest.mark.asyncio
    async def test_search_unsupported_source(self, resolver):
        """Should return no results for a source yt-dlp cannot search."""
        with (
            patch.object(resolver, "_search_sync") as search,
            patch.object(resolver, "_extract_info_sync") as extract,
        ):
            assert await resolver.search("anything", "spotify") == []
            assert await resolver.search(f"https://youtu.be/{VIDEO_ID}", "spotify") == []

        search.assert_not_called()
        extract.assert_not_called()

    @pytest.mark.asyncio
    async def test_search_video_link(self, resolver, mock_info):
        """Should look up a pasted video link directly."""
        with patch.object(resolver, "_extract_info_sync", return_value=mock_info):
            results = await resolver.search(f"https://youtu.be/{VIDEO_ID}")
        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_extract_playlist(self, resolver):
        """Should convert entries and skip ones without a URL."""
        entries = [
            YtDlpTrackInfo(id=VIDEO_ID, title="One"),
            YtDlpTrackInfo(title="Broken"),
            YtDlpTrackInfo(id="bbbbbbbbbbb", title="Two"),
        ]
        with patch.object(resolver, "_extract_playlist_sync", return_value=entries) as extract:
            tracks = await resolver.extract_playlist(PLAYLIST_URL, 10)

        extract.assert_called_once_with(PLAYLIST_URL, 10)
        assert [t.title for t in tracks] == ["One", "Two"]


class TestResolveStreamUrl:
    """Tests for resolve_stream_url."""

    @pytest.mark.asyncio
    async def test_direct_url(self, resolver, mock_info):
        """Should prefer the top-level media URL."""
        with patch.object(resolver, "_extract_info_sync", return_value=mock_info):
            url = await resolver.resolve_stream_url(WATCH_URL)
            assert url == "https://media.example.com/stream.m4a"

    @pytest.mark.asyncio
    async def test_format_fallback(self, resolver):
        """Should fall back to the format list."""
        info = YtDlpTrackInfo.model_validate(
            {"formats": [{"url": "https://a.example.com/opus", "acodec": "opus"}]}
        )
        with patch.object(resolver, "_extract_info_sync", return_value=info):
            assert await resolver.resolve_stream_url(WATCH_URL) == "https://a.example.com/opus"

    @pytest.mark.asyncio
    async def test_failure_raises(self, resolver):
        """Should raise ResourceResolutionError naming the URL."""
        with patch.object(resolver, "_extract_info_sync", return_value=None):
            with pytest.raises(ResourceResolutionError, match="No stream URL found") as exc_info:
                await resolver.resolve_stream_url(WATCH_URL)
        assert exc_info.value.code == "RESOLUTION_FAILED"


# =============================================================================
# Blocking yt-dlp calls
# =============================================================================


class TestSyncExtraction:
    """Tests for the blocking helpers run in worker threads."""

    def test_extract_info_parses_dict(self, resolver, mock_ydl):
        """Should parse the info dict returned by yt-dlp."""
        ydl_cls, ydl = mock_ydl
        ydl.extract_info.return_value = {"id": VIDEO_ID, "title": "Song", "ignored": 1}

        info = resolver._extract_info_sync(WATCH_URL)

        assert info.title == "Song"
        params = ydl_cls.call_args.kwargs["params"]
        assert params["noplaylist"] is True
        assert params["format"] == "bestaudio/best"

    def test_extract_info_errors_become_none(self, resolver, mock_ydl):
        """Should log and swallow extractor errors."""
        _, ydl = mock_ydl
        ydl.extract_info.side_effect = RuntimeError("unavailable")
        assert resolver._extract_info_sync(WATCH_URL) is None

    def test_search_builds_query(self, resolver, mock_ydl):
        """Should use a ytsearch prefix with flat extraction."""
        ydl_cls, ydl = mock_ydl
        ydl.extract_info.return_value = {"entries": [{"id": VIDEO_ID, "title": "Hit"}, None]}

        results = resolver._search_sync("lofi", 3)

        ydl.extract_info.assert_called_once_with("ytsearch3:lofi", download=False)
        assert ydl_cls.call_args.kwargs["params"]["extract_flat"] == "in_playlist"
        assert [r.title for r in results] == ["Hit"]

    def test_search_soundcloud_prefix(self, resolver, mock_ydl):
        """Should build the query from the given search prefix."""
        _, ydl = mock_ydl
        ydl.extract_info.return_value = {"entries": []}

        assert resolver._search_sync("lofi", 2, "scsearch") == []
        ydl.extract_info.assert_called_once_with("scsearch2:lofi", download=False)

    def test_playlist_respects_limit(self, resolver, mock_ydl):
        """Should cap entries and request flat playlist extraction."""
        ydl_cls, ydl = mock_ydl
        ydl.extract_info.return_value = {
            "entries": [{"id": f"{i:011d}", "title": f"T{i}"} for i in range(5)]
        }

        entries = resolver._extract_playlist_sync("https://www.youtube.com/playlist?list=PL1", 2)

        params = ydl_cls.call_args.kwargs["params"]
        assert params["noplaylist"] is False
        assert params["playlistend"] == 2
        assert len(entries) == 2

    def test_custom_format(self):
        """Should pass the configured format to yt-dlp."""
        resolver = YtDlpResolver(AudioSettings(ytdlp_format="bestaudio[ext=m4a]"))
        assert resolver._get_opts().format == "bestaudio[ext=m4a]"

    def test_non_dict_result(self, resolver, mock_ydl):
        """Should return nothing when yt-dlp returns no dict."""
        _, ydl = mock_ydl
        ydl.extract_info.return_value = None
        assert resolver._search_sync("anything") == []
        assert resolver._extract_info_sync(WATCH_URL) is None


def test_resolver_is_also_search_provider():
    """Should double as the dashboard search provider."""
    assert isinstance(YtDlpResolver(), SearchProvider)
