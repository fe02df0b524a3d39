"""Centralized constants for audio, timing, limits and the dashboard wire protocol.

This module provides reusable constants that reduce magic numbers and improve maintainability.
"""

from __future__ import annotations


class AudioConstants:
    """Audio and FFmpeg configuration constants."""

    # FFmpeg Options
    FFMPEG_EXECUTABLE = "ffmpeg"
    FFMPEG_RECONNECT_OPTIONS = "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"

    # Raw PCM output expected by the voice sink
    PCM_FORMAT = "s16le"
    SAMPLE_RATE = 48000
    CHANNELS = 2

    # Grace period between SIGTERM and SIGKILL for a transcode process
    FFMPEG_KILL_AFTER_SECONDS = 5.0

    # yt-dlp Options
    YTDLP_FORMAT_DEFAULT = "bestaudio/best"

    # Volume (percent, gain = volume / 100)
    MIN_VOLUME = 0
    MAX_VOLUME = 100
    DEFAULT_VOLUME = 100


class TimeConstants:
    """Time-related constants in seconds."""

    # Cache TTLs
    STREAM_URL_CACHE_TTL = 300  # 5 minutes
    LYRICS_CACHE_TTL = 3600  # 1 hour

    # Session lifecycle
    SESSION_TTL_HOURS = 24
    ALONE_TIMEOUT = 300  # 5 minutes
    VOICE_RECONNECT_WINDOW = 5.0
    SESSION_SWEEP_INTERVAL = 60.0

    # Playback
    POSITION_TICK_INTERVAL = 1.0

    # Gateway liveness
    HEARTBEAT_INTERVAL = 30.0
    CLIENT_TIMEOUT = 60.0

    # Collaborators
    SERVICE_TIMEOUT = 8.0


class LimitConstants:
    """Numeric limits and constraints."""

    MAX_PLAYLIST_TRACKS = 50
    MAX_CLIENTS_PER_SESSION = 10
    MAX_SEARCH_RESULTS = 20
    MAX_MESSAGE_BYTES = 1024 * 1024
    OUTBOUND_QUEUE_SIZE = 64
    MIN_LYRICS_LENGTH = 30

    SESSION_ID_LENGTH = 8
    SESSION_ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"


class ReconnectConstants:
    """Dashboard client reconnect policy."""

    BASE_DELAY = 1.0
    MAX_DELAY = 30.0
    MAX_ATTEMPTS = 5


class LogLevels:
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class HTTPHeaders:
    """HTTP header names and common values."""

    USER_AGENT = "User-Agent"

    LEGATO_USER_AGENT = "Mozilla/5.0 (compatible; Legato/1.0)"


class UIConstants:
    """Discord presentation constants."""

    EMBED_COLOR = 0xFA2D48
    PRESENCE_TEXT = "/play"
