"""Immutable value objects for the music bounded context."""

from __future__ import annotations

import uuid
from enum import Enum, StrEnum


def new_track_id() -> str:
    """Opaque unique token for a queued track."""
    return uuid.uuid4().hex


class TrackSource(StrEnum):
    """Where a track's media originates."""

    YOUTUBE = "youtube"
    SPOTIFY = "spotify"
    SOUNDCLOUD = "soundcloud"


class RepeatMode(StrEnum):
    """Repeat policy applied when a track ends."""

    OFF = "off"
    ONE = "one"  # Replay current track
    ALL = "all"  # Wrap to the start of the queue


class PlaybackState(Enum):
    """Playback state of a session's player.

    State transitions:
    - IDLE -> PLAYING (start playback)
    - PLAYING -> PAUSED (pause)
    - PAUSED -> PLAYING (resume)
    - PLAYING/PAUSED -> PLAYING (track end with a successor, seek, play)
    - PLAYING/PAUSED -> IDLE (queue finished)
    - Any -> DESTROYED (teardown, terminal)
    """

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    DESTROYED = "destroyed"

    @property
    def is_active(self) -> bool:
        return self in {PlaybackState.PLAYING, PlaybackState.PAUSED}


class TrackEndReason(Enum):
    """Reasons a track stream can end."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"
    UNPLAYABLE = "unplayable"


class SessionEndReason(StrEnum):
    """Reasons a session can be torn down; surfaced to dashboards."""

    STOPPED = "stopped"
    VOICE_DISCONNECTED = "voice_disconnected"
    ALONE_TIMEOUT = "alone_timeout"
    EXPIRED = "expired"
    SHUTDOWN = "shutdown"

    @property
    def description(self) -> str:
        return _SESSION_END_DESCRIPTIONS[self]


_SESSION_END_DESCRIPTIONS = {
    SessionEndReason.STOPPED: "Playback was stopped and the session closed.",
    SessionEndReason.VOICE_DISCONNECTED: "The bot was disconnected from the voice channel.",
    SessionEndReason.ALONE_TIMEOUT: "Nobody was left in the voice channel.",
    SessionEndReason.EXPIRED: "The session expired.",
    SessionEndReason.SHUTDOWN: "The bot is shutting down.",
}
