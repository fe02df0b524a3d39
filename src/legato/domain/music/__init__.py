"""
Music Bounded Context

Domain logic for tracks, the queue cursor, and playback events.
"""

from legato.domain.music.entities import QueueState, Track
from legato.domain.music.events import PlaybackListener
from legato.domain.music.value_objects import (
    PlaybackState,
    RepeatMode,
    SessionEndReason,
    TrackEndReason,
    TrackSource,
)

__all__ = [
    # Entities
    "Track",
    "QueueState",
    # Value Objects
    "TrackSource",
    "RepeatMode",
    "PlaybackState",
    "TrackEndReason",
    "SessionEndReason",
    # Events
    "PlaybackListener",
]
