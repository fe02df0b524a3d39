"""Typed observer interface between a playback state machine and its subscriber."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from legato.domain.music.entities import QueueState, Track
    from legato.domain.music.value_objects import SessionEndReason, TrackEndReason


class PlaybackListener(ABC):
    """Receives state-machine events for one session.

    Callbacks run synchronously on the event loop in the order the
    underlying transitions happened. Implementations must not block.
    """

    @abstractmethod
    def on_queue_changed(self, queue: QueueState) -> None:
        """The queue snapshot changed (tracks, cursor, flags or volume)."""

    @abstractmethod
    def on_track_started(self, track: Track) -> None:
        """A new stream for ``track`` is live."""

    @abstractmethod
    def on_track_ended(self, track: Track | None, reason: TrackEndReason) -> None:
        """The current stream stopped, before the next transition is applied."""

    @abstractmethod
    def on_position_tick(self, position: int, duration: int) -> None:
        """Roughly once a second while playing."""

    def on_session_destroyed(self, reason: SessionEndReason) -> None:
        """The owning session is being torn down."""
        return None
