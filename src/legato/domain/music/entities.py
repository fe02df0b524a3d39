"""Core domain entities for the music bounded context."""

from __future__ import annotations

import random
from datetime import datetime
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from legato.domain.music.value_objects import RepeatMode, TrackSource, new_track_id
from legato.domain.shared.constants import AudioConstants
from legato.domain.shared.datetime_utils import utcnow
from legato.domain.shared.exceptions import InvalidRangeError
from legato.domain.shared.types import (
    DurationSeconds,
    HttpUrlStr,
    NonNegativeInt,
    TrackTitleStr,
    UtcDatetimeField,
    VolumePercent,
)


class Track(BaseModel):
    """Immutable value object representing a playable track."""

    model_config = ConfigDict(
        frozen=True, strict=True, alias_generator=to_camel, populate_by_name=True
    )

    id: str = Field(default_factory=new_track_id, min_length=1)
    title: TrackTitleStr
    artist: str = "Unknown Artist"
    duration: DurationSeconds = 0
    thumbnail: str = ""
    url: HttpUrlStr
    source: TrackSource = TrackSource.YOUTUBE
    requested_by: str = ""
    requested_at: UtcDatetimeField = Field(default_factory=utcnow)

    def with_requester(self, requested_by: str, requested_at: datetime | None = None) -> Track:
        """Return a copy of this track with requester metadata populated."""
        return self.model_copy(
            update={"requested_by": requested_by, "requested_at": requested_at or utcnow()}
        )


class QueueState(BaseModel):
    """Ordered tracks plus a single playback cursor for one session.

    Owned by exactly one ``MusicPlayer``. Every mutator keeps
    ``0 <= current_index < len(tracks)`` while the queue is non-empty and
    clamps the cursor to 0 when it empties.
    """

    model_config = ConfigDict(strict=True, alias_generator=to_camel, populate_by_name=True)

    MIN_VOLUME: ClassVar[int] = AudioConstants.MIN_VOLUME
    MAX_VOLUME: ClassVar[int] = AudioConstants.MAX_VOLUME

    tracks: list[Track] = Field(default_factory=list)
    current_index: NonNegativeInt = 0
    is_playing: bool = False
    is_paused: bool = False
    volume: VolumePercent = AudioConstants.DEFAULT_VOLUME
    repeat_mode: RepeatMode = RepeatMode.OFF
    shuffle: bool = False
    position: NonNegativeInt = 0

    @property
    def is_empty(self) -> bool:
        return not self.tracks

    @property
    def current_track(self) -> Track | None:
        if 0 <= self.current_index < len(self.tracks):
            return self.tracks[self.current_index]
        return None

    @property
    def has_next(self) -> bool:
        return self.current_index < len(self.tracks) - 1

    def index_of(self, track_id: str) -> int:
        """Return the index of ``track_id`` or -1 when absent."""
        for index, track in enumerate(self.tracks):
            if track.id == track_id:
                return index
        return -1

    def append(self, track: Track) -> int:
        """Add a track to the end of the queue and return its index."""
        self.tracks.append(track)
        return len(self.tracks) - 1

    def remove_by_id(self, track_id: str) -> bool:
        """Remove a track, refusing to pull the live track out from under the pipeline."""
        index = self.index_of(track_id)
        if index == -1:
            return False
        if index == self.current_index and self.is_playing:
            return False

        del self.tracks[index]
        if index < self.current_index:
            self.current_index -= 1
        self._clamp_cursor()
        return True

    def move(self, from_index: int, to_index: int) -> None:
        """Move a track with splice+insert semantics, keeping the current track's identity.

        Raises:
            InvalidRangeError: Either index is outside the queue.
        """
        size = len(self.tracks)
        if not 0 <= from_index < size:
            raise InvalidRangeError("fromIndex", from_index)
        if not 0 <= to_index < size:
            raise InvalidRangeError("toIndex", to_index)

        track = self.tracks.pop(from_index)
        self.tracks.insert(to_index, track)

        cursor = self.current_index
        if from_index == cursor:
            self.current_index = to_index
        elif from_index < cursor <= to_index:
            self.current_index = cursor - 1
        elif to_index <= cursor < from_index:
            self.current_index = cursor + 1

    def shuffle_remaining(self, rng: random.Random | None = None) -> bool:
        """Fisher-Yates shuffle everything but the current track, which moves to index 0.

        Toggles the ``shuffle`` flag. Returns False when there is nothing to shuffle.
        """
        if len(self.tracks) <= 1:
            return False

        rng = rng or random.Random()
        current = self.current_track
        remaining = [t for i, t in enumerate(self.tracks) if i != self.current_index]

        for i in range(len(remaining) - 1, 0, -1):
            j = rng.randint(0, i)
            remaining[i], remaining[j] = remaining[j], remaining[i]

        self.tracks = [current, *remaining] if current is not None else remaining
        self.current_index = 0
        self.shuffle = not self.shuffle
        return True

    def set_volume(self, volume: int | float) -> int:
        """Clamp and store a volume, returning the applied value."""
        self.volume = int(max(self.MIN_VOLUME, min(self.MAX_VOLUME, volume)))
        return self.volume

    def mark_playing(self) -> None:
        self.is_playing = True
        self.is_paused = False

    def mark_paused(self) -> None:
        if self.is_playing:
            self.is_paused = True

    def reset_playback(self) -> None:
        """Queue finished: nothing playing and the position reset."""
        self.is_playing = False
        self.is_paused = False
        self.position = 0

    def _clamp_cursor(self) -> None:
        if not self.tracks:
            self.current_index = 0
        elif self.current_index >= len(self.tracks):
            self.current_index = len(self.tracks) - 1

    def to_wire(self) -> dict:
        """camelCase JSON-compatible snapshot for dashboards."""
        return self.model_dump(mode="json", by_alias=True)
