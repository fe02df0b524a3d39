"""Playback state machine for one session.

Owns the session's ``QueueState``, drives the audio pipeline and voice sink,
tracks live position, and applies the track-end transition policy. Events are
published to a single ``PlaybackListener`` attached by the session registry.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from legato.domain.music.value_objects import PlaybackState, RepeatMode, TrackEndReason
from legato.domain.shared.constants import LimitConstants, TimeConstants
from legato.domain.shared.exceptions import (
    InfrastructureError,
    InvalidRangeError,
    PipelineFailureError,
    ResourceResolutionError,
    StreamSupersededError,
    TrackNotFoundError,
)
from legato.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from legato.application.interfaces.audio_resolver import AudioResolver
    from legato.application.interfaces.voice_sink import VoiceSink
    from legato.domain.music.entities import QueueState, Track
    from legato.domain.music.events import PlaybackListener
    from legato.infrastructure.audio.ffmpeg_pipeline import FFmpegPipeline

logger = logging.getLogger(__name__)

# Exit status ffmpeg reports after our own SIGTERM
_TERMINATED_EXIT_CODES = frozenset({0, -15, 255})


class MusicPlayer:
    """Single-writer playback state machine.

    All mutating calls run on the event loop. Stream starts are tagged with a
    generation number; a start or stream-ended callback from an older
    generation is ignored, so a newer ``play``/``seek``/``skip`` always
    supersedes whatever was in flight.
    """

    def __init__(
        self,
        queue: QueueState,
        pipeline: FFmpegPipeline,
        sink: VoiceSink,
        resolver: AudioResolver,
        *,
        label: str = "",
        tick_interval: float = TimeConstants.POSITION_TICK_INTERVAL,
        max_playlist_tracks: int = LimitConstants.MAX_PLAYLIST_TRACKS,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._queue = queue
        self._pipeline = pipeline
        self._sink = sink
        self._resolver = resolver
        self._label = label
        self._tick_interval = tick_interval
        self._max_playlist_tracks = max_playlist_tracks
        self._clock = clock
        self._rng = rng or random.Random()

        self.listener: PlaybackListener | None = None

        self._generation = 0
        self._stream_live = False
        self._pending_end_reason: TrackEndReason | None = None
        self._anchor = 0.0
        self._consecutive_failures = 0
        self._destroyed = False

        self._tick_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

        self._pipeline.set_volume(self._queue.volume)

    # ── Introspection ───────────────────────────────────────────────

    @property
    def queue(self) -> QueueState:
        return self._queue

    @property
    def sink(self) -> VoiceSink:
        return self._sink

    @property
    def state(self) -> PlaybackState:
        if self._destroyed:
            return PlaybackState.DESTROYED
        if self._queue.is_paused:
            return PlaybackState.PAUSED
        if self._queue.is_playing:
            return PlaybackState.PLAYING
        return PlaybackState.IDLE

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def current_track(self) -> Track | None:
        return self._queue.current_track

    def current_position(self) -> int:
        """Elapsed seconds in the current track, frozen while paused."""
        if self._queue.is_paused or not self._queue.is_playing:
            return self._queue.position
        elapsed = max(0, math.floor(self._clock() - self._anchor))
        track = self._queue.current_track
        if track is not None and track.duration:
            elapsed = min(elapsed, track.duration)
        return elapsed

    # ── Operations ──────────────────────────────────────────────────

    async def add_track(self, query: str, requested_by: str) -> Track | None:
        """Resolve ``query`` and append the result (or a capped playlist).

        Playback starts only when the queue was empty and nothing was playing.

        Raises:
            ResourceResolutionError: Nothing playable was found for ``query``.
        """
        if self._destroyed:
            return None

        query = query.strip()
        if not query:
            raise ResourceResolutionError(query)

        if self._resolver.is_url(query) and self._resolver.is_playlist(query):
            tracks = await self._resolver.extract_playlist(query, self._max_playlist_tracks)
            tracks = tracks[: self._max_playlist_tracks]
        else:
            track = await self._resolver.resolve(query)
            tracks = [track] if track is not None else []

        if not tracks:
            logger.warning(LogTemplates.TRACK_RESOLVE_FAILED, query, self._label)
            raise ResourceResolutionError(query)
        if self._destroyed:
            return None

        should_start = self._queue.is_empty and not self._queue.is_playing
        first_index = len(self._queue.tracks)
        for track in tracks:
            self._queue.append(track.with_requester(requested_by))
        first = self._queue.tracks[first_index]

        logger.info(LogTemplates.QUEUE_ENQUEUED, len(tracks), first.title, self._label)
        self._emit_queue_changed()

        if should_start:
            self._queue.current_index = first_index
            await self._start_current()
        return first

    async def play(self, track_id: str | None = None) -> bool:
        """Start ``track_id`` (or restart the cursor track), superseding any stream.

        Raises:
            TrackNotFoundError: ``track_id`` is not in the queue.
        """
        if self._destroyed:
            return False
        if track_id is not None:
            index = self._queue.index_of(track_id)
            if index == -1:
                raise TrackNotFoundError(track_id)
            self._queue.current_index = index
        return await self._start_current()

    def pause(self) -> bool:
        if self.state is not PlaybackState.PLAYING or not self._stream_live:
            return False

        self._queue.position = self.current_position()
        self._sink.pause()
        self._queue.mark_paused()
        self._stop_ticker()
        logger.info(LogTemplates.PLAYBACK_PAUSED, self._label)
        self._emit_queue_changed()
        return True

    def resume(self) -> bool:
        if self.state is not PlaybackState.PAUSED or not self._stream_live:
            return False

        self._sink.resume()
        self._anchor = self._clock() - self._queue.position
        self._queue.mark_playing()
        self._start_ticker()
        logger.info(LogTemplates.PLAYBACK_RESUMED, self._label)
        self._emit_queue_changed()
        return True

    def skip(self) -> bool:
        """End the current track through the same transition as natural completion."""
        if self._destroyed or self._queue.is_empty or not self.state.is_active:
            return False

        logger.info(LogTemplates.TRACK_SKIPPED, self._describe_current(), self._label)
        if self._stream_live:
            self._pending_end_reason = TrackEndReason.SKIPPED
            # The sink's after-callback drives the transition
            self._sink.stop()
        else:
            self._handle_track_end(TrackEndReason.SKIPPED)
        return True

    async def previous(self) -> bool:
        if self._destroyed or self._queue.is_empty:
            return False

        if self._queue.current_index > 0:
            self._queue.current_index -= 1
        elif self._queue.repeat_mode is RepeatMode.ALL:
            self._queue.current_index = len(self._queue.tracks) - 1
        else:
            return False

        await self._start_current()
        return True

    async def seek(self, position: float) -> bool:
        track = self._queue.current_track
        if self._destroyed or track is None:
            return False
        if position < 0 or position > track.duration:
            return False
        return await self._start_current(at_position=int(position), announce=False)

    def set_volume(self, volume: float) -> bool:
        if self._destroyed:
            return False
        applied = self._queue.set_volume(volume)
        self._pipeline.set_volume(applied)
        logger.debug(LogTemplates.VOLUME_CHANGED, applied, self._label)
        self._emit_queue_changed()
        return True

    def set_repeat_mode(self, mode: RepeatMode | str) -> bool:
        if self._destroyed:
            return False
        try:
            repeat_mode = RepeatMode(mode)
        except ValueError:
            return False
        self._queue.repeat_mode = repeat_mode
        logger.info(LogTemplates.REPEAT_MODE_CHANGED, repeat_mode.value, self._label)
        self._emit_queue_changed()
        return True

    def remove_track(self, track_id: str) -> bool:
        if self._destroyed or not self._queue.remove_by_id(track_id):
            return False
        logger.info(LogTemplates.QUEUE_REMOVED, track_id, self._label)
        self._emit_queue_changed()
        return True

    def reorder_queue(self, from_index: int, to_index: int) -> bool:
        if self._destroyed:
            return False
        try:
            self._queue.move(from_index, to_index)
        except InvalidRangeError:
            return False
        logger.info(LogTemplates.QUEUE_MOVED, from_index, to_index, self._label)
        self._emit_queue_changed()
        return True

    def shuffle(self) -> bool:
        if self._destroyed or not self._queue.shuffle_remaining(self._rng):
            return False
        logger.info(LogTemplates.QUEUE_SHUFFLED, self._label)
        self._emit_queue_changed()
        return True

    def destroy(self) -> None:
        """Release the stream, timers and voice connection. Idempotent."""
        if self._destroyed:
            return
        self._destroyed = True
        self._generation += 1
        self._stream_live = False

        self._stop_ticker()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        self._pipeline.stop()
        try:
            self._sink.stop()
        finally:
            self._sink.close()
        self._queue.reset_playback()
        logger.info(LogTemplates.PLAYER_DESTROYED, self._label)

    # ── Stream lifecycle ────────────────────────────────────────────

    async def _start_current(self, at_position: int = 0, *, announce: bool = True) -> bool:
        track = self._queue.current_track
        if track is None or self._destroyed:
            self._go_idle()
            return False

        self._generation += 1
        generation = self._generation
        # Nothing is live until the new source is attached; skip ends the track directly
        self._stream_live = False
        self._pending_end_reason = None
        self._stop_ticker()

        try:
            source = await self._pipeline.start_stream(track, at_position)
        except StreamSupersededError:
            return False
        except (ResourceResolutionError, PipelineFailureError) as exc:
            if generation != self._generation or self._destroyed:
                return False
            logger.warning(LogTemplates.TRACK_UNPLAYABLE, track.title, self._label, exc.message)
            self._stream_live = False
            self._handle_track_end(TrackEndReason.UNPLAYABLE)
            return False

        if generation != self._generation or self._destroyed:
            return False

        current = self._queue.current_track
        if current is None or current.id != track.id:
            logger.info(LogTemplates.TRACK_REMOVED_WHILE_STARTING, track.title, self._label)
            self._pipeline.stop()
            return await self._start_current()

        loop = asyncio.get_running_loop()
        try:
            # Detach the old source first; its after-callback carries a stale generation
            self._sink.stop()
            self._sink.play(source, after=self._make_after(loop, generation))
        except InfrastructureError as exc:
            # Keep the cursor; the voice reconnection window decides what happens next
            logger.warning(LogTemplates.PLAYBACK_VOICE_LOST, track.title, self._label, exc.message)
            self._pipeline.stop()
            self._queue.reset_playback()
            self._emit_queue_changed()
            return False
        except PipelineFailureError as exc:
            logger.warning(LogTemplates.TRACK_UNPLAYABLE, track.title, self._label, exc.message)
            self._pipeline.stop()
            self._stream_live = False
            self._handle_track_end(TrackEndReason.UNPLAYABLE)
            return False

        self._stream_live = True
        self._queue.position = at_position
        self._queue.mark_playing()
        self._anchor = self._clock() - at_position
        self._start_ticker()

        logger.info(LogTemplates.TRACK_STARTED, track.title, at_position, self._label)
        self._emit_queue_changed()
        if announce:
            self._emit("on_track_started", track)
        return True

    def _make_after(
        self, loop: asyncio.AbstractEventLoop, generation: int
    ) -> Callable[[Exception | None], None]:
        def after(error: Exception | None) -> None:
            # Runs on the voice thread
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(self._on_stream_finished, generation, error)

        return after

    def _on_stream_finished(self, generation: int, error: Exception | None) -> None:
        if self._destroyed or generation != self._generation:
            logger.debug(LogTemplates.PLAYBACK_IGNORING_CALLBACK, self._label)
            return

        process = self._pipeline.active_process
        exit_code = process.returncode if process is not None else None
        if error is not None:
            logger.warning(LogTemplates.PLAYBACK_ERROR, self._label, error)
            reason = TrackEndReason.ERROR
        elif self._pending_end_reason is not None:
            reason = self._pending_end_reason
        elif exit_code is not None and exit_code not in _TERMINATED_EXIT_CODES:
            logger.warning(LogTemplates.FFMPEG_EXITED_ABNORMALLY, exit_code, self._label)
            reason = TrackEndReason.ERROR
        else:
            reason = TrackEndReason.COMPLETED
        self._handle_track_end(reason)

    def _handle_track_end(self, reason: TrackEndReason) -> None:
        """Apply the transition policy: repeat one, then next, then wrap on repeat all."""
        if self._destroyed:
            return

        ended = self._queue.current_track
        self._generation += 1
        self._stream_live = False
        self._pending_end_reason = None
        self._stop_ticker()
        self._queue.position = 0

        logger.info(LogTemplates.TRACK_ENDED, self._describe_current(), reason.value, self._label)
        self._emit("on_track_ended", ended, reason)

        if reason in (TrackEndReason.UNPLAYABLE, TrackEndReason.ERROR):
            self._consecutive_failures += 1
        else:
            self._consecutive_failures = 0

        size = len(self._queue.tracks)
        if size == 0 or self._consecutive_failures >= size:
            if self._consecutive_failures:
                logger.warning(LogTemplates.QUEUE_UNPLAYABLE, self._label)
            self._go_idle()
            return

        if self._queue.repeat_mode is RepeatMode.ONE and ended is not None:
            next_index = self._queue.current_index
        elif self._queue.has_next:
            next_index = self._queue.current_index + 1
        elif self._queue.repeat_mode is RepeatMode.ALL:
            next_index = 0
        else:
            self._go_idle()
            return

        self._queue.current_index = next_index
        self._spawn(self._start_current())

    def _go_idle(self) -> None:
        self._stop_ticker()
        self._stream_live = False
        self._consecutive_failures = 0
        self._pipeline.stop()
        was_active = self._queue.is_playing
        self._queue.reset_playback()
        if was_active:
            logger.info(LogTemplates.QUEUE_FINISHED, self._label)
        self._emit_queue_changed()

    # ── Position ticker ─────────────────────────────────────────────

    def _start_ticker(self) -> None:
        self._stop_ticker()
        self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop())

    def _stop_ticker(self) -> None:
        task, self._tick_task = self._tick_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            track = self._queue.current_track
            if track is None or self.state is not PlaybackState.PLAYING:
                return
            position = self.current_position()
            self._queue.position = position
            self._emit("on_position_tick", position, track.duration)

    # ── Helpers ─────────────────────────────────────────────────────

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(LogTemplates.PLAYER_TASK_FAILED, self._label, exc, exc_info=exc)

    def _emit_queue_changed(self) -> None:
        self._emit("on_queue_changed", self._queue)

    def _emit(self, event: str, *args: Any) -> None:
        listener = self.listener
        if listener is None:
            return
        try:
            getattr(listener, event)(*args)
        except Exception:
            logger.exception(LogTemplates.LISTENER_FAILED, event, self._label)

    def _describe_current(self) -> str:
        track = self._queue.current_track
        return track.title if track is not None else "-"
