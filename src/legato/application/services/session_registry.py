"""Session registry: one live playback session per guild.

Creates and tears down sessions, resolves a session's playback state machine,
arms the per-session alone timer, enforces single-subscriber listener
discipline, and periodically sweeps sessions whose TTL elapsed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from legato.application.services.player import MusicPlayer
from legato.domain.music.value_objects import SessionEndReason
from legato.domain.session.entities import Session, generate_session_id
from legato.domain.shared.constants import TimeConstants
from legato.domain.shared.datetime_utils import utcnow
from legato.domain.shared.exceptions import InvalidOperationError, SessionNotFoundError
from legato.domain.shared.messages import LogTemplates

if TYPE_CHECKING:
    from legato.application.interfaces.audio_resolver import AudioResolver
    from legato.application.interfaces.voice_sink import VoiceSink
    from legato.config.settings import SessionSettings
    from legato.domain.music.events import PlaybackListener
    from legato.infrastructure.audio.ffmpeg_pipeline import FFmpegPipeline

logger = logging.getLogger(__name__)

PipelineFactory = Callable[[], "FFmpegPipeline"]


@dataclass
class _SessionEntry:
    session: Session
    player: MusicPlayer
    alone_timer: asyncio.TimerHandle | None = None
    recovering: bool = False


class SessionRegistry:
    """Owns every live session and its ``MusicPlayer``.

    All methods run on the event loop; none of them block.
    """

    def __init__(
        self,
        *,
        resolver: AudioResolver,
        pipeline_factory: PipelineFactory,
        settings: SessionSettings | None = None,
        max_playlist_tracks: int | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._resolver = resolver
        self._pipeline_factory = pipeline_factory
        self._settings = settings
        self._max_playlist_tracks = max_playlist_tracks
        self._now = now

        self._sessions: dict[str, _SessionEntry] = {}
        self._guild_to_session: dict[int, str] = {}

        self._running = False
        self._sweep_task: asyncio.Task[None] | None = None

    @property
    def ttl(self) -> timedelta:
        hours = self._settings.ttl_hours if self._settings else TimeConstants.SESSION_TTL_HOURS
        return timedelta(hours=hours)

    @property
    def sweep_interval(self) -> float:
        if self._settings:
            return self._settings.sweep_interval_seconds
        return TimeConstants.SESSION_SWEEP_INTERVAL

    # ── Lifecycle ───────────────────────────────────────────────────

    def create_session(
        self,
        guild_id: int,
        guild_name: str,
        channel_id: int,
        channel_name: str,
        sink: VoiceSink,
    ) -> Session:
        """Return the guild's live session, or open a new one bound to ``sink``."""
        existing = self.get_by_guild(guild_id)
        if existing is not None:
            return existing

        stale_id = self._guild_to_session.get(guild_id)
        if stale_id is not None:
            self.destroy_session(stale_id, SessionEndReason.EXPIRED)

        session_id = generate_session_id(taken=self._sessions)
        session = Session.open(
            session_id,
            guild_id,
            guild_name,
            channel_id,
            channel_name,
            ttl=self.ttl,
            now=self._now(),
        )

        player_kwargs = {}
        if self._settings is not None:
            player_kwargs["tick_interval"] = self._settings.tick_interval_seconds
        if self._max_playlist_tracks is not None:
            player_kwargs["max_playlist_tracks"] = self._max_playlist_tracks

        player = MusicPlayer(
            session.queue,
            self._pipeline_factory(),
            sink,
            self._resolver,
            label=session_id,
            **player_kwargs,
        )

        self._sessions[session_id] = _SessionEntry(session=session, player=player)
        self._guild_to_session[guild_id] = session_id
        logger.info(LogTemplates.SESSION_CREATED, session_id, guild_name, guild_id)
        return session

    def destroy_session(
        self, session_id: str, reason: SessionEndReason = SessionEndReason.STOPPED
    ) -> bool:
        """Tear a session down. Returns False when it is already gone."""
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False

        listener = entry.player.listener
        if listener is not None:
            try:
                listener.on_session_destroyed(reason)
            except Exception:
                logger.exception(LogTemplates.LISTENER_FAILED, "on_session_destroyed", session_id)
        entry.player.listener = None

        self._cancel_timer(entry)
        try:
            entry.player.destroy()
        finally:
            if self._guild_to_session.get(entry.session.guild_id) == session_id:
                del self._guild_to_session[entry.session.guild_id]

        logger.info(LogTemplates.SESSION_DESTROYED, session_id, reason.value)
        return True

    def destroy_all(self, reason: SessionEndReason = SessionEndReason.SHUTDOWN) -> int:
        destroyed = 0
        for session_id in list(self._sessions):
            if self.destroy_session(session_id, reason):
                destroyed += 1
        return destroyed

    # ── Lookups ─────────────────────────────────────────────────────

    def get_by_id(self, session_id: str) -> Session | None:
        entry = self._sessions.get(session_id)
        if entry is None or entry.session.is_expired(self._now()):
            return None
        return entry.session

    def require(self, session_id: str) -> Session:
        """Like ``get_by_id`` but raises for unknown or expired ids.

        Raises:
            SessionNotFoundError: No live session has ``session_id``.
        """
        session = self.get_by_id(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get_by_guild(self, guild_id: int) -> Session | None:
        session_id = self._guild_to_session.get(guild_id)
        if session_id is None:
            return None
        return self.get_by_id(session_id)

    def get_player(self, session_id: str) -> MusicPlayer | None:
        if self.get_by_id(session_id) is None:
            return None
        return self._sessions[session_id].player

    def all_sessions(self) -> list[Session]:
        now = self._now()
        return [e.session for e in self._sessions.values() if not e.session.is_expired(now)]

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ── Alone timer ─────────────────────────────────────────────────

    def start_alone_timeout(
        self,
        session_id: str,
        seconds: float | None = None,
        on_fire: Callable[[], None] | None = None,
    ) -> bool:
        """Arm (or re-arm) the teardown timer for a session left without listeners."""
        entry = self._sessions.get(session_id)
        if entry is None:
            return False
        if seconds is None:
            seconds = (
                self._settings.alone_timeout_seconds
                if self._settings
                else TimeConstants.ALONE_TIMEOUT
            )

        self._cancel_timer(entry)
        loop = asyncio.get_running_loop()
        entry.alone_timer = loop.call_later(seconds, self._on_alone_timeout, session_id, on_fire)
        logger.info(LogTemplates.ALONE_TIMEOUT_ARMED, session_id, seconds)
        return True

    def cancel_alone_timeout(self, session_id: str) -> bool:
        entry = self._sessions.get(session_id)
        if entry is None or entry.alone_timer is None:
            return False
        self._cancel_timer(entry)
        logger.info(LogTemplates.ALONE_TIMEOUT_CANCELLED, session_id)
        return True

    def has_alone_timeout(self, session_id: str) -> bool:
        entry = self._sessions.get(session_id)
        return entry is not None and entry.alone_timer is not None

    def _on_alone_timeout(self, session_id: str, on_fire: Callable[[], None] | None) -> None:
        entry = self._sessions.get(session_id)
        if entry is None:
            return
        entry.alone_timer = None
        logger.info(LogTemplates.ALONE_TIMEOUT_FIRED, session_id)
        if on_fire is not None:
            try:
                on_fire()
            except Exception:
                logger.exception(LogTemplates.ALONE_TIMEOUT_CALLBACK_FAILED, session_id)
        self.destroy_session(session_id, SessionEndReason.ALONE_TIMEOUT)

    @staticmethod
    def _cancel_timer(entry: _SessionEntry) -> None:
        timer, entry.alone_timer = entry.alone_timer, None
        if timer is not None:
            timer.cancel()

    # ── Listener discipline ─────────────────────────────────────────

    def attach_listener(self, session_id: str, listener: PlaybackListener) -> bool:
        """Attach the session's single subscriber.

        Re-attaching the same listener is a no-op.

        Raises:
            InvalidOperationError: A different listener is already attached.
        """
        entry = self._sessions.get(session_id)
        if entry is None:
            return False

        current = entry.player.listener
        if current is listener:
            return True
        if current is not None:
            raise InvalidOperationError("attach_listener", "listener_attached")

        entry.player.listener = listener
        logger.debug(LogTemplates.LISTENER_ATTACHED, session_id)
        return True

    def detach_listener(self, session_id: str) -> bool:
        entry = self._sessions.get(session_id)
        if entry is None or entry.player.listener is None:
            return False
        entry.player.listener = None
        logger.debug(LogTemplates.LISTENER_DETACHED, session_id)
        return True

    def has_listener(self, session_id: str) -> bool:
        entry = self._sessions.get(session_id)
        return entry is not None and entry.player.listener is not None

    # ── Voice recovery ──────────────────────────────────────────────

    async def recover_voice(self, session_id: str, window: float | None = None) -> bool:
        """Give a dropped voice connection ``window`` seconds to come back.

        Tears the session down with ``voice_disconnected`` when it does not.
        """
        entry = self._sessions.get(session_id)
        if entry is None or entry.recovering:
            return False
        if window is None:
            window = (
                self._settings.voice_reconnect_window_seconds
                if self._settings
                else TimeConstants.VOICE_RECONNECT_WINDOW
            )

        entry.recovering = True
        logger.warning(LogTemplates.VOICE_RECOVERY_STARTED, session_id, window)
        try:
            recovered = window > 0 and await entry.player.sink.wait_until_connected(window)
        finally:
            entry.recovering = False

        if recovered:
            logger.info(LogTemplates.VOICE_RECOVERED, session_id)
            return True

        self.destroy_session(session_id, SessionEndReason.VOICE_DISCONNECTED)
        return False

    # ── Expiry sweeper ──────────────────────────────────────────────

    def start(self) -> None:
        if self._running:
            logger.warning(LogTemplates.SWEEPER_ALREADY_RUNNING)
            return

        self._running = True
        self._sweep_task = asyncio.create_task(self._run_loop())
        logger.info(LogTemplates.SWEEPER_STARTED)

    async def stop(self) -> None:
        self._running = False

        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        logger.info(LogTemplates.SWEEPER_STOPPED)

    @property
    def is_running(self) -> bool:
        return self._running

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.sweep_interval)
            except asyncio.CancelledError:
                break

            try:
                self.sweep_expired()
            except Exception:
                logger.exception(LogTemplates.SWEEPER_CYCLE_FAILED)

    def sweep_expired(self) -> int:
        """Destroy every session whose TTL elapsed and return how many went."""
        now = self._now()
        expired = [sid for sid, e in self._sessions.items() if e.session.is_expired(now)]
        for session_id in expired:
            self.destroy_session(session_id, SessionEndReason.EXPIRED)
        if expired:
            logger.info(LogTemplates.SESSIONS_EXPIRED_SWEPT, len(expired))
        return len(expired)
