"""
FFmpeg Audio Pipeline

Infrastructure component that turns a track reference into a raw PCM stream
for the voice sink: resolve a direct media URL (cached), spawn one ffmpeg
transcode process, and wrap its stdout in a volume-controllable source.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from types import TracebackType
from typing import IO, TYPE_CHECKING, Any

import discord

from legato.config.settings import AudioSettings
from legato.domain.shared.constants import AudioConstants
from legato.domain.shared.exceptions import (
    PipelineFailureError,
    ResourceResolutionError,
    StreamSupersededError,
)
from legato.domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from ...application.interfaces.audio_resolver import AudioResolver
    from ...application.interfaces.cache import TtlCache
    from ...domain.music.entities import Track

logger = logging.getLogger(__name__)

SpawnFn = Callable[..., "subprocess.Popen[bytes]"]


@dataclass
class FFmpegConfig:
    """Configuration for FFmpeg audio processing."""

    executable: str = AudioConstants.FFMPEG_EXECUTABLE
    reconnect_options: str = AudioConstants.FFMPEG_RECONNECT_OPTIONS
    extra_input_options: list[str] = field(default_factory=list)

    # Fixed PCM output: 48 kHz, stereo, signed 16-bit little endian
    pcm_format: str = AudioConstants.PCM_FORMAT
    sample_rate: int = AudioConstants.SAMPLE_RATE
    channels: int = AudioConstants.CHANNELS

    @classmethod
    def from_settings(cls, settings: AudioSettings) -> FFmpegConfig:
        return cls(
            executable=settings.ffmpeg_executable,
            reconnect_options=settings.reconnect_options,
        )

    def get_input_options(self, at_position: float = 0) -> list[str]:
        """Options placed before ``-i``: fast input seek plus network reconnects."""
        opts: list[str] = []
        if at_position > 0:
            opts += ["-ss", str(at_position)]
        opts += shlex.split(self.reconnect_options)
        opts += self.extra_input_options
        return opts

    def get_output_options(self) -> list[str]:
        return [
            "-vn",
            "-f", self.pcm_format,
            "-ar", str(self.sample_rate),
            "-ac", str(self.channels),
            "pipe:1",
        ]

    def build_args(self, stream_url: str, at_position: float = 0) -> list[str]:
        return [
            self.executable,
            "-hide_banner",
            "-loglevel", "error",
            *self.get_input_options(at_position),
            "-i", stream_url,
            *self.get_output_options(),
        ]


class TranscodeProcess:
    """Owned handle for one ffmpeg child process.

    ``terminate`` sends SIGTERM without waiting and is safe to call any number
    of times. A daemon thread then collects the exit status, escalating to
    SIGKILL after ``kill_after`` seconds, and closes the stdout pipe. The
    handle is also a context manager that terminates on exit.
    """

    def __init__(
        self,
        args: Sequence[str],
        spawn: SpawnFn = subprocess.Popen,
        kill_after: float = AudioConstants.FFMPEG_KILL_AFTER_SECONDS,
    ) -> None:
        self._args = list(args)
        self._spawn = spawn
        self._kill_after = kill_after
        self._process: subprocess.Popen[bytes] | None = None
        self._terminated = False
        self._reaper: threading.Thread | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def stdout(self) -> IO[bytes]:
        if self._process is None or self._process.stdout is None:
            raise PipelineFailureError(ErrorMessages.TRANSCODE_NOT_STARTED)
        return self._process.stdout

    @property
    def returncode(self) -> int | None:
        return self._process.poll() if self._process is not None else None

    @property
    def is_running(self) -> bool:
        return self._process is not None and not self._terminated and self._process.poll() is None

    def start(self) -> IO[bytes]:
        """Spawn the process and return its stdout pipe.

        Raises:
            PipelineFailureError: The executable could not be launched.
        """
        if self._process is not None:
            return self.stdout
        try:
            self._process = self._spawn(
                self._args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise PipelineFailureError(
                ErrorMessages.TRANSCODE_SPAWN_FAILED.format(error=exc)
            ) from exc
        logger.debug(LogTemplates.FFMPEG_SPAWNED, self._process.pid)
        return self.stdout

    def terminate(self) -> None:
        if self._terminated or self._process is None:
            self._terminated = True
            return
        self._terminated = True
        process = self._process
        try:
            if process.poll() is None:
                process.terminate()
                logger.debug(LogTemplates.FFMPEG_TERMINATED, process.pid)
        except OSError as exc:
            logger.debug(LogTemplates.FFMPEG_PROCESS_CLEANUP_ERROR, exc)

        # Waiting and closing may block on the voice thread's pending read
        self._reaper = threading.Thread(
            target=self._reap, args=(process,), name=f"ffmpeg-reaper-{process.pid}", daemon=True
        )
        self._reaper.start()

    def _reap(self, process: subprocess.Popen[bytes]) -> None:
        try:
            try:
                process.wait(timeout=self._kill_after)
            except subprocess.TimeoutExpired:
                logger.warning(LogTemplates.FFMPEG_KILLED, process.pid, self._kill_after)
                process.kill()
                process.wait()
        except OSError as exc:
            logger.debug(LogTemplates.FFMPEG_PROCESS_CLEANUP_ERROR, exc)
        finally:
            if process.stdout is not None:
                process.stdout.close()
        logger.debug(LogTemplates.FFMPEG_REAPED, process.pid, process.returncode)

    def join(self, timeout: float | None = None) -> bool:
        """Block until a terminated process has been collected; False on timeout."""
        if self._reaper is not None:
            self._reaper.join(timeout)
            return not self._reaper.is_alive()
        return self._process is None

    def __enter__(self) -> TranscodeProcess:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.terminate()


class FFmpegPipeline:
    """Audio pipeline for one playback state machine.

    Holds at most one live ``TranscodeProcess``. Every ``start_stream`` call
    takes a new epoch; a start whose epoch is superseded while resolving is
    abandoned before it spawns anything.
    """

    def __init__(
        self,
        resolver: AudioResolver,
        cache: TtlCache[str],
        settings: AudioSettings | None = None,
        config: FFmpegConfig | None = None,
        spawn: SpawnFn = subprocess.Popen,
    ) -> None:
        """Initialize the pipeline.

        Args:
            resolver: Resolves page URLs to direct media URLs.
            cache: Process-wide stream URL cache shared across sessions.
            settings: Audio settings from application config.
            config: FFmpeg-specific configuration.
            spawn: Process factory, ``subprocess.Popen`` outside tests.
        """
        self._resolver = resolver
        self._cache = cache
        self._settings = settings or AudioSettings()
        self._config = config or FFmpegConfig.from_settings(self._settings)
        self._spawn = spawn

        self._epoch = 0
        self._process: TranscodeProcess | None = None
        self._source: discord.PCMVolumeTransformer[Any] | None = None
        self._volume = self._settings.default_volume

    @property
    def active_process(self) -> TranscodeProcess | None:
        return self._process

    @property
    def volume(self) -> int:
        return self._volume

    async def resolve_stream_url(self, track: Track) -> str:
        """Resolve and cache a direct media URL for ``track``.

        Raises:
            ResourceResolutionError: The resolver failed; the cache entry is evicted.
        """
        key = track.url
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        try:
            stream_url = await self._resolver.resolve_stream_url(track.url)
        except ResourceResolutionError:
            self._cache.invalidate(key)
            raise
        except Exception as exc:
            self._cache.invalidate(key)
            raise ResourceResolutionError(track.url, str(exc)) from exc

        self._cache.put(key, stream_url, self._settings.stream_url_ttl_seconds)
        return stream_url

    async def start_stream(
        self, track: Track, at_position: float = 0
    ) -> discord.PCMVolumeTransformer[Any]:
        """Start a PCM stream for ``track``, replacing any previous one.

        Raises:
            StreamSupersededError: A newer start or ``stop`` arrived while resolving.
            ResourceResolutionError: No direct media URL could be resolved.
            PipelineFailureError: ffmpeg could not be spawned.
        """
        self._epoch += 1
        epoch = self._epoch

        stream_url = await self.resolve_stream_url(track)
        if epoch != self._epoch:
            logger.debug(LogTemplates.STREAM_SUPERSEDED, track.title, epoch)
            raise StreamSupersededError(epoch)

        self._release()

        process = TranscodeProcess(self._config.build_args(stream_url, at_position), self._spawn)
        stdout = process.start()
        self._process = process

        source = discord.PCMVolumeTransformer(discord.PCMAudio(stdout), volume=self._volume / 100)
        self._source = source
        logger.info(LogTemplates.STREAM_STARTED, track.title, at_position)
        return source

    def set_volume(self, volume: int | float) -> int:
        """Clamp to [0, 100] and apply to the live source without restarting it."""
        self._volume = int(max(AudioConstants.MIN_VOLUME, min(AudioConstants.MAX_VOLUME, volume)))
        if self._source is not None:
            self._source.volume = self._volume / 100
        return self._volume

    def stop(self) -> None:
        """Terminate the active process and invalidate pending starts. Idempotent."""
        self._epoch += 1
        self._release()

    def _release(self) -> None:
        process, self._process = self._process, None
        self._source = None
        if process is not None:
            process.terminate()
