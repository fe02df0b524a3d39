import asyncio
import itertools
from types import SimpleNamespace

import pytest
import pytest_asyncio

from legato.application.interfaces.audio_resolver import AudioResolver
from legato.application.interfaces.voice_sink import VoiceSink
from legato.domain.music.entities import QueueState, Track
from legato.domain.music.events import PlaybackListener
from legato.domain.music.value_objects import TrackSource
from legato.domain.shared.exceptions import (
    InfrastructureError,
    PipelineFailureError,
    ResourceResolutionError,
    StreamSupersededError,
)

_track_counter = itertools.count(1)


async def drain(rounds: int = 10) -> None:
    """Let callbacks scheduled with call_soon and freshly spawned tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_track(
    title: str | None = None,
    *,
    duration: int = 180,
    url: str | None = None,
    artist: str = "Test Artist",
) -> Track:
    n = next(_track_counter)
    return Track(
        title=title or f"Track {n}",
        artist=artist,
        duration=duration,
        url=url or f"https://www.youtube.com/watch?v=track{n:06d}",
        source=TrackSource.YOUTUBE,
    )


# ============================================================================
# Fakes
# ============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResolver(AudioResolver):
    """Resolver backed by dictionaries instead of yt-dlp."""

    def __init__(self) -> None:
        self.tracks: dict[str, Track] = {}
        self.playlists: dict[str, list[Track]] = {}
        self.stream_urls: dict[str, str] = {}
        self.unresolvable: set[str] = set()
        self.resolve_calls: list[str] = []
        self.stream_calls: list[str] = []

    async def resolve(self, query: str) -> Track | None:
        self.resolve_calls.append(query)
        if query in self.unresolvable:
            return None
        if query not in self.tracks:
            self.tracks[query] = make_track(query)
        return self.tracks[query]

    async def extract_playlist(self, url: str, limit: int = 50) -> list[Track]:
        return list(self.playlists.get(url, []))[:limit]

    async def resolve_stream_url(self, url: str) -> str:
        self.stream_calls.append(url)
        if url in self.unresolvable:
            raise ResourceResolutionError(url)
        return self.stream_urls.get(url, f"https://media.example.com/{len(self.stream_calls)}")

    def is_url(self, query: str) -> bool:
        return query.startswith(("http://", "https://"))

    def is_playlist(self, url: str) -> bool:
        return "list=" in url


class FakePipeline:
    """Stand-in for FFmpegPipeline that hands out sentinel sources."""

    def __init__(self) -> None:
        self.started: list[tuple[str, float]] = []
        self.failing_urls: set[str] = set()
        self.volume: int | None = None
        self.stop_calls = 0
        self.exit_code: int | None = 0
        self._live = False

    @property
    def active_process(self):
        if not self._live:
            return None
        return SimpleNamespace(returncode=self.exit_code)

    async def start_stream(self, track: Track, at_position: float = 0):
        if track.url in self.failing_urls:
            raise ResourceResolutionError(track.url)
        self.started.append((track.id, at_position))
        self._live = True
        return SimpleNamespace(track_id=track.id, at_position=at_position)

    def set_volume(self, volume):
        self.volume = int(volume)
        return self.volume

    def stop(self) -> None:
        self.stop_calls += 1
        self._live = False


class GatedPipeline(FakePipeline):
    """FakePipeline whose starts park until ``release``, superseded like the real one."""

    def __init__(self) -> None:
        super().__init__()
        self._gate = asyncio.Event()
        self._gate.set()
        self._epoch = 0

    def hold(self) -> None:
        self._gate.clear()

    def release(self) -> None:
        self._gate.set()

    async def start_stream(self, track: Track, at_position: float = 0):
        self._epoch += 1
        epoch = self._epoch
        await self._gate.wait()
        if epoch != self._epoch:
            raise StreamSupersededError(epoch)
        return await super().start_stream(track, at_position)

    def stop(self) -> None:
        self._epoch += 1
        super().stop()


class FakeSink(VoiceSink):
    """Voice sink that records calls; ``stop`` fires the pending after-callback like discord.py."""

    def __init__(self) -> None:
        self.sources: list = []
        self.connected = True
        self.paused = False
        self.closed = False
        self.fail_play = False
        self.play_attempts = 0
        self.reconnects = False
        self._after = None

    def play(self, source, after) -> None:
        self.play_attempts += 1
        if self.fail_play:
            raise PipelineFailureError("Already playing audio.")
        if not self.connected:
            raise InfrastructureError("Voice connection was lost")
        self.sources.append(source)
        self._after = after
        self.paused = False

    def stop(self) -> None:
        after, self._after = self._after, None
        if after is not None:
            after(None)

    def finish(self, error: Exception | None = None) -> None:
        """Simulate the source reaching its natural end."""
        after, self._after = self._after, None
        if after is not None:
            after(error)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def is_connected(self) -> bool:
        return self.connected

    def is_playing(self) -> bool:
        return self._after is not None and not self.paused

    async def wait_until_connected(self, timeout: float) -> bool:
        if self.reconnects:
            self.connected = True
        return self.connected

    def close(self) -> None:
        self.closed = True
        self.connected = False


class RecordingListener(PlaybackListener):
    """Captures listener callbacks as simple tuples in arrival order."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_queue_changed(self, queue: QueueState) -> None:
        self.events.append(("queue", [t.id for t in queue.tracks], queue.current_index))

    def on_track_started(self, track: Track) -> None:
        self.events.append(("started", track.id))

    def on_track_ended(self, track, reason) -> None:
        self.events.append(("ended", track.id if track else None, reason))

    def on_position_tick(self, position: int, duration: int) -> None:
        self.events.append(("tick", position, duration))

    def on_session_destroyed(self, reason) -> None:
        self.events.append(("destroyed", reason))

    def kinds(self) -> list[str]:
        return [event[0] for event in self.events]

    def of(self, kind: str) -> list[tuple]:
        return [event for event in self.events if event[0] == kind]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def pipeline():
    return FakePipeline()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest_asyncio.fixture
async def player(resolver, pipeline, sink, listener, clock):
    """A MusicPlayer over an empty queue with every collaborator faked."""
    from legato.application.services.player import MusicPlayer

    music_player = MusicPlayer(
        QueueState(),
        pipeline,
        sink,
        resolver,
        label="TEST1234",
        tick_interval=3600,
        clock=clock,
    )
    music_player.listener = listener
    yield music_player
    music_player.destroy()
