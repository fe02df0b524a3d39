"""Dependency Injection Container

Manages the application's dependency graph, providing lazy initialization
and lifecycle management for the session registry, the audio stack and the
dashboard gateway. Components are created on-demand and cached for reuse
throughout the application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..domain.shared.messages import ErrorMessages, LogTemplates

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from discord.ext.commands import Bot

    from ..application.interfaces.catalog import LyricsData
    from ..application.services.session_registry import SessionRegistry
    from ..infrastructure.audio.ffmpeg_pipeline import FFmpegPipeline
    from ..infrastructure.audio.ytdlp_resolver import YtDlpResolver
    from ..infrastructure.cache.ttl_cache import InMemoryTtlCache
    from ..infrastructure.discord.adapters.voice_adapter import DiscordVoiceConnector
    from ..infrastructure.lyrics.lyrics_ovh import LyricsOvhProvider
    from ..infrastructure.web.gateway import SyncGateway
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    Components are lazily initialized when first accessed. The stream URL
    cache is process-wide and shared by every session's pipeline.
    """

    settings: Settings
    _bot: Bot | None = None

    # Caches
    _stream_url_cache: InMemoryTtlCache[str] | None = None
    _lyrics_cache: InMemoryTtlCache[LyricsData] | None = None

    # Infrastructure adapters
    _audio_resolver: YtDlpResolver | None = None
    _voice_connector: DiscordVoiceConnector | None = None
    _lyrics_provider: LyricsOvhProvider | None = None

    # Application services
    _session_registry: SessionRegistry | None = None

    # Dashboard gateway
    _gateway: SyncGateway | None = None

    def set_bot(self, bot: Bot) -> None:
        """Set the Discord bot instance."""
        self._bot = bot

    @property
    def bot(self) -> Bot:
        """Get the Discord bot instance."""
        if self._bot is None:
            raise RuntimeError(ErrorMessages.BOT_NOT_INITIALIZED)
        return self._bot

    # === Caches ===

    @property
    def stream_url_cache(self) -> InMemoryTtlCache[str]:
        if self._stream_url_cache is None:
            from ..infrastructure.cache.ttl_cache import InMemoryTtlCache

            self._stream_url_cache = InMemoryTtlCache()
        return self._stream_url_cache

    @property
    def lyrics_cache(self) -> InMemoryTtlCache[LyricsData]:
        if self._lyrics_cache is None:
            from ..infrastructure.cache.ttl_cache import InMemoryTtlCache

            self._lyrics_cache = InMemoryTtlCache()
        return self._lyrics_cache

    # === Infrastructure Adapters ===

    @property
    def audio_resolver(self) -> YtDlpResolver:
        """yt-dlp backed resolver; also the dashboard's search provider."""
        if self._audio_resolver is None:
            from ..infrastructure.audio.ytdlp_resolver import YtDlpResolver

            self._audio_resolver = YtDlpResolver(self.settings.audio)
        return self._audio_resolver

    @property
    def voice_connector(self) -> DiscordVoiceConnector:
        if self._voice_connector is None:
            from ..infrastructure.discord.adapters.voice_adapter import DiscordVoiceConnector

            self._voice_connector = DiscordVoiceConnector()
        return self._voice_connector

    @property
    def lyrics_provider(self) -> LyricsOvhProvider:
        if self._lyrics_provider is None:
            from ..infrastructure.lyrics.lyrics_ovh import LyricsOvhProvider

            self._lyrics_provider = LyricsOvhProvider(self.lyrics_cache, self.settings.services)
        return self._lyrics_provider

    def create_pipeline(self) -> FFmpegPipeline:
        """Build a fresh pipeline for one session."""
        from ..infrastructure.audio.ffmpeg_pipeline import FFmpegPipeline

        return FFmpegPipeline(self.audio_resolver, self.stream_url_cache, self.settings.audio)

    # === Application Services ===

    @property
    def session_registry(self) -> SessionRegistry:
        if self._session_registry is None:
            from ..application.services.session_registry import SessionRegistry

            self._session_registry = SessionRegistry(
                resolver=self.audio_resolver,
                pipeline_factory=self.create_pipeline,
                settings=self.settings.session,
                max_playlist_tracks=self.settings.audio.max_playlist_tracks,
            )
        return self._session_registry

    # === Dashboard Gateway ===

    @property
    def gateway(self) -> SyncGateway:
        if self._gateway is None:
            from ..infrastructure.web.gateway import SyncGateway

            self._gateway = SyncGateway(
                self.session_registry,
                search_provider=self.audio_resolver,
                lyrics_provider=self.lyrics_provider,
                settings=self.settings.gateway,
                service_settings=self.settings.services,
            )
        return self._gateway

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Start the session sweeper and, when enabled, the dashboard gateway."""
        self.session_registry.start()
        if self.settings.gateway.enabled:
            await self.gateway.start()

    async def shutdown(self) -> None:
        """Tear down every session, then stop background services."""
        if self._session_registry is not None:
            self._session_registry.destroy_all()
            await self._session_registry.stop()

        if self._gateway is not None:
            try:
                await self._gateway.stop()
            except Exception as exc:
                logger.warning(LogTemplates.GATEWAY_STOP_FAILED, exc)

        if self._lyrics_provider is not None:
            await self._lyrics_provider.close()

        if self._stream_url_cache is not None:
            self._stream_url_cache.clear()
        if self._lyrics_cache is not None:
            self._lyrics_cache.clear()


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
