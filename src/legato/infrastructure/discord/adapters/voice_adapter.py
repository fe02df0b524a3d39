"""Discord voice adapters: joining a channel and the per-session voice sink."""

from __future__ import annotations

import asyncio
import logging

import discord

from legato.application.interfaces.voice_sink import AfterCallback, VoiceSink
from legato.domain.shared.exceptions import InfrastructureError, PipelineFailureError
from legato.domain.shared.messages import ErrorMessages, LogTemplates


logger = logging.getLogger(__name__)

CONNECT_TIMEOUT: float = 10.0
RECONNECT_POLL_INTERVAL: float = 0.5

VoiceChannel = discord.VoiceChannel | discord.StageChannel


class DiscordVoiceConnector:
    """Joins (or moves to) a guild voice channel, self-deafened."""

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT) -> None:
        self._connect_timeout = connect_timeout

    async def connect(self, channel: VoiceChannel) -> discord.VoiceClient | None:
        guild = channel.guild
        vc = guild.voice_client

        if isinstance(vc, discord.VoiceClient) and not vc.is_connected():
            logger.warning(LogTemplates.VOICE_STALE_CLEANUP, guild.id)
            try:
                await vc.disconnect(force=True)
            except discord.ClientException as exc:
                logger.debug(LogTemplates.VOICE_CLIENT_ERROR, exc)
            vc = None

        try:
            async with asyncio.timeout(self._connect_timeout):
                if isinstance(vc, discord.VoiceClient):
                    if vc.channel is None or vc.channel.id != channel.id:
                        await vc.move_to(channel)
                        logger.info(LogTemplates.VOICE_MOVED, channel.name)
                else:
                    vc = await channel.connect(self_deaf=True)
                    logger.info(LogTemplates.VOICE_CONNECTED, channel.name, guild.name)
        except TimeoutError:
            logger.error(LogTemplates.VOICE_CONNECTION_TIMEOUT, channel.id)
            return None
        except discord.Forbidden:
            logger.error(LogTemplates.VOICE_NO_PERMISSION, channel.id)
            return None
        except discord.ClientException as exc:
            logger.error(LogTemplates.VOICE_CLIENT_ERROR, exc)
            return None

        await self._ensure_self_deaf(guild, channel)
        return vc if isinstance(vc, discord.VoiceClient) else None

    @staticmethod
    async def _ensure_self_deaf(guild: discord.Guild, channel: VoiceChannel) -> None:
        try:
            await guild.change_voice_state(channel=channel, self_deaf=True)
        except discord.DiscordException as exc:
            logger.debug(LogTemplates.VOICE_SELF_DEAFEN_FAILED, guild.id, exc)


class DiscordVoiceSink(VoiceSink):
    """``VoiceSink`` over one guild's ``discord.VoiceClient``."""

    def __init__(
        self,
        voice_client: discord.VoiceClient,
        poll_interval: float = RECONNECT_POLL_INTERVAL,
    ) -> None:
        self._vc = voice_client
        self._poll_interval = poll_interval
        self._closed = False
        self._disconnect_task: asyncio.Task[None] | None = None

    @property
    def voice_client(self) -> discord.VoiceClient:
        return self._vc

    @property
    def guild_id(self) -> int:
        return self._vc.guild.id

    def play(self, source: discord.AudioSource, after: AfterCallback) -> None:
        if self._closed:
            raise PipelineFailureError(ErrorMessages.VOICE_SINK_CLOSED)
        if not self._vc.is_connected():
            raise InfrastructureError(ErrorMessages.VOICE_NOT_CONNECTED)
        try:
            self._vc.play(source, after=after)
        except discord.ClientException as exc:
            logger.error(LogTemplates.VOICE_CLIENT_ERROR, exc)
            raise PipelineFailureError(str(exc)) from exc

    def stop(self) -> None:
        if self._vc.is_playing() or self._vc.is_paused():
            self._vc.stop()

    def pause(self) -> None:
        if self._vc.is_playing():
            self._vc.pause()

    def resume(self) -> None:
        if self._vc.is_paused():
            self._vc.resume()

    def is_connected(self) -> bool:
        return not self._closed and self._vc.is_connected()

    def is_playing(self) -> bool:
        return self._vc.is_playing()

    async def wait_until_connected(self, timeout: float) -> bool:
        try:
            async with asyncio.timeout(timeout):
                while not self.is_connected():
                    if self._closed:
                        return False
                    await asyncio.sleep(self._poll_interval)
        except TimeoutError:
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._disconnect_task = loop.create_task(self._disconnect())

    async def _disconnect(self) -> None:
        try:
            await self._vc.disconnect(force=True)
            logger.info(LogTemplates.VOICE_DISCONNECTED, self.guild_id)
        except discord.DiscordException:
            logger.exception(LogTemplates.VOICE_CLEANUP_ERROR)
