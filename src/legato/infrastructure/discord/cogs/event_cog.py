"""Discord event listeners that drive session lifecycle from voice and guild events."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import discord
from discord.ext import commands

from legato.domain.music.value_objects import SessionEndReason
from legato.domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from ....application.services.session_registry import SessionRegistry
    from ....config.container import Container

logger = logging.getLogger(__name__)

VoiceChannel = discord.VoiceChannel | discord.StageChannel


class EventCog(commands.Cog):
    """Maps voice presence onto session lifecycle.

    The bot being left alone arms the session's alone timer, a listener
    joining cancels it, and the bot itself dropping out of voice opens the
    reconnection window.
    """

    def __init__(self, bot: commands.Bot, container: Container) -> None:
        self.bot = bot
        self.container = container
        self._recoveries: set[asyncio.Task[Any]] = set()

    @property
    def registry(self) -> SessionRegistry:
        return self.container.session_registry

    async def cog_unload(self) -> None:
        for task in list(self._recoveries):
            task.cancel()
        self._recoveries.clear()

    # ── Guild events ────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        session = self.registry.get_by_guild(guild.id)
        if session is None:
            return

        logger.info(LogTemplates.GUILD_REMOVED, guild.name, guild.id)
        self.registry.destroy_session(session.id, SessionEndReason.STOPPED)

    # ── Voice events ────────────────────────────────────────────────

    @commands.Cog.listener()
    async def on_voice_state_update(
        self, member: discord.Member, before: discord.VoiceState, after: discord.VoiceState
    ) -> None:
        if self.bot.user is not None and member.id == self.bot.user.id:
            self._on_bot_voice_update(member.guild, before, after)
        elif not member.bot:
            self._on_listener_voice_update(member.guild, before, after)

    def _on_listener_voice_update(
        self, guild: discord.Guild, before: discord.VoiceState, after: discord.VoiceState
    ) -> None:
        session = self.registry.get_by_guild(guild.id)
        if session is None:
            return

        bot_channel = self._bot_voice_channel(guild)
        if bot_channel is None:
            return

        was_in = _channel_id(before) == bot_channel.id
        is_in = _channel_id(after) == bot_channel.id
        if was_in == is_in:
            # Mute/deafen toggles, or movement between other channels
            return

        if is_in:
            if self.registry.has_alone_timeout(session.id):
                logger.info(LogTemplates.VOICE_LISTENER_RETURNED, bot_channel.name, guild.id)
            self.registry.cancel_alone_timeout(session.id)
        elif not any(not m.bot for m in bot_channel.members):
            logger.info(LogTemplates.VOICE_CHANNEL_EMPTY, bot_channel.name, guild.id)
            self.registry.start_alone_timeout(session.id)

    def _on_bot_voice_update(
        self, guild: discord.Guild, before: discord.VoiceState, after: discord.VoiceState
    ) -> None:
        # Only a full drop counts; moving channels keeps the connection
        if before.channel is None or after.channel is not None:
            return

        session = self.registry.get_by_guild(guild.id)
        if session is None:
            return

        logger.warning(LogTemplates.VOICE_BOT_DISCONNECTED, guild.id)
        task = asyncio.create_task(self.registry.recover_voice(session.id))
        self._recoveries.add(task)
        task.add_done_callback(self._recoveries.discard)

    def _bot_voice_channel(self, guild: discord.Guild) -> VoiceChannel | None:
        voice_client = discord.utils.get(self.bot.voice_clients, guild=guild)
        channel = getattr(voice_client, "channel", None)
        if isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            return channel
        return None

    # ── Prefix command errors ───────────────────────────────────────

    @commands.Cog.listener()
    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, commands.CommandNotFound):
            return

        logger.exception(
            LogTemplates.COMMAND_ERROR_UNHANDLED,
            getattr(ctx.command, "qualified_name", "<unknown>"),
            exc_info=getattr(error, "original", error),
        )


def _channel_id(state: discord.VoiceState) -> int | None:
    return state.channel.id if state.channel is not None else None


async def setup(bot: commands.Bot) -> None:
    container = getattr(bot, "container", None)
    if container is None:
        raise RuntimeError(ErrorMessages.CONTAINER_NOT_FOUND)

    await bot.add_cog(EventCog(bot, container))
