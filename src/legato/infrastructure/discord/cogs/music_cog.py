"""Slash-command music cog delegating to the session registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from legato.domain.music.value_objects import PlaybackState, SessionEndReason
from legato.domain.session.entities import Session
from legato.domain.shared.constants import UIConstants
from legato.domain.shared.exceptions import DomainError, ResourceResolutionError
from legato.domain.shared.messages import (
    DiscordUIMessages,
    EmojiConstants,
    ErrorMessages,
    LogTemplates,
)
from legato.infrastructure.discord.adapters.voice_adapter import DiscordVoiceSink
from legato.infrastructure.discord.guards.voice_guards import (
    get_session_player,
    get_voice_channel,
    send_ephemeral,
)

if TYPE_CHECKING:
    from ....config.container import Container

logger = logging.getLogger(__name__)


def build_session_embed(
    session: Session, dashboard_url: str, bot_user: discord.ClientUser | None = None
) -> discord.Embed:
    embed = discord.Embed(
        title=DiscordUIMessages.EMBED_SESSION_TITLE,
        description=DiscordUIMessages.EMBED_SESSION_DESCRIPTION,
        color=UIConstants.EMBED_COLOR,
    )
    embed.add_field(name=DiscordUIMessages.FIELD_SESSION_ID, value=f"`{session.id}`", inline=True)
    embed.add_field(name=DiscordUIMessages.FIELD_CHANNEL, value=session.channel_name, inline=True)
    embed.add_field(
        name=DiscordUIMessages.FIELD_DASHBOARD,
        value=DiscordUIMessages.DASHBOARD_LINK.format(url=dashboard_url),
        inline=False,
    )
    if bot_user is not None:
        embed.set_thumbnail(url=bot_user.display_avatar.url)
    embed.set_footer(text=DiscordUIMessages.EMBED_SESSION_FOOTER)
    embed.timestamp = discord.utils.utcnow()
    return embed


def build_dashboard_view(dashboard_url: str) -> discord.ui.View:
    view = discord.ui.View()
    view.add_item(
        discord.ui.Button(
            label=DiscordUIMessages.BUTTON_OPEN_DASHBOARD,
            style=discord.ButtonStyle.link,
            url=dashboard_url,
            emoji=EmojiConstants.MUSIC,
        )
    )
    return view


class MusicCog(commands.Cog):
    """``/play``, ``/skip`` and ``/stop``; everything else lives on the dashboard."""

    def __init__(self, bot: commands.Bot, container: Container) -> None:
        self.bot = bot
        self.container = container

    async def _ensure_session(
        self,
        interaction: discord.Interaction,
        channel: discord.VoiceChannel | discord.StageChannel,
    ) -> Session | None:
        assert interaction.guild is not None
        registry = self.container.session_registry

        session = registry.get_by_guild(interaction.guild.id)
        if session is not None:
            return session

        permissions = channel.permissions_for(interaction.guild.me)
        if not (permissions.connect and permissions.speak):
            await send_ephemeral(interaction, DiscordUIMessages.ERROR_MISSING_VOICE_PERMISSIONS)
            return None

        voice_client = await self.container.voice_connector.connect(channel)
        if voice_client is None:
            await send_ephemeral(interaction, DiscordUIMessages.ERROR_COULD_NOT_JOIN_VOICE)
            return None

        return registry.create_session(
            interaction.guild.id,
            interaction.guild.name,
            channel.id,
            channel.name,
            DiscordVoiceSink(voice_client),
        )

    @app_commands.command(name="play", description="Play music and get the dashboard link.")
    @app_commands.describe(query="YouTube URL or search query (optional)")
    async def play(self, interaction: discord.Interaction, query: str | None = None) -> None:
        # Defer early because voice connection can exceed the 3-second interaction deadline
        await interaction.response.defer()

        channel = await get_voice_channel(interaction)
        if channel is None:
            return

        session = await self._ensure_session(interaction, channel)
        if session is None:
            return

        if query and query.strip():
            await self._enqueue(interaction, session, query)

        dashboard_url = self.container.settings.gateway.session_url(session.id)
        await interaction.followup.send(
            embed=build_session_embed(session, dashboard_url, self.bot.user),
            view=build_dashboard_view(dashboard_url),
        )

    async def _enqueue(
        self, interaction: discord.Interaction, session: Session, query: str
    ) -> None:
        player = self.container.session_registry.get_player(session.id)
        if player is None:
            return

        requester = getattr(interaction.user, "display_name", interaction.user.name)
        # add_track starts an empty queue itself; an idle queue with history needs a push
        starts_itself = player.queue.is_empty and not player.queue.is_playing
        try:
            track = await player.add_track(query, requester)
            if track is not None and not starts_itself and player.state is PlaybackState.IDLE:
                await player.play(track.id)
        except ResourceResolutionError:
            await send_ephemeral(
                interaction, DiscordUIMessages.ERROR_TRACK_NOT_FOUND.format(query=query)
            )
        except DomainError as exc:
            logger.warning(LogTemplates.QUEUE_ADD_FAILED, query, session.id, exc.message)
            await send_ephemeral(
                interaction, DiscordUIMessages.ERROR_QUEUE_FAILED.format(error=exc.message)
            )

    @app_commands.command(name="skip", description="Skip the current track.")
    async def skip(self, interaction: discord.Interaction) -> None:
        if await get_voice_channel(interaction) is None:
            return

        player = await get_session_player(interaction, self.container.session_registry)
        if player is None:
            return

        track = player.current_track
        if track is None or not player.state.is_active:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NOTHING_PLAYING)
            return

        if player.skip():
            await send_ephemeral(
                interaction, DiscordUIMessages.ACTION_SKIPPED.format(track_title=track.title)
            )
        else:
            await send_ephemeral(interaction, DiscordUIMessages.ERROR_SKIP_FAILED)

    @app_commands.command(name="stop", description="Stop playback and leave the voice channel.")
    async def stop(self, interaction: discord.Interaction) -> None:
        channel = await get_voice_channel(interaction)
        if channel is None:
            return

        assert interaction.guild is not None
        registry = self.container.session_registry
        session = registry.get_by_guild(interaction.guild.id)
        if session is None:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NO_SESSION)
            return

        if session.channel_id != channel.id:
            await send_ephemeral(interaction, DiscordUIMessages.STATE_NOT_SAME_CHANNEL)
            return

        registry.destroy_session(session.id, SessionEndReason.STOPPED)
        await send_ephemeral(interaction, DiscordUIMessages.ACTION_STOPPED)


async def setup(bot: commands.Bot) -> None:
    container = getattr(bot, "container", None)
    if container is None:
        raise RuntimeError(ErrorMessages.CONTAINER_NOT_FOUND)

    await bot.add_cog(MusicCog(bot, container))
