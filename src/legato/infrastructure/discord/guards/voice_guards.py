"""Precondition checks for slash commands.

Each guard either returns what the command needs or answers the interaction
with an ephemeral reason and returns None, so callers just bail out on None.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord

from legato.domain.shared.messages import DiscordUIMessages

if TYPE_CHECKING:
    from legato.application.services.player import MusicPlayer
    from legato.application.services.session_registry import SessionRegistry


async def send_ephemeral(interaction: discord.Interaction, message: str) -> None:
    """Reply privately, as a followup if the interaction was already answered or deferred."""
    if interaction.response.is_done():
        await interaction.followup.send(message, ephemeral=True)
    else:
        await interaction.response.send_message(message, ephemeral=True)


async def _require_guild(interaction: discord.Interaction) -> discord.Guild | None:
    if interaction.guild is None:
        await send_ephemeral(interaction, DiscordUIMessages.STATE_SERVER_ONLY)
    return interaction.guild


async def get_member(interaction: discord.Interaction) -> discord.Member | None:
    if await _require_guild(interaction) is None:
        return None

    user = interaction.user
    if not isinstance(user, discord.Member):
        await send_ephemeral(interaction, DiscordUIMessages.STATE_VERIFY_VOICE_FAILED)
        return None

    return user


async def get_voice_channel(
    interaction: discord.Interaction,
) -> discord.VoiceChannel | discord.StageChannel | None:
    """Return the caller's voice channel, replying with an error when they are not in one."""
    member = await get_member(interaction)
    if member is None:
        return None

    if not member.voice or not member.voice.channel:
        await send_ephemeral(interaction, DiscordUIMessages.STATE_NEED_TO_BE_IN_VOICE)
        return None

    return member.voice.channel


async def get_session_player(
    interaction: discord.Interaction, registry: SessionRegistry
) -> MusicPlayer | None:
    """The player of this guild's session; a session elsewhere does not count."""
    guild = await _require_guild(interaction)
    if guild is None:
        return None

    session = registry.get_by_guild(guild.id)
    player = registry.get_player(session.id) if session is not None else None
    if player is None:
        await send_ephemeral(interaction, DiscordUIMessages.STATE_NO_SESSION)
        return None

    return player
