"""Voice channel guard functions for Discord cogs."""

from legato.infrastructure.discord.guards.voice_guards import (
    get_member,
    get_session_player,
    get_voice_channel,
    send_ephemeral,
)

__all__ = [
    "get_member",
    "get_session_player",
    "get_voice_channel",
    "send_ephemeral",
]
