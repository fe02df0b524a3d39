"""Discord cogs - command handlers."""

from legato.infrastructure.discord.cogs.event_cog import EventCog
from legato.infrastructure.discord.cogs.music_cog import MusicCog

__all__ = [
    "EventCog",
    "MusicCog",
]
