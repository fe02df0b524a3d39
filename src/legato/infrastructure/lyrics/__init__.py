"""Lyrics adapters."""

from legato.infrastructure.lyrics.lyrics_ovh import LyricsOvhProvider

__all__ = ["LyricsOvhProvider"]
