"""
Application Interfaces (Ports)

Abstract interfaces that define contracts between the application
layer and infrastructure adapters. These are the "ports" in
hexagonal architecture.
"""

from legato.application.interfaces.audio_resolver import AudioResolver
from legato.application.interfaces.cache import TtlCache
from legato.application.interfaces.catalog import (
    LyricsData,
    LyricsProvider,
    SearchProvider,
    SearchResult,
)
from legato.application.interfaces.voice_sink import VoiceSink

__all__ = [
    "AudioResolver",
    "TtlCache",
    "VoiceSink",
    "SearchProvider",
    "SearchResult",
    "LyricsProvider",
    "LyricsData",
]
