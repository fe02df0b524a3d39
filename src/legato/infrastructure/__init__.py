"""Infrastructure layer - external systems integration.

This layer contains implementations for:
- Audio (yt-dlp, FFmpeg)
- Cache (in-memory TTL cache)
- Discord (bot, cogs, voice adapters)
- Lyrics (lyrics.ovh)
- Web (dashboard gateway and client)
"""
