"""Audio infrastructure - yt-dlp resolver and the FFmpeg pipeline."""

from legato.infrastructure.audio.ffmpeg_pipeline import (
    FFmpegConfig,
    FFmpegPipeline,
    TranscodeProcess,
)
from legato.infrastructure.audio.models import AudioFormatInfo, YtDlpOpts, YtDlpTrackInfo
from legato.infrastructure.audio.ytdlp_resolver import YtDlpResolver

__all__ = [
    "AudioFormatInfo",
    "FFmpegConfig",
    "FFmpegPipeline",
    "TranscodeProcess",
    "YtDlpOpts",
    "YtDlpResolver",
    "YtDlpTrackInfo",
]
