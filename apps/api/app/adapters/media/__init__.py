"""Media tool adapters."""

from app.core.config import Settings

from .base import MediaToolError, MediaToolkit
from .ffmpeg import FfmpegAudioExtractor, FfmpegFrameExtractor, FfprobeMetadataProbe
from .whisper import WhisperTranscriber
from .ytdlp import YtDlpVideoFetcher


def build_media_toolkit(settings: Settings) -> MediaToolkit:
    """Wire the production adapters from configuration."""
    return MediaToolkit(
        probe=FfprobeMetadataProbe(binary=settings.ffprobe_binary),
        frames=FfmpegFrameExtractor(binary=settings.ffmpeg_binary),
        audio=FfmpegAudioExtractor(binary=settings.ffmpeg_binary),
        transcriber=WhisperTranscriber(api_key=settings.openai_api_key, model=settings.whisper_model),
        fetcher=YtDlpVideoFetcher(format_selector=settings.ytdlp_format),
    )


__all__ = [
    "FfmpegAudioExtractor",
    "FfmpegFrameExtractor",
    "FfprobeMetadataProbe",
    "MediaToolError",
    "MediaToolkit",
    "WhisperTranscriber",
    "YtDlpVideoFetcher",
    "build_media_toolkit",
]
