"""Media tool interfaces consumed by the processing pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import io
import wave

PCM_SAMPLE_RATE = 16000
PCM_CHANNELS = 1
PCM_SAMPLE_WIDTH = 2


class MediaToolError(Exception):
    """Raised when an external media tool or service call fails."""


class ProbeError(MediaToolError):
    """Metadata could not be read from the media file."""


class FrameExtractionError(MediaToolError):
    """A still frame could not be produced at the requested offset."""


class AudioExtractionError(MediaToolError):
    """The audio track could not be decoded."""


class TranscriptionError(MediaToolError):
    """The transcription service rejected or failed the request."""


class RemoteFetchError(MediaToolError):
    """The remote video could not be downloaded."""


@dataclass(frozen=True, slots=True)
class ProbeResult:
    duration_seconds: float
    width: int
    height: int
    frame_rate_numerator: int
    frame_rate_denominator: int


@dataclass(frozen=True, slots=True)
class TranscriptionResult:
    text: str
    duration_seconds: float
    language: str | None = None
    confidence: float | None = None


class MetadataProbe(ABC):
    @abstractmethod
    async def probe(self, media_path: str) -> ProbeResult:
        """Read duration, dimensions and frame rate."""


class FrameExtractor(ABC):
    @abstractmethod
    async def extract_frame(self, media_path: str, offset_seconds: int) -> bytes:
        """Return one encoded still image taken at ``offset_seconds``."""


class AudioExtractor(ABC):
    @abstractmethod
    async def extract_audio(self, media_path: str) -> bytes:
        """Return mono 16 kHz signed 16-bit PCM; empty when the file has no audio."""


class Transcriber(ABC):
    @abstractmethod
    async def transcribe(self, pcm: bytes) -> TranscriptionResult:
        """Transcribe mono 16 kHz PCM audio."""


class RemoteVideoFetcher(ABC):
    @abstractmethod
    async def fetch(self, url: str, destination_dir: str) -> str:
        """Download ``url`` into ``destination_dir`` and return the local media path."""


@dataclass(slots=True)
class MediaToolkit:
    """The set of adapters one pipeline run depends on."""

    probe: MetadataProbe
    frames: FrameExtractor
    audio: AudioExtractor
    transcriber: Transcriber
    fetcher: RemoteVideoFetcher


def pcm_to_wav(pcm: bytes) -> bytes:
    """Wrap raw PCM produced by the audio extractor in a WAV container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as handle:
        handle.setnchannels(PCM_CHANNELS)
        handle.setsampwidth(PCM_SAMPLE_WIDTH)
        handle.setframerate(PCM_SAMPLE_RATE)
        handle.writeframes(pcm)
    return buffer.getvalue()


__all__ = [
    "AudioExtractionError",
    "AudioExtractor",
    "FrameExtractionError",
    "FrameExtractor",
    "MediaToolError",
    "MediaToolkit",
    "MetadataProbe",
    "PCM_SAMPLE_RATE",
    "ProbeError",
    "ProbeResult",
    "RemoteFetchError",
    "RemoteVideoFetcher",
    "Transcriber",
    "TranscriptionError",
    "TranscriptionResult",
    "pcm_to_wav",
]
