"""ffmpeg/ffprobe subprocess adapters."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
from typing import Any

from app.adapters.media.base import (
    PCM_SAMPLE_RATE,
    AudioExtractionError,
    AudioExtractor,
    FrameExtractionError,
    FrameExtractor,
    MetadataProbe,
    ProbeError,
    ProbeResult,
)

logger = logging.getLogger(__name__)

# ffmpeg reports these when the input has no stream to map into the output.
_NO_AUDIO_MARKERS = (
    "does not contain any stream",
    "matches no streams",
    "Output file is empty",
)
_STDERR_TAIL = 400


@dataclass(slots=True)
class _ProcessResult:
    returncode: int
    stdout: bytes
    stderr: str


async def _run_process(*args: str) -> _ProcessResult:
    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise
    return _ProcessResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout,
        stderr=stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:],
    )


def parse_frame_rate(value: str | None) -> tuple[int, int]:
    """Split an ffprobe rational such as ``30000/1001`` into its two parts."""
    text = (value or "").strip()
    if not text:
        raise ProbeError("Video stream has no frame rate")
    numerator, _, denominator = text.partition("/")
    try:
        parsed = (int(numerator), int(denominator or "1"))
    except ValueError as exc:
        raise ProbeError(f"Unparseable frame rate: {text}") from exc
    if parsed[1] == 0:
        raise ProbeError(f"Invalid frame rate: {text}")
    return parsed


def parse_probe_output(payload: dict[str, Any]) -> ProbeResult:
    """Build a probe result from ``ffprobe -show_format -show_streams`` JSON."""
    streams = payload.get("streams") or []
    video_stream = next((stream for stream in streams if stream.get("codec_type") == "video"), None)
    if video_stream is None:
        raise ProbeError("No video stream found")

    try:
        duration = float((payload.get("format") or {}).get("duration") or video_stream.get("duration"))
        width = int(video_stream["width"])
        height = int(video_stream["height"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ProbeError("Incomplete video stream metadata") from exc

    numerator, denominator = parse_frame_rate(video_stream.get("r_frame_rate"))
    return ProbeResult(
        duration_seconds=duration,
        width=width,
        height=height,
        frame_rate_numerator=numerator,
        frame_rate_denominator=denominator,
    )


class FfprobeMetadataProbe(MetadataProbe):
    def __init__(self, binary: str = "ffprobe") -> None:
        self._binary = binary

    async def probe(self, media_path: str) -> ProbeResult:
        try:
            result = await _run_process(
                self._binary,
                "-v",
                "quiet",
                "-print_format",
                "json",
                "-show_format",
                "-show_streams",
                media_path,
            )
        except OSError as exc:
            raise ProbeError(f"ffprobe could not be started: {exc}") from exc

        if result.returncode != 0:
            raise ProbeError(f"ffprobe exited with code {result.returncode}")

        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise ProbeError("ffprobe returned malformed JSON") from exc
        return parse_probe_output(payload)


class FfmpegFrameExtractor(FrameExtractor):
    def __init__(self, binary: str = "ffmpeg") -> None:
        self._binary = binary

    async def extract_frame(self, media_path: str, offset_seconds: int) -> bytes:
        try:
            result = await _run_process(
                self._binary,
                "-v",
                "error",
                "-ss",
                str(offset_seconds),
                "-i",
                media_path,
                "-frames:v",
                "1",
                "-f",
                "image2pipe",
                "-vcodec",
                "mjpeg",
                "pipe:1",
            )
        except OSError as exc:
            raise FrameExtractionError(f"ffmpeg could not be started: {exc}") from exc

        if result.returncode != 0:
            raise FrameExtractionError(f"Frame extraction at {offset_seconds}s failed with code {result.returncode}")
        if not result.stdout:
            raise FrameExtractionError(f"Frame extraction at {offset_seconds}s produced no image")
        return result.stdout


class FfmpegAudioExtractor(AudioExtractor):
    def __init__(self, binary: str = "ffmpeg") -> None:
        self._binary = binary

    async def extract_audio(self, media_path: str) -> bytes:
        try:
            result = await _run_process(
                self._binary,
                "-v",
                "error",
                "-i",
                media_path,
                "-vn",
                "-acodec",
                "pcm_s16le",
                "-ar",
                str(PCM_SAMPLE_RATE),
                "-ac",
                "1",
                "-f",
                "s16le",
                "pipe:1",
            )
        except OSError as exc:
            raise AudioExtractionError(f"ffmpeg could not be started: {exc}") from exc

        if result.returncode != 0:
            if any(marker in result.stderr for marker in _NO_AUDIO_MARKERS):
                return b""
            logger.debug("audio.extract_failed code=%s stderr=%s", result.returncode, result.stderr)
            raise AudioExtractionError(f"Audio extraction failed with code {result.returncode}")
        return result.stdout


__all__ = [
    "FfmpegAudioExtractor",
    "FfmpegFrameExtractor",
    "FfprobeMetadataProbe",
    "parse_frame_rate",
    "parse_probe_output",
]
