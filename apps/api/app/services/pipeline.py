"""Processing orchestrator driving a job from pending to a terminal state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from pathlib import Path

from app.adapters.media.base import MediaToolkit, RemoteFetchError
from app.core.logging_safety import safe_log_identifier, safe_log_url
from app.domain.sampling import (
    format_timestamp,
    frame_rate_from_ratio,
    sampling_timestamps,
    total_frame_count,
)
from app.repositories.artifacts import ArtifactStore
from app.repositories.memory import InMemoryStore, JobRecord
from app.schemas.job import JobStatus, RemoteSource

logger = logging.getLogger(__name__)

_FALLBACK_CONFIDENCE = 0.8
_INTERRUPTED_MESSAGE = "Processing interrupted"


class _JobDeleted(Exception):
    """The job record disappeared while its pipeline was running."""


@dataclass(frozen=True, slots=True)
class _MediaAttributes:
    duration: int
    resolution: str
    format: str | None
    frame_rate: float
    total_frames: int


class ProcessingOrchestrator:
    """Runs the fetch, probe, frames, transcription and metadata stages for one job.

    Probe and metadata failures are fatal and move the job to ``failed``.
    Single frame failures drop that frame. Audio extraction or transcription
    failures are recorded as a sentinel transcript and never change the
    job's outcome.
    """

    def __init__(
        self,
        *,
        store: InMemoryStore,
        artifacts: ArtifactStore,
        toolkit: MediaToolkit,
        max_key_frames: int = 20,
        frame_concurrency: int = 4,
    ) -> None:
        self._store = store
        self._artifacts = artifacts
        self._toolkit = toolkit
        self._max_key_frames = max_key_frames
        self._frame_concurrency = frame_concurrency

    async def process(self, job_id: str, *, timeout_seconds: float | None = None) -> JobStatus | None:
        """Run the pipeline; returns the final status or ``None`` if the job was deleted."""
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        job = self._store.get_job(job_id)
        if job is None:
            logger.info("pipeline.skipped job_id=%s reason=missing", safe_job_id)
            return None
        if job.status is not JobStatus.PENDING:
            logger.info("pipeline.skipped job_id=%s reason=not_pending status=%s", safe_job_id, job.status)
            return job.status

        self._store.transition_job_status(
            job=job,
            new_status=JobStatus.PROCESSING,
            processing_started=datetime.now(UTC),
        )
        logger.info("pipeline.started job_id=%s source=%s", safe_job_id, job.source.kind)

        deadline = asyncio.timeout(timeout_seconds)
        try:
            async with deadline:
                await self._run_stages(job)
        except _JobDeleted:
            pass
        except TimeoutError as exc:
            if deadline.expired():
                logger.warning("pipeline.timed_out job_id=%s timeout_seconds=%s", safe_job_id, timeout_seconds)
                self._fail(job, f"Processing timed out after {timeout_seconds:g} seconds")
            else:
                logger.exception("pipeline.failed job_id=%s reason=%s", safe_job_id, type(exc).__name__)
                self._fail(job, str(exc) or type(exc).__name__)
        except asyncio.CancelledError:
            self._fail(job, _INTERRUPTED_MESSAGE)
            raise
        except RemoteFetchError as exc:
            logger.warning("pipeline.fetch_failed job_id=%s reason=%s", safe_job_id, exc)
            self._fail(job, str(exc) or "Remote video download failed")
        except Exception as exc:
            logger.exception("pipeline.failed job_id=%s reason=%s", safe_job_id, type(exc).__name__)
            self._fail(job, str(exc) or type(exc).__name__)

        if self._store.get_job(job.id) is not job:
            # Stages may have written files after the delete removed the job directories.
            await self._discard_artifacts(job)
            logger.info("pipeline.abandoned job_id=%s reason=job_deleted", safe_job_id)
            return None
        return job.status

    async def _run_stages(self, job: JobRecord) -> None:
        media_path = job.media_path
        if isinstance(job.source, RemoteSource):
            media_path = await self._fetch_remote(job, job.source.url)
        if not media_path:
            raise ValueError("Job has no media to process")

        attributes = await self._probe(media_path)
        self._ensure_present(job)
        self._store.update_job(
            job=job,
            duration=attributes.duration,
            resolution=attributes.resolution,
            format=attributes.format,
        )

        frames = await self._extract_key_frames(job, media_path, attributes.duration)
        self._ensure_present(job)
        self._store.add_key_frames(job_id=job.id, frames=frames)

        await self._transcribe_audio(job, media_path)

        self._ensure_present(job)
        self._store.add_metadata(job_id=job.id, key="total_frames", value=str(attributes.total_frames))
        self._store.add_metadata(job_id=job.id, key="frame_rate", value=str(attributes.frame_rate))

        self._store.transition_job_status(
            job=job,
            new_status=JobStatus.COMPLETED,
            key_frames_count=len(frames),
            processing_completed=datetime.now(UTC),
        )
        logger.info(
            "pipeline.completed job_id=%s duration=%s key_frames=%s",
            safe_log_identifier(job.id, prefix="jid"),
            attributes.duration,
            len(frames),
        )

    async def _fetch_remote(self, job: JobRecord, url: str) -> str:
        destination = self._artifacts.download_dir(job.id)
        media_path = await self._toolkit.fetcher.fetch(url, str(destination))
        self._ensure_present(job)
        self._store.update_job(job=job, media_path=media_path)
        logger.info(
            "pipeline.fetched job_id=%s url=%s",
            safe_log_identifier(job.id, prefix="jid"),
            safe_log_url(url),
        )
        return media_path

    async def _probe(self, media_path: str) -> _MediaAttributes:
        probe = await self._toolkit.probe.probe(media_path)
        duration = max(0, int(probe.duration_seconds))
        frame_rate = frame_rate_from_ratio(probe.frame_rate_numerator, probe.frame_rate_denominator)
        return _MediaAttributes(
            duration=duration,
            resolution=f"{probe.width}x{probe.height}",
            format=Path(media_path).suffix.lower().lstrip(".") or None,
            frame_rate=frame_rate,
            total_frames=total_frame_count(duration, frame_rate),
        )

    async def _extract_key_frames(self, job: JobRecord, media_path: str, duration: int) -> list[tuple[int, str, str]]:
        timestamps = sampling_timestamps(duration, self._max_key_frames)
        semaphore = asyncio.Semaphore(self._frame_concurrency)

        async def extract(timestamp: int) -> tuple[int, str, str]:
            async with semaphore:
                image = await self._toolkit.frames.extract_frame(media_path, timestamp)
                image_path = await self._artifacts.write_frame(job.id, timestamp, image)
            return timestamp, image_path, f"Key frame at {format_timestamp(timestamp)}"

        results = await asyncio.gather(*(extract(timestamp) for timestamp in timestamps), return_exceptions=True)

        frames: list[tuple[int, str, str]] = []
        for timestamp, result in zip(timestamps, results):
            if isinstance(result, Exception):
                logger.warning(
                    "pipeline.frame_dropped job_id=%s timestamp=%s reason=%s",
                    safe_log_identifier(job.id, prefix="jid"),
                    timestamp,
                    result,
                )
                continue
            if isinstance(result, BaseException):
                raise result
            frames.append(result)
        frames.sort(key=lambda frame: frame[0])
        return frames

    async def _transcribe_audio(self, job: JobRecord, media_path: str) -> None:
        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        try:
            pcm = await self._toolkit.audio.extract_audio(media_path)
            if not pcm:
                logger.info("pipeline.transcription_skipped job_id=%s reason=no_audio", safe_job_id)
                return
            audio_path = await self._artifacts.write_audio(job.id, pcm)
            result = await self._toolkit.transcriber.transcribe(pcm)
        except Exception as exc:
            logger.warning("pipeline.transcription_failed job_id=%s reason=%s", safe_job_id, exc)
            self._ensure_present(job)
            self._store.set_transcript(
                job_id=job.id,
                text=f"Audio transcription failed: {str(exc) or type(exc).__name__}",
                duration=0,
                language=None,
                confidence=0,
                audio_path=None,
            )
            return

        confidence = result.confidence if result.confidence is not None else _FALLBACK_CONFIDENCE
        self._ensure_present(job)
        self._store.set_transcript(
            job_id=job.id,
            text=result.text,
            duration=result.duration_seconds,
            language=result.language,
            confidence=round(confidence * 100),
            audio_path=audio_path,
        )

    def _ensure_present(self, job: JobRecord) -> None:
        if self._store.get_job(job.id) is not job:
            raise _JobDeleted(job.id)

    async def _discard_artifacts(self, job: JobRecord) -> None:
        await self._artifacts.remove_files([job.media_path] if isinstance(job.source, RemoteSource) else [])
        await self._artifacts.remove_job_dirs(job.id)

    def _fail(self, job: JobRecord, message: str) -> None:
        if self._store.get_job(job.id) is not job or job.status is not JobStatus.PROCESSING:
            return
        self._store.transition_job_status(job=job, new_status=JobStatus.FAILED, error_message=message)


__all__ = ["ProcessingOrchestrator"]
