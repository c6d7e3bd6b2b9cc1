"""Report materialization for completed jobs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from html import escape
import logging
import weakref

from app.core.logging_safety import safe_log_identifier
from app.domain.sampling import format_timestamp
from app.errors import ApiError
from app.repositories.artifacts import ArtifactStore
from app.repositories.memory import InMemoryStore, JobRecord, KeyFrameRecord, MetadataRecord, TranscriptRecord
from app.schemas.job import JobStatus
from app.services.jobs import get_owned_job

logger = logging.getLogger(__name__)

_NOT_AVAILABLE = "N/A"


@dataclass(frozen=True, slots=True)
class ReportArtifact:
    path: str
    download_name: str
    generated: bool


class ReportMaterializer:
    """Builds a job's report on first request and reuses it while the file exists."""

    def __init__(self, store: InMemoryStore, artifacts: ArtifactStore) -> None:
        self._store = store
        self._artifacts = artifacts
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    async def ensure_report(self, *, owner_id: str, job_id: str) -> ReportArtifact:
        record = get_owned_job(self._store, owner_id=owner_id, job_id=job_id)
        if record.status is not JobStatus.COMPLETED:
            raise ApiError(
                status_code=409,
                code="REPORT_NOT_READY",
                message="Analysis not completed",
                details={"current_status": record.status},
            )

        lock = self._locks.get(record.id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[record.id] = lock

        async with lock:
            download_name = f"{record.file_name}_analysis.html"
            if await self._artifacts.exists(record.report_path):
                return ReportArtifact(path=record.report_path, download_name=download_name, generated=False)

            content = render_report(
                job=record,
                key_frames=self._store.list_key_frames(record.id),
                metadata=self._store.list_metadata(record.id),
                transcript=self._store.get_transcript(record.id),
                generated_at=datetime.now(UTC),
            )
            path = await self._artifacts.write_report(record.id, content)
            if self._store.get_job(record.id) is not record:
                await self._artifacts.remove_files([path])
                logger.info("report.discarded job_id=%s reason=job_deleted", safe_log_identifier(record.id, prefix="jid"))
                raise ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")
            self._store.update_job(job=record, report_path=path)

        logger.info("report.generated job_id=%s", safe_log_identifier(record.id, prefix="jid"))
        return ReportArtifact(path=path, download_name=download_name, generated=True)


def render_report(
    *,
    job: JobRecord,
    key_frames: list[KeyFrameRecord],
    metadata: list[MetadataRecord],
    transcript: TranscriptRecord | None,
    generated_at: datetime,
) -> str:
    """Render the HTML analysis report for a completed job."""
    metadata_map = {entry.key: entry.value for entry in metadata}

    info_rows = [
        ("File Name", job.file_name),
        ("Duration", format_timestamp(job.duration) if job.duration is not None else _NOT_AVAILABLE),
        ("Resolution", job.resolution or _NOT_AVAILABLE),
        ("Format", job.format or _NOT_AVAILABLE),
        ("File Size", f"{job.file_size / 1024 / 1024:.2f} MB" if job.file_size else _NOT_AVAILABLE),
        ("Key Frames", str(job.key_frames_count or 0)),
    ]
    summary_rows = [
        ("Total processing time", _processing_time(job)),
        ("Key frames extracted", str(job.key_frames_count or 0)),
        ("Frame rate", _frame_rate(metadata_map.get("frame_rate"))),
        ("Total frames", metadata_map.get("total_frames") or _NOT_AVAILABLE),
    ]
    technical_rows = [
        ("Analysis ID", job.id),
        ("Started", _format_datetime(job.processing_started)),
        ("Completed", _format_datetime(job.processing_completed)),
        ("Status", job.status.value),
    ]

    sections = [
        _section("Video Information", _definition_list(info_rows)),
        _section("Analysis Summary", _definition_list(summary_rows)),
    ]
    if key_frames:
        items = "".join(
            f"<li><strong>{escape(format_timestamp(frame.timestamp))}</strong> {escape(frame.description)}</li>"
            for frame in key_frames
        )
        sections.append(_section(f"Key Frames ({len(key_frames)} frames)", f"<ol>{items}</ol>"))
    if transcript is not None:
        transcript_rows = [
            ("Language", transcript.language or _NOT_AVAILABLE),
            ("Duration", f"{transcript.duration:.1f} s"),
            ("Confidence", f"{transcript.confidence}%"),
        ]
        sections.append(
            _section(
                "Audio Transcription",
                _definition_list(transcript_rows) + f"<p>{escape(transcript.text)}</p>",
            )
        )
    sections.append(_section("Technical Details", _definition_list(technical_rows)))

    return (
        "<!DOCTYPE html>\n"
        '<html><head><meta charset="UTF-8">'
        f"<title>Video Analysis Report - {escape(job.file_name)}</title></head>"
        "<body><h1>Video Analysis Report</h1>"
        f"<p>Generated on {escape(_format_datetime(generated_at))}</p>"
        f"{''.join(sections)}</body></html>\n"
    )


def _section(title: str, body: str) -> str:
    return f"<section><h2>{escape(title)}</h2>{body}</section>"


def _definition_list(rows: list[tuple[str, str]]) -> str:
    items = "".join(f"<dt>{escape(label)}</dt><dd>{escape(value)}</dd>" for label, value in rows)
    return f"<dl>{items}</dl>"


def _processing_time(job: JobRecord) -> str:
    if job.processing_started is None or job.processing_completed is None:
        return _NOT_AVAILABLE
    elapsed = (job.processing_completed - job.processing_started).total_seconds()
    return f"{round(elapsed)} seconds"


def _frame_rate(value: str | None) -> str:
    if not value:
        return _NOT_AVAILABLE
    try:
        return f"{float(value):.2f} fps"
    except ValueError:
        return _NOT_AVAILABLE


def _format_datetime(value: datetime | None) -> str:
    if value is None:
        return _NOT_AVAILABLE
    return value.strftime("%B %d, %Y %H:%M UTC")


__all__ = ["ReportArtifact", "ReportMaterializer", "render_report"]
