"""In-memory repositories used by the API and tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from app.domain.job_fsm import ensure_transition
from app.schemas.job import JobStatus, LocalSource, RemoteSource

# Attributes the pipeline and materializer may write outside a status transition.
_UPDATABLE_JOB_FIELDS = frozenset(
    {
        "duration",
        "resolution",
        "format",
        "key_frames_count",
        "media_path",
        "report_path",
        "error_message",
        "processing_started",
        "processing_completed",
    }
)


@dataclass(slots=True)
class JobRecord:
    id: str
    owner_id: str
    source: LocalSource | RemoteSource
    file_name: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime | None = None
    file_size: int | None = None
    duration: int | None = None
    resolution: str | None = None
    format: str | None = None
    key_frames_count: int | None = None
    media_path: str | None = None
    report_path: str | None = None
    error_message: str | None = None
    processing_started: datetime | None = None
    processing_completed: datetime | None = None


@dataclass(slots=True)
class KeyFrameRecord:
    job_id: str
    timestamp: int
    image_path: str
    description: str
    created_at: datetime


@dataclass(slots=True)
class MetadataRecord:
    job_id: str
    key: str
    value: str
    created_at: datetime


@dataclass(slots=True)
class TranscriptRecord:
    job_id: str
    text: str
    duration: float
    language: str | None
    confidence: int
    audio_path: str | None
    created_at: datetime


@dataclass(slots=True)
class JobDeletion:
    """Records removed by a cascade delete, kept for artifact cleanup."""

    job: JobRecord
    key_frames: list[KeyFrameRecord]
    metadata: list[MetadataRecord]
    transcript: TranscriptRecord | None


@dataclass(slots=True)
class InMemoryStore:
    """Deterministic persistence layer.

    Every public method is synchronous and completes without yielding to the
    event loop, so each call is an atomic read-modify-write for the
    coroutines sharing the store.
    """

    jobs: dict[str, JobRecord] = field(default_factory=dict)
    key_frames_by_job: dict[str, list[KeyFrameRecord]] = field(default_factory=dict)
    metadata_by_job: dict[str, list[MetadataRecord]] = field(default_factory=dict)
    transcripts_by_job: dict[str, TranscriptRecord] = field(default_factory=dict)
    job_write_count: int = 0

    def create_job(
        self,
        *,
        owner_id: str,
        source: LocalSource | RemoteSource,
        file_name: str,
        file_size: int | None = None,
        job_id: str | None = None,
    ) -> JobRecord:
        now = datetime.now(UTC)
        job = JobRecord(
            id=job_id or str(uuid4()),
            owner_id=owner_id,
            source=source,
            file_name=file_name,
            file_size=file_size,
            status=JobStatus.PENDING,
            media_path=source.path if isinstance(source, LocalSource) else None,
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        self.job_write_count += 1
        return job

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def list_jobs_for_owner(self, owner_id: str) -> list[JobRecord]:
        jobs = [record for record in self.jobs.values() if record.owner_id == owner_id]
        jobs.sort(key=lambda record: record.created_at, reverse=True)
        return jobs

    def transition_job_status(self, *, job: JobRecord, new_status: JobStatus, **changes: Any) -> None:
        """Apply an FSM-validated status mutation together with its attribute changes."""
        ensure_transition(job.status, new_status)
        self._check_fields(changes)
        job.status = new_status
        for name, value in changes.items():
            setattr(job, name, value)
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1

    def update_job(self, *, job: JobRecord, **changes: Any) -> None:
        self._check_fields(changes)
        for name, value in changes.items():
            setattr(job, name, value)
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1

    def add_key_frames(self, *, job_id: str, frames: list[tuple[int, str, str]]) -> list[KeyFrameRecord]:
        now = datetime.now(UTC)
        records = [
            KeyFrameRecord(job_id=job_id, timestamp=timestamp, image_path=image_path, description=description, created_at=now)
            for timestamp, image_path, description in frames
        ]
        self.key_frames_by_job.setdefault(job_id, []).extend(records)
        return records

    def list_key_frames(self, job_id: str) -> list[KeyFrameRecord]:
        return sorted(self.key_frames_by_job.get(job_id, []), key=lambda frame: frame.timestamp)

    def add_metadata(self, *, job_id: str, key: str, value: str) -> MetadataRecord:
        record = MetadataRecord(job_id=job_id, key=key, value=value, created_at=datetime.now(UTC))
        self.metadata_by_job.setdefault(job_id, []).append(record)
        return record

    def list_metadata(self, job_id: str) -> list[MetadataRecord]:
        return list(self.metadata_by_job.get(job_id, []))

    def set_transcript(
        self,
        *,
        job_id: str,
        text: str,
        duration: float,
        language: str | None,
        confidence: int,
        audio_path: str | None,
    ) -> TranscriptRecord:
        record = TranscriptRecord(
            job_id=job_id,
            text=text,
            duration=duration,
            language=language,
            confidence=confidence,
            audio_path=audio_path,
            created_at=datetime.now(UTC),
        )
        self.transcripts_by_job[job_id] = record
        return record

    def get_transcript(self, job_id: str) -> TranscriptRecord | None:
        return self.transcripts_by_job.get(job_id)

    def delete_job_cascade(self, job_id: str) -> JobDeletion | None:
        """Remove a job and every child record in one step; ``None`` if already gone."""
        job = self.jobs.pop(job_id, None)
        if job is None:
            return None

        deletion = JobDeletion(
            job=job,
            key_frames=self.key_frames_by_job.pop(job_id, []),
            metadata=self.metadata_by_job.pop(job_id, []),
            transcript=self.transcripts_by_job.pop(job_id, None),
        )
        self.job_write_count += 1
        return deletion

    @staticmethod
    def _check_fields(changes: dict[str, Any]) -> None:
        unknown = set(changes) - _UPDATABLE_JOB_FIELDS
        if unknown:
            raise ValueError(f"Unsupported job fields: {sorted(unknown)}")
