"""Job query and deletion service layer."""

from __future__ import annotations

import logging

from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError
from app.repositories.artifacts import ArtifactStore
from app.repositories.memory import InMemoryStore, JobRecord, KeyFrameRecord, MetadataRecord, TranscriptRecord
from app.schemas.job import Job, JobDetail, KeyFrame, MetadataEntry, Transcript

logger = logging.getLogger(__name__)


def get_owned_job(store: InMemoryStore, *, owner_id: str, job_id: str) -> JobRecord:
    """Load a job for its owner, raising 404 when absent and 403 on owner mismatch."""
    record = store.get_job(job_id)
    if record is None:
        raise ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")
    if record.owner_id != owner_id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Access denied")
    return record


class JobService:
    def __init__(self, store: InMemoryStore, artifacts: ArtifactStore) -> None:
        self._store = store
        self._artifacts = artifacts

    def get_job(self, *, owner_id: str, job_id: str) -> JobDetail:
        record = get_owned_job(self._store, owner_id=owner_id, job_id=job_id)
        transcript = self._store.get_transcript(record.id)
        return JobDetail(
            job=to_job(record),
            key_frames=[_to_key_frame(frame) for frame in self._store.list_key_frames(record.id)],
            metadata=[_to_metadata_entry(entry) for entry in self._store.list_metadata(record.id)],
            transcript=_to_transcript(transcript) if transcript is not None else None,
        )

    def list_jobs(self, *, owner_id: str) -> list[Job]:
        return [to_job(record) for record in self._store.list_jobs_for_owner(owner_id)]

    async def delete_job(self, *, owner_id: str, job_id: str) -> None:
        record = get_owned_job(self._store, owner_id=owner_id, job_id=job_id)
        safe_job_id = safe_log_identifier(record.id, prefix="jid")

        # Records go first so a failed file cleanup never leaves dangling rows.
        deletion = self._store.delete_job_cascade(record.id)
        if deletion is None:
            return

        paths = [deletion.job.media_path, deletion.job.report_path]
        paths.extend(frame.image_path for frame in deletion.key_frames)
        if deletion.transcript is not None:
            paths.append(deletion.transcript.audio_path)
        removed = await self._artifacts.remove_files(paths)
        await self._artifacts.remove_job_dirs(record.id)

        logger.info(
            "job.deleted job_id=%s status=%s key_frames=%s metadata=%s files_removed=%s",
            safe_job_id,
            deletion.job.status,
            len(deletion.key_frames),
            len(deletion.metadata),
            removed,
        )


def to_job(record: JobRecord) -> Job:
    return Job(
        id=record.id,
        status=record.status,
        source=record.source,
        file_name=record.file_name,
        file_size=record.file_size,
        duration=record.duration,
        resolution=record.resolution,
        format=record.format,
        key_frames_count=record.key_frames_count,
        media_path=record.media_path,
        report_path=record.report_path,
        error_message=record.error_message,
        processing_started=record.processing_started,
        processing_completed=record.processing_completed,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_key_frame(record: KeyFrameRecord) -> KeyFrame:
    return KeyFrame(timestamp=record.timestamp, image_path=record.image_path, description=record.description)


def _to_metadata_entry(record: MetadataRecord) -> MetadataEntry:
    return MetadataEntry(key=record.key, value=record.value)


def _to_transcript(record: TranscriptRecord) -> Transcript:
    return Transcript(
        text=record.text,
        duration=record.duration,
        language=record.language,
        confidence=record.confidence,
        audio_path=record.audio_path,
    )
