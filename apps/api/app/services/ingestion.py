"""Job submission service layer."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from pathlib import PurePath

from starlette.datastructures import UploadFile

from app.core.logging_safety import safe_log_identifier, safe_log_url
from app.errors import ApiError
from app.repositories.artifacts import ArtifactStore, UploadTooLargeError
from app.repositories.memory import InMemoryStore, JobRecord
from app.schemas.job import LocalSource, RemoteSource, SubmitJobResponse
from app.services.worker_pool import JobWorkerPool, QueueFullError

logger = logging.getLogger(__name__)

# MIME type -> extension used when the upload name carries no usable one.
_ALLOWED_VIDEO_TYPES: dict[str, str] = {
    "video/mp4": ".mp4",
    "video/avi": ".avi",
    "video/x-msvideo": ".avi",
    "video/msvideo": ".avi",
    "video/mov": ".mov",
    "video/quicktime": ".mov",
    "video/mkv": ".mkv",
    "video/x-matroska": ".mkv",
}
_ALLOWED_EXTENSIONS = frozenset(_ALLOWED_VIDEO_TYPES.values())
_RETRY_AFTER_SECONDS = "30"
# Allowance for multipart boundaries and part headers around the file itself.
_MULTIPART_OVERHEAD_BYTES = 64 * 1024


class SubmissionService:
    def __init__(
        self,
        *,
        store: InMemoryStore,
        artifacts: ArtifactStore,
        pool: JobWorkerPool,
        max_upload_bytes: int,
    ) -> None:
        self._store = store
        self._artifacts = artifacts
        self._pool = pool
        self._max_upload_bytes = max_upload_bytes

    def check_declared_length(self, content_length: str | None) -> None:
        """Reject a request body that is already too large by its Content-Length header."""
        try:
            declared = int(content_length) if content_length else None
        except ValueError:
            return
        if declared is not None and declared > self._max_upload_bytes + _MULTIPART_OVERHEAD_BYTES:
            raise self._too_large(declared)

    async def submit_local_file(self, *, owner_id: str, upload: UploadFile) -> SubmitJobResponse:
        content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
        if content_type not in _ALLOWED_VIDEO_TYPES:
            raise ApiError(
                status_code=415,
                code="UNSUPPORTED_MEDIA_TYPE",
                message="Invalid file type. Only MP4, AVI, MOV, and MKV files are allowed.",
                details={"content_type": content_type or None},
            )
        if upload.size is not None and upload.size > self._max_upload_bytes:
            raise self._too_large(upload.size)
        self._ensure_capacity()

        original_name = PurePath(upload.filename or "").name
        suffix = PurePath(original_name).suffix.lower()
        if suffix not in _ALLOWED_EXTENSIONS:
            suffix = _ALLOWED_VIDEO_TYPES[content_type]

        try:
            path, size = await self._artifacts.save_upload(upload, suffix=suffix, max_bytes=self._max_upload_bytes)
        except UploadTooLargeError as exc:
            raise self._too_large(exc.received) from exc

        record = self._store.create_job(
            owner_id=owner_id,
            source=LocalSource(path=path),
            file_name=original_name or PurePath(path).name,
            file_size=size,
        )
        await self._dispatch(record)
        logger.info(
            "submit.local_accepted job_id=%s owner_id=%s size=%s",
            safe_log_identifier(record.id, prefix="jid"),
            safe_log_identifier(owner_id, prefix="pid"),
            size,
        )
        return SubmitJobResponse(job_id=record.id, status=record.status)

    async def submit_remote_url(self, *, owner_id: str, url: str) -> SubmitJobResponse:
        """Accept an already validated http(s) URL; the request model rejects malformed ones."""
        self._ensure_capacity()

        record = self._store.create_job(
            owner_id=owner_id,
            source=RemoteSource(url=url),
            file_name=f"Remote video - {datetime.now(UTC).isoformat(timespec='seconds')}",
        )
        await self._dispatch(record)
        logger.info(
            "submit.remote_accepted job_id=%s owner_id=%s url=%s",
            safe_log_identifier(record.id, prefix="jid"),
            safe_log_identifier(owner_id, prefix="pid"),
            safe_log_url(url),
        )
        return SubmitJobResponse(job_id=record.id, status=record.status)

    def _ensure_capacity(self) -> None:
        if not self._pool.has_capacity():
            raise self._queue_full()

    async def _dispatch(self, record: JobRecord) -> None:
        try:
            self._pool.submit(record.id)
        except QueueFullError as exc:
            # Roll the submission back so a rejected request leaves no job behind.
            self._store.delete_job_cascade(record.id)
            if isinstance(record.source, LocalSource):
                await self._artifacts.remove_files([record.source.path])
            raise self._queue_full() from exc

    def _too_large(self, received: int) -> ApiError:
        return ApiError(
            status_code=413,
            code="FILE_TOO_LARGE",
            message="Uploaded file exceeds the maximum allowed size.",
            details={"max_bytes": self._max_upload_bytes, "received_bytes": received},
        )

    def _queue_full(self) -> ApiError:
        return ApiError(
            status_code=503,
            code="QUEUE_FULL",
            message="Processing queue is full; try again later.",
            details={"backlog": self._pool.backlog, "active": self._pool.active_jobs},
            headers={"Retry-After": _RETRY_AFTER_SECONDS},
        )


__all__ = ["SubmissionService"]
