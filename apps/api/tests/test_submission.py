"""Submission validation and backpressure rollback tests."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
import tempfile
import unittest

from fastapi import UploadFile
from pydantic import ValidationError
from starlette.datastructures import Headers

from app.errors import ApiError
from app.repositories.artifacts import ArtifactStore
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStatus, LocalSource, RemoteSource, SubmitRemoteUrlRequest
from app.services.ingestion import SubmissionService
from app.services.worker_pool import QueueFullError


class _RecordingPool:
    def __init__(self, *, accept: bool = True, capacity: bool = True) -> None:
        self.accept = accept
        self.capacity = capacity
        self.submitted: list[str] = []
        self.backlog = 0
        self.active_jobs = 0

    def has_capacity(self) -> bool:
        return self.capacity

    def submit(self, job_id: str) -> None:
        if not self.accept:
            raise QueueFullError("Processing queue is full")
        self.submitted.append(job_id)


def _upload(data: bytes, *, filename: str = "clip.mp4", content_type: str = "video/mp4", size: int | None = None):
    return UploadFile(
        file=BytesIO(data),
        size=len(data) if size is None else size,
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


class RemoteUrlRequestTests(unittest.TestCase):
    def test_http_urls_are_accepted(self) -> None:
        for value in ("https://www.youtube.com/watch?v=abc", "http://example.com/video.mp4"):
            with self.subTest(value=value):
                self.assertEqual(str(SubmitRemoteUrlRequest(url=value).url), value)

    def test_malformed_urls_are_rejected(self) -> None:
        for value in (
            "",
            "not a url",
            "www.youtube.com/watch?v=abc",
            "https://",
            "/relative/path",
            "http://[::1",
            "http://exa mple.com/v",
            "ftp://host/x",
        ):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    SubmitRemoteUrlRequest(url=value)


class SubmissionServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.store = InMemoryStore()
        self.artifacts = ArtifactStore(self.root)

    def _service(self, pool: _RecordingPool, *, max_upload_bytes: int = 1024) -> SubmissionService:
        return SubmissionService(
            store=self.store,
            artifacts=self.artifacts,
            pool=pool,
            max_upload_bytes=max_upload_bytes,
        )

    def _uploaded_files(self) -> list[Path]:
        uploads = self.root / "uploads"
        return sorted(uploads.iterdir()) if uploads.exists() else []

    async def test_local_upload_creates_pending_job_and_enqueues_it(self) -> None:
        pool = _RecordingPool()

        response = await self._service(pool).submit_local_file(owner_id="owner-1", upload=_upload(b"v" * 100))

        self.assertEqual(response.status, JobStatus.PENDING)
        self.assertEqual(pool.submitted, [response.job_id])
        job = self.store.get_job(response.job_id)
        self.assertIsInstance(job.source, LocalSource)
        self.assertEqual(job.file_name, "clip.mp4")
        self.assertEqual(job.file_size, 100)
        self.assertEqual(job.media_path, job.source.path)
        self.assertTrue(job.media_path.endswith(".mp4"))
        self.assertEqual(Path(job.media_path).read_bytes(), b"v" * 100)

    async def test_extension_comes_from_content_type_when_name_has_none(self) -> None:
        response = await self._service(_RecordingPool()).submit_local_file(
            owner_id="owner-1",
            upload=_upload(b"v", filename="recording", content_type="video/quicktime"),
        )

        self.assertTrue(self.store.get_job(response.job_id).media_path.endswith(".mov"))

    async def test_unsupported_content_type_is_rejected_before_storage(self) -> None:
        with self.assertRaises(ApiError) as context:
            await self._service(_RecordingPool()).submit_local_file(
                owner_id="owner-1",
                upload=_upload(b"v", filename="notes.txt", content_type="text/plain"),
            )

        self.assertEqual(context.exception.status_code, 415)
        self.assertEqual(context.exception.payload.code, "UNSUPPORTED_MEDIA_TYPE")
        self.assertEqual(self.store.jobs, {})
        self.assertEqual(self._uploaded_files(), [])

    async def test_declared_oversize_is_rejected_without_writing(self) -> None:
        with self.assertRaises(ApiError) as context:
            await self._service(_RecordingPool(), max_upload_bytes=10).submit_local_file(
                owner_id="owner-1",
                upload=_upload(b"v" * 5, size=11),
            )

        self.assertEqual(context.exception.status_code, 413)
        self.assertEqual(context.exception.payload.code, "FILE_TOO_LARGE")
        self.assertEqual(self._uploaded_files(), [])

    async def test_streamed_oversize_removes_partial_file(self) -> None:
        with self.assertRaises(ApiError) as context:
            await self._service(_RecordingPool(), max_upload_bytes=10).submit_local_file(
                owner_id="owner-1",
                upload=UploadFile(
                    file=BytesIO(b"v" * 50),
                    filename="clip.mp4",
                    headers=Headers({"content-type": "video/mp4"}),
                ),
            )

        self.assertEqual(context.exception.status_code, 413)
        self.assertEqual(context.exception.payload.details["received_bytes"], 50)
        self.assertEqual(self.store.jobs, {})
        self.assertEqual(self._uploaded_files(), [])

    async def test_no_capacity_rejects_before_storing_anything(self) -> None:
        with self.assertRaises(ApiError) as context:
            await self._service(_RecordingPool(capacity=False)).submit_local_file(
                owner_id="owner-1",
                upload=_upload(b"v"),
            )

        self.assertEqual(context.exception.status_code, 503)
        self.assertEqual(context.exception.payload.code, "QUEUE_FULL")
        self.assertEqual(self._uploaded_files(), [])

    async def test_enqueue_race_rolls_back_job_and_upload(self) -> None:
        with self.assertRaises(ApiError) as context:
            await self._service(_RecordingPool(accept=False)).submit_local_file(
                owner_id="owner-1",
                upload=_upload(b"v" * 20),
            )

        self.assertEqual(context.exception.status_code, 503)
        self.assertEqual(context.exception.headers, {"Retry-After": "30"})
        self.assertEqual(self.store.jobs, {})
        self.assertEqual(self._uploaded_files(), [])

    async def test_remote_url_creates_pending_job_without_media(self) -> None:
        pool = _RecordingPool()

        response = await self._service(pool).submit_remote_url(
            owner_id="owner-1",
            url="https://www.youtube.com/watch?v=abc",
        )

        job = self.store.get_job(response.job_id)
        self.assertEqual(job.status, JobStatus.PENDING)
        self.assertEqual(job.source, RemoteSource(url="https://www.youtube.com/watch?v=abc"))
        self.assertIsNone(job.media_path)
        self.assertTrue(job.file_name.startswith("Remote video - "))
        self.assertEqual(pool.submitted, [job.id])

    def test_declared_body_length_over_the_cap_is_rejected_before_parsing(self) -> None:
        service = self._service(_RecordingPool(), max_upload_bytes=10)

        service.check_declared_length(None)
        service.check_declared_length("not-a-number")
        service.check_declared_length(str(10 + 64 * 1024))
        with self.assertRaises(ApiError) as context:
            service.check_declared_length(str(10 + 64 * 1024 + 1))

        self.assertEqual(context.exception.status_code, 413)
        self.assertEqual(context.exception.payload.code, "FILE_TOO_LARGE")


if __name__ == "__main__":
    unittest.main()
