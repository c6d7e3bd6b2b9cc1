"""Filesystem storage for uploaded media and generated artifacts."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
import shutil
from typing import Iterable, Protocol
from uuid import uuid4

from app.adapters.media.base import pcm_to_wav
from app.core.logging_safety import safe_log_identifier

logger = logging.getLogger(__name__)

_UPLOAD_CHUNK_BYTES = 1024 * 1024


class UploadTooLargeError(Exception):
    def __init__(self, *, limit: int, received: int) -> None:
        self.limit = limit
        self.received = received
        super().__init__(f"Upload exceeds {limit} bytes")


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class ArtifactStore:
    """Lays out job artifacts under a single root directory.

    ``uploads/``              original uploaded files
    ``downloads/job_<id>/``   remote videos fetched for a job
    ``outputs/job_<id>/``     key frames and extracted audio
    ``reports/``              materialized reports
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def download_dir(self, job_id: str) -> Path:
        return self._root / "downloads" / f"job_{job_id}"

    def output_dir(self, job_id: str) -> Path:
        return self._root / "outputs" / f"job_{job_id}"

    def report_path(self, job_id: str) -> Path:
        return self._root / "reports" / f"job_{job_id}_report.html"

    async def save_upload(self, stream: AsyncReadable, *, suffix: str, max_bytes: int) -> tuple[str, int]:
        """Stream an upload to disk, enforcing ``max_bytes`` while copying."""
        target = self._root / "uploads" / f"{uuid4().hex}{suffix}"
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        handle = await asyncio.to_thread(target.open, "wb")
        received = 0
        try:
            while chunk := await stream.read(_UPLOAD_CHUNK_BYTES):
                received += len(chunk)
                if received > max_bytes:
                    raise UploadTooLargeError(limit=max_bytes, received=received)
                await asyncio.to_thread(handle.write, chunk)
        except BaseException:
            await asyncio.to_thread(handle.close)
            await asyncio.to_thread(target.unlink, missing_ok=True)
            raise
        await asyncio.to_thread(handle.close)
        return str(target), received

    async def write_frame(self, job_id: str, timestamp: int, image: bytes) -> str:
        target = self.output_dir(job_id) / f"frame_{timestamp}.jpg"
        await asyncio.to_thread(self._write_bytes, target, image)
        return str(target)

    async def write_audio(self, job_id: str, pcm: bytes) -> str:
        target = self.output_dir(job_id) / "audio.wav"
        await asyncio.to_thread(self._write_bytes, target, pcm_to_wav(pcm))
        return str(target)

    async def write_report(self, job_id: str, content: str) -> str:
        target = self.report_path(job_id)
        await asyncio.to_thread(self._write_bytes, target, content.encode("utf-8"))
        return str(target)

    async def exists(self, path: str | None) -> bool:
        if not path:
            return False
        return await asyncio.to_thread(Path(path).is_file)

    async def remove_files(self, paths: Iterable[str | None]) -> int:
        """Best-effort removal; returns how many files were actually deleted."""
        return await asyncio.to_thread(self._remove_files, [path for path in paths if path])

    async def remove_job_dirs(self, job_id: str) -> None:
        for directory in (self.download_dir(job_id), self.output_dir(job_id)):
            await asyncio.to_thread(shutil.rmtree, directory, True)

    @staticmethod
    def _write_bytes(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    @staticmethod
    def _remove_files(paths: list[str]) -> int:
        removed = 0
        for path in paths:
            try:
                Path(path).unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(
                    "artifact.remove_failed path=%s reason=%s",
                    safe_log_identifier(path, prefix="path"),
                    type(exc).__name__,
                )
        return removed


__all__ = ["ArtifactStore", "UploadTooLargeError"]
