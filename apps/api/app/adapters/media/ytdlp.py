"""yt-dlp remote video fetcher."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from pathlib import Path
import threading
from typing import Any

import yt_dlp
from yt_dlp.utils import DownloadCancelled, DownloadError

from app.adapters.media.base import RemoteFetchError, RemoteVideoFetcher
from app.core.logging_safety import safe_log_url

logger = logging.getLogger(__name__)


def cancellation_hook(cancelled: threading.Event) -> Callable[[dict[str, Any]], None]:
    """Progress hook that aborts the running download once ``cancelled`` is set."""

    def hook(_: dict[str, Any]) -> None:
        if cancelled.is_set():
            raise DownloadCancelled("Download cancelled")

    return hook


class YtDlpVideoFetcher(RemoteVideoFetcher):
    def __init__(self, *, format_selector: str = "mp4/bestvideo+bestaudio/best") -> None:
        self._format_selector = format_selector

    async def fetch(self, url: str, destination_dir: str) -> str:
        logger.info("fetch.started url=%s", safe_log_url(url))
        cancelled = threading.Event()
        try:
            return await asyncio.to_thread(self._download, url, Path(destination_dir), cancelled)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; the hooks stop it at the next progress report.
            cancelled.set()
            logger.info("fetch.cancelled url=%s", safe_log_url(url))
            raise

    def _download(self, url: str, destination: Path, cancelled: threading.Event) -> str:
        destination.mkdir(parents=True, exist_ok=True)
        hook = cancellation_hook(cancelled)
        ydl_opts: dict[str, Any] = {
            "format": self._format_selector,
            "outtmpl": str(destination / "video.%(ext)s"),
            "merge_output_format": "mp4",
            "noplaylist": True,
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "progress_hooks": [hook],
            "postprocessor_hooks": [hook],
        }
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(url, download=True)
        except DownloadCancelled as exc:
            raise RemoteFetchError("Remote video download cancelled") from exc
        except DownloadError as exc:
            raise RemoteFetchError(str(exc)) from exc

        media_path = self._resolve_media_path(info, destination)
        if media_path is None:
            raise RemoteFetchError("Download finished without producing a media file")
        return media_path

    @staticmethod
    def _resolve_media_path(info: dict[str, Any] | None, destination: Path) -> str | None:
        for download in (info or {}).get("requested_downloads") or []:
            filepath = download.get("filepath")
            if filepath and Path(filepath).is_file():
                return str(filepath)
        # Merged outputs are not always reported back; fall back to the directory listing.
        candidates = sorted(path for path in destination.glob("video.*") if path.is_file())
        return str(candidates[0]) if candidates else None


__all__ = ["YtDlpVideoFetcher", "cancellation_hook"]
