"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    storage_root: str = "var/vidlens"
    max_upload_bytes: int = Field(default=500 * 1024 * 1024, gt=0)

    max_concurrent_jobs: int = Field(default=2, ge=1)
    queue_size: int = Field(default=100, ge=1)
    job_timeout_seconds: float = Field(default=1800.0, gt=0)
    frame_concurrency: int = Field(default=4, ge=1)
    max_key_frames: int = Field(default=20, ge=1)

    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    openai_api_key: str | None = None
    whisper_model: str = "whisper-1"
    ytdlp_format: str = "mp4/bestvideo+bestaudio/best"

    model_config = SettingsConfigDict(env_prefix="VIDLENS_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
