"""Job API schemas."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, HttpUrl


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class LocalSource(BaseModel):
    kind: Literal["local"] = "local"
    path: str


class RemoteSource(BaseModel):
    kind: Literal["remote"] = "remote"
    url: str


JobSource = Annotated[LocalSource | RemoteSource, Field(discriminator="kind")]


class Job(BaseModel):
    id: str
    status: JobStatus
    source: JobSource
    file_name: str
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
    created_at: datetime
    updated_at: datetime | None = None


class KeyFrame(BaseModel):
    timestamp: int
    image_path: str
    description: str


class MetadataEntry(BaseModel):
    key: str
    value: str


class Transcript(BaseModel):
    text: str
    duration: float
    language: str | None = None
    confidence: int
    audio_path: str | None = None


class JobDetail(BaseModel):
    job: Job
    key_frames: list[KeyFrame]
    metadata: list[MetadataEntry]
    transcript: Transcript | None = None


class SubmitRemoteUrlRequest(BaseModel):
    url: HttpUrl


class SubmitJobResponse(BaseModel):
    job_id: str
    status: JobStatus
