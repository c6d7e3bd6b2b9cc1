"""API error response schemas."""

from typing import Any, Literal

from pydantic import BaseModel

from app.schemas.job import JobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class NotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class ForbiddenError(BaseModel):
    code: Literal["FORBIDDEN"]
    message: str


class ReportNotReadyErrorDetails(BaseModel):
    current_status: JobStatus


class ReportNotReadyError(BaseModel):
    code: Literal["REPORT_NOT_READY"]
    message: str
    details: ReportNotReadyErrorDetails


class UploadRejectedError(BaseModel):
    code: Literal["FILE_TOO_LARGE", "UNSUPPORTED_MEDIA_TYPE"]
    message: str
    details: dict[str, Any] | None = None


class ValidationErrorResponse(BaseModel):
    code: Literal["VALIDATION_ERROR"]
    message: str
    details: dict[str, Any] | None = None


class QueueFullError(BaseModel):
    code: Literal["QUEUE_FULL"]
    message: str
    details: dict[str, Any] | None = None
