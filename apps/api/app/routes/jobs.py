"""Job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, Response, status
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile

from app.errors import ApiError
from app.routes.dependencies import (
    get_authenticated_principal,
    get_job_service,
    get_report_materializer,
    get_submission_service,
)
from app.schemas.auth import AuthPrincipal
from app.schemas.error import (
    ErrorResponse,
    ForbiddenError,
    NotFoundError,
    QueueFullError,
    ReportNotReadyError,
    UploadRejectedError,
    ValidationErrorResponse,
)
from app.schemas.job import Job, JobDetail, SubmitJobResponse, SubmitRemoteUrlRequest
from app.services.ingestion import SubmissionService
from app.services.jobs import JobService
from app.services.reports import ReportMaterializer

router = APIRouter(prefix="/jobs", tags=["Jobs"])

_OWNED_JOB_RESPONSES = {
    401: {"model": ErrorResponse},
    403: {"model": ForbiddenError},
    404: {"model": NotFoundError},
}

_UPLOAD_REQUEST_BODY = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "required": ["video"],
                    "properties": {"video": {"type": "string", "format": "binary"}},
                }
            }
        },
    }
}


@router.post(
    "/upload",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        401: {"model": ErrorResponse},
        413: {"model": UploadRejectedError},
        415: {"model": UploadRejectedError},
        422: {"model": ValidationErrorResponse},
        503: {"model": QueueFullError},
    },
    openapi_extra=_UPLOAD_REQUEST_BODY,
)
async def submit_upload(
    request: Request,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[SubmissionService, Depends(get_submission_service)],
) -> SubmitJobResponse:
    # Multipart is parsed only once the principal has been resolved.
    service.check_declared_length(request.headers.get("content-length"))
    async with request.form(max_files=1) as form:
        video = form.get("video")
        if not isinstance(video, UploadFile):
            raise ApiError(
                status_code=422,
                code="VALIDATION_ERROR",
                message="Invalid submission payload",
                details={"fields": ["body.video"]},
            )
        return await service.submit_local_file(owner_id=principal.user_id, upload=video)


@router.post(
    "/remote",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        401: {"model": ErrorResponse},
        422: {"model": ValidationErrorResponse},
        503: {"model": QueueFullError},
    },
)
async def submit_remote(
    payload: SubmitRemoteUrlRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[SubmissionService, Depends(get_submission_service)],
) -> SubmitJobResponse:
    return await service.submit_remote_url(owner_id=principal.user_id, url=str(payload.url))


@router.get(
    "",
    response_model=list[Job],
    responses={401: {"model": ErrorResponse}},
)
async def list_jobs(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> list[Job]:
    return service.list_jobs(owner_id=principal.user_id)


@router.get(
    "/{jobId}",
    response_model=JobDetail,
    responses=_OWNED_JOB_RESPONSES,
)
async def get_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JobDetail:
    return service.get_job(owner_id=principal.user_id, job_id=job_id)


@router.get(
    "/{jobId}/report",
    response_class=FileResponse,
    responses={**_OWNED_JOB_RESPONSES, 409: {"model": ReportNotReadyError}},
)
async def download_report(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    materializer: Annotated[ReportMaterializer, Depends(get_report_materializer)],
) -> FileResponse:
    report = await materializer.ensure_report(owner_id=principal.user_id, job_id=job_id)
    return FileResponse(report.path, media_type="text/html", filename=report.download_name)


@router.delete(
    "/{jobId}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_OWNED_JOB_RESPONSES,
)
async def delete_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Response:
    await service.delete_job(owner_id=principal.user_id, job_id=job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
