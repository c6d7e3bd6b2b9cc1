"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.adapters.auth import AuthVerificationError, DevTokenVerifier, TokenVerifier
from app.core.config import Settings
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError
from app.repositories.artifacts import ArtifactStore
from app.repositories.memory import InMemoryStore
from app.schemas.auth import AuthPrincipal
from app.services.ingestion import SubmissionService
from app.services.jobs import JobService
from app.services.reports import ReportMaterializer
from app.services.worker_pool import JobWorkerPool

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id") or f"req-{uuid4()}"
    request.state.correlation_id = correlation_id
    return correlation_id


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_token_verifier() -> TokenVerifier:
    return DevTokenVerifier()


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate bearer token and attach the principal to the request context."""
    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=invalid_or_missing_bearer",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Invalid or missing bearer token")

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error(str(exc) or "Invalid bearer token") from exc

    request.state.auth_principal = principal
    return principal


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_artifacts(request: Request) -> ArtifactStore:
    return request.app.state.artifacts


def get_worker_pool(request: Request) -> JobWorkerPool:
    return request.app.state.worker_pool


def get_report_materializer(request: Request) -> ReportMaterializer:
    return request.app.state.reports


def get_job_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    artifacts: Annotated[ArtifactStore, Depends(get_artifacts)],
) -> JobService:
    return JobService(store, artifacts)


def get_submission_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    artifacts: Annotated[ArtifactStore, Depends(get_artifacts)],
    pool: Annotated[JobWorkerPool, Depends(get_worker_pool)],
    settings: Annotated[Settings, Depends(get_settings_from_app)],
) -> SubmissionService:
    return SubmissionService(
        store=store,
        artifacts=artifacts,
        pool=pool,
        max_upload_bytes=settings.max_upload_bytes,
    )
