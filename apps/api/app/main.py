"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.adapters.media import MediaToolkit, build_media_toolkit
from app.core.config import Settings, get_settings
from app.errors import ApiError
from app.repositories.artifacts import ArtifactStore
from app.repositories.memory import InMemoryStore
from app.routes import jobs_router
from app.schemas.error import ErrorResponse
from app.services.pipeline import ProcessingOrchestrator
from app.services.reports import ReportMaterializer
from app.services.worker_pool import JobWorkerPool

_API_PREFIX = "/api/v1"

_OPENAPI_RESPONSE_CODES: dict[str, dict[str, set[str]]] = {
    "/api/v1/jobs/upload": {"post": {"202", "401", "413", "415", "422", "503"}},
    "/api/v1/jobs/remote": {"post": {"202", "401", "422", "503"}},
    "/api/v1/jobs": {"get": {"200", "401"}},
    "/api/v1/jobs/{jobId}": {
        "get": {"200", "401", "403", "404"},
        "delete": {"204", "401", "403", "404"},
    },
    "/api/v1/jobs/{jobId}/report": {"get": {"200", "401", "403", "404", "409"}},
}

_SUBMISSION_VALIDATION_PATHS: set[tuple[str, str]] = {
    ("POST", "/api/v1/jobs/upload"),
    ("POST", "/api/v1/jobs/remote"),
}


def _apply_contract_response_codes(schema: dict) -> None:
    """Limit documented response codes to the ones each route can return."""
    for path, methods in _OPENAPI_RESPONSE_CODES.items():
        path_item = schema.get("paths", {}).get(path)
        if not path_item:
            continue

        for method, allowed_codes in methods.items():
            operation = path_item.get(method)
            if not operation:
                continue

            responses = operation.setdefault("responses", {})
            for status_code in list(responses.keys()):
                if status_code not in allowed_codes:
                    responses.pop(status_code, None)

            for status_code in sorted(allowed_codes):
                responses.setdefault(status_code, {"description": "See API contract"})


def create_app(*, settings: Settings | None = None, toolkit: MediaToolkit | None = None) -> FastAPI:
    settings = settings or get_settings()
    store = InMemoryStore()
    artifacts = ArtifactStore(settings.storage_root)
    orchestrator = ProcessingOrchestrator(
        store=store,
        artifacts=artifacts,
        toolkit=toolkit or build_media_toolkit(settings),
        max_key_frames=settings.max_key_frames,
        frame_concurrency=settings.frame_concurrency,
    )
    worker_pool = JobWorkerPool(
        orchestrator=orchestrator,
        concurrency=settings.max_concurrent_jobs,
        queue_size=settings.queue_size,
        job_timeout_seconds=settings.job_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await worker_pool.start()
        try:
            yield
        finally:
            await worker_pool.stop()

    app = FastAPI(title="Vidlens API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.artifacts = artifacts
    app.state.orchestrator = orchestrator
    app.state.worker_pool = worker_pool
    app.state.reports = ReportMaterializer(store, artifacts)

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        if (request.method.upper(), route_path) in _SUBMISSION_VALIDATION_PATHS:
            fields = sorted({".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()})
            payload = ErrorResponse(
                code="VALIDATION_ERROR",
                message="Invalid submission payload",
                details={"fields": fields},
            )
            return JSONResponse(status_code=422, content=payload.model_dump())

        return await request_validation_exception_handler(request, exc)

    app.include_router(jobs_router, prefix=_API_PREFIX)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_contract_response_codes(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
