from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
import taskiq_fastapi

# Internal Imports
from core.config import LocalSettings, settings
from core.dependencies import get_cascade_deleter, get_repository, get_storage, get_thumbnail_service
from core.exceptions import (
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from core.logging import configure_logging
from core.taskiq import broker
from core.telemetry import setup_telemetry
from domain.models import DeleteRequest, DeleteResponse, RenderRequest, RenderResponse, UploadResponse
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from services.cascade_deleter import CascadeDeleter
from services.metadata_repository import MetadataRepository
from services.render_dispatcher import TaskiqRenderDispatcher
from services.thumbnail_service import ThumbnailService
from services.upload_coordinator import UploadCoordinator

# 1. Configure Logging
configure_logging(json_logs=(settings.ENV == "production"), log_level=settings.LOG_LEVEL)
logger = structlog.get_logger()


# 2. Lifespan (Startup/Shutdown)
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("startup_initiated", env=settings.ENV)

    if settings.TRACING_ENABLED:
        setup_telemetry()

    if not broker.is_worker_process:
        await broker.startup()

    # Initialize global service
    app.state.upload_coordinator = UploadCoordinator(
        store=get_storage(),
        repository=get_repository(),
        dispatcher=TaskiqRenderDispatcher(),
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
    )

    yield

    if not broker.is_worker_process:
        await broker.shutdown()

    logger.info("shutdown_initiated")


# 3. Create Main App
app = FastAPI(title=settings.APP_NAME, lifespan=lifespan, version="1.0.0")

taskiq_fastapi.init(broker, app)  # Taskiq-FastAPI Integration

# Local blobs are served from disk; URLs look like /static/models/{id}/texture.png
if isinstance(settings, LocalSettings) and settings.STORAGE_BACKEND == "filesystem":
    app.mount("/static", StaticFiles(directory=settings.LOCAL_STORAGE_PATH, check_dir=False), name="static")


def get_upload_coordinator(request: Request) -> UploadCoordinator:
    return request.app.state.upload_coordinator


# 4. Exception Handlers
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": "Malformed request."})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"success": False, "error": str(exc)})


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.error("upstream_failure", error=str(exc), path=request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "An unexpected error occurred."},
    )


# 5. REST Endpoints
@app.post("/api/upload", response_model=UploadResponse)
async def upload_endpoint(
    modelName: Optional[str] = Form(default=None),
    file: Optional[UploadFile] = File(default=None),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator),
) -> UploadResponse:
    """
    Multipart upload of a ZIP holding one model file and one .png texture.
    Returns as soon as the metadata is stored; rendering continues in the background.
    """
    archive: Optional[bytes] = None
    filename: Optional[str] = None
    if file is not None:
        # One byte over the limit is enough to reject it
        archive = await file.read(settings.MAX_UPLOAD_BYTES + 1)
        filename = file.filename

    return await coordinator.upload(modelName, archive, filename)


@app.post("/api/thumbnail", response_model=RenderResponse)
async def thumbnail_endpoint(
    body: Optional[RenderRequest] = None,
    service: ThumbnailService = Depends(get_thumbnail_service),
) -> RenderResponse:
    """
    Internal render trigger. The upload flow dispatches the same work as a Taskiq task.
    """
    if body is None or not body.modelId:
        raise ValidationError("Missing model id in body.")

    return await service.render(body.modelId)


@app.post("/api/delete", response_model=DeleteResponse)
async def delete_endpoint(
    body: Optional[DeleteRequest] = None,
    deleter: CascadeDeleter = Depends(get_cascade_deleter),
) -> DeleteResponse:
    if body is None or not body.id:
        raise ValidationError("Missing model id.")

    try:
        return await deleter.delete(body.id)
    except NotFoundError as e:
        raise NotFoundError(f"Model metadata not found (it may already be deleted): {body.id}", original_error=e)


@app.get("/api/list")
async def list_endpoint(repository: MetadataRepository = Depends(get_repository)) -> JSONResponse:
    """
    All metadata records, newest first.
    """
    records = await repository.list_records()
    return JSONResponse(
        content=[r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in records]
    )


@app.get("/health")
def health_check() -> Dict[str, Any]:
    return {"status": "ok", "env": settings.ENV}
