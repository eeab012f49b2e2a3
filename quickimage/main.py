from contextlib import asynccontextmanager
from typing import Dict, List

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import FileResponse, JSONResponse

from quickimage.core.config import get_settings
from quickimage.core.dependencies import get_generators, get_orchestrator, get_search_index, get_store
from quickimage.core.exceptions import ArtifactNotFoundError, InvalidRequestError, QuickImageError
from quickimage.core.logging import configure_logging
from quickimage.core.telemetry import setup_telemetry
from quickimage.domain.interfaces import ImageGenerator
from quickimage.domain.models import (
    APIResponse,
    CredentialStatus,
    ErrorDetails,
    GenerationRequest,
    GenerationResult,
    ImageMetadata,
    ImageModel,
    VideoResult,
)
from quickimage.services.orchestrator import GenerationOrchestrator
from quickimage.storage.artifact_store import ArtifactStore
from quickimage.storage.search_index import SearchIndex

settings = get_settings()

# 1. Configure Logging & Tracing
configure_logging(json_logs=settings.json_logs, log_level=settings.LOG_LEVEL, service=settings.APP_NAME)
setup_telemetry(settings)
logger = structlog.get_logger()


# 2. Lifespan (Startup/Shutdown)
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("startup_initiated", env=settings.ENV, image_folder=str(settings.IMAGE_FOLDER))
    yield
    logger.info("shutdown_initiated")


# 3. Create Main App
app = FastAPI(title=settings.APP_NAME, lifespan=lifespan, version="1.0.0")


# 4. Exception Handlers
def _error_response(status_code: int, exc: QuickImageError) -> JSONResponse:
    body = APIResponse(success=False, error=ErrorDetails(code=exc.code, message=exc.message))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(ArtifactNotFoundError)
async def not_found_handler(request: Request, exc: ArtifactNotFoundError):
    return _error_response(404, exc)


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    return _error_response(400, exc)


@app.exception_handler(QuickImageError)
async def quickimage_error_handler(request: Request, exc: QuickImageError):
    return _error_response(502, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {"code": QuickImageError.code, "message": "An unexpected error occurred."},
        },
    )


# 5. REST Endpoints
@app.post("/api/v1/images")
async def generate_endpoint(
    body: GenerationRequest, orchestrator: GenerationOrchestrator = Depends(get_orchestrator)
) -> APIResponse[GenerationResult]:
    """
    Generate one image. Provider failures are reported in the body, not raised.
    """
    result = await orchestrator.generate(body)
    return APIResponse[GenerationResult](success=result.succeeded, data=result, error=result.error)


@app.get("/api/v1/images")
async def list_endpoint(
    limit: int = Query(default=settings.LIST_MAX_RESULTS, ge=0),
    store: ArtifactStore = Depends(get_store),
) -> APIResponse[List[ImageMetadata]]:
    return APIResponse[List[ImageMetadata]](success=True, data=await store.list_newest_first(limit))


@app.get("/api/v1/images/search")
async def search_endpoint(
    q: str = Query(..., min_length=1),
    limit: int = Query(default=settings.SEARCH_MAX_RESULTS, ge=0),
    newest_first: bool = False,
    index: SearchIndex = Depends(get_search_index),
) -> APIResponse[List[ImageMetadata]]:
    """
    An empty result list means "no matches", distinct from a rejected empty query.
    """
    matches = await index.search(q, limit=limit, newest_first=newest_first)
    return APIResponse[List[ImageMetadata]](success=True, data=matches)


@app.get("/api/v1/images/{image_id}")
async def metadata_endpoint(image_id: str, store: ArtifactStore = Depends(get_store)) -> APIResponse[ImageMetadata]:
    return APIResponse[ImageMetadata](success=True, data=await store.read_metadata(image_id))


@app.get("/api/v1/images/{image_id}/file")
async def file_endpoint(image_id: str, store: ArtifactStore = Depends(get_store)):
    metadata = await store.read_metadata(image_id)
    return FileResponse(store.artifact_path_for(metadata))


@app.post("/api/v1/images/{image_id}/video")
async def video_endpoint(
    image_id: str, orchestrator: GenerationOrchestrator = Depends(get_orchestrator)
) -> APIResponse[VideoResult]:
    result = await orchestrator.generate_video(image_id)
    return APIResponse[VideoResult](success=result.succeeded, data=result, error=result.error)


@app.get("/api/v1/providers")
async def providers_endpoint(
    generators: Dict[ImageModel, ImageGenerator] = Depends(get_generators),
) -> APIResponse[Dict[str, CredentialStatus]]:
    """
    Which models have their API key configured.
    """
    status: Dict[str, CredentialStatus] = {}
    for client in {id(g): g for g in generators.values()}.values():
        status.update({model.value: s for model, s in client.credentials_status().items()})
    return APIResponse[Dict[str, CredentialStatus]](success=True, data=status)


@app.get("/health")
def health_check():
    return {"status": "ok", "env": settings.ENV}
