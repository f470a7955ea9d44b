from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from mediavault.api.v1 import get_api_router
from mediavault.core.config import Settings, get_settings
from mediavault.core.errors import (
    AlreadyExists,
    DownloadFailed,
    InvalidFilename,
    InvalidImage,
    InvalidMediaURL,
    MediavaultError,
    PayloadTooLarge,
    StorageUnavailable,
    TransactionRollbackFailure,
)
from mediavault.core.logging import configure_logging, get_logger, level_from_name
from mediavault.core.storage import Storage, get_storage

logger = get_logger(component="api")

# Ordered most specific first; the first isinstance match wins.
_ERROR_STATUS: list[tuple[type[MediavaultError], int, str]] = [
    (InvalidFilename, status.HTTP_400_BAD_REQUEST, "invalid_filename"),
    (InvalidMediaURL, status.HTTP_400_BAD_REQUEST, "invalid_media_url"),
    (AlreadyExists, status.HTTP_409_CONFLICT, "already_exists"),
    (PayloadTooLarge, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "payload_too_large"),
    (InvalidImage, status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_image"),
    (DownloadFailed, status.HTTP_502_BAD_GATEWAY, "download_failed"),
    (StorageUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "storage_unavailable"),
    (TransactionRollbackFailure, status.HTTP_500_INTERNAL_SERVER_ERROR, "rollback_failed"),
]


def _error_status(exc: MediavaultError) -> tuple[int, str]:
    for error_type, status_code, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, code
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"


async def mediavault_error_handler(request: Request, exc: MediavaultError) -> JSONResponse:
    status_code, code = _error_status(exc)
    log = logger.error if status_code >= 500 else logger.info
    log("request_failed", path=request.url.path, code=code, error=exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": code, "message": exc.message, "context": exc.details or None},
    )


def create_app(settings: Optional[Settings] = None, storage: Optional[Storage] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(level=level_from_name(settings.log_level), json_logs=settings.json_logs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active_storage = storage or get_storage(settings)
        app.state.settings = settings
        app.state.storage = active_storage
        logger.info("storage_ready", backend=settings.storage_backend, base_url=settings.storage_base_url)
        try:
            yield
        finally:
            active_storage.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )
    app.add_exception_handler(MediavaultError, mediavault_error_handler)
    app.include_router(get_api_router())
    return app


app = create_app()


__all__ = ["app", "create_app"]
