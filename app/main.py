from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app.api import health_router, router
from errors import (
    BackendUnavailableError,
    CorruptRecordError,
    DataAccessError,
    InvalidRequestError,
    NotFoundError,
    PartitionNotProvisionedError,
)
from logging_config import configure_logging
from services.query import build_default_engine
from settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    engine = build_default_engine()
    try:
        yield
    finally:
        engine.shutdown()
        build_default_engine.cache_clear()


def _error_response(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]
    return _error_response(status.HTTP_400_BAD_REQUEST, "; ".join(messages) or "Invalid request.")


async def _data_access_error(request: Request, exc: DataAccessError) -> JSONResponse:
    if isinstance(exc, InvalidRequestError):
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))
    if isinstance(exc, NotFoundError):
        return _error_response(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, BackendUnavailableError):
        logger.error("Backend unavailable", extra={"reason": str(exc)})
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage backend unavailable.")
    if isinstance(exc, (PartitionNotProvisionedError, CorruptRecordError)):
        logger.error("Storage error", extra={"reason": str(exc)})
    else:
        logger.error("Unhandled data access error", exc_info=exc, extra={"reason": request.url.path})
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(
        title="Sensor Data Access",
        description="Sensor registry and monthly-partitioned reading queries.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_minimum_size)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(DataAccessError, _data_access_error)
    app.include_router(router)
    app.include_router(health_router)
    return app

app = create_app()
