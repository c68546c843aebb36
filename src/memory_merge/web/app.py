"""
FastAPI application for memory-merge.

Exposes the search and write entry points and maps the error taxonomy to
HTTP status codes. Every error body carries ``error`` and a stable ``code``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from memory_merge import __version__
from memory_merge.config import Settings, get_settings
from memory_merge.errors import (
    DimensionMismatch,
    EmbeddingError,
    InvalidRequest,
    MemoryMergeError,
    NotFound,
    StoreUnavailable,
)
from memory_merge.factory import Components, build_components, close_components
from memory_merge.web.api import knowledge, search

logger = logging.getLogger(__name__)

STATUS_CODES = {
    InvalidRequest: 400,
    NotFound: 404,
    EmbeddingError: 502,
    StoreUnavailable: 503,
    DimensionMismatch: 500,
}


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "code": code})


def _validation_message(exc: ValidationError | RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts) or "Invalid request"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(MemoryMergeError)
    async def memory_merge_error_handler(request: Request, exc: MemoryMergeError):
        status_code = next(
            (status for error_type, status in STATUS_CODES.items() if isinstance(exc, error_type)),
            500,
        )
        if isinstance(exc, DimensionMismatch):
            logger.critical(f"{request.url.path}: {exc}")
        elif status_code >= 500:
            logger.error(f"{request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.url.path} rejected ({exc.code}): {exc}")
        return _error(status_code, str(exc), exc.code)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(400, _validation_message(exc), InvalidRequest.code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc), InvalidRequest.code)

    @app.exception_handler(asyncio.TimeoutError)
    async def timeout_handler(request: Request, exc: asyncio.TimeoutError):
        logger.error(f"{request.url.path} timed out")
        return _error(504, "Request timed out", "timeout")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unexpected error in {request.url.path}: {exc}")
        return _error(500, "Internal server error", MemoryMergeError.code)


def create_app(
    settings: Optional[Settings] = None,
    components: Optional[Components] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Runtime settings (default: loaded from the environment)
        components: Pre-built components; built from settings at startup if omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = components is None
        app.state.components = components or build_components(settings)

        initialize = getattr(app.state.components.vector_store, "initialize", None)
        if initialize is not None:
            await initialize()

        logger.info(f"memory-merge {__version__} started")
        yield

        if owned:
            await close_components(app.state.components)

    app = FastAPI(title="memory-merge", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    register_error_handlers(app)

    app.include_router(search.router, prefix="/api")
    app.include_router(knowledge.router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app
