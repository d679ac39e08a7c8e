"""
Global exception handlers.

Every error leaves the API as a finalized ApiResponse envelope:
- KnownError -> known failure with the error's own status code
- SQLAlchemyError -> storage_unavailable (503), driver text never exposed
- Exception (catch-all) -> unknown failure (500)
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from classcoins.models.failure import (
    ApiResponse,
    KnownError,
    StorageUnavailableError,
    create_unknown_failure,
    is_finalized,
)

logger = logging.getLogger(__name__)


def _envelope(status_code: int, response: ApiResponse[Any]) -> JSONResponse:
    if not is_finalized(response):
        raise ValueError("Error responses must pass through finalize_response()")
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(KnownError)
    async def known_error_handler(request: Request, exc: KnownError) -> JSONResponse:
        logger.info(
            "KNOWN_FAILURE",
            extra={"kind": exc.kind.value, "path": request.url.path},
        )
        return _envelope(exc.status_code, exc.to_response())

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(
            "STORAGE_FAILURE",
            extra={"error": type(exc).__name__, "path": request.url.path},
        )
        failure = StorageUnavailableError(request.url.path)
        return _envelope(status.HTTP_503_SERVICE_UNAVAILABLE, failure.to_response())

    @app.exception_handler(Exception)
    async def unknown_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("UNHANDLED_EXCEPTION", extra={"path": request.url.path})
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, create_unknown_failure(exc))
