"""Error rendering and the single failure-logging boundary."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.errors import InvalidRequest, NotFound, TryOnError

from .dependencies import get_app_settings, get_request_id

logger = logging.getLogger(__name__)


def log_failure(request: Request, error: TryOnError) -> None:
    """Log one terminal request failure with its code and correlation id."""

    level = logging.ERROR if error.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "Request failed request_id=%s method=%s path=%s status=%d code=%s error=%s",
        get_request_id(request),
        request.method,
        request.url.path,
        error.status_code,
        error.code,
        error.detail or error.message,
    )


def _render(request: Request, error: TryOnError) -> JSONResponse:
    log_failure(request, error)
    include_detail = not get_app_settings(request).is_production
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_payload(include_detail=include_detail),
    )


async def tryon_error_handler(request: Request, exc: TryOnError) -> JSONResponse:
    return _render(request, exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _render(request, InvalidRequest(detail=str(exc.errors())))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _render(request, NotFound())
    error = TryOnError(str(exc.detail), detail=str(exc.detail))
    error.status_code = exc.status_code
    error.code = f"HTTP_{exc.status_code}"
    return _render(request, error)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error request_id=%s: %s", get_request_id(request), exc)
    return _render(request, TryOnError(detail=str(exc)))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TryOnError, tryon_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
