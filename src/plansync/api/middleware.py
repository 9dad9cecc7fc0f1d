"""API error handling: domain exceptions become consistent error envelopes.

Status code mapping:
- ``NoWorkItemsError`` -> 400 ``NO_WORK_ITEMS``
- ``OAuthStateError`` -> 400 ``INVALID_OAUTH_STATE``
- ``UnknownProviderError`` -> 404 ``UNKNOWN_PROVIDER``
- ``PlanningUnavailableError`` -> 502 ``PLANNING_UNAVAILABLE``
- ``ProviderRequestError`` (connect flow) -> 502 ``PROVIDER_ERROR``
- ``ProviderNotConfiguredError`` -> 503 ``PROVIDER_NOT_CONFIGURED``
- Any other exception -> 500 ``INTERNAL_ERROR``
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from plansync.api.models import ErrorDetail, ErrorResponse
from plansync.errors import (
    CalendarError,
    NoWorkItemsError,
    OAuthStateError,
    PlanningUnavailableError,
    PlanSyncError,
    ProviderNotConfiguredError,
    ProviderRequestError,
    UnknownProviderError,
    summarize_error,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins.
_ERROR_MAP: list[tuple[type[PlanSyncError], int, str]] = [
    (NoWorkItemsError, 400, "NO_WORK_ITEMS"),
    (OAuthStateError, 400, "INVALID_OAUTH_STATE"),
    (UnknownProviderError, 404, "UNKNOWN_PROVIDER"),
    (PlanningUnavailableError, 502, "PLANNING_UNAVAILABLE"),
    (ProviderNotConfiguredError, 503, "PROVIDER_NOT_CONFIGURED"),
    (ProviderRequestError, 502, "PROVIDER_ERROR"),
    (CalendarError, 502, "CALENDAR_ERROR"),
]


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_plansync_error(request: Request, exc: PlanSyncError) -> JSONResponse:
    """Map a domain error to its status code and error code."""
    for error_cls, status_code, code in _ERROR_MAP:
        if isinstance(exc, error_cls):
            if status_code >= 500:
                logger.warning("%s on %s: %s", code, request.url.path, summarize_error(exc))
            else:
                logger.info("%s on %s: %s", code, request.url.path, exc)
            return _error_response(status_code, code, summarize_error(exc))

    logger.error("Unmapped error on %s", request.url.path, exc_info=exc)
    return _error_response(500, "INTERNAL_ERROR", "Internal server error")


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """Convert any unhandled exception into a 500 error envelope."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return _error_response(500, "INTERNAL_ERROR", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers and the catch-all middleware to *app*."""
    app.add_exception_handler(PlanSyncError, _handle_plansync_error)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
