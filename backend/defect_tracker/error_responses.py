"""Error body rendering: every failure leaves the API as {"error": <message>}."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .domain_errors import DomainError

logger = logging.getLogger(__name__)


def build_error_response(exc: DomainError) -> JSONResponse:
    """Render DomainError as the API error envelope."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.http_status == 401 else None
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": exc.message},
        headers=headers,
    )


def format_validation_errors(exc: RequestValidationError) -> str:
    """Collapse pydantic errors into one readable line."""
    parts = []
    for error in exc.errors():
        loc = [str(item) for item in error.get("loc", ()) if item != "body"]
        field = ".".join(loc)
        message = error.get("msg", "invalid value")
        parts.append(f"{field}: {message}" if field else message)
    return "; ".join(parts) or "Invalid request"


async def _handle_domain_error(_: Request, exc: DomainError) -> JSONResponse:
    return build_error_response(exc)


async def _handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": format_validation_errors(exc)})


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
