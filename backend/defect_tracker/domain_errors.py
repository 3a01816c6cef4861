"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class DomainError(Exception):
    """Handler level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class Unauthorized(DomainError):
    def __init__(self, message: str = "Unauthorized", details: dict[str, Any] | None = None) -> None:
        super().__init__(code="UNAUTHORIZED", http_status=401, message=message, details=details)


class Forbidden(DomainError):
    def __init__(self, message: str = "Forbidden", details: dict[str, Any] | None = None) -> None:
        super().__init__(code="FORBIDDEN", http_status=403, message=message, details=details)


class NotFound(DomainError):
    def __init__(self, message: str = "Not found", details: dict[str, Any] | None = None) -> None:
        super().__init__(code="NOT_FOUND", http_status=404, message=message, details=details)


class ValidationError(DomainError):
    def __init__(self, message: str = "Invalid request", details: dict[str, Any] | None = None) -> None:
        super().__init__(code="VALIDATION_ERROR", http_status=400, message=message, details=details)


class InternalError(DomainError):
    def __init__(self, message: str = "Internal server error", details: dict[str, Any] | None = None) -> None:
        super().__init__(code="INTERNAL_ERROR", http_status=500, message=message, details=details)


@contextmanager
def handler_boundary(action: str) -> Iterator[None]:
    """Map unexpected failures inside a handler to InternalError.

    Errors already classified as DomainError pass through untouched.
    """
    try:
        yield
    except DomainError:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure while %s", action)
        raise InternalError(f"Internal server error while {action}") from exc
