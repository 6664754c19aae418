"""Failure kinds shared by the body spooler and the conversion pipeline.

Each error carries the HTTP status it maps to and a short machine-readable
code. Messages are generic on purpose: exit codes, signals and resource usage
only ever go to the log.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .conversion.interfaces import RenderOutcome


class ServiceError(Exception):
    status_code = 500
    code = "internal_error"
    message = "internal error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class TooLarge(ServiceError):
    """Body exceeds the configured maximum or its own declared length."""

    status_code = 413
    code = "payload_too_large"
    message = "request body too large"


class ResourceUnavailable(ServiceError):
    """No disk slot became free within the wait budget."""

    status_code = 503
    code = "unavailable"
    message = "temporarily unavailable, retry later"


class Cancelled(ServiceError):
    code = "cancelled"
    message = "request cancelled"


class DeadlineExceeded(ServiceError):
    status_code = 504
    code = "timeout"
    message = "conversion timed out"


class ProcessFailure(ServiceError):
    message = "conversion failed"

    def __init__(self, message: str | None = None, *, outcome: "RenderOutcome | None" = None) -> None:
        super().__init__(message)
        self.outcome = outcome


class StorageFailure(ServiceError):
    message = "request body storage failed"
