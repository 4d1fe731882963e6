"""Service status codes and response payloads.

Services never raise for request-level failures; they record a status and
a response payload. Error payloads have the shape
``{"_error": {"type", "message", "details"}}`` and success payloads
``{"_status": {"message"}, "payload": {...}}``.
"""

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from flcore.config import settings
from flcore.core.errors import AppException, ValidationError


class ServiceStatus(IntEnum):
    """Terminal statuses of a service operation."""

    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    UNPROCESSABLE_ENTITY = 422


class ErrorBody(BaseModel):
    """Error description carried in an error response."""

    type: str
    message: str | None = None
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Error response envelope."""

    model_config = ConfigDict(populate_by_name=True)

    error: ErrorBody = Field(alias="_error")


class PaginationControls(BaseModel):
    """Pagination controls returned with index results.

    Attributes:
        count: Number of items in the returned page
        size: Page size, or -1 when results are not paginated
        page: Number of the page that follows the returned one
    """

    model_config = ConfigDict(populate_by_name=True)

    count: int = Field(0, alias="_c")
    size: int = Field(-1, alias="_s")
    page: int = Field(1, alias="_p")


def error_messages(errors: dict[str, list[str]]) -> dict[str, Any]:
    """Details for per-field validation errors."""
    return {
        "messages": {k: list(v) for k, v in errors.items()},
        "full_messages": [f"{field} {msg}" for field, msgs in errors.items() for msg in msgs],
    }


def exception_details(exc: BaseException) -> dict[str, Any]:
    """Details for an exception; validation errors keep their per-field messages."""
    if isinstance(exc, ValidationError) and exc.errors:
        return error_messages(exc.errors)
    msg = exc.message if isinstance(exc, AppException) else str(exc)
    details: dict[str, Any] = {"messages": {"exception": msg}, "full_messages": [msg]}
    if settings.debug:
        details["exception_type"] = type(exc).__name__
    return details


def error_response_data(type_: str, message: str | None = None, details: Any = None) -> dict[str, Any]:
    """Build an error response payload.

    Args:
        type_: Machine-readable error type, e.g. ``no_permission``
        message: Human-readable message
        details: A ``{field: [messages]}`` dict of validation errors, an
            exception, or any other mapping (copied as is)

    Returns:
        The ``{"_error": {...}}`` payload
    """
    details_data: dict[str, Any] | None = None
    if isinstance(details, BaseException):
        details_data = exception_details(details)
    elif isinstance(details, dict) and details and all(isinstance(v, list) for v in details.values()):
        details_data = error_messages(details)
    elif isinstance(details, dict):
        details_data = dict(details)

    body = ErrorBody(type=type_, message=message or None, details=details_data)
    return ErrorResponse(error=body).model_dump(by_alias=True, exclude_none=True)


def exception_response_data(type_: str, message: str | None = None, exc: BaseException | None = None) -> dict[str, Any]:
    """Build an error response payload from an exception."""
    return error_response_data(type_, message, exc)


def success_response_data(message: str | None = None, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build a success response payload."""
    status: dict[str, Any] = {}
    if message:
        status["message"] = message
    rv: dict[str, Any] = {"_status": status}
    if isinstance(payload, dict):
        rv["payload"] = payload
    return rv
