"""Service layer: request-scoped operations with access checks and status reporting."""

from flcore.services.base import ACTION_PERMISSIONS, BaseService, adjust_params
from flcore.services.nested import NestedService
from flcore.services.status import (
    ErrorBody,
    ErrorResponse,
    PaginationControls,
    ServiceStatus,
    error_response_data,
    exception_response_data,
    success_response_data,
)


__all__ = [
    "ACTION_PERMISSIONS",
    "BaseService",
    "ErrorBody",
    "ErrorResponse",
    "NestedService",
    "PaginationControls",
    "ServiceStatus",
    "adjust_params",
    "error_response_data",
    "exception_response_data",
    "success_response_data",
]
