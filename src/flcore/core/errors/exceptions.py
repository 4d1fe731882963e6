"""Exceptions raised by the library.

Configuration errors (duplicate permissions, grant cycles, bad checkers)
are raised at start-up or class-definition time and are not meant to be
recovered. The service layer converts the remaining exceptions into
status codes and error payloads.
"""

from typing import Any


class AppException(Exception):
    """Base exception for all library errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for clients
        status_code: HTTP-style status code associated with the error
        details: Additional error details
    """

    message: str = "An unexpected error occurred"
    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the error as a ``{type, message, details}`` dict."""
        rv: dict[str, Any] = {"type": self.error_code, "message": self.message}
        if self.details:
            rv["details"] = self.details
        return rv


class ConfigurationError(AppException):
    """Raised for programming or configuration errors detected at start-up.

    Example:
        raise ConfigurationError("please define a model class for MyService")
    """

    message = "Configuration error"
    error_code = "configuration_error"


class PermissionRegistryError(ConfigurationError):
    """Base class for permission registration errors."""

    message = "Permission registry error"
    error_code = "permission_registry_error"

    def __init__(self, message: str | None = None, name: str | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if name:
            details["name"] = name
        self.name = name
        super().__init__(message=message, details=details, **kwargs)


class DuplicateNameError(PermissionRegistryError):
    """Raised when a permission name is registered twice."""

    message = "Duplicate permission name"
    error_code = "duplicate_permission_name"


class DuplicateBitError(PermissionRegistryError):
    """Raised when a permission bit overlaps bits already in the registry."""

    message = "Duplicate permission bit"
    error_code = "duplicate_permission_bit"


class MissingPermissionError(PermissionRegistryError):
    """Raised when a permission that must be registered is not."""

    message = "Unknown permission"
    error_code = "missing_permission"


class GrantCycleError(PermissionRegistryError):
    """Raised when the grants graph contains a cycle.

    Example:
        raise GrantCycleError(cycle=["a", "b", "a"])
    """

    message = "Cycle in permission grants"
    error_code = "grant_cycle"

    def __init__(self, message: str | None = None, cycle: list[str] | None = None, **kwargs: Any) -> None:
        self.cycle = list(cycle or [])
        details = kwargs.pop("details", {})
        if self.cycle:
            details["cycle"] = self.cycle
            message = message or f"Cycle in permission grants: {' -> '.join(self.cycle)}"
        super().__init__(message=message, details=details, **kwargs)


class AccessCheckerError(ConfigurationError):
    """Raised when an object that is not a Checker is installed as one."""

    message = "Invalid access checker"
    error_code = "invalid_access_checker"


class NotFoundError(AppException):
    """Raised when a requested object is not found.

    Example:
        raise NotFoundError(resource="Comment", resource_id="12")
    """

    message = "Resource not found"
    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        message: str | None = None,
        resource: str | None = None,
        resource_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if resource:
            details["resource"] = resource
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message=message, details=details, **kwargs)


class ConflictError(AppException):
    """Raised when there's a conflict with existing data.

    Example:
        raise ConflictError("Actor already in group", details={"actor": fp})
    """

    message = "Resource conflict"
    error_code = "conflict"
    status_code = 409


class ValidationError(AppException):
    """Raised when an object fails validation.

    ``errors`` maps field names to lists of messages.

    Example:
        raise ValidationError(errors={"contents": ["can't be blank"]})
    """

    message = "Validation error"
    error_code = "validation_error"
    status_code = 422

    def __init__(
        self,
        message: str | None = None,
        errors: dict[str, list[str]] | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        self.errors = dict(errors or {})
        if self.errors:
            details["messages"] = self.errors
        super().__init__(message=message, details=details, **kwargs)


class ListNormalizationError(ValidationError):
    """Raised when objects cannot be converted into list items.

    ``conversion_errors`` holds the messages for the objects that failed.
    """

    message = "Some objects could not be loaded into list items"
    error_code = "list_normalization_failure"

    def __init__(self, message: str | None = None, conversion_errors: list[str] | None = None, **kwargs: Any) -> None:
        self.conversion_errors = list(conversion_errors or [])
        errors = kwargs.pop("errors", None) or ({"objects": self.conversion_errors} if self.conversion_errors else None)
        super().__init__(message=message, errors=errors, **kwargs)


class BadRequestError(AppException):
    """Raised for general client errors.

    Example:
        raise BadRequestError("Invalid request format")
    """

    message = "Bad request"
    error_code = "bad_request"
    status_code = 400


class FilterError(BadRequestError):
    """Raised when a filter body or filter configuration is invalid.

    Example:
        raise FilterError("unknown filter: colour", details={"filter": "colour"})
    """

    message = "Invalid query filter"
    error_code = "filter_error"

