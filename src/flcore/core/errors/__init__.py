"""Error hierarchy for the library."""

from flcore.core.errors.exceptions import (
    AccessCheckerError,
    AppException,
    BadRequestError,
    ConfigurationError,
    ConflictError,
    DuplicateBitError,
    DuplicateNameError,
    FilterError,
    GrantCycleError,
    ListNormalizationError,
    MissingPermissionError,
    NotFoundError,
    PermissionRegistryError,
    ValidationError,
)


__all__ = [
    "AccessCheckerError",
    "AppException",
    "BadRequestError",
    "ConfigurationError",
    "ConflictError",
    "DuplicateBitError",
    "DuplicateNameError",
    "FilterError",
    "GrantCycleError",
    "ListNormalizationError",
    "MissingPermissionError",
    "NotFoundError",
    "PermissionRegistryError",
    "ValidationError",
]
