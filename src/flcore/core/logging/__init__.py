"""Logging module with structured logging setup."""

from flcore.core.logging.config import configure_logging


__all__ = [
    "configure_logging",
]
