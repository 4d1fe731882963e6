"""Database layer - session management, base models, mixins and lookup."""

from flcore.core.database.base import Base, IntIDMixin, TimestampMixin, add_error
from flcore.core.database.locator import ModelLocator, locator
from flcore.core.database.reference_fields import ReferenceFieldsMixin
from flcore.core.database.session import (
    create_engine_from_settings,
    enable_sqlite_savepoints,
    engine,
    get_db,
    init_db,
    session_factory,
)


__all__ = [
    "Base",
    "IntIDMixin",
    "ModelLocator",
    "ReferenceFieldsMixin",
    "TimestampMixin",
    "add_error",
    "create_engine_from_settings",
    "enable_sqlite_savepoints",
    "engine",
    "get_db",
    "init_db",
    "locator",
    "session_factory",
]
