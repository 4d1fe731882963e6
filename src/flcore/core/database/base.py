"""SQLAlchemy declarative base and common mixins."""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from flcore.core.model_dict import ModelDictMixin
from flcore.core.references import fingerprint, global_id
from flcore.core.utils.descriptors import class_or_instance_method


class Base(ModelDictMixin, DeclarativeBase):
    """Base class for all SQLAlchemy models.

    Provides the default answers to the capability checks used by the
    access, comment and list layers: models are not access controlled,
    commentable or listable unless they mix in the corresponding support.
    Every model has ``to_dict`` (see ``flcore.core.model_dict``).
    """

    @class_or_instance_method
    def has_access_control(self_or_cls) -> bool:
        """Whether the class (or instance) carries an access checker."""
        return False

    @class_or_instance_method
    def is_commentable(self_or_cls) -> bool:
        """Whether the class (or instance) accepts comments."""
        return False

    @class_or_instance_method
    def is_listable(self_or_cls) -> bool:
        """Whether the class (or instance) can be placed in lists."""
        return False

    def list_item_summary(self) -> str:
        return ""

    def fingerprint(self) -> str:
        """Return the ``ClassName/id`` fingerprint of this object."""
        return fingerprint(type(self), getattr(self, "id", None))

    def to_global_id(self, app: str | None = None) -> str:
        """Return the ``gid://app/ClassName/id`` global identifier."""
        return global_id(type(self), getattr(self, "id", None), app=app)

    def validate(self) -> dict[str, list[str]]:
        """Validate the object before it is saved.

        Returns:
            Mapping of field names to error messages; empty when valid
        """
        return {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={getattr(self, 'id', None)!r}>"


class IntIDMixin:
    """Mixin that adds an integer autoincrement primary key."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def add_error(errors: dict[str, list[str]], field: str, msg: Any) -> None:
    """Append a validation message for ``field`` to ``errors``."""
    errors.setdefault(field, []).append(str(msg))
