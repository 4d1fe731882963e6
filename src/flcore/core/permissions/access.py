"""Access control support for model classes.

``AccessControlMixin`` gives a class ``has_access_control()`` and
``has_permission()``, both callable on the class (for class-level
permissions like ``create`` and ``index``) and on instances. The checker
is attached with ``enable_access_control`` or the ``access_controlled``
decorator:

    @access_controlled(GrantTableChecker(registry))
    class Document(AccessControlMixin, IntIDMixin, Base):
        ...

    Document.has_permission("create", actor)
    doc.has_permission("read", actor)
"""

from collections.abc import Callable
from typing import Any, Protocol, TypeVar, runtime_checkable

import structlog

from flcore.core.errors import AccessCheckerError, ConfigurationError
from flcore.core.permissions.checker import Checker
from flcore.core.utils.descriptors import class_or_instance_method


logger = structlog.get_logger()

T = TypeVar("T", bound=type)


@runtime_checkable
class PermissionCheckable(Protocol):
    """Objects (or classes) that can answer permission checks."""

    def has_access_control(self) -> bool: ...

    def has_permission(self, permission: Any, actor: Any, context: Any = None) -> bool: ...


class AccessControlMixin:
    """Mixin adding a class-level access checker with per-instance overrides."""

    access_checker = None

    @class_or_instance_method
    def get_access_checker(self_or_cls) -> Checker | None:
        """The effective checker: the instance override, else the class checker."""
        if not isinstance(self_or_cls, type):
            override = getattr(self_or_cls, "_instance_access_checker", None)
            if override is not None:
                return override
        return self_or_cls.access_checker

    def set_access_checker(self, checker: Checker | None) -> None:
        """Install a checker for this instance only; None restores the class checker.

        Raises:
            AccessCheckerError: If ``checker`` is not a Checker
        """
        if checker is not None and not isinstance(checker, Checker):
            raise AccessCheckerError(f"not a Checker: {checker!r}")
        self._instance_access_checker = checker

    @class_or_instance_method
    def has_access_control(self_or_cls) -> bool:
        """True if a checker is in effect."""
        return self_or_cls.get_access_checker() is not None

    @class_or_instance_method
    def has_permission(self_or_cls, permission: Any, actor: Any, context: Any = None) -> bool:
        """Check whether ``actor`` has ``permission`` on this object (or class).

        Classes without a checker deny every permission.
        """
        checker = self_or_cls.get_access_checker()
        if checker is None:
            logger.debug(
                "access_check_without_checker",
                model=self_or_cls.__name__ if isinstance(self_or_cls, type) else type(self_or_cls).__name__,
            )
            return False
        return checker.check(permission, actor, self_or_cls, context)


def enable_access_control(cls: T, checker: Checker) -> T:
    """Attach ``checker`` to ``cls`` and run its ``configure`` hook.

    Raises:
        ConfigurationError: If ``cls`` does not use AccessControlMixin
        AccessCheckerError: If ``checker`` is not a Checker
    """
    if not (isinstance(cls, type) and issubclass(cls, AccessControlMixin)):
        raise ConfigurationError(f"{cls!r} does not include AccessControlMixin")
    if not isinstance(checker, Checker):
        raise AccessCheckerError(f"not a Checker: {checker!r}")
    cls.access_checker = checker
    checker.configure(cls)
    return cls


def add_access_control(cls: T, checker: Checker) -> T:
    """Like ``enable_access_control``, but leaves classes that already have a checker alone."""
    if isinstance(cls, type) and issubclass(cls, AccessControlMixin) and cls.access_checker is not None:
        return cls
    return enable_access_control(cls, checker)


def access_controlled(checker: Checker) -> Callable[[T], T]:
    """Class decorator form of ``enable_access_control``."""

    def decorator(cls: T) -> T:
        return enable_access_control(cls, checker)

    return decorator


def supports_access_control(obj: Any) -> bool:
    """Does ``obj`` (object or class) answer permission checks?"""
    return isinstance(obj, PermissionCheckable) and obj.has_access_control()


def check_permission(obj: Any, permission: Any, actor: Any, context: Any = None) -> bool:
    """Check a permission on any object; objects without access control deny."""
    if not isinstance(obj, PermissionCheckable):
        return False
    return obj.has_permission(permission, actor, context) is True
