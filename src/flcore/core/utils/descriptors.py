"""Descriptors shared by model mixins."""

from collections.abc import Callable
from functools import wraps
from typing import Any


class class_or_instance_method:  # noqa: N801
    """Method that can be called on the class and on its instances.

    The wrapped function receives the class when called on the class and
    the instance when called on an instance, so one definition answers
    both ``Model.has_permission(...)`` and ``obj.has_permission(...)``.

    Example:
        class Asset:
            @class_or_instance_method
            def describe(self_or_cls):
                return self_or_cls
    """

    def __init__(self, func: Callable[..., Any]) -> None:
        self.func = func
        self.__doc__ = func.__doc__

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Callable[..., Any]:
        target = owner if instance is None else instance

        @wraps(self.func)
        def bound(*args: Any, **kwargs: Any) -> Any:
            return self.func(target, *args, **kwargs)

        return bound
