"""Service for objects that live inside an owner object.

Nested objects are created and listed through their owner: creating a
comment on a document checks ``write`` on the document, and listing a
document's comments checks ``index_contents`` on it.
"""

from collections.abc import Iterable
from typing import Any, ClassVar

from flcore.core.errors import ConfigurationError
from flcore.core.permissions import Create, Index, IndexContents, Write, check_permission, supports_access_control
from flcore.core.utils.text import snake_case
from flcore.services.base import BaseService
from flcore.services.status import ServiceStatus, error_response_data


class NestedService(BaseService):
    """Base service for nested objects.

    Args:
        actor: The actor performing the operation
        params: Request parameters
        session: Database session
        owner_class: Class of the owner; defaults to the ``owner_class``
            class attribute
        owner_id_name: Parameter holding the owner id; defaults to
            ``<owner_class in snake case>_id``
        **kwargs: Passed to ``BaseService``

    Raises:
        ConfigurationError: If no owner class is defined
    """

    owner_class: ClassVar[type | None] = None

    def __init__(
        self,
        actor: Any,
        params: dict[str, Any] | None = None,
        session: Any = None,
        *,
        owner_class: type | None = None,
        owner_id_name: str | None = None,
        **kwargs: Any,
    ) -> None:
        owner_class = owner_class or type(self).owner_class
        if owner_class is None:
            raise ConfigurationError(f"please define an owner class for {type(self).__name__}")
        self.owner_class = owner_class
        self.owner_id_name = owner_id_name or f"{snake_case(owner_class.__name__)}_id"
        self._owner: Any = None
        super().__init__(actor, params, session, **kwargs)

    @property
    def owner(self) -> Any:
        """The owner loaded by ``get_owner``, if any."""
        return self._owner

    def get_owner(self, idname: str | Iterable[str] | None = None, params: dict[str, Any] | None = None) -> Any:
        """Load the owner from the owner id parameter.

        The owner is cached after the first successful lookup. Sets
        NOT_FOUND (type ``owner_not_found``) if it does not exist.

        Returns:
            The owner, or None
        """
        if self._owner is not None:
            return self._owner

        obj, kvp = self.find_object(
            self.owner_class, idname or self.owner_id_name, params if params is not None else self.params
        )
        if obj is None:
            self.set_status(
                ServiceStatus.NOT_FOUND,
                error_response_data(
                    "owner_not_found", self.localized_message("owner_not_found", id=self.flatten_param_keys(kvp))
                ),
            )
            return None
        self._owner = obj
        return obj

    def get_and_check_owner(
        self,
        action: str | None,
        idname: str | Iterable[str] | None = None,
        params: dict[str, Any] | None = None,
        context: Any = None,
    ) -> Any:
        """Load the owner and check ``action`` on it.

        Returns:
            The owner (check ``success()`` for the outcome of the check),
            or None if it was not found
        """
        owner = self.get_owner(idname, params)
        if owner is None:
            return None
        if action is not None and self.has_action_permission(action, owner, context):
            self.clear_status()
        return owner

    def create_nested(
        self,
        captcha: bool = False,
        owner_id_name: str | None = None,
        owner_attribute_name: str = "owner",
        params: dict[str, Any] | None = None,
        context: Any = None,
    ) -> Any:
        """Create an object inside the owner named by the request parameters.

        Checks ``create`` on the owner (``write`` permission) and sets
        ``owner_attribute_name`` on the new object to the owner.

        Returns:
            The created object, or None on failure
        """
        cls_name = self.model_class.__name__
        with self.operation():
            try:
                p = dict(params) if params is not None else self.create_params(self.params)
            except Exception as exc:
                self._fail_with_exception("nested_creation_failure", self.localized_message("invalid_params"), exc)
                return None
            ctx = p if context is None else context

            failure = self.localized_message("nested_creation_failure", owner=self.owner_class.__name__, cls=cls_name)
            try:
                owner = self.get_owner(owner_id_name)
                if owner is None or not self.success():
                    return None
                if not self.verify_captcha(captcha, p)["success"]:
                    return None
                if not self.has_action_permission("create", owner, ctx):
                    return None

                failure = self.localized_message("nested_creation_failure", owner=owner.fingerprint(), cls=cls_name)
                p[owner_attribute_name] = owner
                obj = self.model_class(**p)
                errors = self.save_object(obj)
                if errors:
                    self._fail(ServiceStatus.UNPROCESSABLE_ENTITY, "nested_creation_failure", failure, errors)
                    return None
                return obj
            except Exception as exc:
                self._fail_with_exception("nested_creation_failure", failure, exc)
                return None

    def index(
        self,
        query_opts: dict[str, Any] | None = None,
        _q: dict[str, Any] | None = None,
        _pg: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """List the objects in the owner named by the owner id parameter.

        Checks ``index_contents`` on the owner. Sets NOT_FOUND if the owner
        does not exist.
        """
        with self.operation():
            try:
                if self.get_owner() is None:
                    return None
            except Exception as exc:
                self._fail_with_exception(
                    "query_error", self.localized_message("query_error", cls=self.model_class.__name__), exc
                )
                return None
            return super().index(query_opts, _q, _pg)

    def index_permission_target(self) -> Any:
        return self._owner if self._owner is not None else self.model_class

    def do_access_checks(self, action: str, obj: Any = None, context: Any = None) -> bool:
        """Checks apply when the owner (rather than the nested object) has access control."""
        if self.disable_access_checks:
            return False
        if isinstance(obj, self.owner_class) or obj is self.owner_class:
            target = obj
        elif self._owner is not None:
            target = self._owner
        else:
            target = obj if obj is not None else self.model_class
        return supports_access_control(target)

    def _has_action_permission(self, action: str, obj: Any, context: Any = None) -> bool:
        target = obj if obj is not None else self.model_class
        if action == "index":
            permission = Index.NAME if isinstance(target, type) else IndexContents.NAME
        elif action == "create":
            permission = Create.NAME if isinstance(target, type) else Write.NAME
        else:
            return super()._has_action_permission(action, obj, context)
        return check_permission(target, permission, self.actor, context)
