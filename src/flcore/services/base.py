"""Base service: access checks, CAPTCHA, CRUD and index with pagination.

A service wraps one request: it is created with the acting actor and the
request parameters, runs one operation and reports the outcome through its
status. Failures never raise to the caller; the operation returns None (or
``(False, obj)`` for ``destroy``) and the status carries the error payload.

    service = CommentService(actor, params, session)
    comment = service.create()
    if not service.success():
        return service.status, service.status_response_data()

Services flush but never commit; the caller owns the transaction. Each
operation runs in a SAVEPOINT, and a failure rolls back that savepoint only.
"""

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, ClassVar

import structlog
from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from sqlalchemy import Select
from sqlalchemy.orm import Session, SessionTransaction

from flcore.config import settings
from flcore.core.captcha import ERROR_MESSAGES, CaptchaVerifier
from flcore.core.constants import CAPTCHA_KEY
from flcore.core.database import ModelLocator, locator as default_locator, session_factory
from flcore.core.errors import ConfigurationError, NotFoundError
from flcore.core.messages import load_messages, message
from flcore.core.model_dict import ModelDictMixin
from flcore.core.permissions import Create, Delete, Index, Read, Write, check_permission, supports_access_control
from flcore.core.utils.text import snake_case
from flcore.services.status import (
    PaginationControls,
    ServiceStatus,
    error_response_data,
    exception_response_data,
)


logger = structlog.get_logger()

ACTION_PERMISSIONS: dict[str, str] = {
    "index": Index.NAME,
    "create": Create.NAME,
    "show": Read.NAME,
    "update": Write.NAME,
    "destroy": Delete.NAME,
}

QUERY_INT_PARAMS = ("offset", "limit")
QUERY_DATETIME_PARAMS = ("created_after", "updated_after", "created_before", "updated_before")


def adjust_params(p: Any) -> Any:
    """Convert dicts whose keys are all numeric strings to lists, recursively.

    Form-encoded arrays arrive as ``{"0": a, "1": b}``; this turns them
    back into ``[a, b]``. Missing indices are filled with None.

    Examples:
        >>> adjust_params({"ids": {"0": "a", "1": "b"}})
        {'ids': ['a', 'b']}
    """
    if not isinstance(p, dict):
        return p
    if p and all(str(k).isdigit() for k in p):
        rv: list[Any] = [None] * (max(int(k) for k in p) + 1)
        for k, v in p.items():
            rv[int(k)] = adjust_params(v)
        return rv
    return {k: adjust_params(v) for k, v in p.items()}


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class BaseService:
    """Base class for model services.

    Subclasses set ``model_class`` and implement the ``*_params`` hooks.

    Args:
        actor: The actor performing the operation (may be None)
        params: Request parameters
        session: Database session; a new one from ``session_factory`` if None
        disable_access_checks: Skip permission checks; defaults to settings
        disable_captcha: Skip CAPTCHA checks; defaults to settings
        captcha_verifier: Verifier used by ``verify_captcha``
        remote_ip: Client address passed to the CAPTCHA verifier
        locator: Object lookup collaborator

    Raises:
        ConfigurationError: If the subclass does not define ``model_class``
    """

    model_class: ClassVar[type | None] = None
    message_prefix: ClassVar[str | None] = None

    def __init__(
        self,
        actor: Any,
        params: dict[str, Any] | None = None,
        session: Session | None = None,
        *,
        disable_access_checks: bool | None = None,
        disable_captcha: bool | None = None,
        captcha_verifier: CaptchaVerifier | None = None,
        remote_ip: str | None = None,
        locator: ModelLocator | None = None,
    ) -> None:
        if self.model_class is None:
            raise ConfigurationError(f"please define a target model class for {type(self).__name__}")

        self.actor = actor
        self.params: dict[str, Any] = adjust_params(params) if isinstance(params, dict) else {}
        self.session = session if session is not None else session_factory()
        self.disable_access_checks = (
            settings.disable_access_checks if disable_access_checks is None else disable_access_checks
        )
        self.disable_captcha = settings.disable_captcha if disable_captcha is None else disable_captcha
        self.captcha_verifier = captcha_verifier
        self.remote_ip = remote_ip
        self.locator = locator or default_locator
        self._savepoint: SessionTransaction | None = None
        self.clear_status()

    # ------------------------------------------------------------
    # Status
    # ------------------------------------------------------------

    @property
    def status(self) -> ServiceStatus:
        """Status of the last operation."""
        return self._status

    def status_response_data(self, status: ServiceStatus | None = None) -> dict[str, Any] | None:
        """Response payload recorded for ``status`` (the current one by default)."""
        return self._response_data.get(self._status if status is None else status)

    def clear_status(self) -> None:
        """Reset the status to OK with an empty payload."""
        self._status = ServiceStatus.OK
        self._response_data: dict[ServiceStatus, dict[str, Any] | None] = {ServiceStatus.OK: {}}

    def set_status(self, status: ServiceStatus, data: dict[str, Any] | None = None, clear: bool = True) -> None:
        """Set the status and its payload.

        Args:
            status: New status
            data: Response payload for the status
            clear: Drop payloads recorded for other statuses
        """
        self._status = status
        if clear:
            self._response_data = {}
        self._response_data[status] = data

        if status != ServiceStatus.OK:
            error = (data or {}).get("_error", {})
            logger.warning(
                "service_failure",
                service=type(self).__name__,
                status=int(status),
                error_type=error.get("type"),
            )

    def success(self) -> bool:
        """True if the status is OK."""
        return self._status == ServiceStatus.OK

    def localized_message(self, key: str, **params: Any) -> str:
        """Message for ``key``, preferring the service's own catalog section."""
        prefix = self.message_prefix or snake_case(type(self).__name__)
        catalog = load_messages()
        for k in (f"{prefix}.{key}", f"service.{key}"):
            if k in catalog:
                return message(k, **params)
        return key.replace("_", " ").capitalize()

    # ------------------------------------------------------------
    # Access checks
    # ------------------------------------------------------------

    def permission_for_action(self, action: str) -> str | None:
        """Permission name checked for a standard action."""
        return ACTION_PERMISSIONS.get(action)

    def do_access_checks(self, action: str, obj: Any = None, context: Any = None) -> bool:
        """Whether permission checks apply; false when disabled or the target has no access control."""
        if self.disable_access_checks:
            return False
        return supports_access_control(obj if obj is not None else self.model_class)

    def do_captcha_checks(self) -> bool:
        return not self.disable_captcha

    def has_action_permission(self, action: str, obj: Any = None, context: Any = None) -> bool:
        """Check that the actor can perform ``action`` on ``obj``.

        Clears the status, and sets it to FORBIDDEN on denial (unless the
        check itself already recorded a failure).

        Args:
            action: The action name (``index``, ``create``, ``show``, ...)
            obj: The target object or class; defaults to the model class
            context: Context passed to the access checker

        Returns:
            True if the action is allowed
        """
        if not isinstance(action, str) or not action:
            return False

        self.clear_status()
        if not self.do_access_checks(action, obj, context):
            return True
        if self._has_action_permission(action, obj, context):
            return True

        if self.success():
            self.set_status(
                ServiceStatus.FORBIDDEN,
                error_response_data(
                    "no_permission",
                    self.localized_message("forbidden", id=self._describe_target(obj), action=action),
                ),
            )
        return False

    def _has_action_permission(self, action: str, obj: Any, context: Any = None) -> bool:
        permission = self.permission_for_action(action)
        if permission is None:
            return False
        target = obj if obj is not None else self.model_class
        return check_permission(target, permission, self.actor, context)

    def _describe_target(self, obj: Any) -> str:
        if isinstance(obj, type):
            return obj.__name__
        if obj is None:
            return f"{self.model_class.__name__}/{self.params.get('id')}"
        if hasattr(obj, "fingerprint"):
            return obj.fingerprint()
        return str(obj)

    # ------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------

    def find_object(self, cls: Any, idname: str | Iterable[str], params: dict[str, Any]) -> tuple[Any, list]:
        """Look up an object of ``cls`` from the first id parameter that resolves.

        Returns:
            The object (or None) and the ``(key, value)`` pairs tried
        """
        names = [idname] if isinstance(idname, str) else list(idname)
        kvp = [(k, params.get(k)) for k in names]
        for _k, v in kvp:
            if v is None:
                continue
            obj = self.locator.find(self.session, v, cls)
            if obj is not None:
                return obj, kvp
        return None, kvp

    @staticmethod
    def flatten_param_keys(kvp: list) -> str:
        return ",".join(f"{k}:{v}" for k, v in kvp)

    def get_and_check(
        self,
        action: str | None,
        idname: str | Iterable[str] = "id",
        params: dict[str, Any] | None = None,
        context: Any = None,
    ) -> Any:
        """Load the target object and check ``action`` on it.

        Sets NOT_FOUND (type ``not_found``) if the object does not exist,
        or FORBIDDEN if the actor lacks the permission.

        Returns:
            The object, or None on failure
        """
        obj, kvp = self.find_object(self.model_class, idname, params if params is not None else self.params)
        if obj is None:
            self.set_status(
                ServiceStatus.NOT_FOUND,
                error_response_data("not_found", self.localized_message("not_found", id=self.flatten_param_keys(kvp))),
            )
            return None

        if action is not None:
            if self.has_action_permission(action, obj, context):
                self.clear_status()
            else:
                obj = None
        return obj

    # ------------------------------------------------------------
    # CAPTCHA
    # ------------------------------------------------------------

    def verify_captcha(self, enabled: bool, params: dict[str, Any]) -> dict[str, Any]:
        """Verify the CAPTCHA response in ``params`` (key ``captchaResponse``).

        The key is removed from ``params``. On failure the status is set
        to UNPROCESSABLE_ENTITY with type ``captcha.no-captcha`` or
        ``captcha.verification-failure``.

        Returns:
            The verification result: ``success``, ``error-codes`` and
            ``error-messages``
        """
        response = params.pop(CAPTCHA_KEY, None)
        if not enabled or not self.do_captcha_checks():
            return {"success": True}
        if response is None:
            response = self.params.get(CAPTCHA_KEY)

        if isinstance(response, str) and response:
            verifier = self.captcha_verifier or CaptchaVerifier()
            rv = verifier.verify(response, self.remote_ip).to_dict()
            if not rv["success"]:
                self.set_status(
                    ServiceStatus.UNPROCESSABLE_ENTITY,
                    error_response_data(
                        "captcha.verification-failure",
                        self.localized_message(
                            "captcha.verification-failure", messages=", ".join(rv["error-messages"])
                        ),
                    ),
                )
            return rv

        self.set_status(
            ServiceStatus.UNPROCESSABLE_ENTITY,
            error_response_data("captcha.no-captcha", self.localized_message("captcha.no-captcha", key=CAPTCHA_KEY)),
        )
        return {"success": False, "error-codes": ["no-captcha"], "error-messages": [ERROR_MESSAGES["no-captcha"]]}

    # ------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------

    @contextmanager
    def operation(self) -> Iterator[SessionTransaction]:
        """Run one service operation inside a SAVEPOINT.

        Failures roll back the savepoint only; work the caller flushed
        before the call is kept. The savepoint is released when the body
        finishes without a rollback.

        Yields:
            The nested transaction
        """
        savepoint = self.session.begin_nested()
        previous, self._savepoint = self._savepoint, savepoint
        try:
            yield savepoint
        except BaseException:
            if savepoint.is_active:
                savepoint.rollback()
            raise
        else:
            if savepoint.is_active:
                savepoint.commit()
        finally:
            self._savepoint = previous

    def _rollback(self) -> None:
        if self._savepoint is not None and self._savepoint.is_active:
            self._savepoint.rollback()

    def save_object(self, obj: Any) -> dict[str, list[str]]:
        """Validate and flush ``obj``.

        Returns:
            Validation errors; empty if the object was saved
        """
        errors = obj.validate() if hasattr(obj, "validate") else {}
        if errors:
            return errors
        self.session.add(obj)
        self.session.flush()
        return {}

    def _fail(self, status: ServiceStatus, type_: str, msg: str, details: Any = None) -> None:
        self._rollback()
        if self.success():
            self.set_status(status, error_response_data(type_, msg, details))

    def _fail_with_exception(self, type_: str, msg: str, exc: Exception) -> None:
        logger.exception("service_exception", service=type(self).__name__, error_type=type_)
        self._rollback()
        status = ServiceStatus.NOT_FOUND if isinstance(exc, NotFoundError) else ServiceStatus.UNPROCESSABLE_ENTITY
        self.set_status(status, exception_response_data(type_, msg, exc))

    def create(self, captcha: bool = False, params: dict[str, Any] | None = None, context: Any = None) -> Any:
        """Create an object from the request parameters.

        Checks ``create`` on the model class, verifies the CAPTCHA when
        ``captcha`` is set, builds the object with ``new_object``, saves it
        and runs ``after_create``. A failed ``after_create`` discards the
        new object.

        Returns:
            The created object, or None on failure
        """
        cls_name = self.model_class.__name__
        with self.operation():
            try:
                p = self.create_params(params if params is not None else self.params)
                ctx = p if context is None else context
                if not self.has_action_permission("create", self.model_class, ctx):
                    return None
                if not self.verify_captcha(captcha, p)["success"]:
                    return None

                self.clear_status()
                obj = self.new_object(p)
                errors = self.save_object(obj) if obj is not None else {}
                if obj is None or errors or not self.after_create(obj, p):
                    self._fail(
                        ServiceStatus.UNPROCESSABLE_ENTITY,
                        "creation_failure",
                        self.localized_message("creation_failure", cls=cls_name),
                        errors,
                    )
                    return None
                return obj
            except Exception as exc:
                self._fail_with_exception(
                    "creation_failure", self.localized_message("creation_failure", cls=cls_name), exc
                )
                return None

    def update(
        self,
        idname: str | Iterable[str] = "id",
        captcha: bool = False,
        params: dict[str, Any] | None = None,
        context: Any = None,
    ) -> Any:
        """Update the object named by the ``idname`` parameter.

        On failure the object's pending changes are discarded.

        Returns:
            The object (also on update failure), or None if it was not found
            or the actor may not update it
        """
        with self.operation():
            try:
                p = self.update_params(params if params is not None else self.params)
            except Exception as exc:
                self._fail_with_exception("update_failure", self.localized_message("invalid_params"), exc)
                return None

            obj = None
            fp = self._describe_target(None)
            try:
                ctx = p if context is None else context
                obj = self.get_and_check("update", idname, self.params, ctx)
                if obj is None or not self.success():
                    return obj

                fp = obj.fingerprint()
                if not self.verify_captcha(captcha, p)["success"]:
                    return obj
                errors = self.save_object(obj) if self.update_object(obj, p) else {"base": ["update rejected"]}
                if errors or not self.after_update(obj, p):
                    self._fail(
                        ServiceStatus.UNPROCESSABLE_ENTITY,
                        "update_failure",
                        self.localized_message("update_failure", fingerprint=fp),
                        errors,
                    )
            except Exception as exc:
                self._fail_with_exception(
                    "update_failure", self.localized_message("update_failure", fingerprint=fp), exc
                )
            return obj

    def destroy(
        self,
        idname: str | Iterable[str] = "id",
        captcha: bool = False,
        params: dict[str, Any] | None = None,
        context: Any = None,
    ) -> tuple[bool, Any]:
        """Delete the object named by the ``idname`` parameter.

        Returns:
            ``(True, obj)`` if the object was deleted, else ``(False, obj)``
            where ``obj`` may be None
        """
        p = dict(params) if params is not None else dict(self.params)
        ctx = p if context is None else context
        with self.operation():
            obj = None
            fp = self._describe_target(None)
            try:
                obj = self.get_and_check("destroy", idname, self.params, ctx)
                if obj is None or not self.success():
                    return False, obj

                fp = obj.fingerprint()
                if self.verify_captcha(captcha, p)["success"]:
                    self.session.delete(obj)
                    self.session.flush()
                    return True, obj
            except Exception as exc:
                self._fail_with_exception(
                    "destroy_failure", self.localized_message("destroy_failure", fingerprint=fp), exc
                )
            return False, obj

    def show(self, idname: str | Iterable[str] = "id", params: dict[str, Any] | None = None, context: Any = None) -> Any:
        """Load the object named by the ``idname`` parameter, checking ``show``."""
        return self.get_and_check("show", idname, params, context)

    # ------------------------------------------------------------
    # Index
    # ------------------------------------------------------------

    def index(
        self,
        query_opts: dict[str, Any] | None = None,
        _q: dict[str, Any] | None = None,
        _pg: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """List objects.

        Args:
            query_opts: Defaults for the query options
            _q: Query parameters; defaults to ``query_params()``
            _pg: Pagination parameters; defaults to ``pagination_params()``

        Returns:
            ``{"result": [...], "_pg": {...}}``, or None on failure
        """
        with self.operation():
            try:
                if not self.has_action_permission("index", self.index_permission_target()):
                    return None
                q = self.query_params() if _q is None else _q
                pg = self.pagination_params() if _pg is None else _pg
                opts = self.init_query_opts(query_opts, q, pg)
                stmt = self.index_query(opts)
                results = self.index_results(stmt) if stmt is not None else []
                return self.adjust_index_results(
                    {"result": results, "_pg": self.pagination_controls(results, opts)}
                )
            except Exception as exc:
                self._fail_with_exception(
                    "query_error", self.localized_message("query_error", cls=self.model_class.__name__), exc
                )
                return None

    def index_permission_target(self) -> Any:
        """Object or class the ``index`` permission is checked on."""
        return self.model_class

    def init_query_opts(
        self,
        defaults: dict[str, Any] | None = None,
        _q: dict[str, Any] | None = None,
        _pg: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Merge the backstops, defaults, pagination and query parameters into query options.

        Page ``_p`` with size ``_s`` becomes offset ``(_p - 1) * _s``; a
        negative limit removes the limit.
        """
        _q = _q or {}
        _pg = _pg or {}
        opts: dict[str, Any] = {
            "offset": settings.query_default_offset,
            "limit": settings.query_default_limit,
            "order": settings.query_default_order,
        }
        opts.update(defaults or {})

        if "_s" in _pg:
            opts["limit"] = _to_int(_pg["_s"])
        if "_p" in _pg:
            opts["offset"] = (_to_int(_pg["_p"]) - 1) * _to_int(opts.get("limit"))
        opts["offset"] = max(_to_int(opts.get("offset")), 0)

        for k, v in _q.items():
            if k in QUERY_INT_PARAMS:
                opts[k] = _to_int(v)
            elif k in QUERY_DATETIME_PARAMS and isinstance(v, str) and v.isdigit():
                opts[k] = int(v)
            elif k == "order" and isinstance(v, list | tuple):
                opts[k] = ", ".join(str(c) for c in v)
            else:
                opts[k] = v

        if _to_int(opts.get("limit")) < 0:
            del opts["limit"]
        return opts

    def pagination_controls(
        self,
        results: Any = None,
        opts: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, int]:
        """Pagination controls for a page of results.

        ``_p`` is the page following the returned one.
        """
        opts = opts or {}
        xp = params if isinstance(params, dict) else self.params
        pg = xp.get("_pg") if isinstance(xp.get("_pg"), dict) else {}

        count = len(results) if isinstance(results, list) else 0
        size = _to_int(pg["_s"], -1) if "_s" in pg else -1
        page = _to_int(pg["_p"], 1) if "_p" in pg else 1

        limit = _to_int(opts.get("limit"))
        if limit > 0:
            size = limit
            page = max((_to_int(opts.get("offset")) + size) // size + 1, 1) if "offset" in opts else 1
        else:
            size, page = -1, 1

        return PaginationControls(count=count, size=size, page=page).model_dump(by_alias=True)

    # ------------------------------------------------------------
    # Representations
    # ------------------------------------------------------------

    def hash_opts_for(self, obj: Any, opts: dict[str, Any] | None = None) -> dict[str, Any]:
        """``to_dict`` options for ``obj``: ``opts``, else the ``to_dict`` request parameter.

        Subclasses override it to choose options per object.
        """
        if opts is not None:
            return opts
        rv = self.params.get("to_dict")
        return rv if isinstance(rv, dict) else {}

    def hash_one_object(self, obj: Any, opts: dict[str, Any] | None = None) -> dict[str, Any]:
        """Dict representation of one object as seen by the actor.

        Models use ``to_dict``; pydantic models and mappings are dumped as
        JSON-ready dicts. Anything else has no representation.
        """
        if isinstance(obj, ModelDictMixin):
            return obj.to_dict(self.actor, self.hash_opts_for(obj, opts))
        if isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        if isinstance(obj, Mapping):
            return to_jsonable_python(dict(obj), fallback=str)
        logger.debug("hash_unsupported_object", service=type(self).__name__, object_type=type(obj).__name__)
        return {}

    def hash_objects(self, objs: Iterable[Any], opts: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return [self.hash_one_object(obj, opts) for obj in objs]

    # ------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------

    def query_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        raise NotImplementedError(f"please implement {type(self).__name__}.query_params")

    def pagination_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """The ``_pg`` parameters (``_s`` page size, ``_p`` page number)."""
        pg = (params if params is not None else self.params).get("_pg")
        if not isinstance(pg, dict):
            return {}
        return {k: pg[k] for k in ("_s", "_p") if k in pg}

    def create_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        raise NotImplementedError(f"please implement {type(self).__name__}.create_params")

    def update_params(self, params: dict[str, Any] | None = None) -> dict[str, Any]:
        raise NotImplementedError(f"please implement {type(self).__name__}.update_params")

    def new_object(self, params: dict[str, Any]) -> Any:
        """Build (but do not save) a new object."""
        return self.model_class(**params)

    def update_object(self, obj: Any, params: dict[str, Any]) -> bool:
        """Apply the update parameters to ``obj``; return False to reject the update."""
        for k, v in params.items():
            setattr(obj, k, v)
        return True

    def after_create(self, obj: Any, params: dict[str, Any]) -> bool:
        return True

    def after_update(self, obj: Any, params: dict[str, Any]) -> bool:
        return True

    def index_query(self, query_opts: dict[str, Any]) -> Select | None:
        """Statement for ``index``; None returns no results."""
        return None

    def index_results(self, stmt: Select) -> list[Any]:
        return list(self.session.scalars(stmt).all())

    def adjust_index_results(self, results: dict[str, Any]) -> dict[str, Any]:
        return results
