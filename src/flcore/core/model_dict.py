"""Dict representations of model objects.

Every model gets ``to_dict(actor, opts)``. The keys returned depend on a
verbosity level:

    lst.to_dict(actor, {"verbosity": "verbose", "except": ["caption_json"]})

All representations start with the identity keys (``type``, ``api_root``,
``id``, ``fingerprint``, ``global_id``). The ``id`` and ``ignore`` levels
stop there; the other levels add the keys a model lists in
``dict_keys_for_verbosity``, the timestamps and, for access controlled
objects, the actor's permissions. ``only``, ``include`` and ``except``
adjust the key list, and ``nested`` holds the options used for related
objects.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import to_jsonable_python

from flcore.core.permissions import Delete, Index, IndexContents, Owner, Read, Write, supports_access_control
from flcore.core.utils.text import snake_case


class Verbosity(StrEnum):
    """Verbosity levels for ``to_dict``."""

    ID = "id"
    IGNORE = "ignore"
    MINIMAL = "minimal"
    STANDARD = "standard"
    VERBOSE = "verbose"
    COMPLETE = "complete"


IDENTITY_KEYS = ("type", "api_root", "id", "fingerprint", "global_id")

# Permissions reported under the ``permissions`` key.
DICT_OPERATIONS = (Owner.NAME, Read.NAME, Write.NAME, Delete.NAME, Index.NAME, IndexContents.NAME)

_MISSING = object()


def _key_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _merge(*lists: list[str]) -> list[str]:
    rv: list[str] = []
    for keys in lists:
        rv.extend(k for k in keys if k not in rv)
    return rv


class DictOptions(BaseModel):
    """Options for ``to_dict``.

    Attributes:
        verbosity: Verbosity level; None means ``standard``
        only: Return only these keys (plus the identity keys)
        include: Keys added to the verbosity defaults
        except_: Keys removed; passed as ``except``
        nested: Options for related objects, by key
        permissions: Permission names reported under ``permissions``
        as_visible_to: Actor whose permissions are reported instead of
            the caller's
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, arbitrary_types_allowed=True)

    verbosity: Verbosity = Verbosity.STANDARD
    only: list[str] = Field(default_factory=list)
    include: list[str] = Field(default_factory=list)
    except_: list[str] = Field(default_factory=list, alias="except")
    nested: dict[str, Any] = Field(default_factory=dict)
    permissions: list[str] | None = None
    as_visible_to: Any = None

    @field_validator("verbosity", mode="before")
    @classmethod
    def _standard_when_empty(cls, value: Any) -> Any:
        return Verbosity.STANDARD if value is None or value == "" else value

    @field_validator("only", "include", "except_", mode="before")
    @classmethod
    def _as_key_list(cls, value: Any) -> list[str]:
        return _key_list(value)

    @classmethod
    def from_value(cls, value: "DictOptions | dict[str, Any] | None" = None, **overrides: Any) -> "DictOptions":
        """Build options from a dict (or options) and keyword overrides.

        Raises:
            pydantic.ValidationError: For an unknown verbosity
        """
        if isinstance(value, DictOptions):
            if not overrides:
                return value
            data = value.model_dump(by_alias=True, exclude_unset=True)
        else:
            data = dict(value or {})
        data.update(overrides)
        return cls.model_validate(data)

    def for_key(self, key: str, default: Verbosity = Verbosity.MINIMAL) -> "DictOptions":
        """Options for the related object stored under ``key``."""
        nested = self.nested.get(key)
        if nested is None:
            return DictOptions(verbosity=default)
        return DictOptions.from_value(nested)


class ModelDictMixin:
    """Adds ``to_dict`` to model classes.

    Subclasses choose their keys by overriding ``dict_keys_for_verbosity``
    and compute keys that are not plain attributes in ``dict_value``.
    """

    def dict_keys_for_verbosity(self, actor: Any, verbosity: Verbosity) -> dict[str, list[str]]:
        """Default ``only``/``include``/``except`` lists for a verbosity level."""
        return {}

    def dict_mandatory_keys(self, verbosity: Verbosity) -> list[str]:
        """Keys returned at ``verbosity`` even when excluded."""
        return []

    def dict_api_root(self) -> str:
        return f"/{snake_case(type(self).__name__)}s"

    def dict_permissions(self, actor: Any, names: list[str] | None = None) -> dict[str, bool]:
        """Report which of ``names`` the actor has; owners have them all."""
        if actor is None or not supports_access_control(self):
            return {}
        names = list(names) if names is not None else list(DICT_OPERATIONS)
        if self.has_permission(Owner.NAME, actor):
            return {name: True for name in names}
        return {name: self.has_permission(name, actor) for name in names}

    def dict_keys(self, actor: Any, opts: DictOptions) -> list[str]:
        """The keys ``to_dict`` returns for ``opts``."""
        verbosity = opts.verbosity
        defaults = DictOptions()
        if verbosity not in (Verbosity.ID, Verbosity.IGNORE):
            defaults = DictOptions.model_validate(self.dict_keys_for_verbosity(actor, verbosity))

        only = defaults.only or opts.only
        include = [] if only else _merge(defaults.include, opts.include)
        excluded = _merge(defaults.except_, opts.except_)
        if verbosity not in (Verbosity.ID, Verbosity.IGNORE) and not only:
            include = _merge(include, [k for k in ("created_at", "updated_at") if hasattr(self, k)])
            if supports_access_control(self):
                include = _merge(include, ["permissions"])

        keys = list(IDENTITY_KEYS)
        keys.extend(k for k in _merge(only, include) if k not in excluded and k not in keys)
        keys.extend(k for k in self.dict_mandatory_keys(verbosity) if k not in keys)
        return keys

    def dict_value(self, actor: Any, key: str, opts: DictOptions) -> Any:
        """Value for one key; returns ``_MISSING`` to leave the key out.

        Related models are converted with their own ``to_dict`` using the
        ``nested`` options for the key.
        """
        if key == "type":
            return type(self).__name__
        if key == "api_root":
            return self.dict_api_root()
        if key == "fingerprint":
            return self.fingerprint()
        if key == "global_id":
            return self.to_global_id()
        if key == "permissions":
            viewer = opts.as_visible_to if opts.as_visible_to is not None else actor
            return self.dict_permissions(viewer, opts.permissions)

        value = getattr(self, key, _MISSING)
        if callable(value) and not isinstance(value, type):
            value = value()
        return self.related_dict(actor, key, value, opts)

    def related_dict(self, actor: Any, key: str, value: Any, opts: DictOptions) -> Any:
        if isinstance(value, ModelDictMixin):
            return value.to_dict(actor, opts.for_key(key, Verbosity.MINIMAL))
        if isinstance(value, list | tuple) and any(isinstance(v, ModelDictMixin) for v in value):
            nested = opts.for_key(key, Verbosity.ID)
            return [v.to_dict(actor, nested) if isinstance(v, ModelDictMixin) else v for v in value]
        return value

    def to_dict(self, actor: Any = None, opts: DictOptions | dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
        """Build the dict representation of this object for ``actor``.

        Args:
            actor: The actor the representation is built for
            opts: A ``DictOptions`` or a dict of its fields
            **kwargs: Option overrides, e.g. ``verbosity="minimal"``

        Returns:
            A JSON-ready dict; timestamps are ISO strings
        """
        o = DictOptions.from_value(opts, **kwargs)
        rv: dict[str, Any] = {}
        for key in self.dict_keys(actor, o):
            value = self.dict_value(actor, key, o)
            if value is not _MISSING:
                rv[key] = to_jsonable_python(value, fallback=str)
        return rv
