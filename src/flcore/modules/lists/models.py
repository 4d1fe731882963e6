"""List and list item models.

A ``List`` holds listable objects through ``ListItem`` rows. The item
adds properties to the relationship: an owner (which may differ from the
listed object's owner), a name used to resolve paths through nested
lists, a sort order, and a state that can differ between lists.

    lst = List(owner=actor, caption_html="<p>Reading list</p>", objects=[doc1, doc2])
    session.add(lst)
    session.flush()

    lst.add_object(doc3, name="later")
    ListItem.query_for_list(lst, {"filters": {"listables": {"except": [doc1]}}})
"""

import re
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Select, String, Text, event, false, func, select, update
from sqlalchemy.orm import Mapped, Session, mapped_column, object_session, relationship

from flcore.core.constants import (
    LIST_TITLE_DATE_FORMAT,
    LIST_TITLE_EXTRACT_LENGTH,
    MAX_FINGERPRINT_LENGTH,
    MAX_LIST_ITEM_NAME_LENGTH,
    MAX_LIST_TITLE_LENGTH,
    MAX_NAME_LENGTH,
    TITLE_TAIL,
)
from flcore.core.database import Base, IntIDMixin, ReferenceFieldsMixin, TimestampMixin, add_error, locator
from flcore.core.errors import ListNormalizationError
from flcore.core.messages import message
from flcore.core.model_dict import ModelDictMixin, Verbosity
from flcore.core.permissions import AccessControlMixin
from flcore.core.query import add_filters, add_limit_clause, add_offset_clause, add_order_clause
from flcore.core.references import reference_fingerprint, reference_identifier, split_fingerprint
from flcore.core.utils.text import extract_title
from flcore.modules.lists.listable import ListableMixin


logger = structlog.get_logger()


# ------------------------------------------------------------
# Item states
# ------------------------------------------------------------

STATE_SELECTED = "selected"
STATE_DESELECTED = "deselected"

_STATES_BY_VALUE: dict[int, str] = {1: STATE_SELECTED, 2: STATE_DESELECTED}
_INTEGER = re.compile(r"^[+-]?[0-9]+$")


def register_list_item_state(value: int, name: str) -> None:
    """Register an additional list item state.

    Raises:
        ValueError: If ``value`` or ``name`` is registered for another state
    """
    if _STATES_BY_VALUE.get(value, name) != name:
        raise ValueError(f"list item state {value} is registered as '{_STATES_BY_VALUE[value]}'")
    for v, n in _STATES_BY_VALUE.items():
        if n == name and v != value:
            raise ValueError(f"list item state '{name}' is registered with value {v}")
    _STATES_BY_VALUE[value] = name


def list_item_states() -> dict[int, str]:
    return dict(_STATES_BY_VALUE)


def state_to_db(state: Any) -> int | None:
    """Stored value for a state name or value; None if unknown."""
    if state is None or isinstance(state, bool):
        return None
    if isinstance(state, int):
        return state if state in _STATES_BY_VALUE else None
    s = str(state)
    if _INTEGER.match(s):
        return state_to_db(int(s))
    for v, n in _STATES_BY_VALUE.items():
        if n == s:
            return v
    return None


def state_from_db(value: Any) -> str | None:
    """State name for a stored value.

    Raises:
        ValueError: For an unregistered state
    """
    if value is None:
        return None
    if isinstance(value, int) or _INTEGER.match(str(value)):
        name = _STATES_BY_VALUE.get(int(value))
    else:
        name = str(value) if str(value) in _STATES_BY_VALUE.values() else None
    if name is None:
        raise ValueError(f"bad list item state value: {value}")
    return name


# ------------------------------------------------------------
# Query options
# ------------------------------------------------------------

_DATE_OPTIONS = (
    ("created_after", "created", "after"),
    ("created_before", "created", "before"),
    ("updated_after", "updated", "after"),
    ("updated_before", "updated", "before"),
)


def _query_filters(opts: dict[str, Any], references: tuple[str, ...], dates: tuple[tuple[str, str, str], ...]) -> dict[str, Any] | None:
    body: dict[str, Any] = {}
    for name in references:
        value = {k: opts[f"{k}_{name}"] for k in ("only", "except") if opts.get(f"{k}_{name}") is not None}
        if value:
            body[name] = value
    for option, name, cmp in dates:
        if opts.get(option) is not None:
            body.setdefault(name, {})[cmp] = opts[option]
    body.update(opts.get("filters") or {})
    return body or None


def _scoped_opts(opts: dict[str, Any] | None, name: str, ref: Any, order: str | None = None) -> dict[str, Any]:
    """Query options restricted to ``ref`` through the ``name`` filter."""
    qo = dict(opts or {})
    qo.pop(f"only_{name}", None)
    qo.pop(f"except_{name}", None)
    if order is not None:
        qo.setdefault("order", order)
    filters = dict(qo.get("filters") or {})
    filters[name] = {"only": [ref]}
    qo["filters"] = filters
    return qo


def default_caption() -> tuple[str, dict[str, Any]]:
    """HTML and JSON captions naming the creation date."""
    text = datetime.now(UTC).strftime(LIST_TITLE_DATE_FORMAT)
    doc = {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}]}
    return f"<p>{text}</p>", doc


def _is_listable(obj: Any, fp: str | None) -> tuple[bool, str]:
    target = obj
    if target is None and fp:
        target = locator.resolve_class(split_fingerprint(fp)[0])
    if target is None:
        return True, ""
    check = getattr(target, "is_listable", None)
    return check is not None and check(), fp or str(target)


LIST_QUERY_FILTERS_CONFIG: dict[str, Any] = {
    "filters": {
        "owners": {"type": "polymorphic_references", "field": "owner_fingerprint"},
        "created": {"type": "timestamp", "field": "created_at"},
        "updated": {"type": "timestamp", "field": "updated_at"},
    },
}

LIST_ITEM_QUERY_FILTERS_CONFIG: dict[str, Any] = {
    "filters": {
        "lists": {"type": "references", "field": "list_id", "class": "List"},
        "owners": {"type": "polymorphic_references", "field": "owner_fingerprint"},
        "listables": {"type": "polymorphic_references", "field": "listed_object_fingerprint"},
        "created": {"type": "timestamp", "field": "created_at"},
        "updated": {"type": "timestamp", "field": "updated_at"},
        "listable_created": {"type": "timestamp", "field": "listed_object_created_at"},
        "listable_updated": {"type": "timestamp", "field": "listed_object_updated_at"},
    },
}


# ------------------------------------------------------------
# List
# ------------------------------------------------------------


class List(AccessControlMixin, ListableMixin, ReferenceFieldsMixin, Base, IntIDMixin, TimestampMixin):
    """A list of listable objects.

    Lists are listable, so lists can contain lists. The owner is stored by
    fingerprint; assigning any reference to ``owner`` sets it.

    Passing ``objects`` to the constructor places them in the list (see
    ``set_objects``). Without a caption the list gets one naming the
    creation date.

    Attributes:
        title: Title; extracted from the caption when empty
        caption_html: HTML caption
        caption_json: Structured caption (a JSON document)
        owner_fingerprint: Fingerprint of the owner, if any
        default_item_state_locked: ``state_locked`` for new items
        list_display_preferences: Presentation options (``limit``,
            ``only_types``, ``order``, ``only_states``...)
        list_items: The items, in sort order
    """

    __tablename__ = "fl_core_lists"

    reference_keys = ("owner",)

    title: Mapped[str | None] = mapped_column(String(MAX_LIST_TITLE_LENGTH), nullable=True)
    caption_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    caption_json: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    owner_fingerprint: Mapped[str | None] = mapped_column(String(MAX_FINGERPRINT_LENGTH), nullable=True, index=True)
    default_item_state_locked: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    list_display_preferences: Mapped[Any | None] = mapped_column(JSON, nullable=True)

    list_items: Mapped[list["ListItem"]] = relationship(
        back_populates="list",
        order_by="ListItem.sort_order",
        cascade="all, delete-orphan",
    )

    def __init__(self, **kwargs: Any) -> None:
        objects = kwargs.pop("objects", None)
        if "caption_html" not in kwargs and "caption_json" not in kwargs:
            kwargs["caption_html"], kwargs["caption_json"] = default_caption()
        kwargs.setdefault("default_item_state_locked", True)
        super().__init__(**kwargs)
        if objects is not None:
            self.set_objects(objects, self.owner)

    @property
    def owner(self) -> Any:
        """The list owner (loaded through the session when needed)."""
        return self._get_reference("owner")

    @owner.setter
    def owner(self, value: Any) -> None:
        self._set_reference("owner", value)

    # ------------------------------------------------------------
    # Items
    # ------------------------------------------------------------

    def instantiate_list_item(self, attrs: dict[str, Any]) -> "ListItem":
        """Build a list item; subclasses return their own item classes."""
        return ListItem(**attrs)

    def item_factory(self, **attrs: Any) -> "ListItem":
        """Build an unsaved item in this list."""
        attrs.setdefault("list", self)
        return self.instantiate_list_item(attrs)

    def find_list_item(self, obj: Any) -> "ListItem | None":
        """The item holding ``obj`` (an object or a fingerprint), if any."""
        fp = obj if isinstance(obj, str) else reference_fingerprint(obj)
        for li in self.list_items:
            if fp is not None and li.listed_object_fingerprint == fp:
                return li
            if not isinstance(obj, str) and li.__dict__.get("_listed_object_object") is obj:
                return li
        return None

    def objects(self) -> list[Any]:
        """The listed objects, in sort order."""
        return [li.listed_object for li in self.list_items]

    def add_object(self, obj: Any, owner: Any = None, name: str | None = None) -> "ListItem":
        """Place ``obj`` in the list.

        The item is owned by ``owner`` or, by default, by the list owner.

        Returns:
            The new item, or the existing one if ``obj`` is in the list
        """
        li = self.find_list_item(obj)
        if li is not None:
            return li
        li = self.item_factory(
            listed_object=obj,
            owner=owner if owner is not None else self.owner,
            name=name if isinstance(name, str) else None,
        )
        session = object_session(self)
        if session is not None:
            session.add(li)
        return li

    def remove_object(self, obj: Any) -> "ListItem | None":
        """Take ``obj`` out of the list; its item is deleted on flush."""
        li = self.find_list_item(obj)
        if li is not None:
            self.list_items.remove(li)
        return li

    def set_objects(self, objects: Any, owner: Any = None, session: Session | None = None) -> None:
        """Replace the list contents.

        ``objects`` may hold listable objects, list items of this list,
        ``{"listed_object": ..., "name": ...}`` dicts and, when a session
        is available, references to listable objects.

        Raises:
            ListNormalizationError: If any element cannot be converted; the
                list is left unchanged
        """
        before = list(self.list_items)
        session = session if session is not None else object_session(self)
        errcount, converted = ListItem.normalize_objects(objects, self, owner, session)
        if errcount:
            for c in converted:
                if isinstance(c, ListItem) and c not in before and c in self.list_items:
                    self.list_items.remove(c)
            raise ListNormalizationError(
                message("list.normalization_failure"),
                conversion_errors=[c for c in converted if isinstance(c, str)],
            )
        self.list_items = converted
        if session is not None:
            session.add_all(converted)

    def next_sort_order(self) -> int:
        """One past the highest item sort order."""
        session = object_session(self)
        current = max((li.sort_order for li in self.list_items if li.sort_order is not None), default=0)
        if session is not None and self.id is not None:
            stmt = select(func.max(ListItem.sort_order)).where(ListItem.list_id == self.id)
            with session.no_autoflush:
                current = max(current, session.scalar(stmt) or 0)
        return current + 1

    def query_list_items(self, opts: dict[str, Any] | None = None) -> Select:
        """Query for the items of this list; a ``lists`` filter in ``opts`` is replaced."""
        return ListItem.build_query(_scoped_opts(opts, "lists", self))

    def resolve_path(self, session: Session, path: str) -> "ListItem | None":
        """Find an item by name through nested lists.

        Components are separated by ``/`` or ``\\``; every component but
        the last must name an item holding a list.
        """
        parts = re.split(r"[/\\]+", path)
        if parts and parts[0] == "":
            parts.pop(0)
        if not parts:
            return None

        lst: List = self
        *dirs, last = parts
        for pc in dirs:
            li = session.scalars(select(ListItem).where(ListItem.list_id == lst.id, ListItem.name == pc)).first()
            if li is None or not isinstance(li.listed_object, List):
                return None
            lst = li.listed_object
        return session.scalars(select(ListItem).where(ListItem.list_id == lst.id, ListItem.name == last)).first()

    # ------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------

    def populate_title(self) -> None:
        """Set the title from the caption if it is empty."""
        if not self.title:
            self.title = extract_title(self.caption_html, LIST_TITLE_EXTRACT_LENGTH, TITLE_TAIL)

    def validate(self) -> dict[str, list[str]]:
        self._refresh_fingerprints()
        self.populate_title()

        errors: dict[str, list[str]] = {}
        for key, msg in self.reference_errors.items():
            add_error(errors, key, msg)
        if not self.title:
            add_error(errors, "title", message("validation.blank"))
        elif len(self.title) > MAX_LIST_TITLE_LENGTH:
            add_error(errors, "title", message("validation.too_long", count=MAX_LIST_TITLE_LENGTH))
        if self.default_item_state_locked not in (True, False):
            add_error(errors, "default_item_state_locked", message("validation.not_boolean"))

        for idx, li in enumerate(self.list_items):
            ok, name = _is_listable(li.__dict__.get("_listed_object_object"), li.listed_object_fingerprint)
            if not ok:
                add_error(errors, "objects", message("list_item.not_listable", listed_object=name))
            elif self.id is not None and li.list_id is not None and li.list_id != self.id:
                add_error(
                    errors, "objects",
                    message("list.inconsistent_list", list_item=li.fingerprint(), list=self.fingerprint()),
                )
            li.sort_order = idx
        return errors

    # ------------------------------------------------------------
    # Representation
    # ------------------------------------------------------------

    DICT_KEYS = ["caption_html", "caption_json", "title", "owner", "default_item_state_locked", "list_display_preferences"]
    VERBOSE_DICT_KEYS = ["lists", "objects"]

    def dict_keys_for_verbosity(self, actor: Any, verbosity: Verbosity) -> dict[str, list[str]]:
        if verbosity in (Verbosity.MINIMAL, Verbosity.STANDARD):
            return {"include": self.DICT_KEYS}
        if verbosity in (Verbosity.VERBOSE, Verbosity.COMPLETE):
            return {"include": self.DICT_KEYS + self.VERBOSE_DICT_KEYS}
        return {}

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    @classmethod
    def build_query(cls, opts: dict[str, Any] | None = None) -> Select:
        """Build the select statement for a list query.

        Args:
            opts: ``filters`` (``owners``, ``created``, ``updated``), the
                shorthand options ``only_owners``, ``except_owners`` and the
                date options, ``order``, ``offset`` and ``limit``
        """
        opts = opts or {}
        stmt = select(cls)
        stmt = add_filters(stmt, _query_filters(opts, ("owners",), _DATE_OPTIONS), LIST_QUERY_FILTERS_CONFIG)
        stmt = add_order_clause(stmt, opts)
        stmt = add_offset_clause(stmt, opts)
        return add_limit_clause(stmt, opts)


# ------------------------------------------------------------
# ListItem
# ------------------------------------------------------------


class ListItem(ReferenceFieldsMixin, Base, IntIDMixin, TimestampMixin):
    """An object's membership in a list.

    The listed object and the owner are stored by fingerprint and cannot
    change once the item is saved. New items default to the list owner,
    the ``selected`` state and the list's ``default_item_state_locked``.
    The listed object's summary and timestamps are copied into the item
    so that queries can sort on them without a join.

    Attributes:
        list_id: The containing list
        listed_object_fingerprint: Fingerprint of the listed object
        listed_object_class_name: Class of the listed object
        owner_fingerprint: Fingerprint of the item owner
        name: Name used by ``List.resolve_path``; unique in the list
        state_locked: Whether the state may change
        state_updated_at: When the state last changed
        state_updated_by_fingerprint: Who last changed the state
        state_note: Note for the last state change
        sort_order: Position in the list
        item_summary: Summary of the listed object
    """

    __tablename__ = "fl_core_list_items"

    reference_keys = ("listed_object", "owner", "state_updated_by")
    locked_references = ("listed_object", "owner")

    list_id: Mapped[int] = mapped_column(ForeignKey("fl_core_lists.id"), nullable=False, index=True)
    listed_object_fingerprint: Mapped[str] = mapped_column(
        String(MAX_FINGERPRINT_LENGTH),
        nullable=False,
        index=True,
    )
    listed_object_class_name: Mapped[str | None] = mapped_column(String(MAX_NAME_LENGTH), nullable=True, index=True)
    owner_fingerprint: Mapped[str | None] = mapped_column(String(MAX_FINGERPRINT_LENGTH), nullable=True, index=True)
    name: Mapped[str | None] = mapped_column(String(MAX_LIST_ITEM_NAME_LENGTH), nullable=True)
    state_value: Mapped[int | None] = mapped_column("state", Integer, nullable=True)
    state_locked: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    state_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    state_updated_by_fingerprint: Mapped[str | None] = mapped_column(String(MAX_FINGERPRINT_LENGTH), nullable=True)
    state_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    item_summary: Mapped[str | None] = mapped_column(String(MAX_NAME_LENGTH), nullable=True, index=True)
    listed_object_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    listed_object_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    def __init__(self, **kwargs: Any) -> None:
        state = kwargs.pop("state", None)
        state_updated_by = kwargs.pop("state_updated_by", None)
        super().__init__(**kwargs)

        lst = self.list
        if self.owner_fingerprint is None and lst is not None:
            owner = lst.owner
            self.owner = owner if owner is not None else lst.owner_fingerprint
        self.set_state(state if state is not None else STATE_SELECTED, state_updated_by)
        if self.state_locked is None and lst is not None:
            self.state_locked = lst.default_item_state_locked

        obj = self.__dict__.get("_listed_object_object")
        if obj is not None:
            self.copy_listed_object_info(obj)

    # ------------------------------------------------------------
    # References and state
    # ------------------------------------------------------------

    @property
    def listed_object(self) -> Any:
        """The listed object (loaded through the session when needed)."""
        return self._get_reference("listed_object")

    @listed_object.setter
    def listed_object(self, value: Any) -> None:
        self._set_reference("listed_object", value)

    @property
    def owner(self) -> Any:
        """The item owner (loaded through the session when needed)."""
        return self._get_reference("owner")

    @owner.setter
    def owner(self, value: Any) -> None:
        self._set_reference("owner", value)

    @property
    def state_updated_by(self) -> Any:
        return self._get_reference("state_updated_by")

    @state_updated_by.setter
    def state_updated_by(self, value: Any) -> None:
        self._set_reference("state_updated_by", value)

    @property
    def state(self) -> str | None:
        """The state name."""
        return state_from_db(self.state_value)

    @state.setter
    def state(self, value: Any) -> None:
        self.set_state(value)

    def set_state(self, state: Any, actor: Any = None) -> None:
        """Set the state, recording when and by whom (the owner by default)."""
        self.__dict__["_requested_state"] = state
        self.state_value = state_to_db(state)
        self.state_updated_at = datetime.now(UTC)
        if actor is not None:
            self.state_updated_by = actor
        else:
            owner = self.__dict__.get("_owner_object")
            self.state_updated_by = owner if owner is not None else self.owner_fingerprint

    def copy_listed_object_info(self, obj: Any) -> None:
        """Copy the summary, class and timestamps of the listed object."""
        summary = obj.list_item_summary() if hasattr(obj, "list_item_summary") else ""
        self.item_summary = (summary or "")[:MAX_NAME_LENGTH]
        self.listed_object_class_name = type(obj).__name__
        self.listed_object_created_at = getattr(obj, "created_at", None)
        self.listed_object_updated_at = getattr(obj, "updated_at", None)

    # ------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------

    def _session(self) -> Session | None:
        session = object_session(self)
        if session is None and self.list is not None:
            session = object_session(self.list)
        return session

    def _siblings(self) -> list["ListItem"]:
        return [li for li in self.list.list_items if li is not self] if self.list is not None else []

    def _name_taken(self) -> bool:
        if any(li.name == self.name for li in self._siblings()):
            return True
        session = self._session()
        if session is None or self.list is None or self.list.id is None:
            return False
        stmt = select(ListItem.id).where(ListItem.list_id == self.list.id, ListItem.name == self.name)
        if self.id is not None:
            stmt = stmt.where(ListItem.id != self.id)
        with session.no_autoflush:
            return session.scalar(stmt.limit(1)) is not None

    def _listed_object_exists(self) -> bool:
        if self.__dict__.get("_listed_object_object") is not None:
            return True
        session = self._session()
        if session is None:
            return True
        with session.no_autoflush:
            obj = locator.find(session, self.listed_object_fingerprint)
        if obj is not None:
            self.__dict__["_listed_object_object"] = obj
        return obj is not None

    def _already_listed(self) -> bool:
        fp = self.listed_object_fingerprint
        if any(li.listed_object_fingerprint == fp for li in self._siblings()):
            return True
        session = self._session()
        if session is None or self.list is None:
            return False
        with session.no_autoflush:
            found = session.scalars(ListItem.query_for_listable_in_list(fp, self.list)).first()
        return found is not None and found is not self

    def validate(self) -> dict[str, list[str]]:
        self._refresh_fingerprints()

        errors: dict[str, list[str]] = {}
        for key, msg in self.reference_errors.items():
            add_error(errors, key, msg)

        if not self.listed_object_fingerprint and "listed_object" not in errors:
            add_error(errors, "listed_object", message("validation.blank"))
        elif self.listed_object_fingerprint:
            ok, name = _is_listable(self.__dict__.get("_listed_object_object"), self.listed_object_fingerprint)
            if not ok:
                add_error(errors, "listed_object", message("list_item.not_listable", listed_object=name))
            elif not self._listed_object_exists():
                add_error(
                    errors, "listed_object",
                    message("list_item.bad_listed_object", listed_object=self.listed_object_fingerprint),
                )
            elif self.id is None and self.list is not None and self._already_listed():
                add_error(
                    errors, "listed_object",
                    message(
                        "list_item.already_in_list",
                        listed_object=self.listed_object_fingerprint,
                        list=self.list.fingerprint(),
                    ),
                )
        if self.list is None:
            add_error(errors, "list", message("validation.blank"))
        if self.state_value is None:
            add_error(errors, "state", message("list_item.invalid_state", value=self.__dict__.get("_requested_state")))

        if self.name:
            if "/" in self.name or "\\" in self.name:
                add_error(errors, "name", message("list_item.invalid_name", name=self.name))
            elif len(self.name) > MAX_LIST_ITEM_NAME_LENGTH:
                add_error(errors, "name", message("validation.too_long", count=MAX_LIST_ITEM_NAME_LENGTH))
            elif self._name_taken():
                add_error(errors, "name", message("list_item.duplicate_name", name=self.name))
        return errors

    # ------------------------------------------------------------
    # Representation
    # ------------------------------------------------------------

    MINIMAL_DICT_KEYS = [
        "owner", "list", "listed_object", "state_locked", "state", "sort_order",
        "item_summary", "listed_object_created_at", "listed_object_updated_at", "name",
    ]
    STANDARD_DICT_KEYS = ["state_updated_at", "state_updated_by", "state_note"]

    def dict_keys_for_verbosity(self, actor: Any, verbosity: Verbosity) -> dict[str, list[str]]:
        if verbosity == Verbosity.MINIMAL:
            return {"include": self.MINIMAL_DICT_KEYS}
        if verbosity in (Verbosity.STANDARD, Verbosity.VERBOSE, Verbosity.COMPLETE):
            return {"include": self.MINIMAL_DICT_KEYS + self.STANDARD_DICT_KEYS}
        return {}

    def related_dict(self, actor: Any, key: str, value: Any, opts: Any) -> Any:
        if key == "listed_object" and isinstance(value, ModelDictMixin):
            return value.to_dict(actor, opts.for_key(key, Verbosity.STANDARD))
        return super().related_dict(actor, key, value, opts)

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    @classmethod
    def build_query(cls, opts: dict[str, Any] | None = None) -> Select:
        """Build the select statement for a list item query.

        Args:
            opts: ``filters`` (``lists``, ``owners``, ``listables``,
                ``created``, ``updated``, ``listable_created``,
                ``listable_updated``), the shorthand ``only_*``/``except_*``
                options for the reference filters, the date options,
                ``order``, ``offset`` and ``limit``
        """
        opts = opts or {}
        stmt = select(cls)
        body = _query_filters(opts, ("lists", "owners", "listables"), _DATE_OPTIONS)
        stmt = add_filters(stmt, body, LIST_ITEM_QUERY_FILTERS_CONFIG)
        stmt = add_order_clause(stmt, opts)
        stmt = add_offset_clause(stmt, opts)
        return add_limit_clause(stmt, opts)

    @classmethod
    def query_for_list(cls, lst: Any, opts: dict[str, Any] | None = None) -> Select:
        """Items in one list, by sort order unless ``opts`` gives an order."""
        return cls.build_query(_scoped_opts(opts, "lists", lst, "sort_order ASC"))

    @classmethod
    def query_for_listable(cls, obj: Any, opts: dict[str, Any] | None = None) -> Select:
        """Items holding one object, most recently updated first."""
        return cls.build_query(_scoped_opts(opts, "listables", obj, "updated_at DESC"))

    @classmethod
    def query_for_listable_in_list(cls, obj: Any, lst: Any) -> Select:
        """The item (at most one) holding ``obj`` in ``lst``."""
        fp = reference_fingerprint(obj)
        list_id = reference_identifier(lst, List)
        stmt = select(cls)
        if fp is None or list_id is None:
            return stmt.where(false())
        return stmt.where(cls.list_id == list_id, cls.listed_object_fingerprint == fp)

    @classmethod
    def find_listable_in_list(cls, session: Session, obj: Any, lst: Any) -> Any:
        li = session.scalars(cls.query_for_listable_in_list(obj, lst)).first()
        return li.listed_object if li is not None else None

    @classmethod
    def refresh_item_summaries(cls, session: Session, obj: Any) -> int:
        """Copy the summary and timestamps of ``obj`` into every item holding it.

        Returns:
            The number of items updated
        """
        fp = reference_fingerprint(obj)
        if fp is None:
            return 0
        stmt = (
            update(cls)
            .where(cls.listed_object_fingerprint == fp)
            .values(
                item_summary=(obj.list_item_summary() or "")[:MAX_NAME_LENGTH],
                listed_object_created_at=getattr(obj, "created_at", None),
                listed_object_updated_at=getattr(obj, "updated_at", None),
            )
        )
        return session.execute(stmt).rowcount

    @classmethod
    def resolve_object(cls, obj: Any, lst: Any, owner: Any = None, session: Session | None = None) -> "ListItem | str":
        """Convert one element of an object list into an item of ``lst``.

        ``obj`` may be an item of ``lst``, a model object, a dict of item
        attributes with a ``listed_object`` key, or (with a session) a
        reference. Objects already in the list reuse their item.

        Returns:
            The item, or an error message
        """
        if not isinstance(lst, List):
            found = locator.find(session, lst, List) if session is not None else None
            if found is None:
                return message("list.bad_list", value=lst)
            lst = found

        converted = cls._convert_object(obj, session)
        if isinstance(converted, ListItem):
            if converted.list is not lst and (converted.list_id is None or converted.list_id != lst.id):
                list_fp = converted.list.fingerprint() if converted.list is not None else None
                return message("list_item.different_list", item=converted.fingerprint(), item_list=list_fp, list=lst.fingerprint())
            return converted
        if isinstance(converted, Base):
            existing = lst.find_list_item(converted)
            if existing is not None:
                return existing
            return lst.item_factory(listed_object=converted, owner=cls._item_owner(owner, converted, lst))
        if isinstance(converted, dict):
            listed = cls._convert_object(converted.get("listed_object"), session)
            if isinstance(listed, str):
                return listed
            attrs = {k: v for k, v in converted.items() if k not in ("list", "listed_object", "owner")}
            item_owner = owner if owner is not None else converted.get("owner")
            return lst.item_factory(
                listed_object=listed,
                owner=cls._item_owner(item_owner, listed, lst),
                **attrs,
            )
        return converted

    @staticmethod
    def _item_owner(owner: Any, obj: Any, lst: List) -> Any:
        if owner is not None:
            return owner
        obj_owner = getattr(obj, "owner", None)
        return obj_owner if obj_owner is not None else lst.owner

    @staticmethod
    def _convert_object(obj: Any, session: Session | None) -> Any:
        if isinstance(obj, Base | dict):
            return obj
        found = locator.find(session, obj) if session is not None and obj is not None else None
        if found is None:
            return message("list_item.bad_listed_object", listed_object=obj)
        return found

    @classmethod
    def normalize_objects(
        cls,
        objects: Any,
        lst: Any,
        owner: Any = None,
        session: Session | None = None,
    ) -> tuple[int, list[Any]]:
        """Convert an object list into items of ``lst``.

        Returns:
            The number of elements that failed, and the converted list
            (items, or error messages for the failures)
        """
        if objects is None:
            return 0, []
        if not isinstance(objects, list | tuple):
            objects = [objects]
        converted = [cls.resolve_object(o, lst, owner, session) for o in objects]
        return sum(1 for c in converted if isinstance(c, str)), converted

    # The name shadows the builtin in the class body, so it is declared last.
    list: Mapped[List] = relationship(back_populates="list_items")


# ------------------------------------------------------------
# Flush maintenance
# ------------------------------------------------------------


def _containing_list(session: Session, li: ListItem) -> List | None:
    if li.list is not None:
        return li.list
    return session.get(List, li.list_id) if li.list_id is not None else None


def maintain_list_items(session: Session, _flush_context: Any, _instances: Any) -> None:
    """Keep list items consistent with their lists and listed objects.

    New items and lists get their fingerprints, new items their defaults
    and listed object summaries. Adding, changing or removing an item
    touches its list's ``updated_at``. Deleting a listable deletes the
    items holding it, and changing one refreshes their summaries.
    """
    new = list(session.new)
    deleted = list(session.deleted)
    dirty = [obj for obj in session.dirty if session.is_modified(obj)]
    touched: list[List] = []

    for obj in new:
        if isinstance(obj, ListItem | List):
            obj._refresh_fingerprints()
        if isinstance(obj, List):
            obj.populate_title()
        elif isinstance(obj, ListItem):
            listed = obj.listed_object
            if listed is not None:
                obj.copy_listed_object_info(listed)
            if obj.sort_order is None and obj.list is not None:
                obj.sort_order = obj.list.next_sort_order()
            touched.append(obj.list)

    for obj in deleted:
        if isinstance(obj, ListItem):
            touched.append(_containing_list(session, obj))
        elif getattr(obj, "is_listable", lambda: False)() and getattr(obj, "id", None) is not None:
            stmt = select(ListItem).where(ListItem.listed_object_fingerprint == obj.fingerprint())
            for li in session.scalars(stmt).all():
                lst = _containing_list(session, li)
                if lst is not None and li in lst.list_items:
                    lst.list_items.remove(li)
                session.delete(li)
                touched.append(lst)
            logger.debug("listable_deleted", listable=obj.fingerprint())

    for obj in dirty:
        if isinstance(obj, ListItem):
            touched.append(_containing_list(session, obj))
        elif getattr(obj, "is_listable", lambda: False)() and getattr(obj, "id", None) is not None:
            ListItem.refresh_item_summaries(session, obj)

    now = datetime.now(UTC)
    seen: set[int] = set()
    for lst in touched:
        if lst is None or id(lst) in seen or lst in session.deleted:
            continue
        seen.add(id(lst))
        lst.updated_at = now


def setup_list_listeners() -> None:
    """Install the session listener that maintains list items."""
    if not event.contains(Session, "before_flush", maintain_list_items):
        event.listen(Session, "before_flush", maintain_list_items)
