"""Support for models that can be placed in lists.

A listable model mixes in ``ListableMixin``; the list items that hold it
cache a short summary of it:

    @listable(summary="title")
    class Document(ListableMixin, Base, IntIDMixin, TimestampMixin):
        __tablename__ = "documents"

        title: Mapped[str] = mapped_column(String(200))

An object can be in several lists, and lists are listable themselves, so
lists can be nested (see ``traverse_containers``).
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from sqlalchemy.orm import Session, object_session

from flcore.core.model_dict import ModelDictMixin
from flcore.core.utils.descriptors import class_or_instance_method


if TYPE_CHECKING:
    from flcore.modules.lists.models import List, ListItem


logger = structlog.get_logger()

T = TypeVar("T", bound=type)

DEFAULT_SUMMARY = "title"


def _list_item_class() -> type["ListItem"]:
    from flcore.modules.lists.models import ListItem

    return ListItem


class ListableMixin:
    """Mixin for models that can be placed in lists.

    Class attributes (set directly or with ``listable``):
        listable_summary: Attribute (or callable) giving the summary
            stored in the list items
    """

    listable_summary = DEFAULT_SUMMARY

    @class_or_instance_method
    def is_listable(self_or_cls) -> bool:
        return True

    def list_item_summary(self) -> str:
        summary = type(self).listable_summary
        if callable(summary):
            return str(summary(self))
        if isinstance(summary, str):
            return str(getattr(self, summary, "") or "")
        return ""

    def lists(self, session: Session) -> list["List"]:
        """The lists that contain this object, most recently updated item first."""
        ListItem = _list_item_class()
        return [li.list for li in session.scalars(ListItem.query_for_listable(self)).all()]

    def in_list(self, session: Session, lst: Any) -> "ListItem | None":
        """The item holding this object in ``lst``, if any."""
        ListItem = _list_item_class()
        return session.scalars(ListItem.query_for_listable_in_list(self, lst)).first()

    def add_to_list(self, session: Session, lst: "List", owner: Any = None) -> "ListItem | None":
        """Place this object in ``lst``.

        The new item is owned by ``owner``, or by the list's owner. On
        failure the item's errors are stored in ``list_item_errors`` under
        ``list_item.<field>`` keys.

        Returns:
            The (new or existing) list item, or None if it is invalid
        """
        existing = self.in_list(session, lst)
        if existing is not None:
            return existing

        item = lst.item_factory(listed_object=self, owner=owner if owner is not None else lst.owner)
        errors = item.validate()
        if errors:
            lst.list_items.remove(item)
            self.list_item_errors = {f"list_item.{k}": list(v) for k, v in errors.items()}
            return None

        self.list_item_errors = {}
        session.add(item)
        session.flush()
        return item

    def remove_from_list(self, session: Session, lst: "List") -> bool:
        """Take this object out of ``lst``; False if it was not in it."""
        item = self.in_list(session, lst)
        if item is None:
            return False
        if item in lst.list_items:
            lst.list_items.remove(item)
        session.delete(item)
        session.flush()
        return True

    def dict_value(self, actor: Any, key: str, opts: Any) -> Any:
        if key == "lists":
            session = object_session(self)
            return self.related_dict(actor, key, self.lists(session) if session is not None else [], opts)
        return ModelDictMixin.dict_value(self, actor, key, opts)


def listable(summary: str | Callable[[Any], str] | None = None) -> Callable[[T], T]:
    """Class decorator configuring a listable class.

    Args:
        summary: Attribute name or callable for ``list_item_summary``
    """

    def decorator(cls: T) -> T:
        if summary is not None:
            cls.listable_summary = summary
        return cls

    return decorator


def make_listable(cls: T, summary: str | Callable[[Any], str] | None = None) -> T:
    """Make an existing model class listable.

    Classes that are already listable are left alone.
    """
    if cls.is_listable():
        return cls
    for name, value in vars(ListableMixin).items():
        if not name.startswith("__"):
            setattr(cls, name, value)
    cls.listable_summary = summary if summary is not None else DEFAULT_SUMMARY
    logger.debug("model_made_listable", model=cls.__name__)
    return cls


def traverse_containers(
    session: Session,
    obj: Any,
    visit: Callable[[Any, "List", int, Any], bool],
    context: Any = None,
) -> bool | None:
    """Walk the lists that contain ``obj``, then the lists containing those.

    ``visit(obj, lst, level, context)`` is called for each container;
    ``level`` is 0 for the direct containers. Returning False stops the
    walk.

    Returns:
        True if every container was visited, False if the walk was
        stopped, None if ``obj`` is not listable or there is no callback
    """
    check = getattr(obj, "is_listable", None)
    if check is None or not check() or visit is None:
        return None

    def walk(lst: "List", level: int) -> bool:
        if not visit(obj, lst, level, context):
            return False
        return all(walk(parent, level + 1) for parent in lst.lists(session))

    return all(walk(lst, 0) for lst in obj.lists(session))
