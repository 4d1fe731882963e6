"""Support for models that accept comments.

A commentable model mixes in ``CommentableMixin`` and may keep a counter
of its visible comments:

    @has_comments(counter=True)
    class Document(CommentableMixin, Base, IntIDMixin, TimestampMixin):
        __tablename__ = "documents"

        title: Mapped[str] = mapped_column(String(200))
        num_comments: Mapped[int] = mapped_column(Integer, default=0)

The counter is maintained when comments are added, removed, hidden or
unhidden (see ``flcore.modules.comments.models``).
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from flcore.core.utils.descriptors import class_or_instance_method


if TYPE_CHECKING:
    from flcore.modules.comments.models import Comment


T = TypeVar("T", bound=type)

DEFAULT_COUNTER = "num_comments"


def _comment_class() -> type["Comment"]:
    from flcore.modules.comments.models import Comment

    return Comment


class CommentableMixin:
    """Mixin for models that accept comments.

    Class attributes (set directly or with ``has_comments``):
        comments_summary: Attribute (or callable) giving the summary shown
            for the commentable
        comments_counter: Column holding the visible comment count, or
            None for no counter
    """

    comments_summary = "title"
    comments_counter = None

    @class_or_instance_method
    def is_commentable(self_or_cls) -> bool:
        return True

    def comment_summary(self) -> str:
        """Short description of the commentable."""
        summary = type(self).comments_summary
        if callable(summary):
            return str(summary(self))
        if isinstance(summary, str):
            return str(getattr(self, summary, "") or "")
        return ""

    def build_comment(self, **attrs: Any) -> "Comment":
        return _comment_class()(commentable=self, **attrs)

    def add_comment(
        self,
        session: Session,
        author: Any,
        contents_html: str,
        contents_json: Any = None,
        title: str | None = None,
    ) -> "Comment | None":
        """Create a comment on this object.

        On failure the comment's errors are stored in ``comment_errors``
        under ``comment.<field>`` keys.

        Returns:
            The saved comment, or None if it is invalid
        """
        attrs: dict[str, Any] = {"author": author, "contents_html": contents_html, "contents_json": contents_json}
        if title is not None:
            attrs["title"] = title
        comment = self.build_comment(**attrs)

        errors = comment.validate()
        if errors:
            self.comment_errors = {f"comment.{k}": list(v) for k, v in errors.items()}
            return None

        self.comment_errors = {}
        session.add(comment)
        session.flush()
        return comment

    def comments_query(self, opts: dict[str, Any] | None = None) -> Select:
        """Query for the comments of this object; ``except_commentables`` is ignored."""
        qo = dict(opts or {})
        qo.pop("except_commentables", None)
        qo["only_commentables"] = [self]
        return _comment_class().build_query(qo)

    def comments_count(self, session: Session, opts: dict[str, Any] | None = None) -> int:
        """Number of comments matching ``opts``, ignoring order and pagination."""
        qo = dict(opts or {})
        qo.update({"order": False, "offset": None, "limit": None})
        stmt = self.comments_query(qo)
        return session.scalar(select(func.count()).select_from(stmt.subquery())) or 0


def has_comments(summary: str | Callable[[Any], str] | None = None, counter: bool | str | None = None) -> Callable[[T], T]:
    """Class decorator configuring a commentable class.

    Args:
        summary: Attribute name or callable for ``comment_summary``
        counter: True for the ``num_comments`` column, a column name, or
            None/False for no counter
    """

    def decorator(cls: T) -> T:
        if summary is not None:
            cls.comments_summary = summary
        if counter is True:
            cls.comments_counter = DEFAULT_COUNTER
        elif isinstance(counter, str):
            cls.comments_counter = counter
        else:
            cls.comments_counter = None
        return cls

    return decorator
