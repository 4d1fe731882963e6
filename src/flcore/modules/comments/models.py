"""Comment database model and counter maintenance."""

import json
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import JSON, Boolean, Integer, Select, String, Text, event, inspect, select
from sqlalchemy.orm import Mapped, Session, mapped_column, validates

from flcore.core.constants import MAX_FINGERPRINT_LENGTH, MAX_TITLE_LENGTH, TITLE_EXTRACT_LENGTH, TITLE_TAIL
from flcore.core.database import Base, IntIDMixin, ReferenceFieldsMixin, TimestampMixin, add_error, locator
from flcore.core.messages import message
from flcore.core.permissions import AccessControlMixin, enable_access_control
from flcore.core.query import add_filters, add_limit_clause, add_offset_clause, add_order_clause
from flcore.core.references import split_fingerprint
from flcore.core.utils.text import extract_title
from flcore.modules.comments.checker import CommentChecker
from flcore.modules.comments.commentable import CommentableMixin, has_comments


logger = structlog.get_logger()


def visibility_clause(f: Any, name: str, desc: dict[str, Any], value: Any) -> str | None:
    """Clause for the ``visibility`` filter: ``visible``, ``hidden`` or ``both``."""
    flag = "both" if value is None else str(value)
    if flag == "visible":
        p = f.allocate_parameter(True)
    elif flag == "hidden":
        p = f.allocate_parameter(False)
    else:
        return None
    return f"({desc['field']} = :{p})"


QUERY_FILTERS_CONFIG: dict[str, Any] = {
    "filters": {
        "commentables": {"type": "polymorphic_references", "field": "commentable_fingerprint"},
        "authors": {"type": "polymorphic_references", "field": "author_fingerprint"},
        "visibility": {"type": "custom", "field": "is_visible", "generator": visibility_clause},
        "created": {"type": "timestamp", "field": "created_at"},
        "updated": {"type": "timestamp", "field": "updated_at"},
    },
}

# Query options translated into filters by ``Comment.query_filters``.
_REFERENCE_OPTIONS = (("commentables", "commentables"), ("authors", "authors"))
_DATE_OPTIONS = (
    ("created_after", "created", "after"),
    ("created_before", "created", "before"),
    ("updated_after", "updated", "after"),
    ("updated_before", "updated", "before"),
)


@has_comments(summary="title", counter=True)
class Comment(AccessControlMixin, CommentableMixin, ReferenceFieldsMixin, Base, IntIDMixin, TimestampMixin):
    """A comment attached to a commentable object.

    The commentable and the author are stored by fingerprint; assigning an
    object (or any reference) to ``commentable`` or ``author`` sets the
    fingerprint. They cannot be changed once the comment is saved.

    Attributes:
        commentable_fingerprint: Fingerprint of the commented object
        author_fingerprint: Fingerprint of the author
        title: Title; extracted from the contents when empty
        contents_html: HTML contents
        contents_json: Structured contents (a JSON document)
        is_visible: Hidden comments are not counted
        num_comments: Number of visible comments on this comment
    """

    __tablename__ = "fl_core_comments"

    reference_keys = ("commentable", "author")
    locked_references = reference_keys

    commentable_fingerprint: Mapped[str] = mapped_column(
        String(MAX_FINGERPRINT_LENGTH),
        nullable=False,
        index=True,
    )
    author_fingerprint: Mapped[str] = mapped_column(
        String(MAX_FINGERPRINT_LENGTH),
        nullable=False,
        index=True,
    )
    title: Mapped[str | None] = mapped_column(String(MAX_TITLE_LENGTH), nullable=True)
    contents_html: Mapped[str] = mapped_column(Text, nullable=False)
    contents_json: Mapped[Any | None] = mapped_column(JSON, nullable=True)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    num_comments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ------------------------------------------------------------
    # Commentable and author
    # ------------------------------------------------------------

    @property
    def commentable(self) -> Any:
        """The commented object (loaded through the session when needed)."""
        return self._get_reference("commentable")

    @commentable.setter
    def commentable(self, value: Any) -> None:
        self._set_reference("commentable", value)

    @property
    def author(self) -> Any:
        """The author (loaded through the session when needed)."""
        return self._get_reference("author")

    @author.setter
    def author(self, value: Any) -> None:
        self._set_reference("author", value)

    @validates("contents_json")
    def _parse_contents_json(self, key: str, value: Any) -> Any:
        self.__dict__["_invalid_contents_json"] = False
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                self.__dict__["_invalid_contents_json"] = True
                return None
        return value

    # ------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------

    def populate_title(self) -> None:
        """Set the title from the contents if it is empty."""
        if not self.title:
            self.title = extract_title(self.contents_html, TITLE_EXTRACT_LENGTH, TITLE_TAIL)

    def validate(self) -> dict[str, list[str]]:
        self._refresh_fingerprints()
        self.populate_title()

        errors: dict[str, list[str]] = {}
        for key, msg in self.reference_errors.items():
            add_error(errors, key, msg)

        if not self.commentable_fingerprint and "commentable" not in errors:
            add_error(errors, "commentable", message("validation.blank"))
        elif self.commentable_fingerprint:
            target = self.__dict__.get("_commentable_object")
            if target is None:
                target = locator.resolve_class(split_fingerprint(self.commentable_fingerprint)[0])
            check = getattr(target, "is_commentable", None)
            if target is not None and (check is None or not check()):
                name = target.__name__ if isinstance(target, type) else type(target).__name__
                add_error(errors, "commentable", message("validation.not_commentable", cls=name))
        if not self.author_fingerprint and "author" not in errors:
            add_error(errors, "author", message("validation.blank"))
        if not (self.contents_html or "").strip():
            add_error(errors, "contents_html", message("validation.blank"))
        if self.title and len(self.title) > MAX_TITLE_LENGTH:
            add_error(errors, "title", message("validation.too_long", count=MAX_TITLE_LENGTH))
        if self.__dict__.get("_invalid_contents_json"):
            add_error(errors, "contents_json", message("validation.invalid_json"))
        return errors

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    @classmethod
    def query_filters(cls, opts: dict[str, Any]) -> dict[str, Any] | None:
        """Filter body for query options.

        Merges the ``filters`` option with the shorthand options
        ``only_commentables``, ``except_commentables``, ``only_authors``,
        ``except_authors``, the date options and ``visibility``. Explicit
        filters win over shorthand ones.
        """
        body: dict[str, Any] = {}
        for suffix, name in _REFERENCE_OPTIONS:
            value = {k: opts[f"{k}_{suffix}"] for k in ("only", "except") if opts.get(f"{k}_{suffix}") is not None}
            if value:
                body[name] = value
        for option, name, cmp in _DATE_OPTIONS:
            if opts.get(option) is not None:
                body.setdefault(name, {})[cmp] = opts[option]
        if opts.get("visibility") is not None:
            body["visibility"] = opts["visibility"]

        body.update(opts.get("filters") or {})
        return body or None

    @classmethod
    def build_query(cls, opts: dict[str, Any] | None = None) -> Select:
        """Build the select statement for a comment query.

        Args:
            opts: Query options: ``filters``, the shorthand filter options
                (see ``query_filters``), ``order``, ``offset`` and ``limit``
        """
        opts = opts or {}
        stmt = select(cls)
        stmt = add_filters(stmt, cls.query_filters(opts), QUERY_FILTERS_CONFIG)
        stmt = add_order_clause(stmt, opts)
        stmt = add_offset_clause(stmt, opts)
        return add_limit_clause(stmt, opts)


enable_access_control(Comment, CommentChecker())


# ------------------------------------------------------------
# Counter maintenance
# ------------------------------------------------------------


def _adjust_comment_counter(comment: Comment, delta: int) -> None:
    target = comment.commentable
    counter = getattr(type(target), "comments_counter", None) if target is not None else None
    if counter is None:
        return
    if not hasattr(target, counter):
        logger.warning("comment_counter_missing", model=type(target).__name__, counter=counter)
        return
    setattr(target, counter, max((getattr(target, counter) or 0) + delta, 0))


def _touch_commentable(comment: Comment) -> None:
    target = comment.commentable
    if target is not None and hasattr(target, "updated_at"):
        target.updated_at = datetime.now(UTC)


def update_comment_counters(session: Session, _flush_context: Any, _instances: Any) -> None:
    """Maintain commentable counters for the comments in a flush.

    New visible comments increment the counter and deleted visible comments
    decrement it. Hiding or unhiding a comment decrements or increments it;
    other changes touch the commentable's ``updated_at``.
    """
    new = list(session.new)
    deleted = list(session.deleted)
    dirty = [obj for obj in session.dirty if isinstance(obj, Comment) and session.is_modified(obj)]

    for obj in new:
        if isinstance(obj, Comment):
            obj._refresh_fingerprints()
            obj.populate_title()
            if obj.is_visible is not False:
                _adjust_comment_counter(obj, 1)

    for obj in deleted:
        if isinstance(obj, Comment) and obj.is_visible:
            _adjust_comment_counter(obj, -1)

    for obj in dirty:
        history = inspect(obj).attrs.is_visible.history
        if history.has_changes() and history.deleted and history.deleted[0] is not None:
            _adjust_comment_counter(obj, 1 if obj.is_visible else -1)
        else:
            _touch_commentable(obj)


def setup_comment_listeners() -> None:
    """Install the session listener that maintains comment counters."""
    if not event.contains(Session, "before_flush", update_comment_counters):
        event.listen(Session, "before_flush", update_comment_counters)
