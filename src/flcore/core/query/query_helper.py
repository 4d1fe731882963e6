"""Query building helpers: ordering, pagination, partitioned reference lists.

Query options are plain dicts, typically built from request parameters:

    opts = {
        "only_authors": ["Actor/1", "Actor/2"],
        "except_authors": ["Actor/2"],
        "created_after": "2024-01-01T00:00:00Z",
        "order": "created_at DESC, id",
        "offset": 20,
        "limit": 10,
    }
"""

import re
from collections.abc import Callable, Iterable
from typing import Any, Protocol, runtime_checkable

import structlog
from sqlalchemy import Select, text
from sqlalchemy.orm import Session

from flcore.core.constants import DEFAULT_QUERY_ORDER
from flcore.core.database.locator import ModelLocator, locator as default_locator
from flcore.core.query.filter import Filter
from flcore.core.query.helpers import (
    as_list,
    convert_list_of_polymorphic_references,
    convert_list_of_references,
    parse_timestamp,
    subtract,
)
from flcore.core.references import reference_fingerprint, split_fingerprint


logger = structlog.get_logger()

_ORDER_CLAUSE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*( (ASC|DESC))?( NULLS (FIRST|LAST))?$", re.IGNORECASE)

DATE_FILTERS: tuple[tuple[str, str, str], ...] = (
    ("created_after", "created_at", ">"),
    ("updated_after", "updated_at", ">"),
    ("created_before", "created_at", "<"),
    ("updated_before", "updated_at", "<"),
)


@runtime_checkable
class GroupMembership(Protocol):
    """Objects that expose a list of member actors."""

    @property
    def members(self) -> Iterable[Any]: ...


def parse_order_option(opts: dict[str, Any], default: Any = None) -> list[str] | None:
    """Parse the ``order`` option into a list of order clauses.

    Args:
        opts: Query options
        default: Order used when ``opts`` has none; a string or a list.
            Falls back to ``updated_at DESC``

    Returns:
        Normalized clauses, or None if ordering is disabled (``order`` is
        False) or empty

    Examples:
        >>> parse_order_option({"order": "name ASC,  id   DESC"})
        ['name ASC', 'id DESC']
        >>> parse_order_option({"order": False}) is None
        True
    """
    order = opts.get("order")
    if isinstance(order, str):
        clauses: list[str] | None = re.split(r",\s*", order)
    elif isinstance(order, list | tuple):
        clauses = list(order)
    elif order is False:
        clauses = None
    elif isinstance(default, list | tuple):
        clauses = list(default)
    elif isinstance(default, str):
        clauses = re.split(r",\s*", default)
    else:
        clauses = [DEFAULT_QUERY_ORDER]

    if not clauses:
        return None
    normalized = [re.sub(r" +", " ", str(c).strip()) for c in clauses]
    return [c for c in normalized if c] or None


def add_order_clause(stmt: Select, opts: dict[str, Any], default: Any = None) -> Select:
    """Add ORDER BY clauses from the ``order`` option.

    Clauses that are not ``column [ASC|DESC] [NULLS FIRST|LAST]`` are
    dropped with a warning.
    """
    clauses = parse_order_option(opts, default)
    if clauses is None:
        return stmt
    valid = []
    for c in clauses:
        if _ORDER_CLAUSE.match(c):
            valid.append(c)
        else:
            logger.warning("invalid_order_clause", clause=c)
    return stmt.order_by(*[text(c) for c in valid]) if valid else stmt


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


def add_offset_clause(stmt: Select, opts: dict[str, Any]) -> Select:
    """Add OFFSET when the ``offset`` option is a positive integer."""
    offset = _positive_int(opts.get("offset"))
    return stmt.offset(offset) if offset is not None else stmt


def add_limit_clause(stmt: Select, opts: dict[str, Any]) -> Select:
    """Add LIMIT when the ``limit`` option is a positive integer."""
    limit = _positive_int(opts.get("limit"))
    return stmt.limit(limit) if limit is not None else stmt


def add_filters(stmt: Select, filters: Any, config: dict[str, Any]) -> Select:
    """Add the clause generated from a filter body."""
    if filters is None:
        return stmt
    return Filter(config).apply(stmt, filters)


def partition_filter_lists(
    opts: dict[str, Any],
    suffix: str,
    convert: Callable[[list[Any]], list[Any]],
) -> dict[str, list[Any] | None]:
    """Convert and partition the ``only_<suffix>``/``except_<suffix>`` options.

    When both lists are present the except list is removed from the only
    list and dropped; a lone except list is kept. Keys present with a None
    value map to None.
    """
    only_name = f"only_{suffix}"
    except_name = f"except_{suffix}"
    rv: dict[str, list[Any] | None] = {}

    if only_name in opts:
        only = as_list(opts[only_name])
        rv[only_name] = convert(only) if only is not None else None

    if except_name in opts:
        except_ = as_list(opts[except_name])
        if except_ is None:
            rv[except_name] = None
        else:
            except_refs = convert(except_)
            only_refs = rv.get(only_name)
            if isinstance(only_refs, list):
                rv[only_name] = subtract(only_refs, except_refs)
            else:
                rv[except_name] = except_refs
    return rv


def partition_lists_of_references(opts: dict[str, Any], suffix: str, cls: Any) -> dict[str, list[Any] | None]:
    """``partition_filter_lists`` converting to ids of ``cls``."""
    return partition_filter_lists(opts, suffix, lambda items: convert_list_of_references(items, cls) or [])


def partition_lists_of_polymorphic_references(opts: dict[str, Any], suffix: str) -> dict[str, list[Any] | None]:
    """``partition_filter_lists`` converting to fingerprints."""
    return partition_filter_lists(opts, suffix, lambda items: convert_list_of_polymorphic_references(items) or [])


def _group_member_fingerprints(
    groups: Any,
    session: Session | None,
    locator: ModelLocator,
) -> list[str]:
    fingerprints: list[str] = []
    for g in as_list(groups) or []:
        group = g
        if not isinstance(g, GroupMembership):
            group = locator.find(session, g) if session is not None else None
        if not isinstance(group, GroupMembership):
            logger.debug("actor_group_unresolved", group=str(g))
            continue
        for member in group.members:
            fp = reference_fingerprint(member)
            if fp is not None and fp not in fingerprints:
                fingerprints.append(fp)
    return fingerprints


def _union(a: list[str] | None, b: list[str] | None) -> list[str] | None:
    if a is None:
        return b
    if b is None:
        return a
    return a + [x for x in b if x not in a]


def expand_actor_lists(
    opts: dict[str, Any],
    session: Session | None = None,
    key: str = "actors",
    locator: ModelLocator | None = None,
) -> dict[str, list[str] | None]:
    """Compute the effective actor lists from actors and group memberships.

    Reads ``only_<key>``, ``except_<key>``, ``only_groups`` and
    ``except_groups``. Groups are objects exposing ``members`` or
    references resolved through ``session``. Explicit actors and group
    members are unioned for each side, then the except side is removed
    from the only side.

    Returns:
        ``{"only_ids": [fingerprints] | None, "except_ids": [...] | None}``
    """
    loc = locator or default_locator
    only_actors = opts.get(f"only_{key}")
    except_actors = opts.get(f"except_{key}")
    only_groups = opts.get("only_groups")
    except_groups = opts.get("except_groups")

    if only_actors is None and except_actors is None and only_groups is None and except_groups is None:
        return {"only_ids": None, "except_ids": None}

    only_ids = _union(
        convert_list_of_polymorphic_references(only_actors),
        _group_member_fingerprints(only_groups, session, loc) if only_groups is not None else None,
    )
    except_ids = _union(
        convert_list_of_polymorphic_references(except_actors),
        _group_member_fingerprints(except_groups, session, loc) if except_groups is not None else None,
    )
    if only_ids is not None and except_ids is not None:
        only_ids = subtract(only_ids, except_ids)
    return {"only_ids": only_ids, "except_ids": except_ids}


def partition_actor_list(fingerprints: list[str] | None) -> dict[str, list[int]] | None:
    """Group fingerprints by class name: ``{"Actor": [1, 2]}``."""
    if fingerprints is None:
        return None
    rv: dict[str, list[int]] = {}
    for fp in fingerprints:
        class_name, id_ = split_fingerprint(fp)
        if class_name is not None and id_ is not None:
            rv.setdefault(class_name, []).append(id_)
    return rv


def partition_actor_lists(hlist: dict[str, list[str] | None]) -> dict[str, dict[str, list[int]] | None]:
    """Apply ``partition_actor_list`` to both lists from ``expand_actor_lists``."""
    return {
        "only_ids": partition_actor_list(hlist.get("only_ids")),
        "except_ids": partition_actor_list(hlist.get("except_ids")),
    }


def date_filter_timestamps(opts: dict[str, Any]) -> dict[str, Any]:
    """Parse the date filter options that are present and valid."""
    rv = {}
    for option, _column, _op in DATE_FILTERS:
        if option in opts:
            ts = parse_timestamp(opts[option])
            if ts is not None:
                rv[option] = ts
            else:
                logger.debug("date_filter_ignored", option=option, value=str(opts[option]))
    return rv


def add_date_filter_clauses(stmt: Select, cls: Any, opts: dict[str, Any]) -> Select:
    """Add the ``created_after``/``updated_after``/``created_before``/``updated_before`` conditions."""
    ts = date_filter_timestamps(opts)
    for option, column_name, op in DATE_FILTERS:
        if option not in ts:
            continue
        column = getattr(cls, column_name)
        stmt = stmt.where(column > ts[option] if op == ">" else column < ts[option])
    return stmt
