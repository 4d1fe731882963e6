"""Conversion helpers for filter values.

Reference lists accept any mix of objects, ids, fingerprints and global
ids. Elements that cannot be converted are dropped rather than failing the
whole query; the number of dropped elements is logged at debug level.
"""

import re
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, time
from typing import Any

import structlog

from flcore.core.references import reference_fingerprint, reference_identifier


logger = structlog.get_logger()

_DIGITS = re.compile(r"^-?[0-9]+$")
_TRUE = re.compile(r"^(t(rue)?|y(es)?)$", re.IGNORECASE)
_FALSE = re.compile(r"^(f(alse)?|no?)$", re.IGNORECASE)


def as_list(value: Any) -> list[Any] | None:
    """Wrap scalars in a list; None stays None."""
    if value is None:
        return None
    if isinstance(value, list | tuple | set):
        return list(value)
    return [value]


def boolean_query_flag(value: Any) -> bool | None:
    """Interpret a query flag.

    Examples:
        >>> boolean_query_flag("yes")
        True
        >>> boolean_query_flag("0")
        False
        >>> boolean_query_flag(None)
        False
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, int | float):
        return value != 0
    if isinstance(value, str):
        s = value.strip()
        if _DIGITS.match(s):
            return int(s) != 0
        if _TRUE.match(s):
            return True
        if _FALSE.match(s):
            return False
    return None


def _log_dropped(kind: str, total: int, kept: int) -> None:
    if kept < total:
        logger.debug("filter_references_dropped", kind=kind, dropped=total - kept, total=total)


def extract_identifier_from_reference(ref: Any, cls: Any = None) -> int | None:
    """Get the object id from a reference, checking the class when known."""
    return reference_identifier(ref, cls)


def extract_fingerprint_from_reference(ref: Any) -> str | None:
    """Get the fingerprint from a reference; bare ids have none."""
    return reference_fingerprint(ref)


def convert_list_of_references(refs: Any, cls: Any = None) -> list[int] | None:
    """Convert references to ids of ``cls``; unconvertible elements are dropped."""
    items = as_list(refs)
    if items is None:
        return None
    ids: list[int] = []
    for r in items:
        id_ = extract_identifier_from_reference(r, cls)
        if id_ is not None:
            ids.append(id_)
    _log_dropped("references", len(items), len(ids))
    return ids


def convert_list_of_polymorphic_references(refs: Any) -> list[str] | None:
    """Convert references to fingerprints; unconvertible elements are dropped."""
    items = as_list(refs)
    if items is None:
        return None
    fps: list[str] = []
    for r in items:
        fp = extract_fingerprint_from_reference(r)
        if fp is not None:
            fps.append(fp)
    _log_dropped("polymorphic_references", len(items), len(fps))
    return fps


def normalize_filter_lists(
    opts: Any,
    convert: Callable[[list[Any], str], list[Any]],
) -> dict[str, list[Any]] | None:
    """Convert the ``only`` and ``except`` lists of a filter value.

    Args:
        opts: A ``{"only": [...], "except": [...]}`` dict
        convert: Called as ``convert(items, "only" | "except")``

    Returns:
        Dict with the converted lists that were present, or None if
        ``opts`` is not a dict
    """
    if not isinstance(opts, dict):
        return None
    rv: dict[str, list[Any]] = {}
    for key in ("only", "except"):
        items = as_list(opts.get(key))
        if items is not None:
            rv[key] = convert(items, key)
    return rv


def normalize_lists_of_references(opts: Any, cls: Any = None) -> dict[str, list[int]] | None:
    """``normalize_filter_lists`` converting to ids of ``cls``."""
    return normalize_filter_lists(opts, lambda items, _k: convert_list_of_references(items, cls) or [])


def normalize_lists_of_polymorphic_references(opts: Any) -> dict[str, list[str]] | None:
    """``normalize_filter_lists`` converting to fingerprints."""
    return normalize_filter_lists(opts, lambda items, _k: convert_list_of_polymorphic_references(items) or [])


def subtract(items: Iterable[Any], remove: Iterable[Any]) -> list[Any]:
    """Elements of ``items`` not in ``remove``, in order."""
    excluded = set(remove)
    return [i for i in items if i not in excluded]


def adjust_only_except_lists(opts: Any) -> dict[str, list[Any]] | None:
    """Apply except-over-only precedence to a filter value.

    With an ``only`` list the result is ``{"only": only - except}``;
    otherwise it is ``{"except": except}`` when an except list is given.

    Examples:
        >>> adjust_only_except_lists({"only": [1, 2, 3, 4], "except": [2, 4]})
        {'only': [1, 3]}
        >>> adjust_only_except_lists({"except": [2, 4]})
        {'except': [2, 4]}
    """
    if not isinstance(opts, dict):
        return None
    only = as_list(opts.get("only"))
    except_ = as_list(opts.get("except"))
    if only is not None:
        return {"only": subtract(only, except_) if except_ is not None else only}
    if except_ is not None:
        return {"except": except_}
    return {}


def parse_timestamp(value: Any) -> datetime | None:
    """Convert a timestamp value to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), dates, integer or
    float epoch seconds (also as digit strings) and ISO 8601 strings.

    Returns:
        The datetime, or None if ``value`` cannot be parsed
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    elif isinstance(value, str):
        s = value.strip()
        if _DIGITS.match(s):
            return datetime.fromtimestamp(int(s), tz=UTC)
        try:
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)
