"""Clause generators for the standard filter types.

Each filter descriptor names a ``type``; the filter instantiates the
generator registered for that type and asks it for the clause. A
descriptor-level ``generator`` callable replaces the default clause
generation of any type; it is called as ``generator(filter, name, desc,
value)`` with the normalized value and returns a clause string or None.
"""

from typing import TYPE_CHECKING, Any

from flcore.core.errors import FilterError
from flcore.core.query.helpers import (
    convert_list_of_polymorphic_references,
    convert_list_of_references,
    normalize_filter_lists,
    normalize_lists_of_polymorphic_references,
    normalize_lists_of_references,
)


if TYPE_CHECKING:
    from flcore.core.query.filter import Filter


class FilterGenerator:
    """Base generator; produces no clause."""

    def __init__(self, filter: "Filter") -> None:  # noqa: A002
        self.filter = filter

    def generate_simple_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        return None

    def normalize_value(self, name: str, desc: dict[str, Any], value: Any) -> Any:
        return value

    def _custom_or(self, name: str, desc: dict[str, Any], value: Any, default: Any) -> str | None:
        generator = desc.get("generator")
        if generator is not None:
            return generator(self.filter, name, desc, value)
        return default(name, desc, value)


class ReferencesGenerator(FilterGenerator):
    """Only/except lists of objects of one class, matched on an id column.

    The descriptor's ``class`` (a class or class name) restricts which
    references are accepted.
    """

    def generate_simple_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        ph = normalize_lists_of_references(value, desc.get("class"))
        return self._custom_or(name, desc, ph, self.filter.generate_partitioned_clause)

    def normalize_value(self, name: str, desc: dict[str, Any], value: Any) -> Any:
        nv = dict(value) if isinstance(value, dict) else {}
        for key in ("only", "except"):
            if key in nv:
                nv[key] = convert_list_of_references(nv[key], desc.get("class"))
        return nv


class PolymorphicReferencesGenerator(FilterGenerator):
    """Only/except lists of objects of any class, matched on a fingerprint column."""

    def generate_simple_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        ph = normalize_lists_of_polymorphic_references(value)
        return self._custom_or(name, desc, ph, self.filter.generate_partitioned_clause)

    def normalize_value(self, name: str, desc: dict[str, Any], value: Any) -> Any:
        nv = dict(value) if isinstance(value, dict) else {}
        for key in ("only", "except"):
            if key in nv:
                nv[key] = convert_list_of_polymorphic_references(nv[key])
        return nv


class BlockListGenerator(FilterGenerator):
    """Only/except lists converted by the descriptor's ``convert`` callable.

    ``convert`` is called as ``convert(filter, items, "only" | "except")``.
    """

    def _convert(self, name: str, desc: dict[str, Any]) -> Any:
        convert = desc.get("convert")
        if not callable(convert):
            raise FilterError(f"block list filter {name} needs a convert callable", details={"filter": name})
        return convert

    def generate_simple_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        convert = self._convert(name, desc)
        ph = normalize_filter_lists(value, lambda items, key: convert(self.filter, items, key))
        return self._custom_or(name, desc, ph, self.filter.generate_partitioned_clause)

    def normalize_value(self, name: str, desc: dict[str, Any], value: Any) -> Any:
        nv = dict(value) if isinstance(value, dict) else {}
        convert = desc.get("convert")
        if callable(convert):
            for key in ("only", "except"):
                if key in nv:
                    nv[key] = convert(self.filter, nv[key], key)
        return nv


class TimestampGenerator(FilterGenerator):
    """Comparisons of a timestamp column against one or two times."""

    def generate_simple_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        return self._custom_or(name, desc, value, self.filter.generate_timestamp_clause)


class CustomGenerator(FilterGenerator):
    """Delegates to the descriptor's ``generator`` callable."""

    def generate_simple_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        return self.filter.generate_custom_clause(name, desc, value)


STANDARD_GENERATORS: dict[str, type[FilterGenerator]] = {
    "references": ReferencesGenerator,
    "polymorphic_references": PolymorphicReferencesGenerator,
    "block_list": BlockListGenerator,
    "timestamp": TimestampGenerator,
    "custom": CustomGenerator,
}
