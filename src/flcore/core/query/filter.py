"""Declarative query filters.

A ``Filter`` is configured with named filter descriptors:

    COMMENT_FILTERS = {
        "filters": {
            "authors": {"type": "polymorphic_references", "field": "author_fingerprint"},
            "created": {"type": "timestamp", "field": "created_at"},
        },
    }

and turns a filter body into a WHERE fragment with named parameters:

    f = Filter(COMMENT_FILTERS)
    f.generate({"authors": {"only": [actor]}, "created": {"after": "2024-01-01"}})
    # "((author_fingerprint IN :p1) AND (created_at > :p2))"

Bodies nest with the ``all`` (AND), ``any`` (OR) and ``not`` keys.
``apply()`` adds the generated clause to a ``select()`` statement.
"""

from collections.abc import Callable
from importlib import import_module
from itertools import count
from typing import Any

import structlog
from sqlalchemy import DateTime, Select, bindparam, text
from sqlalchemy.sql.elements import BindParameter

from flcore.core.errors import FilterError
from flcore.core.query.generators import STANDARD_GENERATORS, FilterGenerator
from flcore.core.query.helpers import adjust_only_except_lists, parse_timestamp


logger = structlog.get_logger()

NEVER_TRUE_CLAUSE = "(1 = 0)"

# Numbers the statements built by apply(); parameter names must not repeat
# when several filters are ANDed into one statement.
_APPLY_IDS = count(1)

TIMESTAMP_OPERATORS: dict[str, str] = {
    "at": "=",
    "not_at": "!=",
    "after": ">",
    "at_or_after": ">=",
    "before": "<",
    "at_or_before": "<=",
    "between": "BETWEEN",
    "not_between": "NOT BETWEEN",
}

_COMBINATORS = ("all", "any", "not")


def _resolve_generator(type_name: str, entry: Any) -> type[FilterGenerator]:
    if isinstance(entry, dict):
        entry = entry.get("class")
    if isinstance(entry, type) and issubclass(entry, FilterGenerator):
        return entry
    if isinstance(entry, str) and "." in entry:
        module_name, _, class_name = entry.rpartition(".")
        try:
            cls = getattr(import_module(module_name), class_name)
        except (ImportError, AttributeError) as e:
            raise FilterError(f"unknown class '{entry}' for generator {type_name}") from e
        if isinstance(cls, type) and issubclass(cls, FilterGenerator):
            return cls
    raise FilterError(f"bad or missing class for generator {type_name}: {entry!r}")


class Filter:
    """Generates WHERE fragments from filter bodies.

    Attributes:
        config: The filter configuration
        counter: Number of parameters allocated since the last reset
        prefix: Prepended to allocated parameter names
        params: Parameter values by name
        clause: The clause produced by the last ``generate`` call on a
            top-level body through ``apply``
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}
        self.filters: dict[str, dict[str, Any]] = dict(self.config.get("filters") or {})
        self._generators: dict[str, type[FilterGenerator]] = dict(STANDARD_GENERATORS)
        for type_name, entry in (self.config.get("generators") or {}).items():
            self._generators[type_name] = _resolve_generator(type_name, entry)
        self.reset()

    def reset(self, prefix: str = "") -> None:
        """Clear the parameters and the clause.

        Args:
            prefix: Prefix for the parameter names allocated from now on
        """
        self.counter = 0
        self.prefix = prefix
        self.params: dict[str, Any] = {}
        self._param_types: dict[str, Any] = {}
        self.clause: str | None = None

    def find_type(self, type_name: str) -> type[FilterGenerator] | None:
        """Generator class registered for a filter type."""
        return self._generators.get(type_name)

    def allocate_parameter(self, value: Any = None, type_: Any = None) -> str:
        """Allocate the next parameter name (``p1``, ``p2``... after the prefix) and set its value."""
        self.counter += 1
        name = f"{self.prefix}p{self.counter}"
        self.set_parameter(name, value, type_)
        return name

    def set_parameter(self, name: str, value: Any = None, type_: Any = None) -> None:
        """Set a parameter value; None values are not stored."""
        if value is not None:
            self.params[name] = value
            if type_ is not None:
                self._param_types[name] = type_

    def get_parameter(self, name: str) -> Any:
        return self.params.get(name)

    def _generator_for(self, name: str) -> tuple[dict[str, Any], FilterGenerator]:
        desc = self.filters.get(name)
        if desc is None:
            raise FilterError(f"unknown filter attribute {name}", details={"filter": name})
        cls = self.find_type(desc.get("type", ""))
        if cls is None:
            raise FilterError(
                f"unknown filter type {desc.get('type')} for {name}",
                details={"filter": name, "type": desc.get("type")},
            )
        return desc, cls(self)

    def generate(self, body: Any, join: str = "all") -> str | None:
        """Generate the clause for a filter body.

        Args:
            body: Dict of filter names (or ``all``/``any``/``not``) to values
            join: ``all`` to AND the clauses, ``any`` to OR them

        Returns:
            The clause, or None if the body generates no conditions

        Raises:
            FilterError: On non-dict bodies, unknown filters or unknown types
        """
        if body is None:
            return None
        if not isinstance(body, dict):
            raise FilterError(f"the filter body is not a dict: {body!r}")

        clauses: list[str] = []
        for key, value in body.items():
            if key in ("all", "any"):
                c = self.generate(value, key)
            elif key == "not":
                c = self.generate(value, "all")
                c = f"(NOT {c})" if c is not None else None
            else:
                desc, generator = self._generator_for(key)
                c = generator.generate_simple_clause(key, desc, value)
            if c is not None:
                clauses.append(c)

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        op = " OR " if join == "any" else " AND "
        return f"({op.join(clauses)})"

    def adjust(self, body: Any, fn: Callable[["Filter", str, Any], Any]) -> Any:
        """Rewrite the values of known filters in a body.

        ``fn(filter, name, normalized_value)`` returns the new value;
        combinators are walked recursively and unknown keys are kept.
        """
        if not isinstance(body, dict):
            return body
        rv: dict[str, Any] = {}
        for key, value in body.items():
            if key in _COMBINATORS:
                rv[key] = self.adjust(value, fn)
            elif key in self.filters:
                desc, generator = self._generator_for(key)
                rv[key] = fn(self, key, generator.normalize_value(key, desc, value))
            else:
                rv[key] = value
        return rv

    def generate_partitioned_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        """``IN`` / ``NOT IN`` clause for an only/except value.

        An ``only`` list that ends up empty selects nothing; an empty
        ``except`` list generates no clause.
        """
        if value is None:
            return None
        h = adjust_only_except_lists(value) or {}
        field = desc["field"]
        if "only" in h:
            if not h["only"]:
                return NEVER_TRUE_CLAUSE
            p = self.allocate_parameter(h["only"])
            return f"({field} IN :{p})"
        if h.get("except"):
            p = self.allocate_parameter(h["except"])
            return f"({field} NOT IN :{p})"
        return None

    def _timestamp(self, name: str, value: Any) -> Any:
        ts = parse_timestamp(value)
        if ts is None:
            raise FilterError(f"invalid timestamp for filter {name}: {value!r}", details={"filter": name})
        return ts

    def generate_timestamp_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        """Comparison clause for a timestamp value.

        ``value`` holds one or more of the keys in ``TIMESTAMP_OPERATORS``
        (ANDed together) and an optional ``null`` flag: ``True`` ORs in
        ``IS NULL``, ``False`` ORs in ``IS NOT NULL``.
        """
        if value is None:
            return None
        if not isinstance(value, dict):
            raise FilterError(f"timestamp filter {name} needs a dict value", details={"filter": name})

        field = desc["field"]
        ts_type = DateTime(timezone=True)
        conditions: list[str] = []
        for cmp, op in TIMESTAMP_OPERATORS.items():
            t = value.get(cmp)
            if t is None:
                continue
            if cmp in ("between", "not_between"):
                if not isinstance(t, list | tuple) or len(t) < 2:
                    raise FilterError(
                        f"the {cmp} timestamp comparison must have start and end times",
                        details={"filter": name},
                    )
                start, end = sorted((self._timestamp(name, t[0]), self._timestamp(name, t[1])))
                p0 = self.allocate_parameter(start, ts_type)
                p1 = self.allocate_parameter(end, ts_type)
                conditions.append(f"({field} {op} :{p0} AND :{p1})")
            else:
                p = self.allocate_parameter(self._timestamp(name, t), ts_type)
                conditions.append(f"({field} {op} :{p})")

        null_flag = value.get("null")
        if null_flag in (True, "true"):
            null_clause = f"({field} IS NULL)"
        elif null_flag in (False, "false"):
            null_clause = f"({field} IS NOT NULL)"
        else:
            null_clause = None

        if len(conditions) > 1:
            main_clause: str | None = f"({' AND '.join(conditions)})"
        else:
            main_clause = conditions[0] if conditions else None

        if null_clause is None:
            return main_clause
        if main_clause is None:
            return null_clause
        return f"({main_clause} OR {null_clause})"

    def generate_custom_clause(self, name: str, desc: dict[str, Any], value: Any) -> str | None:
        """Clause from the descriptor's ``generator`` callable."""
        generator = desc.get("generator")
        if generator is None:
            raise FilterError(f"missing generator for custom filter {name}", details={"filter": name})
        if value is None:
            return None
        return generator(self, name, desc, value)

    def bind_parameters(self) -> list[BindParameter]:
        """Bind parameters for the allocated values; lists bind as expanding."""
        binds: list[BindParameter] = []
        for name, value in self.params.items():
            if isinstance(value, list | tuple | set):
                binds.append(bindparam(name, list(value), expanding=True))
            else:
                binds.append(bindparam(name, value, type_=self._param_types.get(name)))
        return binds

    def apply(self, stmt: Select, body: Any) -> Select:
        """Add the clause for ``body`` to a select statement.

        Returns:
            The statement with the clause ANDed in, or ``stmt`` itself when
            the body generates no conditions. Parameter names carry a
            prefix unique to this call, so filtered statements can be
            filtered again.
        """
        self.reset(prefix=f"f{next(_APPLY_IDS)}_")
        self.clause = self.generate(body)
        if self.clause is None:
            return stmt
        logger.debug("query_filter_applied", clause=self.clause, params=list(self.params))
        return stmt.where(text(self.clause).bindparams(*self.bind_parameters()))
