"""Unit tests for the declarative query filter.

These tests verify:
- Clause generation for each standard filter type
- Nesting with all/any/not
- Parameter allocation and binding
- Applying filters to select statements
"""

from datetime import UTC, datetime

import pytest
from sqlalchemy import select

from flcore.core.errors import FilterError
from flcore.core.query import NEVER_TRUE_CLAUSE, Filter, FilterGenerator, add_filters
from tests.models import SampleActor, SampleDocument


pytestmark = pytest.mark.unit


def _flag_clause(f, name, desc, value):
    p = f.allocate_parameter(bool(value))
    return f"({desc['field']} = :{p})"


def _upper(f, items, key):
    return [str(i).upper() for i in items]


CONFIG = {
    "filters": {
        "actors": {"type": "references", "field": "actor_id", "class": SampleActor},
        "authors": {"type": "polymorphic_references", "field": "author_fingerprint"},
        "tags": {"type": "block_list", "field": "tag", "convert": _upper},
        "created": {"type": "timestamp", "field": "created_at"},
        "flag": {"type": "custom", "field": "is_flagged", "generator": _flag_clause},
    },
}


class TestPartitionedClauses:
    """Tests for only/except reference filters."""

    def test_only(self):
        """Test an IN clause for an only list."""
        f = Filter(CONFIG)
        assert f.generate({"actors": {"only": ["SampleActor/1", 2]}}) == "(actor_id IN :p1)"
        assert f.params == {"p1": [1, 2]}

    def test_except(self):
        """Test a NOT IN clause for an except list."""
        f = Filter(CONFIG)
        assert f.generate({"authors": {"except": ["SampleActor/2", "SampleActor/4"]}}) == (
            "(author_fingerprint NOT IN :p1)"
        )
        assert f.params["p1"] == ["SampleActor/2", "SampleActor/4"]

    def test_except_subtracted_from_only(self):
        """Test that only minus except is used and except is dropped."""
        f = Filter(CONFIG)
        clause = f.generate({"actors": {"only": [1, 2, 3, 4], "except": [2, 4]}})
        assert clause == "(actor_id IN :p1)"
        assert f.params == {"p1": [1, 3]}

    def test_empty_only_selects_nothing(self):
        """Test that an emptied only list gives the never-true clause."""
        f = Filter(CONFIG)
        assert f.generate({"actors": {"only": [1, 2], "except": [1, 2]}}) == NEVER_TRUE_CLAUSE

    def test_no_lists(self):
        """Test that values without lists give no clause."""
        f = Filter(CONFIG)
        assert f.generate({"actors": {}}) is None
        assert f.generate({"actors": {"except": []}}) is None
        assert f.generate({"actors": None}) is None

    def test_block_list(self):
        """Test that block lists use the descriptor's converter."""
        f = Filter(CONFIG)
        assert f.generate({"tags": {"only": ["a", "b"]}}) == "(tag IN :p1)"
        assert f.params["p1"] == ["A", "B"]

    def test_block_list_requires_converter(self):
        """Test that block lists without a converter are rejected."""
        f = Filter({"filters": {"tags": {"type": "block_list", "field": "tag"}}})
        with pytest.raises(FilterError):
            f.generate({"tags": {"only": ["a"]}})


class TestTimestampClauses:
    """Tests for timestamp filters."""

    def test_single_comparison(self):
        """Test a single comparison operator."""
        f = Filter(CONFIG)
        assert f.generate({"created": {"after": "2024-01-01T00:00:00Z"}}) == "(created_at > :p1)"
        assert f.params["p1"] == datetime(2024, 1, 1, tzinfo=UTC)

    def test_combined_comparisons(self):
        """Test that several operators are ANDed."""
        f = Filter(CONFIG)
        clause = f.generate({"created": {"after": "2024-01-01", "before": "2024-02-01"}})
        assert clause == "((created_at > :p1) AND (created_at < :p2))"

    def test_between_sorts_bounds(self):
        """Test that between bounds are sorted ascending."""
        f = Filter(CONFIG)
        clause = f.generate({"created": {"between": ["2024-02-01", "2024-01-01"]}})
        assert clause == "(created_at BETWEEN :p1 AND :p2)"
        assert f.params["p1"] < f.params["p2"]

    def test_between_needs_two_values(self):
        """Test that between with one value is rejected."""
        f = Filter(CONFIG)
        with pytest.raises(FilterError):
            f.generate({"created": {"between": ["2024-01-01"]}})

    def test_null_flags(self):
        """Test that the null flag ORs in a NULL check."""
        f = Filter(CONFIG)
        assert f.generate({"created": {"null": True}}) == "(created_at IS NULL)"
        assert f.generate({"created": {"at": 0, "null": False}}) == (
            "((created_at = :p1) OR (created_at IS NOT NULL))"
        )

    def test_invalid_timestamp(self):
        """Test that unparsable times are rejected."""
        f = Filter(CONFIG)
        with pytest.raises(FilterError):
            f.generate({"created": {"after": "someday"}})
        with pytest.raises(FilterError):
            f.generate({"created": "2024-01-01"})


class TestCustomClauses:
    """Tests for custom filters and generator overrides."""

    def test_custom_generator(self):
        """Test that custom filters call the descriptor's generator."""
        f = Filter(CONFIG)
        assert f.generate({"flag": "yes"}) == "(is_flagged = :p1)"
        assert f.params["p1"] is True

    def test_custom_without_generator(self):
        """Test that custom filters need a generator."""
        f = Filter({"filters": {"flag": {"type": "custom", "field": "is_flagged"}}})
        with pytest.raises(FilterError):
            f.generate({"flag": True})

    def test_custom_none_value(self):
        """Test that None values give no clause."""
        f = Filter(CONFIG)
        assert f.generate({"flag": None}) is None

    def test_generator_overrides_type(self):
        """Test that a descriptor generator replaces the default clause of any type."""
        seen = []

        def generator(f, name, desc, value):
            seen.append(value)
            return "(1 = 1)"

        f = Filter({"filters": {"authors": {"type": "polymorphic_references", "field": "a", "generator": generator}}})
        assert f.generate({"authors": {"only": ["SampleActor/1", "junk"]}}) == "(1 = 1)"
        assert seen == [{"only": ["SampleActor/1"]}]

    def test_configured_generator_class(self):
        """Test registering a generator class for a new type."""

        class Always(FilterGenerator):
            def generate_simple_clause(self, name, desc, value):
                return f"({desc['field']} IS NOT NULL)"

        f = Filter({"filters": {"x": {"type": "always", "field": "x"}}, "generators": {"always": Always}})
        assert f.generate({"x": 1}) == "(x IS NOT NULL)"

    def test_bad_generator_class(self):
        """Test that unknown generator classes are rejected at construction."""
        with pytest.raises(FilterError):
            Filter({"generators": {"bad": "no.such.Module"}})


class TestCombinators:
    """Tests for nested bodies."""

    def test_all_any_not(self):
        """Test nesting with all, any and not."""
        f = Filter(CONFIG)
        clause = f.generate(
            {
                "any": {"actors": {"only": [1]}, "authors": {"only": ["SampleActor/2"]}},
                "not": {"flag": True},
            }
        )
        assert clause == "(((actor_id IN :p1) OR (author_fingerprint IN :p2)) AND (NOT (is_flagged = :p3)))"

    def test_unknown_filter(self):
        """Test that unknown filter names are rejected."""
        f = Filter(CONFIG)
        with pytest.raises(FilterError):
            f.generate({"colour": "red"})

    def test_unknown_type(self):
        """Test that unknown filter types are rejected at generation time."""
        f = Filter({"filters": {"x": {"type": "mystery", "field": "x"}}})
        with pytest.raises(FilterError):
            f.generate({"x": 1})

    def test_non_dict_body(self):
        """Test that non-dict bodies are rejected."""
        with pytest.raises(FilterError):
            Filter(CONFIG).generate(["actors"])

    def test_adjust(self):
        """Test rewriting the values of known filters."""
        f = Filter(CONFIG)
        body = {"all": {"actors": {"only": ["SampleActor/1", "junk"]}}, "other": 1}
        adjusted = f.adjust(body, lambda _f, name, value: {"normalized": value})
        assert adjusted == {"all": {"actors": {"normalized": {"only": [1]}}}, "other": 1}


class TestParameters:
    """Tests for parameter handling."""

    def test_allocate_and_reset(self):
        """Test parameter names and reset."""
        f = Filter(CONFIG)
        assert f.allocate_parameter(1) == "p1"
        assert f.allocate_parameter(None) == "p2"
        assert f.params == {"p1": 1}
        f.set_parameter("x", 5)
        assert f.get_parameter("x") == 5
        f.reset()
        assert f.counter == 0
        assert f.params == {}

    def test_list_parameters_expand(self):
        """Test that list parameters bind as expanding parameters."""
        f = Filter(CONFIG)
        f.generate({"actors": {"only": [1, 2]}})
        (bind,) = f.bind_parameters()
        assert bind.expanding


class TestApply:
    """Tests for applying filters to statements."""

    def test_apply_filters_rows(self, db, actor, other_actor):
        """Test that the generated clause filters query results."""
        config = {"filters": {"actors": {"type": "references", "field": "id", "class": SampleActor}}}
        stmt = add_filters(select(SampleActor), {"actors": {"except": [other_actor]}}, config)
        assert db.scalars(stmt).all() == [actor]

    def test_apply_never_true(self, db, actor):
        """Test that an emptied only list returns no rows."""
        config = {"filters": {"actors": {"type": "references", "field": "id", "class": SampleActor}}}
        stmt = add_filters(select(SampleActor), {"actors": {"only": [actor], "except": [actor]}}, config)
        assert db.scalars(stmt).all() == []

    def test_apply_without_conditions(self):
        """Test that bodies without conditions leave the statement alone."""
        stmt = select(SampleDocument)
        f = Filter(CONFIG)
        assert f.apply(stmt, {}) is stmt
        assert add_filters(stmt, None, CONFIG) is stmt

    def test_apply_twice_to_one_statement(self, db, actor, other_actor):
        """Test that clauses from two applications keep their own parameters."""
        config = {
            "filters": {
                "ids": {"type": "references", "field": "id", "class": SampleActor},
                "names": {"type": "block_list", "field": "name", "convert": lambda f, items, key: list(items)},
            },
        }
        stmt = add_filters(select(SampleActor), {"ids": {"only": [actor, other_actor]}}, config)
        stmt = add_filters(stmt, {"names": {"only": [other_actor.name]}}, config)

        assert db.scalars(stmt).all() == [other_actor]

    def test_apply_prefixes_parameter_names(self):
        """Test that each application allocates differently named parameters."""
        f = Filter(CONFIG)
        f.apply(select(SampleDocument), {"flag": True})
        first = list(f.params)
        f.apply(select(SampleDocument), {"flag": True})
        second = list(f.params)

        assert len(first) == len(second) == 1
        assert first != second
        assert first[0].endswith("_p1")
