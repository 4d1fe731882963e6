"""Query filters, reference list helpers and query option parsing."""

from flcore.core.query.filter import NEVER_TRUE_CLAUSE, TIMESTAMP_OPERATORS, Filter
from flcore.core.query.generators import (
    STANDARD_GENERATORS,
    BlockListGenerator,
    CustomGenerator,
    FilterGenerator,
    PolymorphicReferencesGenerator,
    ReferencesGenerator,
    TimestampGenerator,
)
from flcore.core.query.helpers import (
    adjust_only_except_lists,
    boolean_query_flag,
    convert_list_of_polymorphic_references,
    convert_list_of_references,
    extract_fingerprint_from_reference,
    extract_identifier_from_reference,
    normalize_filter_lists,
    normalize_lists_of_polymorphic_references,
    normalize_lists_of_references,
    parse_timestamp,
)
from flcore.core.query.query_helper import (
    GroupMembership,
    add_date_filter_clauses,
    add_filters,
    add_limit_clause,
    add_offset_clause,
    add_order_clause,
    expand_actor_lists,
    parse_order_option,
    partition_actor_lists,
    partition_filter_lists,
    partition_lists_of_polymorphic_references,
    partition_lists_of_references,
)


__all__ = [
    "NEVER_TRUE_CLAUSE",
    "STANDARD_GENERATORS",
    "TIMESTAMP_OPERATORS",
    "BlockListGenerator",
    "CustomGenerator",
    "Filter",
    "FilterGenerator",
    "GroupMembership",
    "PolymorphicReferencesGenerator",
    "ReferencesGenerator",
    "TimestampGenerator",
    "add_date_filter_clauses",
    "add_filters",
    "add_limit_clause",
    "add_offset_clause",
    "add_order_clause",
    "adjust_only_except_lists",
    "boolean_query_flag",
    "convert_list_of_polymorphic_references",
    "convert_list_of_references",
    "expand_actor_lists",
    "extract_fingerprint_from_reference",
    "extract_identifier_from_reference",
    "normalize_filter_lists",
    "normalize_lists_of_polymorphic_references",
    "normalize_lists_of_references",
    "parse_order_option",
    "parse_timestamp",
    "partition_actor_lists",
    "partition_filter_lists",
    "partition_lists_of_polymorphic_references",
    "partition_lists_of_references",
]
