"""Query condition parsing, join building and SQL compilation."""

from metaorm.query.compiler import (
    CompiledFragment,
    QueryConditionCompiler,
    is_simple_regex,
    regex_to_like,
)
from metaorm.query.conditions import (
    OPERATORS,
    Condition,
    Group,
    Leaf,
    Not,
    Raw,
    is_custom_expression,
    parse_condition,
)
from metaorm.query.joins import (
    JoinSpec,
    join_many_to_many,
    join_many_to_one,
    join_one_to_reference,
    join_pivot_table,
)

__all__ = [
    "OPERATORS",
    "CompiledFragment",
    "Condition",
    "Group",
    "JoinSpec",
    "Leaf",
    "Not",
    "QueryConditionCompiler",
    "Raw",
    "is_custom_expression",
    "is_simple_regex",
    "join_many_to_many",
    "join_many_to_one",
    "join_one_to_reference",
    "join_pivot_table",
    "parse_condition",
    "regex_to_like",
]
