"""Condition AST.

Declarative conditions (nested dicts, as users write them) are parsed once
into tagged variants so the compiler never inspects value shapes:

    {"name": "Jon", "$or": [{"age": {"$gt": 18}}, {"vip": True}]}

becomes

    Group("$and", (Leaf("name", "$eq", "Jon"),
                   Group("$or", (Leaf("age", "$gt", 18), Leaf("vip", "$eq", True)))))
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Union

from metaorm.exceptions import QueryCompilationError

GROUP_OPERATORS = {
    "$and": "and",
    "$or": "or",
}

OPERATORS = {
    "$eq": "=",
    "$in": "in",
    "$nin": "not in",
    "$gt": ">",
    "$gte": ">=",
    "$lt": "<",
    "$lte": "<=",
    "$ne": "!=",
    "$not": "not",
    "$like": "like",
    "$fulltext": "fulltext",
    "$re": "regexp",
}

COMPOSITE_KEY_SEPARATOR = "~~~"

_CUSTOM_EXPRESSION = re.compile(r"[\s?<>=()]|^\d")


def is_custom_expression(field: str) -> bool:
    """Whether a key is a raw SQL expression rather than a property path."""
    return _CUSTOM_EXPRESSION.search(field) is not None


@dataclass(frozen=True)
class Leaf:
    """Single comparison: field, operator, value."""

    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class Group:
    """Conjunction ($and) or disjunction ($or) of members."""

    operator: str
    members: tuple[Condition, ...]


@dataclass(frozen=True)
class Not:
    """Negation of a nested condition."""

    inner: Condition


@dataclass(frozen=True)
class Raw:
    """Raw SQL expression with positional parameters."""

    expression: str
    params: tuple[Any, ...] = ()


Condition = Union[Leaf, Group, Not, Raw]


def parse_condition(condition: Any) -> Condition:
    """Parse a declarative condition into the AST.

    Args:
        condition: Condition dict, or an already parsed Condition

    Returns:
        Parsed condition; several top-level keys form an implicit $and

    Raises:
        QueryCompilationError: If the condition has an unknown operator or shape
    """
    if isinstance(condition, (Leaf, Group, Not, Raw)):
        return condition
    if not isinstance(condition, dict):
        raise QueryCompilationError.invalid_condition(condition)

    members: list[Condition] = []
    for key, value in condition.items():
        if key in GROUP_OPERATORS:
            if not isinstance(value, (list, tuple)):
                raise QueryCompilationError.invalid_condition({key: value})
            members.append(Group(key, tuple(parse_condition(sub) for sub in value)))
        elif key == "$not":
            members.append(Not(parse_condition(value)))
        elif key.startswith("$"):
            raise QueryCompilationError.invalid_condition({key: value})
        else:
            members.extend(_parse_field(key, value))

    if len(members) == 1:
        return members[0]
    return Group("$and", tuple(members))


def _parse_field(field: str, value: Any) -> list[Condition]:
    if isinstance(value, dict):
        if not value or not all(k in OPERATORS for k in value):
            raise QueryCompilationError.invalid_condition({field: value})

        ret: list[Condition] = []
        for op, operand in value.items():
            if op == "$not":
                ret.append(Not(parse_condition({field: operand})))
            else:
                ret.append(Leaf(field, op, operand))
        return ret

    if is_custom_expression(field) and "?" in field:
        params = tuple(value) if isinstance(value, (list, tuple)) else (value,)
        return [Raw(field, params)]

    if isinstance(value, re.Pattern):
        return [Leaf(field, "$re", value)]

    if isinstance(value, (list, tuple, set)):
        return [Leaf(field, "$in", list(value))]

    return [Leaf(field, "$eq", value)]
