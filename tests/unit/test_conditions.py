"""Tests for condition parsing."""

import re

import pytest

from metaorm.exceptions import QueryCompilationError
from metaorm.query.conditions import (
    Group,
    Leaf,
    Not,
    Raw,
    is_custom_expression,
    parse_condition,
)


class TestParseCondition:
    """Test parsing declarative conditions into the AST."""

    def test_equality(self):
        """Test a plain value is an equality."""
        assert parse_condition({"name": "Jon"}) == Leaf("name", "$eq", "Jon")

    def test_implicit_and(self):
        """Test several top-level keys form a conjunction in key order."""
        assert parse_condition({"name": "Jon", "age": 30}) == Group(
            "$and", (Leaf("name", "$eq", "Jon"), Leaf("age", "$eq", 30))
        )

    def test_list_is_in(self):
        """Test a list value becomes $in."""
        assert parse_condition({"id": [1, 2]}) == Leaf("id", "$in", [1, 2])

    def test_pattern_is_regex(self):
        """Test a compiled pattern becomes $re."""
        pattern = re.compile("^Jo")
        assert parse_condition({"name": pattern}) == Leaf("name", "$re", pattern)

    def test_operator_dict(self):
        """Test several operators on one field become several leaves."""
        assert parse_condition({"age": {"$gte": 18, "$lt": 65}}) == Group(
            "$and", (Leaf("age", "$gte", 18), Leaf("age", "$lt", 65))
        )

    def test_field_negation(self):
        """Test $not inside a field applies to that field."""
        assert parse_condition({"age": {"$not": {"$gt": 18}}}) == Not(Leaf("age", "$gt", 18))

    def test_top_level_negation(self):
        """Test $not at the top level wraps a nested condition."""
        assert parse_condition({"$not": {"name": "Jon"}}) == Not(Leaf("name", "$eq", "Jon"))

    def test_nested_groups(self):
        """Test $or members are parsed recursively."""
        assert parse_condition({"$or": [{"name": "Jon"}, {"age": {"$gt": 18}}]}) == Group(
            "$or", (Leaf("name", "$eq", "Jon"), Leaf("age", "$gt", 18))
        )

    def test_raw_expression(self):
        """Test a custom expression with placeholders is kept raw."""
        assert parse_condition({"lower(name) = ?": "jon"}) == Raw("lower(name) = ?", ("jon",))
        assert parse_condition({"age between ? and ?": [18, 65]}) == Raw(
            "age between ? and ?", (18, 65)
        )

    def test_parsed_condition_passes_through(self):
        """Test an already parsed condition is returned as is."""
        leaf = Leaf("name", "$eq", "Jon")
        assert parse_condition(leaf) is leaf

    @pytest.mark.parametrize(
        "condition",
        [
            {"$foo": 1},
            {"name": {"$foo": 1}},
            {"name": {}},
            {"$or": {"name": "Jon"}},
            "name = 'Jon'",
        ],
    )
    def test_invalid_conditions(self, condition):
        """Test unknown operators and shapes are rejected."""
        with pytest.raises(QueryCompilationError) as exc_info:
            parse_condition(condition)
        assert "$eq" in exc_info.value.context["valid_operators"]


class TestCustomExpressions:
    """Test detection of raw SQL keys."""

    def test_property_paths_are_not_custom(self):
        """Test property names and alias paths are mapped, not raw."""
        assert not is_custom_expression("title")
        assert not is_custom_expression("a.name")
        assert not is_custom_expression("code~~~region")

    def test_expressions_are_custom(self):
        """Test operators, calls and numbers mark raw expressions."""
        assert is_custom_expression("count(*)")
        assert is_custom_expression("price > 10")
        assert is_custom_expression("1")

    def test_any_whitespace_marks_custom(self):
        """Test tabs and newlines count like spaces."""
        assert is_custom_expression("price\t> 1")
        assert is_custom_expression("a\nb")
        assert is_custom_expression("lower(name)\r\n")
