"""Query condition compiler.

Turns parsed condition trees, joins, orderings and lock modes into SQL
fragments with positional ``?`` parameters. Column names come from the
resolved metadata, never from the condition keys themselves.

Example:
    compiler = QueryConditionCompiler("Book", "b", registry, SqlitePlatform())
    fragment = compiler.compile_where({"title": {"$like": "Dune%"}})
    fragment.sql     # 'where "b"."title" like ?'
    fragment.params  # ['Dune%']
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import TextClause, text

from metaorm.core.types import ClauseKind, JoinKind, LockMode, QueryOrder, QueryType
from metaorm.exceptions import ConfigurationError, QueryCompilationError
from metaorm.query.conditions import (
    COMPOSITE_KEY_SEPARATOR,
    GROUP_OPERATORS,
    OPERATORS,
    Condition,
    Group,
    Leaf,
    Not,
    Raw,
    is_custom_expression,
    parse_condition,
)

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityMetadata
    from metaorm.metadata.registry import MetadataRegistry
    from metaorm.platforms.base import Platform
    from metaorm.query.joins import JoinSpec

logger = logging.getLogger(__name__)

DATE_TYPES = ("datetime", "date", "time")

_PLACEHOLDER = re.compile(r"'(?:[^']|'')*'|\?")


@dataclass
class CompiledFragment:
    """SQL text with positional parameters."""

    sql: str = ""
    params: list[Any] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.sql

    def to_text(self) -> TextClause:
        """Convert to a SQLAlchemy text clause with named bind parameters."""
        counter = iter(range(len(self.params) + 1))

        def replace(match: re.Match[str]) -> str:
            token = match.group(0)
            if token != "?":
                return token
            return f":p{next(counter)}"

        sql = _PLACEHOLDER.sub(replace, self.sql)
        return text(sql).bindparams(**{f"p{i}": value for i, value in enumerate(self.params)})

    def __str__(self) -> str:
        return self.sql


def regex_to_like(pattern: str) -> str:
    """Rewrite a simple regular expression as a LIKE pattern.

    ``^`` and ``$`` anchors decide where wildcards go: anchored on both sides
    gives an exact match, unanchored gives ``%value%``.
    """
    value = pattern.replace(".*", "%").replace(".", "_").replace("\\_", ".")
    starts = value.startswith("^")
    ends = value.endswith("$")
    value = value[1:] if starts else value
    value = value[:-1] if ends else value

    if starts and ends:
        return value
    if starts:
        return f"{value}%"
    if ends:
        return f"%{value}"
    return f"%{value}%"


def is_simple_regex(value: Any) -> bool:
    """Whether a compiled pattern has no quantifier braces, classes or groups."""
    return isinstance(value, re.Pattern) and not re.search(r"[{\[(]", value.pattern)


class QueryConditionCompiler:
    """Compiles conditions for one root entity and its joined aliases.

    Args:
        entity_name: Root entity of the query
        alias: SQL alias of the root entity
        registry: Frozen, resolved metadata
        platform: Target platform
        alias_map: Additional alias -> entity name mappings (joined entities)
    """

    def __init__(
        self,
        entity_name: str,
        alias: str,
        registry: MetadataRegistry,
        platform: Platform,
        alias_map: dict[str, str] | None = None,
    ) -> None:
        self._registry = registry
        self._platform = platform
        self._meta = registry.get(entity_name)
        self._alias = alias
        self._alias_map = {alias: self._meta.name, **(alias_map or {})}

    @property
    def metadata(self) -> EntityMetadata:
        return self._meta

    @property
    def alias(self) -> str:
        return self._alias

    def register_alias(self, alias: str, entity_name: str) -> None:
        self._alias_map[alias] = entity_name

    def join_aliases(self, joins: Iterable[JoinSpec]) -> dict[str, str]:
        """Registered aliases plus the aliases introduced by ``joins``.

        The compiler's own alias map is left untouched.
        """
        ret = dict(self._alias_map)
        for join in joins:
            entity = self._registry.find_by_table(join.table)
            if entity is not None:
                ret[join.alias] = entity.name
        return ret

    # === Field mapping ===

    def mapper(self, field: str, query_type: QueryType = QueryType.SELECT) -> str:
        """Map a property path to a quoted column reference.

        ``prop`` resolves against the root entity, ``alias.prop`` against the
        entity registered for that alias. Custom expressions are returned
        untouched. Columns are alias-prefixed for SELECT and COUNT only.
        """
        return self._map_field(field, query_type, self._alias, self._alias_map)

    def _map_field(
        self, field: str, query_type: QueryType, default_alias: str, aliases: dict[str, str]
    ) -> str:
        if is_custom_expression(field):
            return field

        columns = self._map_columns(field, query_type, default_alias, aliases)
        if len(columns) == 1:
            return columns[0]
        return f"({', '.join(columns)})"

    def _map_columns(
        self, field: str, query_type: QueryType, default_alias: str, aliases: dict[str, str]
    ) -> list[str]:
        if COMPOSITE_KEY_SEPARATOR in field:
            ret: list[str] = []
            for part in field.split(COMPOSITE_KEY_SEPARATOR):
                ret.extend(self._map_columns(part, query_type, default_alias, aliases))
            return ret

        alias, name = self._split_field(field, default_alias)
        entity_name = aliases.get(alias)
        meta = self._registry.find(entity_name)
        prop = meta.properties.get(name) if meta else None

        if prop is None:
            columns = [name]
        elif prop.field_names:
            columns = list(prop.field_names)
        else:
            columns = [prop.name]

        quote = self._platform.quote_identifier
        prefixed = query_type in (QueryType.SELECT, QueryType.COUNT) and (
            prop is None or prop.persist
        )
        if prefixed:
            return [f"{quote(alias)}.{quote(column)}" for column in columns]
        return [quote(column) for column in columns]

    def _split_field(self, field: str, default_alias: str) -> tuple[str, str]:
        if "." in field:
            alias, name = field.split(".", 1)
            return alias, name
        return default_alias, field

    # === Conditions ===

    def compile_condition(
        self,
        condition: Any,
        query_type: QueryType = QueryType.SELECT,
        default_alias: str | None = None,
        aliases: dict[str, str] | None = None,
    ) -> CompiledFragment:
        """Compile a condition into a boolean SQL expression (no keyword).

        ``aliases`` overrides the registered alias map for this call only.
        """
        if condition is None or condition == {}:
            return CompiledFragment()

        tree = parse_condition(condition)
        params: list[Any] = []
        sql = self._compile_tree(
            tree,
            query_type,
            default_alias or self._alias,
            self._alias_map if aliases is None else aliases,
            params,
            None,
        )
        return CompiledFragment(sql, params)

    def compile_where(
        self,
        condition: Any,
        query_type: QueryType = QueryType.SELECT,
        clause: ClauseKind = ClauseKind.WHERE,
        aliases: dict[str, str] | None = None,
    ) -> CompiledFragment:
        """Compile a condition into a WHERE (or HAVING) clause.

        Raises:
            QueryCompilationError: If the condition has an unknown operator or shape
        """
        fragment = self.compile_condition(condition, query_type, aliases=aliases)
        if fragment.is_empty():
            return fragment
        return CompiledFragment(f"{clause.value} {fragment.sql}", fragment.params)

    def _compile_tree(
        self,
        node: Condition,
        query_type: QueryType,
        default_alias: str,
        aliases: dict[str, str],
        params: list[Any],
        parent: str | None,
    ) -> str:
        if isinstance(node, Leaf):
            return self._compile_leaf(node, query_type, default_alias, aliases, params)

        if isinstance(node, Raw):
            params.extend(node.params)
            return node.expression

        if isinstance(node, Not):
            inner = self._compile_tree(node.inner, query_type, default_alias, aliases, params, None)
            return f"not ({inner})"

        if not node.members:
            return "1 = 1" if node.operator == "$and" else "1 = 0"

        if len(node.members) == 1:
            return self._compile_tree(
                node.members[0], query_type, default_alias, aliases, params, parent
            )

        parts = [
            self._compile_tree(member, query_type, default_alias, aliases, params, node.operator)
            for member in node.members
        ]
        sql = f" {GROUP_OPERATORS[node.operator]} ".join(parts)

        if node.operator == "$and":
            return f"({sql})" if parent == "$or" else sql

        if parent in (None, "$or") and all(_is_simple_equality(m) for m in node.members):
            return sql
        return f"({sql})"

    def _compile_leaf(
        self,
        leaf: Leaf,
        query_type: QueryType,
        default_alias: str,
        aliases: dict[str, str],
        params: list[Any],
    ) -> str:
        if leaf.operator not in OPERATORS or leaf.operator == "$not":
            raise QueryCompilationError.invalid_condition({leaf.field: {leaf.operator: leaf.value}})

        if is_custom_expression(leaf.field):
            column = leaf.field
            columns = [leaf.field]
        else:
            columns = self._map_columns(leaf.field, query_type, default_alias, aliases)
            column = columns[0] if len(columns) == 1 else f"({', '.join(columns)})"

        op = leaf.operator
        value = leaf.value

        if op == "$fulltext":
            params.append(value)
            return self._platform.get_full_text_where_clause(column)

        if op == "$re":
            if is_simple_regex(value):
                params.append(regex_to_like(value.pattern))
                return f"{column} like ?"
            params.append(value.pattern if isinstance(value, re.Pattern) else value)
            return f"{column} {self._platform.regex_operator} ?"

        if op in ("$in", "$nin"):
            return self._compile_in(column, len(columns), op, value, params)

        if value is None and op in ("$eq", "$ne"):
            return f"{column} is null" if op == "$eq" else f"{column} is not null"

        if len(columns) > 1:
            values = _as_tuple(value, len(columns), leaf)
            params.extend(values)
            return f"{column} {OPERATORS[op]} {self._row(len(columns))}"

        if isinstance(value, re.Pattern):
            value = value.pattern
        params.append(value)
        return f"{column} {OPERATORS[op]} ?"

    def _compile_in(
        self, column: str, arity: int, op: str, value: Any, params: list[Any]
    ) -> str:
        values = list(value) if isinstance(value, (list, tuple, set)) else [value]
        if not values:
            return "1 = 0" if op == "$in" else "1 = 1"

        if arity > 1:
            # a flat list on a composite key is a single tuple
            rows = values if all(isinstance(v, (list, tuple)) for v in values) else [values]
            for row in rows:
                params.extend(row)
            tuples = ", ".join(self._row(arity) for _ in rows)
            if self._platform.requires_values_keyword:
                tuples = f"values {tuples}"
            return f"{column} {OPERATORS[op]} ({tuples})"

        params.extend(values)
        return f"{column} {OPERATORS[op]} ({', '.join('?' for _ in values)})"

    def _row(self, arity: int) -> str:
        return f"({', '.join('?' for _ in range(arity))})"

    # === Joins ===

    def compile_joins(
        self,
        joins: Iterable[JoinSpec],
        query_type: QueryType = QueryType.SELECT,
        aliases: dict[str, str] | None = None,
    ) -> CompiledFragment:
        """Render join hops as JOIN clauses.

        Join conditions resolve ``alias.prop`` against ``aliases``, which
        defaults to the registered aliases plus those of ``joins``.
        """
        joins = list(joins)
        if aliases is None:
            aliases = self.join_aliases(joins)

        quote = self._platform.quote_identifier
        parts: list[str] = []
        params: list[Any] = []

        for join in joins:
            on = [
                f"{quote(join.owner_alias)}.{quote(pk)} = {quote(join.alias)}.{quote(col)}"
                for pk, col in zip(join.primary_keys, join.join_columns, strict=True)
            ]
            if join.condition:
                cond = self.compile_condition(
                    join.condition, query_type, default_alias=join.alias, aliases=aliases
                )
                if not cond.is_empty():
                    on.append(cond.sql)
                    params.extend(cond.params)

            keyword = "inner join" if join.kind == JoinKind.INNER else "left join"
            parts.append(f"{keyword} {quote(join.table)} as {quote(join.alias)} on {' and '.join(on)}")

        return CompiledFragment(" ".join(parts), params)

    # === Ordering and locking ===

    def get_query_order(
        self,
        order_by: dict[str, QueryOrder | str | int],
        query_type: QueryType = QueryType.SELECT,
        populate: dict[str, str] | None = None,
        aliases: dict[str, str] | None = None,
    ) -> str:
        """Render an ORDER BY list (without the keyword).

        Args:
            order_by: Property path -> direction (QueryOrder, its string value, 1 or -1)
            query_type: Statement kind, decides alias prefixing
            populate: Alias replacements applied before mapping
            aliases: Alias -> entity name map for this call (registered aliases by default)
        """
        populate = populate or {}
        if aliases is None:
            aliases = self._alias_map
        ret: list[str] = []

        for key, direction in order_by.items():
            order = _order(direction, key)
            if is_custom_expression(key):
                ret.append(f"{key} {order.value}")
                continue

            alias, name = self._split_field(key, self._alias)
            alias = populate.get(alias, alias)
            for part in name.split(COMPOSITE_KEY_SEPARATOR):
                column = self._map_field(f"{alias}.{part}", query_type, alias, aliases)
                ret.append(f"{column} {order.value}")

        return ", ".join(ret)

    def get_lock_sql(self, lock_mode: LockMode | None) -> str | None:
        """Locking clause for a SELECT.

        Raises:
            ConfigurationError: If an optimistic lock is requested on an
                unversioned entity
        """
        if lock_mode is None or lock_mode == LockMode.NONE:
            return None
        if lock_mode == LockMode.OPTIMISTIC:
            if not self._meta.version_property:
                raise ConfigurationError.not_versioned(self._meta.name)
            return None
        return self._platform.get_lock_sql(lock_mode)

    def verify_lock_version(self, expected: Any, actual: Any) -> None:
        """Check an optimistic lock against the version read back from the database.

        Raises:
            ConfigurationError: If the entity is unversioned or the versions differ
        """
        if not self._meta.version_property:
            raise ConfigurationError.not_versioned(self._meta.name)
        if expected != actual:
            raise ConfigurationError.lock_version_mismatch(self._meta.name, expected, actual)

    # === Data ===

    def process_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Map property names to column names and encode values for the driver.

        Relation values given as tuples are spread over the join columns;
        dicts and lists of properties without a custom type are JSON encoded.
        Unknown keys are passed through.
        """
        ret: dict[str, Any] = {}

        for key, value in data.items():
            prop = self._meta.properties.get(key)
            if prop is None:
                ret[key] = value
                continue

            columns = prop.join_columns if prop.is_owning_reference else prop.field_names
            if len(columns) > 1 and isinstance(value, (list, tuple)):
                for column, item in zip(columns, value, strict=True):
                    ret[column] = item
                continue

            if isinstance(value, (dict, list)) and not prop.custom_type:
                value = json.dumps(value)

            ret[columns[0] if columns else key] = value

        return ret

    def update_version_property(self, data: dict[str, Any]) -> dict[str, str]:
        """SET expressions bumping the version column of an UPDATE.

        Returns:
            Column -> raw SQL mapping; empty when the entity is unversioned or
            the version is already part of ``data``
        """
        name = self._meta.version_property
        if not name or name in data:
            return {}

        prop = self._meta.properties[name]
        column = prop.field_names[0]
        if prop.type in DATE_TYPES:
            return {column: self._platform.get_current_timestamp_sql(prop.length)}
        return {column: f"{self._platform.quote_identifier(column)} + 1"}

    def get_returning_sql(self, query_type: QueryType) -> str:
        """RETURNING clause for an INSERT on platforms that support it."""
        if query_type != QueryType.INSERT or not self._platform.uses_returning_statement:
            return ""
        if self._meta.composite_pk:
            return ""

        columns: list[str] = []
        for prop in self._meta.props:
            if prop.persist and (prop.primary or prop.default_raw is not None):
                columns.extend(prop.field_names)
        if not columns:
            return ""
        return f"returning {self._platform.quote_columns(columns)}"

    # === Statements ===

    def compile_select(
        self,
        fields: list[str] | None = None,
        where: Any = None,
        joins: Iterable[JoinSpec] = (),
        order_by: dict[str, QueryOrder | str | int] | None = None,
        group_by: list[str] | None = None,
        having: Any = None,
        limit: int | None = None,
        offset: int | None = None,
        lock_mode: LockMode | None = None,
        query_type: QueryType = QueryType.SELECT,
    ) -> CompiledFragment:
        """Compile a full SELECT (or COUNT) statement for the root entity.

        Join aliases are visible to every clause of this statement only.

        Raises:
            ConfigurationError: If an optimistic lock is requested on an
                unversioned entity
            QueryCompilationError: If a condition has an unknown operator or shape
        """
        lock = self.get_lock_sql(lock_mode)
        quote = self._platform.quote_identifier
        params: list[Any] = []
        joins = list(joins)
        aliases = self.join_aliases(joins)

        if query_type == QueryType.COUNT:
            select = f"count(*) as {quote('count')}"
        elif fields:
            select = ", ".join(self._map_field(f, query_type, self._alias, aliases) for f in fields)
        else:
            select = f"{quote(self._alias)}.*"

        table = self._meta.table_name or self._meta.name
        parts = [f"select {select} from {quote(table)} as {quote(self._alias)}"]

        join_sql = self.compile_joins(joins, query_type, aliases)
        if not join_sql.is_empty():
            parts.append(join_sql.sql)
            params.extend(join_sql.params)

        for condition, clause, extra in (
            (where, ClauseKind.WHERE, None),
            (having, ClauseKind.HAVING, group_by),
        ):
            if clause == ClauseKind.HAVING and extra:
                columns = ", ".join(
                    self._map_field(f, query_type, self._alias, aliases) for f in extra
                )
                parts.append(f"group by {columns}")
            fragment = self.compile_where(condition, query_type, clause, aliases)
            if not fragment.is_empty():
                parts.append(fragment.sql)
                params.extend(fragment.params)

        if order_by and query_type != QueryType.COUNT:
            parts.append(f"order by {self.get_query_order(order_by, query_type, aliases=aliases)}")

        if limit is not None:
            parts.append("limit ?")
            params.append(limit)
        if offset is not None:
            parts.append("offset ?")
            params.append(offset)

        if lock:
            parts.append(lock)

        return CompiledFragment(" ".join(parts), params)

    def compile_insert(self, data: dict[str, Any]) -> CompiledFragment:
        """Compile an INSERT of one row."""
        quote = self._platform.quote_identifier
        row = self.process_data(data)
        table = quote(self._meta.table_name or self._meta.name)

        if row:
            columns = ", ".join(quote(c) for c in row)
            values = ", ".join("?" for _ in row)
            sql = f"insert into {table} ({columns}) values ({values})"
        else:
            sql = f"insert into {table} default values"

        returning = self.get_returning_sql(QueryType.INSERT)
        if returning:
            sql += f" {returning}"
        return CompiledFragment(sql, list(row.values()))

    def compile_update(self, data: dict[str, Any], where: Any = None) -> CompiledFragment:
        """Compile an UPDATE, bumping the version column when versioned."""
        quote = self._platform.quote_identifier
        row = self.process_data(data)
        sets = [f"{quote(c)} = ?" for c in row]
        sets.extend(f"{quote(c)} = {sql}" for c, sql in self.update_version_property(data).items())
        if not sets:
            raise QueryCompilationError(
                f"Nothing to update on '{self._meta.name}'. Pass at least one property.",
                {"entity_name": self._meta.name},
            )

        table = quote(self._meta.table_name or self._meta.name)
        params = list(row.values())
        sql = f"update {table} set {', '.join(sets)}"

        fragment = self.compile_where(where, QueryType.UPDATE)
        if not fragment.is_empty():
            sql += f" {fragment.sql}"
            params.extend(fragment.params)
        return CompiledFragment(sql, params)

    def compile_delete(self, where: Any = None) -> CompiledFragment:
        """Compile a DELETE."""
        table = self._platform.quote_identifier(self._meta.table_name or self._meta.name)
        fragment = self.compile_where(where, QueryType.DELETE)
        sql = f"delete from {table}"
        if not fragment.is_empty():
            sql += f" {fragment.sql}"
        return CompiledFragment(sql, list(fragment.params))


def _is_simple_equality(node: Condition) -> bool:
    return isinstance(node, Leaf) and node.operator == "$eq" and not isinstance(node.value, re.Pattern)


def _as_tuple(value: Any, arity: int, leaf: Leaf) -> list[Any]:
    if not isinstance(value, (list, tuple)) or len(value) != arity:
        raise QueryCompilationError(
            f"Composite key '{leaf.field}' needs {arity} values, got {value!r}.",
            {"field": leaf.field, "value": repr(value), "arity": arity},
        )
    return list(value)


def _order(direction: QueryOrder | str | int, key: str) -> QueryOrder:
    if isinstance(direction, QueryOrder):
        return direction
    try:
        if isinstance(direction, int):
            return QueryOrder.from_numeric(direction)
        return QueryOrder(str(direction).lower())
    except ValueError as e:
        raise QueryCompilationError(
            f"Invalid order direction {direction!r} for '{key}'. "
            f"Valid directions: {', '.join(o.value for o in QueryOrder)}, 1, -1",
            {"field": key, "direction": repr(direction)},
        ) from e
