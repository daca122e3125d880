"""Platform capability interface.

A platform tells the platform-agnostic core how the target database spells
types, quotes identifiers, names indexes and which schema operations it
supports. Type syntax and quoting come from the matching SQLAlchemy dialect.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    LargeBinary,
    Numeric,
    String,
    Text,
    Time,
    Uuid,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.types import TypeEngine

from metaorm.core.types import FieldType, LockMode, ReferenceKind
from metaorm.exceptions import MetadataResolutionError
from metaorm.metadata.naming import NamingStrategy, UnderscoreNamingStrategy

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityProperty
    from metaorm.schema.introspection import Column


# Mapping from logical field types to SQLAlchemy column types
FIELD_TYPE_MAP: dict[str, Callable[[EntityProperty], TypeEngine[Any]]] = {
    FieldType.STRING: lambda prop: String(prop.length or 255),
    FieldType.TEXT: lambda prop: Text(),
    FieldType.INT: lambda prop: Integer(),
    FieldType.BIGINT: lambda prop: BigInteger(),
    FieldType.FLOAT: lambda prop: Float(),
    FieldType.DOUBLE: lambda prop: Float(precision=53),
    FieldType.DECIMAL: lambda prop: Numeric(prop.length or 10, 2),
    FieldType.BOOL: lambda prop: Boolean(),
    FieldType.DATETIME: lambda prop: DateTime(),
    FieldType.DATE: lambda prop: Date(),
    FieldType.TIME: lambda prop: Time(),
    FieldType.JSON: lambda prop: JSON(),
    FieldType.UUID: lambda prop: Uuid(),
    FieldType.BLOB: lambda prop: LargeBinary(),
    FieldType.ARRAY: lambda prop: Text(),
    FieldType.ENUM: lambda prop: String(prop.length or 255),
}

_CAST_SUFFIX = re.compile(r"::[\w\s]+(\[\])?$")


@dataclass
class ColumnComparison:
    """Per-attribute sameness flags of a property versus a live column."""

    same_types: bool
    same_nullable: bool
    same_default: bool
    same_index: bool

    @property
    def same_definition(self) -> bool:
        """Type, nullability and default match (rename detection criterion)."""
        return self.same_types and self.same_nullable and self.same_default

    @property
    def all(self) -> bool:
        return self.same_definition and self.same_index


class Platform(ABC):
    """Capabilities of one database platform."""

    name: str = "generic"

    # capability flags
    supports_column_alter: bool = True
    supports_schema_constraints: bool = True
    uses_returning_statement: bool = False
    uses_cascade_statement: bool = False
    requires_values_keyword: bool = False
    index_foreign_keys: bool = True
    inline_foreign_keys: bool = False
    supports_fulltext_index: bool = False
    regex_operator: str = "regexp"

    TYPE_ALIASES: dict[str, str] = {}
    TYPE_OVERRIDES: dict[str, Callable[[EntityProperty], TypeEngine[Any]]] = {}

    def __init__(self, naming_strategy: NamingStrategy | None = None) -> None:
        self._naming_strategy = naming_strategy or UnderscoreNamingStrategy()
        self._dialect: Dialect | None = None

    @abstractmethod
    def _create_dialect(self) -> Dialect:
        """SQLAlchemy dialect used for type compilation and quoting."""
        ...

    @property
    def dialect(self) -> Dialect:
        if self._dialect is None:
            self._dialect = self._create_dialect()
        return self._dialect

    def get_naming_strategy(self) -> NamingStrategy:
        return self._naming_strategy

    # === Identifiers ===

    def quote_identifier(self, name: str) -> str:
        """Quote an identifier, keeping schema-qualified names intact."""
        preparer = self.dialect.identifier_preparer
        return ".".join(preparer.quote_identifier(part) for part in name.split("."))

    def quote_columns(self, columns: list[str]) -> str:
        return ", ".join(self.quote_identifier(c) for c in columns)

    def get_index_name(self, table_name: str, columns: list[str], type: str) -> str:
        """Deterministic index name (e.g., book_author_id_index)."""
        table = table_name.split(".")[-1]
        name = f"{table}_{'_'.join(columns)}_{type}"
        return re.sub(r"[.-]", "_", name).lower()

    def is_implicit_index(self, name: str) -> bool:
        """Indexes the database creates on its own and the differ must ignore."""
        return False

    # === Types ===

    def get_type_definition(self, prop: EntityProperty, entity_name: str = "?") -> str:
        """Column type for a scalar property.

        Args:
            prop: Resolved scalar property
            entity_name: Owning entity, used in error messages

        Raises:
            MetadataResolutionError: If the logical type is unknown
        """
        type_name = (prop.custom_type or prop.type).lower()
        factory = self.TYPE_OVERRIDES.get(type_name) or FIELD_TYPE_MAP.get(type_name)
        if factory is None:
            raise MetadataResolutionError.invalid_type(
                entity_name,
                prop.name,
                type_name,
                FieldType.values(),
            )
        return self.compile_type(factory(prop))

    def compile_type(self, type_: TypeEngine[Any]) -> str:
        return type_.compile(dialect=self.dialect).lower()

    def get_autoincrement_definition(self, prop: EntityProperty) -> str:
        """Column definition for a single auto-increment primary key."""
        return f"{prop.column_types[0]} not null primary key"

    def is_autoincrement_candidate(self, prop: EntityProperty) -> bool:
        return prop.primary and prop.kind == ReferenceKind.SCALAR and (
            prop.type in (FieldType.INT, FieldType.BIGINT, "number", "integer")
        )

    def normalize_type(self, type_name: str | None) -> str:
        if not type_name:
            return ""
        normalized = re.sub(r"\s+", " ", type_name.strip().lower())
        normalized = re.sub(r"\s*([(),])\s*", r"\1", normalized)
        return self.TYPE_ALIASES.get(normalized, normalized)

    def normalize_default(self, default: str | None, prop: EntityProperty | None = None) -> str | None:
        if default is None:
            return None
        value = str(default).strip()
        while value.startswith("(") and value.endswith(")"):
            value = value[1:-1].strip()
        value = _CAST_SUFFIX.sub("", value)
        if value.lower() in ("null", ""):
            return None
        if value.lower().startswith("current_timestamp"):
            return "current_timestamp"
        return value

    # === Comparison ===

    def is_same(self, prop: EntityProperty, column: Column, idx: int = 0) -> ColumnComparison:
        """Compare a property (its idx-th column) with a live column."""
        expected_type = prop.column_types[idx] if idx < len(prop.column_types) else None
        same_types = self.normalize_type(expected_type) == self.normalize_type(column.type)
        same_nullable = column.nullable == bool(prop.nullable)
        same_default = self.normalize_default(
            column.default, prop
        ) == self.normalize_default(prop.default_raw, prop)
        same_index = (column.fk is not None) == prop.is_owning_reference
        return ColumnComparison(same_types, same_nullable, same_default, same_index)

    # === SQL snippets ===

    def get_current_timestamp_sql(self, length: int | None = None) -> str:
        return "current_timestamp" if length is None else f"current_timestamp({length})"

    def get_full_text_where_clause(self, column: str) -> str:
        """Full-text predicate template for a quoted column; uses one '?' parameter."""
        return f"match({column}) against (? in boolean mode)"

    def get_lock_sql(self, lock_mode: LockMode) -> str | None:
        if lock_mode == LockMode.PESSIMISTIC_READ:
            return "for share"
        if lock_mode == LockMode.PESSIMISTIC_WRITE:
            return "for update"
        return None

    def get_create_database_sql(self, name: str) -> str | None:
        return f"create database {self.quote_identifier(name)}"

    def get_drop_database_sql(self, name: str) -> str | None:
        return f"drop database if exists {self.quote_identifier(name)}"

    def get_schema_beginning(self, charset: str | None = None) -> list[str]:
        return []

    def get_schema_end(self) -> list[str]:
        return []

    def get_drop_table_sql(self, table_name: str) -> str:
        sql = f"drop table if exists {self.quote_identifier(table_name)}"
        if self.uses_cascade_statement:
            sql += " cascade"
        return sql

    def get_rename_column_sql(self, table_name: str, old_name: str, new_name: str) -> str:
        return (
            f"alter table {self.quote_identifier(table_name)} rename column "
            f"{self.quote_identifier(old_name)} to {self.quote_identifier(new_name)}"
        )

    def get_add_column_sql(self, table_name: str, column_sql: str) -> str:
        return f"alter table {self.quote_identifier(table_name)} add column {column_sql}"

    def get_drop_column_sql(self, table_name: str, column_name: str) -> str:
        return (
            f"alter table {self.quote_identifier(table_name)} "
            f"drop column {self.quote_identifier(column_name)}"
        )

    def get_alter_column_sql(
        self,
        table_name: str,
        column_name: str,
        column_type: str,
        nullable: bool,
        default: str | None,
        diff: ColumnComparison,
    ) -> list[str]:
        """Statements altering an existing column to the desired definition."""
        table = self.quote_identifier(table_name)
        column = self.quote_identifier(column_name)
        ret: list[str] = []
        if not diff.same_types:
            ret.append(f"alter table {table} alter column {column} type {column_type}")
        if not diff.same_nullable:
            action = "drop not null" if nullable else "set not null"
            ret.append(f"alter table {table} alter column {column} {action}")
        if not diff.same_default:
            action = f"set default {default}" if default is not None else "drop default"
            ret.append(f"alter table {table} alter column {column} {action}")
        return ret

    def get_create_index_sql(
        self,
        table_name: str,
        index_name: str,
        columns: list[str],
        unique: bool,
        type: str | None = None,
    ) -> str:
        if type == "fulltext":
            keyword = "create fulltext index"
        else:
            keyword = "create unique index" if unique else "create index"
        return (
            f"{keyword} {self.quote_identifier(index_name)} "
            f"on {self.quote_identifier(table_name)} ({self.quote_columns(columns)})"
        )

    def get_drop_index_sql(self, table_name: str, index_name: str, unique: bool) -> str:
        return f"drop index {self.quote_identifier(index_name)}"

    def get_add_foreign_key_sql(
        self,
        table_name: str,
        constraint_name: str,
        columns: list[str],
        referenced_table: str,
        referenced_columns: list[str],
        on_delete: str | None,
        on_update: str | None,
    ) -> str:
        sql = (
            f"alter table {self.quote_identifier(table_name)} "
            f"add constraint {self.quote_identifier(constraint_name)} "
            f"foreign key ({self.quote_columns(columns)}) "
            f"references {self.quote_identifier(referenced_table)} "
            f"({self.quote_columns(referenced_columns)})"
        )
        if on_update:
            sql += f" on update {on_update}"
        if on_delete:
            sql += f" on delete {on_delete}"
        return sql

    def get_drop_foreign_key_sql(self, table_name: str, constraint_name: str) -> str:
        return (
            f"alter table {self.quote_identifier(table_name)} "
            f"drop constraint {self.quote_identifier(constraint_name)}"
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
