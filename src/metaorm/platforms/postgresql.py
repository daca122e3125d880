"""PostgreSQL platform."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ARRAY, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Dialect

from metaorm.core.types import FieldType
from metaorm.platforms.base import Platform

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityProperty


class PostgreSqlPlatform(Platform):
    """PostgreSQL: RETURNING, cascading drops and native regex matching."""

    name = "postgresql"

    uses_returning_statement = True
    uses_cascade_statement = True
    regex_operator = "~"
    supports_fulltext_index = True

    TYPE_ALIASES = {
        "int": "integer",
        "int4": "integer",
        "int8": "bigint",
        "float": "double precision",
        "float(53)": "double precision",
        "float8": "double precision",
        "timestamp": "timestamp without time zone",
        "bool": "boolean",
    }

    TYPE_OVERRIDES = {
        FieldType.ARRAY: lambda prop: ARRAY(Text()),
    }

    def _create_dialect(self) -> Dialect:
        return postgresql.dialect()

    def get_index_name(self, table_name: str, columns: list[str], type: str) -> str:
        if type == "primary":
            return f"{table_name.split('.')[-1]}_pkey".lower()
        return super().get_index_name(table_name, columns, type)

    def is_implicit_index(self, name: str) -> bool:
        return name.endswith("_pkey")

    def get_autoincrement_definition(self, prop: EntityProperty) -> str:
        if prop.type == FieldType.BIGINT:
            return "bigserial primary key"
        return "serial primary key"

    def normalize_default(self, default: str | None, prop: EntityProperty | None = None) -> str | None:
        if default is not None and str(default).startswith("nextval("):
            return None
        return super().normalize_default(default, prop)

    def get_create_index_sql(
        self,
        table_name: str,
        index_name: str,
        columns: list[str],
        unique: bool,
        type: str | None = None,
    ) -> str:
        if type != "fulltext":
            return super().get_create_index_sql(table_name, index_name, columns, unique)
        document = " || ' ' || ".join(self.quote_identifier(c) for c in columns)
        return (
            f"create index {self.quote_identifier(index_name)} "
            f"on {self.quote_identifier(table_name)} "
            f"using gin (to_tsvector('simple', {document}))"
        )

    def get_full_text_where_clause(self, column: str) -> str:
        return f"to_tsvector('simple', {column}) @@ plainto_tsquery('simple', ?)"

    def get_schema_beginning(self, charset: str | None = None) -> list[str]:
        return [
            f"set names '{charset or 'utf8'}'",
            "set session_replication_role = 'replica'",
        ]

    def get_schema_end(self) -> list[str]:
        return ["set session_replication_role = 'origin'"]
