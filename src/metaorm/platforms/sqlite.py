"""SQLite platform."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.dialects import sqlite
from sqlalchemy.engine import Dialect

from metaorm.core.types import LockMode
from metaorm.platforms.base import ColumnComparison, Platform

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityProperty


class SqlitePlatform(Platform):
    """SQLite: no column alteration, foreign keys declared inline on columns."""

    name = "sqlite"

    supports_column_alter = False
    supports_schema_constraints = False
    inline_foreign_keys = True
    requires_values_keyword = True
    regex_operator = "regexp"

    TYPE_ALIASES = {
        "int": "integer",
        "bool": "boolean",
    }

    def _create_dialect(self) -> Dialect:
        return sqlite.dialect()

    def is_implicit_index(self, name: str) -> bool:
        return name.startswith("sqlite_autoindex_")

    def get_autoincrement_definition(self, prop: EntityProperty) -> str:
        return "integer not null primary key autoincrement"

    def get_current_timestamp_sql(self, length: int | None = None) -> str:
        return "current_timestamp"

    def get_full_text_where_clause(self, column: str) -> str:
        return f"{column} match ?"

    def get_lock_sql(self, lock_mode: LockMode) -> str | None:
        # row locks do not exist, the whole database is locked per transaction
        return None

    def get_create_database_sql(self, name: str) -> str | None:
        return None

    def get_drop_database_sql(self, name: str) -> str | None:
        return None

    def get_schema_beginning(self, charset: str | None = None) -> list[str]:
        return ["pragma foreign_keys = off"]

    def get_schema_end(self) -> list[str]:
        return ["pragma foreign_keys = on"]

    def get_alter_column_sql(
        self,
        table_name: str,
        column_name: str,
        column_type: str,
        nullable: bool,
        default: str | None,
        diff: ColumnComparison,
    ) -> list[str]:
        return []
