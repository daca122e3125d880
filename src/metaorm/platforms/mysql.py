"""MySQL / MariaDB platform."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.dialects import mysql
from sqlalchemy.engine import Dialect

from metaorm.core.types import LockMode
from metaorm.platforms.base import ColumnComparison, Platform

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityProperty


class MySqlPlatform(Platform):
    """MySQL: backtick quoting, MODIFY-based column alteration."""

    name = "mysql"

    regex_operator = "regexp"
    supports_fulltext_index = True

    TYPE_ALIASES = {
        "int": "integer",
        "int(11)": "integer",
        "tinyint(1)": "bool",
        "boolean": "bool",
        "double": "float(53)",
    }

    def _create_dialect(self) -> Dialect:
        return mysql.dialect()

    def get_index_name(self, table_name: str, columns: list[str], type: str) -> str:
        if type == "primary":
            return "primary"
        return super().get_index_name(table_name, columns, type)

    def is_implicit_index(self, name: str) -> bool:
        return name.lower() == "primary"

    def get_autoincrement_definition(self, prop: EntityProperty) -> str:
        return f"{prop.column_types[0]} not null auto_increment primary key"

    def get_lock_sql(self, lock_mode: LockMode) -> str | None:
        if lock_mode == LockMode.PESSIMISTIC_READ:
            return "lock in share mode"
        return super().get_lock_sql(lock_mode)

    def get_schema_beginning(self, charset: str | None = None) -> list[str]:
        return [f"set names {charset or 'utf8mb4'}", "set foreign_key_checks = 0"]

    def get_schema_end(self) -> list[str]:
        return ["set foreign_key_checks = 1"]

    def get_alter_column_sql(
        self,
        table_name: str,
        column_name: str,
        column_type: str,
        nullable: bool,
        default: str | None,
        diff: ColumnComparison,
    ) -> list[str]:
        sql = (
            f"alter table {self.quote_identifier(table_name)} modify "
            f"{self.quote_identifier(column_name)} {column_type}"
            f"{' null' if nullable else ' not null'}"
        )
        if default is not None:
            sql += f" default {default}"
        return [sql]

    def get_drop_index_sql(self, table_name: str, index_name: str, unique: bool) -> str:
        return (
            f"alter table {self.quote_identifier(table_name)} "
            f"drop index {self.quote_identifier(index_name)}"
        )

    def get_drop_foreign_key_sql(self, table_name: str, constraint_name: str) -> str:
        return (
            f"alter table {self.quote_identifier(table_name)} "
            f"drop foreign key {self.quote_identifier(constraint_name)}"
        )
