"""Database platforms for metaorm."""

from metaorm.platforms.base import FIELD_TYPE_MAP, ColumnComparison, Platform
from metaorm.platforms.mysql import MySqlPlatform
from metaorm.platforms.postgresql import PostgreSqlPlatform
from metaorm.platforms.sqlite import SqlitePlatform

PLATFORMS: dict[str, type[Platform]] = {
    "sqlite": SqlitePlatform,
    "postgresql": PostgreSqlPlatform,
    "mysql": MySqlPlatform,
}

__all__ = [
    "FIELD_TYPE_MAP",
    "PLATFORMS",
    "ColumnComparison",
    "MySqlPlatform",
    "Platform",
    "PostgreSqlPlatform",
    "SqlitePlatform",
]
