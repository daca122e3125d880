"""Schema synchronization: live snapshots, commit order, diffing and DDL generation."""

from metaorm.schema.commit_order import CommitOrderCalculator
from metaorm.schema.diff import (
    ColumnRename,
    ColumnUpdate,
    SchemaComparator,
    SchemaDifference,
    TableDifference,
)
from metaorm.schema.generator import SchemaGenerator
from metaorm.schema.introspection import (
    Column,
    DatabaseSchema,
    DatabaseTable,
    ForeignKey,
    LiveIndex,
)

__all__ = [
    "Column",
    "ColumnRename",
    "ColumnUpdate",
    "CommitOrderCalculator",
    "DatabaseSchema",
    "DatabaseTable",
    "ForeignKey",
    "LiveIndex",
    "SchemaComparator",
    "SchemaDifference",
    "SchemaGenerator",
    "TableDifference",
]
