"""Core types for metaorm."""

from metaorm.core.types import (
    ClauseKind,
    EntitySpec,
    FieldType,
    IndexSpec,
    JoinKind,
    LockMode,
    PropertySpec,
    QueryOrder,
    QueryType,
    ReferenceKind,
)

__all__ = [
    "ClauseKind",
    "EntitySpec",
    "FieldType",
    "IndexSpec",
    "JoinKind",
    "LockMode",
    "PropertySpec",
    "QueryOrder",
    "QueryType",
    "ReferenceKind",
]
