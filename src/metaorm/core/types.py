"""Core types and input specifications for metaorm.

Entity descriptions are plain pydantic models so they can be built in code
or loaded from JSON. They carry every name, kind and logical type the
resolver needs; nothing is discovered from source code.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ReferenceKind(StrEnum):
    """Relation kinds of an entity property."""

    SCALAR = "scalar"
    MANY_TO_ONE = "many_to_one"  # e.g., Book -> Author
    ONE_TO_ONE = "one_to_one"  # e.g., User -> Profile
    ONE_TO_MANY = "one_to_many"  # e.g., Author -> Books (inverse of many_to_one)
    MANY_TO_MANY = "many_to_many"  # e.g., Book <-> Tag (requires pivot table)
    EMBEDDED = "embedded"  # e.g., User.address flattened into user columns

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid reference kind values."""
        return [k.value for k in cls]


class FieldType(StrEnum):
    """Logical types supported for scalar properties."""

    STRING = "string"
    TEXT = "text"
    INT = "int"
    BIGINT = "bigint"
    FLOAT = "float"
    DOUBLE = "double"
    DECIMAL = "decimal"
    BOOL = "bool"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    JSON = "json"
    UUID = "uuid"
    BLOB = "blob"
    ARRAY = "array"
    ENUM = "enum"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid field type values."""
        return [t.value for t in cls]


class LockMode(StrEnum):
    """Row locking modes understood by the query compiler."""

    NONE = "none"
    OPTIMISTIC = "optimistic"
    PESSIMISTIC_READ = "pessimistic_read"
    PESSIMISTIC_WRITE = "pessimistic_write"


class QueryType(StrEnum):
    """Kinds of statements a condition can be compiled for."""

    SELECT = "SELECT"
    COUNT = "COUNT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    TRUNCATE = "TRUNCATE"


class ClauseKind(StrEnum):
    """Clause a condition tree is compiled into."""

    WHERE = "where"
    HAVING = "having"


class JoinKind(StrEnum):
    """Join flavours produced by the join builders."""

    INNER = "inner"
    LEFT = "left"
    PIVOT = "pivot"  # only the owner -> pivot hop of a many-to-many


class QueryOrder(StrEnum):
    """Named ordering directions."""

    ASC = "asc"
    ASC_NULLS_LAST = "asc nulls last"
    ASC_NULLS_FIRST = "asc nulls first"
    DESC = "desc"
    DESC_NULLS_LAST = "desc nulls last"
    DESC_NULLS_FIRST = "desc nulls first"

    @classmethod
    def from_numeric(cls, value: int) -> QueryOrder:
        """Map numeric direction codes (1 = ASC, -1 = DESC)."""
        if value == 1:
            return cls.ASC
        if value == -1:
            return cls.DESC
        raise ValueError(f"Invalid numeric order direction {value}. Use 1 or -1.")


class IndexSpec(BaseModel):
    """Specification for an entity-level index or unique constraint."""

    properties: list[str] = Field(..., description="Property names covered by the index")
    name: str | None = Field(default=None, description="Explicit index name")
    type: str | None = Field(default=None, description="Index type (e.g. 'fulltext')")


class PropertySpec(BaseModel):
    """Specification for an entity property.

    Scalars carry a logical ``type``; relations carry a ``target`` entity name.
    Every override is optional; the resolver derives whatever is missing.
    """

    name: str = Field(..., description="Property name")
    kind: ReferenceKind = Field(default=ReferenceKind.SCALAR, description="Relation kind")
    type: str = Field(default=FieldType.STRING.value, description="Logical type for scalars")
    target: str | None = Field(default=None, description="Target entity for relations")
    primary: bool = Field(default=False, description="Part of the primary key")
    nullable: bool | None = Field(default=None, description="Whether NULL is allowed")
    unique: bool | str = Field(default=False, description="Unique flag or constraint name")
    index: bool | str | None = Field(default=None, description="Index flag or index name")
    version: bool = Field(default=False, description="Optimistic lock version property")
    default: Any = Field(default=None, description="Default value")
    default_raw: str | None = Field(default=None, description="Default as raw SQL")
    length: int | None = Field(default=None, description="Column length / precision")
    column_type: str | None = Field(default=None, description="Explicit column type")
    custom_type: str | None = Field(default=None, description="Custom type tag")
    enum_items: list[str] | None = Field(default=None, description="Allowed enum values")
    field_name: str | None = Field(default=None, description="Explicit column name")
    field_names: list[str] | None = Field(default=None, description="Explicit column names")
    join_columns: list[str] | None = Field(default=None, description="Explicit join columns")
    inverse_join_columns: list[str] | None = Field(
        default=None, description="Explicit inverse join columns (many-to-many)"
    )
    referenced_column_names: list[str] | None = Field(
        default=None, description="Explicit referenced columns"
    )
    owner: bool | None = Field(default=None, description="Owning side of the relation")
    mapped_by: str | None = Field(default=None, description="Owning property on the target")
    inversed_by: str | None = Field(default=None, description="Inverse property on the target")
    pivot_table: str | None = Field(default=None, description="Explicit pivot table name")
    fixed_order: bool | None = Field(default=None, description="Pivot keeps insertion order")
    fixed_order_column: str | None = Field(default=None, description="Pivot order column")
    prefix: bool | str = Field(default=True, description="Prefix for embedded properties")
    persist: bool = Field(default=True, description="Whether the property is stored")
    on_delete: str | None = Field(default=None, description="FK ON DELETE action")
    on_update: str | None = Field(default=None, description="FK ON UPDATE action")
    comment: str | None = Field(default=None, description="Column comment")

    model_config = {"use_enum_values": False}


class EntitySpec(BaseModel):
    """Specification for an entity.

    This is the input format for the resolver; the CLI loads it from JSON.
    """

    name: str = Field(..., description="Entity name (PascalCase recommended)")
    table_name: str | None = Field(default=None, description="Explicit table name")
    properties: list[PropertySpec] = Field(default_factory=list, description="Properties")
    indexes: list[IndexSpec] = Field(default_factory=list, description="Entity indexes")
    uniques: list[IndexSpec] = Field(default_factory=list, description="Unique constraints")
    extends: str | None = Field(default=None, description="Base entity name")
    abstract: bool = Field(default=False, description="Base entity without own table")
    embeddable: bool = Field(default=False, description="Only used through embedding")
    discriminator_column: str | None = Field(
        default=None, description="Discriminator property (single table inheritance root)"
    )
    discriminator_value: str | None = Field(default=None, description="Discriminator value")
    discriminator_map: dict[str, str] | None = Field(
        default=None, description="Explicit discriminator value -> entity name map"
    )
    comment: str | None = Field(default=None, description="Table comment")
