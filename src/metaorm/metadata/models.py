"""Canonical in-memory metadata model.

EntityMetadata and EntityProperty are filled in by the resolver and treated
as read-only afterwards. Every consumer (commit order, schema generator,
query compiler) reads the same objects.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from metaorm.core.types import EntitySpec, IndexSpec, PropertySpec, ReferenceKind

OWNING_KINDS = (ReferenceKind.MANY_TO_ONE, ReferenceKind.ONE_TO_ONE)


@dataclass
class IndexDef:
    """Entity-level index or unique constraint over one or more properties."""

    properties: list[str]
    name: str | None = None
    type: str | None = None

    @classmethod
    def from_spec(cls, spec: IndexSpec) -> IndexDef:
        return cls(properties=list(spec.properties), name=spec.name, type=spec.type)

    def key(self) -> tuple[Any, ...]:
        return (tuple(self.properties), self.name, self.type)


@dataclass
class EntityProperty:
    """A resolved property of an entity."""

    name: str
    kind: ReferenceKind = ReferenceKind.SCALAR
    type: str = "string"
    target: str | None = None
    primary: bool = False
    nullable: bool | None = None
    unique: bool | str = False
    index: bool | str | None = None
    version: bool = False
    default: Any = None
    default_raw: str | None = None
    length: int | None = None
    custom_type: str | None = None
    enum_items: list[str] | None = None
    field_names: list[str] = field(default_factory=list)
    join_columns: list[str] = field(default_factory=list)
    inverse_join_columns: list[str] = field(default_factory=list)
    referenced_column_names: list[str] = field(default_factory=list)
    referenced_table_name: str | None = None
    column_types: list[str] = field(default_factory=list)
    owner: bool = False
    mapped_by: str | None = None
    inversed_by: str | None = None
    pivot_table: str | None = None
    fixed_order: bool = False
    fixed_order_column: str | None = None
    prefix: bool | str = True
    persist: bool = True
    inherited: bool = False
    embedded: tuple[str, str] | None = None
    embedded_props: dict[str, str] = field(default_factory=dict)
    autoincrement: bool = False
    on_delete: str | None = None
    on_update: str | None = None
    comment: str | None = None

    @classmethod
    def from_spec(cls, spec: PropertySpec) -> EntityProperty:
        """Build an unresolved property from its specification."""
        field_names = list(spec.field_names or ([spec.field_name] if spec.field_name else []))
        join_columns = list(spec.join_columns or [])

        # explicit column names on owning relations mirror each other
        if spec.kind in OWNING_KINDS:
            if field_names and not join_columns:
                join_columns = list(field_names)
            elif join_columns and not field_names:
                field_names = list(join_columns)

        prop = cls(
            name=spec.name,
            kind=ReferenceKind(spec.kind),
            type=spec.target if spec.kind != ReferenceKind.SCALAR and spec.target else spec.type,
            target=spec.target,
            primary=spec.primary,
            nullable=spec.nullable,
            unique=spec.unique,
            index=spec.index,
            version=spec.version,
            default=spec.default,
            default_raw=spec.default_raw,
            length=spec.length,
            custom_type=spec.custom_type,
            enum_items=list(spec.enum_items) if spec.enum_items else None,
            field_names=field_names,
            join_columns=join_columns,
            inverse_join_columns=list(spec.inverse_join_columns or []),
            referenced_column_names=list(spec.referenced_column_names or []),
            mapped_by=spec.mapped_by,
            inversed_by=spec.inversed_by,
            pivot_table=spec.pivot_table,
            fixed_order=bool(spec.fixed_order),
            fixed_order_column=spec.fixed_order_column,
            prefix=spec.prefix,
            persist=spec.persist,
            on_delete=spec.on_delete,
            on_update=spec.on_update,
            comment=spec.comment,
        )
        if spec.column_type:
            prop.column_types = [spec.column_type]
        prop.owner = _infer_owner(spec)
        return prop

    @property
    def is_relation(self) -> bool:
        return self.kind not in (ReferenceKind.SCALAR, ReferenceKind.EMBEDDED)

    @property
    def is_owning_reference(self) -> bool:
        """True for properties whose table stores the foreign key."""
        return self.kind == ReferenceKind.MANY_TO_ONE or (
            self.kind == ReferenceKind.ONE_TO_ONE and self.owner
        )

    def copy(self) -> EntityProperty:
        return copy.deepcopy(self)


def _infer_owner(spec: PropertySpec) -> bool:
    if spec.owner is not None:
        return spec.owner
    if spec.kind == ReferenceKind.MANY_TO_ONE:
        return True
    if spec.kind in (ReferenceKind.ONE_TO_ONE, ReferenceKind.MANY_TO_MANY):
        return spec.mapped_by is None
    return False


@dataclass
class EntityMetadata:
    """Resolved, canonical description of a persistent type."""

    name: str
    table_name: str | None = None
    properties: dict[str, EntityProperty] = field(default_factory=dict)
    primary_keys: list[str] = field(default_factory=list)
    composite_pk: bool = False
    indexes: list[IndexDef] = field(default_factory=list)
    uniques: list[IndexDef] = field(default_factory=list)
    extends: str | None = None
    root: str | None = None
    abstract: bool = False
    embeddable: bool = False
    pivot_table: bool = False
    discriminator_column: str | None = None
    discriminator_value: str | None = None
    discriminator_map: dict[str, str] | None = None
    version_property: str | None = None
    comment: str | None = None

    @classmethod
    def from_spec(cls, spec: EntitySpec) -> EntityMetadata:
        """Build unresolved metadata from an entity specification."""
        meta = cls(
            name=spec.name,
            table_name=spec.table_name,
            indexes=[IndexDef.from_spec(i) for i in spec.indexes],
            uniques=[IndexDef.from_spec(u) for u in spec.uniques],
            extends=spec.extends,
            abstract=spec.abstract,
            embeddable=spec.embeddable,
            discriminator_column=spec.discriminator_column,
            discriminator_value=spec.discriminator_value,
            discriminator_map=dict(spec.discriminator_map) if spec.discriminator_map else None,
            comment=spec.comment,
        )
        for prop_spec in spec.properties:
            meta.properties[prop_spec.name] = EntityProperty.from_spec(prop_spec)
        return meta

    @property
    def props(self) -> list[EntityProperty]:
        """Properties in declaration order."""
        return list(self.properties.values())

    @property
    def relations(self) -> list[EntityProperty]:
        return [p for p in self.properties.values() if p.is_relation]

    @property
    def is_root(self) -> bool:
        return self.root is None or self.root == self.name

    def primary_key_field_names(self) -> list[str]:
        """Column names of the primary key, flattened in key order."""
        names: list[str] = []
        for pk in self.primary_keys:
            names.extend(self.properties[pk].field_names)
        return names

    def primary_key_column_types(self) -> list[str]:
        types: list[str] = []
        for pk in self.primary_keys:
            types.extend(self.properties[pk].column_types)
        return types

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "table_name": self.table_name,
            "primary_keys": list(self.primary_keys),
            "pivot_table": self.pivot_table,
            "root": self.root,
            "discriminator_column": self.discriminator_column,
            "discriminator_value": self.discriminator_value,
            "version_property": self.version_property,
            "properties": [
                {
                    "name": p.name,
                    "kind": p.kind.value,
                    "type": p.type,
                    "field_names": list(p.field_names),
                    "join_columns": list(p.join_columns),
                    "inverse_join_columns": list(p.inverse_join_columns),
                    "column_types": list(p.column_types),
                    "nullable": bool(p.nullable),
                    "pivot_table": p.pivot_table,
                }
                for p in self.props
            ],
        }
