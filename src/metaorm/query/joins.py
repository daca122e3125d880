"""Join builders.

Each builder turns a relation property into JoinSpec hops. A hop joins
``alias`` onto ``owner_alias`` with

    owner_alias.primary_keys[i] = alias.join_columns[i]

Many-to-many relations take two hops: owner to pivot table, then pivot
table to target entity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from metaorm.core.types import JoinKind
from metaorm.exceptions import MetadataResolutionError

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityProperty
    from metaorm.metadata.registry import MetadataRegistry
    from metaorm.query.conditions import Condition


@dataclass
class JoinSpec:
    """One join hop, ready to be rendered by the compiler."""

    owner_alias: str
    alias: str
    table: str
    join_columns: list[str]
    primary_keys: list[str]
    kind: JoinKind = JoinKind.INNER
    prop: EntityProperty | None = None
    inverse_join_columns: list[str] = field(default_factory=list)
    inverse_alias: str | None = None
    condition: Condition | None = None


def _target_property(
    registry: MetadataRegistry, entity_name: str, property_name: str | None
) -> EntityProperty:
    meta = registry.get(entity_name)
    prop = meta.properties.get(property_name or "")
    if prop is None:
        raise MetadataResolutionError.property_not_found(
            entity_name, property_name or "", list(meta.properties)
        )
    return prop


def join_many_to_one(
    registry: MetadataRegistry,
    prop: EntityProperty,
    owner_alias: str,
    alias: str,
    kind: JoinKind = JoinKind.INNER,
    condition: Condition | None = None,
) -> JoinSpec:
    """Join the target of a many-to-one (or owning one-to-one) property."""
    target = registry.get(prop.target or prop.type)
    return JoinSpec(
        owner_alias=owner_alias,
        alias=alias,
        table=target.table_name or target.name,
        join_columns=list(prop.referenced_column_names),
        primary_keys=list(prop.field_names),
        kind=kind,
        prop=prop,
        condition=condition,
    )


def join_one_to_reference(
    registry: MetadataRegistry,
    prop: EntityProperty,
    owner_alias: str,
    alias: str,
    kind: JoinKind = JoinKind.INNER,
    condition: Condition | None = None,
) -> JoinSpec:
    """Join the target of a one-to-many or one-to-one property.

    The join columns come from the owning side: this property when it owns
    the relation, its mapped_by/inversed_by counterpart otherwise.
    """
    target = registry.get(prop.target or prop.type)
    prop2 = _target_property(registry, target.name, prop.mapped_by or prop.inversed_by)

    if prop.owner:
        join_columns = list(prop.referenced_column_names)
        primary_keys = list(prop.join_columns)
    else:
        join_columns = list(prop2.join_columns)
        primary_keys = list(prop2.referenced_column_names)

    return JoinSpec(
        owner_alias=owner_alias,
        alias=alias,
        table=target.table_name or target.name,
        join_columns=join_columns,
        inverse_join_columns=list(prop.referenced_column_names),
        primary_keys=primary_keys,
        kind=kind,
        prop=prop,
        condition=condition,
    )


def join_many_to_many(
    registry: MetadataRegistry,
    prop: EntityProperty,
    owner_alias: str,
    alias: str,
    pivot_alias: str,
    kind: JoinKind = JoinKind.INNER,
    condition: Condition | None = None,
) -> dict[str, JoinSpec]:
    """Join a many-to-many property through its pivot table.

    Returns:
        Hops keyed by alias: the pivot hop, then (unless kind is PIVOT) the
        hop from the pivot table to the target entity
    """
    pivot_kind = JoinKind.LEFT if kind == JoinKind.PIVOT else kind
    ret = {
        pivot_alias: JoinSpec(
            owner_alias=owner_alias,
            alias=pivot_alias,
            table=prop.pivot_table or "",
            join_columns=list(prop.join_columns),
            inverse_join_columns=list(prop.inverse_join_columns),
            primary_keys=list(prop.referenced_column_names),
            kind=pivot_kind,
            prop=prop,
            inverse_alias=alias,
            condition=condition if kind == JoinKind.PIVOT else None,
        )
    }

    if kind == JoinKind.PIVOT:
        return ret

    target = prop.target or prop.type
    suffix = "_inverse" if prop.owner else "_owner"
    prop2 = _target_property(registry, prop.pivot_table or "", f"{target}{suffix}")
    ret[alias] = join_many_to_one(registry, prop2, pivot_alias, alias, kind, condition)
    return ret


def join_pivot_table(
    registry: MetadataRegistry,
    pivot_entity: str,
    prop: EntityProperty,
    owner_alias: str,
    alias: str,
    kind: JoinKind = JoinKind.LEFT,
    condition: Condition | None = None,
) -> JoinSpec:
    """Join a pivot entity directly, without the hop to the target.

    The inverse join columns are those of the pivot relation that does not
    point back at ``prop``'s own side.
    """
    meta = registry.get(pivot_entity)
    relations = meta.relations
    if len(relations) < 2:
        raise MetadataResolutionError(
            f"Entity '{meta.name}' is not a pivot table: it has {len(relations)} relation(s).",
            {"entity_name": meta.name},
        )
    prop2 = next((p for p in relations if p.join_columns != prop.join_columns), relations[-1])
    return JoinSpec(
        owner_alias=owner_alias,
        alias=alias,
        table=meta.table_name or meta.name,
        join_columns=list(prop.join_columns),
        inverse_join_columns=list(prop2.join_columns),
        primary_keys=list(prop.referenced_column_names),
        kind=kind,
        prop=prop,
        condition=condition,
    )
