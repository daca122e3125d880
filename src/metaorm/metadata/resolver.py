"""Relationship resolver.

Turns partial entity descriptions into a frozen, fully resolved metadata
graph: table and column names, join columns, pivot tables, embeddables,
single table inheritance and base entity merging.

Example:
    resolver = RelationshipResolver(SqlitePlatform())
    registry = resolver.resolve([author_spec, book_spec])
    registry.get("Book").properties["author"].join_columns  # ['author_id']
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from metaorm.core.types import EntitySpec, FieldType, ReferenceKind
from metaorm.exceptions import MetadataResolutionError
from metaorm.metadata.models import OWNING_KINDS, EntityMetadata, EntityProperty, IndexDef
from metaorm.metadata.naming import NamingStrategy
from metaorm.metadata.registry import MetadataRegistry
from metaorm.metadata.validator import MetadataValidator

if TYPE_CHECKING:
    from metaorm.platforms.base import Platform

logger = logging.getLogger(__name__)

DATE_TYPES = (FieldType.DATETIME, FieldType.DATE, FieldType.TIME)


class RelationshipResolver:
    """Completes entity descriptions into canonical EntityMetadata.

    Resolution runs once, synchronously. Every intermediate mutation happens
    on metadata owned by this pass; the returned registry is frozen.
    """

    def __init__(self, platform: Platform, naming: NamingStrategy | None = None) -> None:
        """Initialize the resolver.

        Args:
            platform: Platform supplying column type definitions
            naming: Naming strategy (defaults to the platform's)
        """
        self._platform = platform
        self._naming = naming or platform.get_naming_strategy()
        self._validator = MetadataValidator()
        self._registry = MetadataRegistry()

    @property
    def naming(self) -> NamingStrategy:
        return self._naming

    def resolve(self, entities: Iterable[EntitySpec | EntityMetadata]) -> MetadataRegistry:
        """Resolve entity descriptions into a frozen registry.

        Args:
            entities: Entity specifications (or unresolved metadata)

        Returns:
            Frozen registry with every concrete entity and synthesized pivot

        Raises:
            MetadataResolutionError: If any description cannot be resolved
        """
        start = time.perf_counter()
        self._registry = registry = MetadataRegistry()

        for entity in entities:
            meta = EntityMetadata.from_spec(entity) if isinstance(entity, EntitySpec) else entity
            if meta.name in registry:
                raise MetadataResolutionError.duplicate_entity(meta.name)
            registry.set(meta)

        discovered = registry.all()
        logger.debug(f"Resolving {len(discovered)} entity descriptions")

        for meta in discovered:
            self._init_root(meta)
        for meta in discovered:
            self._init_embeddables(meta, set())
        for meta in discovered:
            self._init_single_table_inheritance(meta)
        for meta in discovered:
            self._define_base_entity_properties(meta, [])
        for meta in discovered:
            self._init_table_name(meta)
            self._init_primary_keys(meta)

        concrete = [m for m in discovered if not m.abstract]
        for meta in concrete:
            self._validator.validate_entity_definition(registry, meta)

        for meta in concrete:
            for prop in meta.props:
                self._init_field_names(prop)
                self._init_default_value(prop)
                self._init_version_property(meta, prop)
        for meta in concrete:
            for prop in meta.props:
                self._init_column_type(meta, prop)
            self._init_autoincrement(meta)
        for meta in concrete:
            self._auto_wire_bidirectional_properties(meta)

        # owning sides first, inverse sides mirror them
        for meta in concrete:
            for prop in meta.props:
                self._apply_owning_naming(meta, prop)
        for meta in concrete:
            for prop in meta.props:
                self._apply_inverse_naming(meta, prop)

        # pivots are collected first and only defined once iteration is over
        pending = [
            (meta, prop)
            for meta in concrete
            if meta.is_root
            for prop in meta.props
            if prop.kind == ReferenceKind.MANY_TO_MANY and prop.owner and prop.pivot_table
        ]
        pivots: list[EntityMetadata] = []
        for meta, prop in pending:
            if prop.pivot_table in self._registry or any(p.name == prop.pivot_table for p in pivots):
                logger.debug(f"Pivot table {prop.pivot_table} already defined, skipping synthesis")
                continue
            pivots.append(self._define_pivot(meta, prop))

        result = MetadataRegistry()
        for meta in concrete + pivots:
            for prop in meta.props:
                self._init_indexes(meta, prop)
            result.set(meta)

        self._validator.validate_discovered(result)
        elapsed = (time.perf_counter() - start) * 1000
        logger.info(
            f"Metadata resolution finished, found {len(result)} entities "
            f"({len(pivots)} pivot tables), took {elapsed:.1f} ms"
        )
        return result.freeze()

    # === Hierarchy ===

    def _get_base(self, meta: EntityMetadata) -> EntityMetadata | None:
        if not meta.extends or meta.extends == meta.name:
            return None
        return self._registry.get(meta.extends, referenced_from=f"{meta.name} (extends)")

    def _find_root(self, meta: EntityMetadata, chain: list[str]) -> EntityMetadata:
        if meta.name in chain:
            raise MetadataResolutionError.extends_cycle(chain + [meta.name])
        base = self._get_base(meta)
        if base is None:
            return meta
        root = self._find_root(base, chain + [meta.name])
        return root if root.discriminator_column else meta

    def _init_root(self, meta: EntityMetadata) -> None:
        meta.root = self._find_root(meta, []).name

    def _define_base_entity_properties(self, meta: EntityMetadata, chain: list[str]) -> None:
        base = self._get_base(meta)
        if base is None:
            return
        if base.name in chain:
            raise MetadataResolutionError.extends_cycle(chain + [meta.name, base.name])

        self._define_base_entity_properties(base, chain + [meta.name])
        properties = {name: prop.copy() for name, prop in base.properties.items()}
        properties.update(meta.properties)
        meta.properties = properties
        meta.indexes = _unique_indexes(base.indexes + meta.indexes)
        meta.uniques = _unique_indexes(base.uniques + meta.uniques)

    def _init_single_table_inheritance(self, meta: EntityMetadata) -> None:
        root = self._registry.get(meta.root or meta.name)
        if not root.discriminator_column:
            return

        if root.discriminator_map is None:
            root.discriminator_map = {}
            for other in self._registry:
                if other.root == root.name and not other.abstract:
                    value = other.discriminator_value or self._naming.class_to_table_name(other.name)
                    root.discriminator_map[value] = other.name

        meta.discriminator_value = next(
            (value for value, name in root.discriminator_map.items() if name == meta.name), None
        )

        if root.discriminator_column not in root.properties:
            root.properties[root.discriminator_column] = EntityProperty(
                name=root.discriminator_column,
                type=FieldType.ENUM,
                index=True,
                enum_items=list(root.discriminator_map),
            )

        if meta is root:
            return

        for name, prop in meta.properties.items():
            if name in root.properties:
                continue
            copied = prop.copy()
            copied.nullable = True
            copied.inherited = True
            root.properties[name] = copied

        root.indexes = _unique_indexes(root.indexes + meta.indexes)
        root.uniques = _unique_indexes(root.uniques + meta.uniques)

    def _init_embeddables(self, meta: EntityMetadata, visiting: set[str]) -> None:
        if meta.name in visiting:
            raise MetadataResolutionError.extends_cycle(sorted(visiting) + [meta.name])

        for embedded_prop in [p for p in meta.props if p.kind == ReferenceKind.EMBEDDED]:
            if embedded_prop.embedded_props:
                continue
            origin = f"{meta.name}.{embedded_prop.name}"
            embeddable = self._registry.get(embedded_prop.target or "", referenced_from=origin)
            if not embeddable.embeddable:
                raise MetadataResolutionError.not_embeddable(
                    meta.name, embedded_prop.name, embeddable.name
                )
            self._init_embeddables(embeddable, visiting | {meta.name})

            if embedded_prop.prefix is False:
                prefix = ""
            elif embedded_prop.prefix is True:
                prefix = embedded_prop.name + "_"
            else:
                prefix = str(embedded_prop.prefix)

            for prop in embeddable.props:
                if prop.kind == ReferenceKind.EMBEDDED:
                    continue
                name = prefix + prop.name
                copied = prop.copy()
                copied.name = name
                copied.embedded = (embedded_prop.name, prop.name)
                if embedded_prop.nullable:
                    copied.nullable = True
                meta.properties[name] = copied
                embedded_prop.embedded_props[prop.name] = name

    # === Names ===

    def _init_table_name(self, meta: EntityMetadata) -> None:
        if meta.root and meta.root != meta.name:
            root = self._registry.get(meta.root)
            self._init_table_name(root)
            meta.table_name = root.table_name
        elif not meta.table_name:
            meta.table_name = self._naming.class_to_table_name(meta.name)

    def _init_primary_keys(self, meta: EntityMetadata) -> None:
        meta.primary_keys = [p.name for p in meta.props if p.primary]
        meta.composite_pk = len(meta.primary_keys) > 1

    def _target_pk_field_names(self, prop: EntityProperty) -> list[str]:
        target = self._registry.get(prop.target or "", referenced_from=prop.name)
        names: list[str] = []
        for pk in target.primary_keys:
            pk_prop = target.properties[pk]
            self._init_field_names(pk_prop)
            names.extend(pk_prop.field_names)
        return names

    def _init_field_names(self, prop: EntityProperty) -> None:
        if prop.field_names:
            return

        if prop.kind == ReferenceKind.SCALAR:
            prop.field_names = [self._naming.property_to_column_name(prop.name)]
        elif prop.kind in OWNING_KINDS:
            pk_fields = self._target_pk_field_names(prop)
            prop.field_names = [
                self._naming.join_key_column_name(prop.name, field, len(pk_fields) > 1)
                for field in pk_fields
            ]
        elif prop.kind == ReferenceKind.MANY_TO_MANY and prop.owner:
            target = self._registry.get(prop.target or "", referenced_from=prop.name)
            column = self._naming.property_to_column_name(prop.name)
            prop.field_names = [column for _ in target.primary_keys]

    def _apply_owning_naming(self, meta: EntityMetadata, prop: EntityProperty) -> None:
        if prop.kind in OWNING_KINDS and prop.owner:
            target = self._registry.get(prop.target or "", referenced_from=prop.name)
            pk_fields = target.primary_key_field_names()
            prop.referenced_table_name = target.table_name
            if not prop.join_columns:
                prop.join_columns = list(prop.field_names)
            prop.field_names = list(prop.join_columns)
            if not prop.referenced_column_names:
                prop.referenced_column_names = list(pk_fields)
        elif prop.kind == ReferenceKind.MANY_TO_MANY and prop.owner:
            self._init_many_to_many_owner(meta, prop)

    def _init_many_to_many_owner(self, meta: EntityMetadata, prop: EntityProperty) -> None:
        target = self._registry.get(prop.target or "", referenced_from=prop.name)
        prop.fixed_order = prop.fixed_order or bool(prop.fixed_order_column)
        prop.referenced_table_name = target.table_name

        if not prop.pivot_table:
            prop.pivot_table = self._naming.join_table_name(
                meta.table_name or meta.name, target.table_name or target.name, prop.name
            )
        if not prop.referenced_column_names:
            prop.referenced_column_names = meta.primary_key_field_names()
        if not prop.join_columns:
            table = (meta.table_name or meta.name).split(".")[-1]
            prop.join_columns = [
                self._naming.join_key_column_name(table, column, meta.composite_pk)
                for column in prop.referenced_column_names
            ]
        if not prop.inverse_join_columns:
            table = (target.table_name or target.name).split(".")[-1]
            prop.inverse_join_columns = [
                self._naming.join_key_column_name(table, column, target.composite_pk)
                for column in target.primary_key_field_names()
            ]

    def _apply_inverse_naming(self, meta: EntityMetadata, prop: EntityProperty) -> None:
        if not prop.is_relation or prop.owner or not prop.mapped_by:
            return

        target = self._registry.get(prop.target or "", referenced_from=prop.name)
        owner = target.properties[prop.mapped_by]

        if prop.kind == ReferenceKind.MANY_TO_MANY:
            prop.pivot_table = owner.pivot_table
            prop.fixed_order = owner.fixed_order
            prop.fixed_order_column = owner.fixed_order_column
            prop.referenced_table_name = target.table_name
            if not prop.join_columns:
                prop.join_columns = list(owner.inverse_join_columns)
            if not prop.inverse_join_columns:
                prop.inverse_join_columns = list(owner.join_columns)
        else:
            # one-to-many and inverse one-to-one: the foreign key lives on the target
            prop.referenced_table_name = target.table_name
            if not prop.join_columns:
                prop.join_columns = list(owner.join_columns) or [
                    self._naming.join_column_name(prop.mapped_by)
                ]
            prop.field_names = []

        if not prop.referenced_column_names:
            prop.referenced_column_names = meta.primary_key_field_names()

    def _auto_wire_bidirectional_properties(self, meta: EntityMetadata) -> None:
        for prop in meta.props:
            if not prop.is_relation or prop.owner or not prop.mapped_by:
                continue
            target = self._registry.get(prop.target or "", referenced_from=prop.name)
            owner = target.properties.get(prop.mapped_by)
            if owner is not None and not owner.inversed_by:
                owner.inversed_by = prop.name

    # === Values and types ===

    def _init_default_value(self, prop: EntityProperty) -> None:
        if prop.default_raw is not None or prop.default is None:
            return
        prop.default_raw = _render_default(prop.default)

    def _init_version_property(self, meta: EntityMetadata, prop: EntityProperty) -> None:
        if not prop.version:
            return

        meta.version_property = prop.name
        if prop.default_raw is not None:
            return
        if prop.type in DATE_TYPES:
            if prop.length is None:
                prop.length = 3
            prop.default_raw = self._platform.get_current_timestamp_sql(prop.length)
        else:
            prop.default_raw = "1"

    def _init_column_type(self, meta: EntityMetadata, prop: EntityProperty) -> None:
        if prop.column_types or prop.kind == ReferenceKind.EMBEDDED:
            return

        if prop.kind == ReferenceKind.SCALAR:
            prop.column_types = [self._platform.get_type_definition(prop, meta.name)]
            return

        target = self._registry.get(prop.target or "", referenced_from=f"{meta.name}.{prop.name}")
        types: list[str] = []
        for pk in target.primary_keys:
            pk_prop = target.properties[pk]
            self._init_column_type(target, pk_prop)
            types.extend(pk_prop.column_types)
        prop.column_types = types

    def _init_autoincrement(self, meta: EntityMetadata) -> None:
        if meta.composite_pk or not meta.primary_keys:
            return
        pk = meta.properties[meta.primary_keys[0]]
        if pk.default_raw is None and self._platform.is_autoincrement_candidate(pk):
            pk.autoincrement = True

    # === Pivot tables ===

    def _define_pivot(self, meta: EntityMetadata, prop: EntityProperty) -> EntityMetadata:
        pivot_name = prop.pivot_table or ""
        target = self._registry.get(prop.target or "", referenced_from=prop.name)
        inverse = target.properties.get(prop.inversed_by) if prop.inversed_by else None

        # self-referencing M:N with colliding default column names
        if meta.name == target.name and prop.join_columns == prop.inverse_join_columns:
            table = (meta.table_name or meta.name).split(".")[-1]
            prop.join_columns = [
                self._naming.join_key_column_name(f"{table}_1", column, meta.composite_pk)
                for column in prop.referenced_column_names
            ]
            prop.inverse_join_columns = [
                self._naming.join_key_column_name(f"{table}_2", column, meta.composite_pk)
                for column in prop.referenced_column_names
            ]
            if inverse is not None:
                inverse.join_columns = list(prop.inverse_join_columns)
                inverse.inverse_join_columns = list(prop.join_columns)

        pivot = EntityMetadata(
            name=pivot_name,
            table_name=pivot_name,
            pivot_table=True,
            root=pivot_name,
        )

        if prop.fixed_order:
            pk_name = prop.fixed_order_column or self._naming.reference_column_name()
            primary = EntityProperty(name=pk_name, type=FieldType.INT, primary=True, nullable=False)
            primary.field_names = [self._naming.property_to_column_name(pk_name)]
            primary.column_types = [self._platform.get_type_definition(primary, pivot_name)]
            primary.autoincrement = True
            pivot.properties[pk_name] = primary
            prop.fixed_order_column = pk_name
            if inverse is not None:
                inverse.fixed_order = True
                inverse.fixed_order_column = pk_name

        owner_name = f"{meta.name}_owner"
        inverse_name = f"{target.name}_inverse"
        pivot.properties[owner_name] = self._define_pivot_property(
            name=owner_name,
            entity=meta,
            join_columns=prop.join_columns,
            primary=not prop.fixed_order,
        )
        pivot.properties[inverse_name] = self._define_pivot_property(
            name=inverse_name,
            entity=target,
            join_columns=prop.inverse_join_columns,
            primary=not prop.fixed_order,
        )
        pivot.primary_keys = [p.name for p in pivot.props if p.primary]
        pivot.composite_pk = len(pivot.primary_keys) > 1

        logger.debug(
            f"Defined pivot table {pivot_name} for {meta.name}.{prop.name} "
            f"({', '.join(prop.join_columns + prop.inverse_join_columns)})"
        )
        return pivot

    def _define_pivot_property(
        self, name: str, entity: EntityMetadata, join_columns: list[str], primary: bool
    ) -> EntityProperty:
        return EntityProperty(
            name=name,
            kind=ReferenceKind.MANY_TO_ONE,
            type=entity.name,
            target=entity.name,
            primary=primary,
            nullable=False,
            owner=True,
            field_names=list(join_columns),
            join_columns=list(join_columns),
            referenced_column_names=entity.primary_key_field_names(),
            referenced_table_name=entity.table_name,
            column_types=entity.primary_key_column_types(),
            on_delete="cascade",
            on_update="cascade",
        )

    # === Indexes ===

    def _init_indexes(self, meta: EntityMetadata, prop: EntityProperty) -> None:
        simple_index = next(
            (i for i in meta.indexes if i.properties == [prop.name] and not i.type), None
        )
        simple_unique = next((u for u in meta.uniques if u.properties == [prop.name]), None)

        if not prop.index and simple_index is not None:
            prop.index = simple_index.name or True
            meta.indexes.remove(simple_index)

        if not prop.unique and simple_unique is not None:
            prop.unique = simple_unique.name or True
            meta.uniques.remove(simple_unique)

        if prop.is_owning_reference:
            target = self._registry.get(prop.target or "", referenced_from=f"{meta.name}.{prop.name}")
            if target.composite_pk and not any(i.properties == [prop.name] for i in meta.indexes):
                meta.indexes.append(IndexDef(properties=[prop.name]))
                prop.index = False


def _unique_indexes(indexes: list[IndexDef]) -> list[IndexDef]:
    seen: set[tuple[Any, ...]] = set()
    ret: list[IndexDef] = []
    for index in indexes:
        if index.key() not in seen:
            seen.add(index.key())
            ret.append(index)
    return ret


def _render_default(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    return str(value)
