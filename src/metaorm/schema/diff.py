"""Schema differ.

Compares metadata-derived tables with a live DatabaseSchema. The comparison
is a pure function of its inputs: diffing twice yields identical results.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from metaorm.schema.introspection import (
    Column,
    DatabaseSchema,
    DatabaseTable,
    LiveIndex,
    column_properties,
    expected_indexes,
    table_metadata,
)

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityMetadata, EntityProperty
    from metaorm.metadata.registry import MetadataRegistry
    from metaorm.platforms.base import ColumnComparison, Platform


@dataclass
class ColumnUpdate:
    """A live column whose definition differs from its property."""

    prop: EntityProperty
    column: Column
    diff: ColumnComparison
    idx: int = 0


@dataclass
class ColumnRename:
    """A live column that becomes a property column by renaming it."""

    from_: Column
    to: EntityProperty
    field_name: str


@dataclass
class TableDifference:
    """Column and index changes needed to bring one live table in line."""

    create: list[EntityProperty] = field(default_factory=list)
    update: list[ColumnUpdate] = field(default_factory=list)
    remove: list[Column] = field(default_factory=list)
    rename: list[ColumnRename] = field(default_factory=list)
    add_index: list[LiveIndex] = field(default_factory=list)
    drop_index: list[LiveIndex] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.create
            or self.update
            or self.remove
            or self.rename
            or self.add_index
            or self.drop_index
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "create": [p.name for p in self.create],
            "update": [
                {
                    "property": u.prop.name,
                    "column": u.column.name,
                    "same_types": u.diff.same_types,
                    "same_nullable": u.diff.same_nullable,
                    "same_default": u.diff.same_default,
                    "same_index": u.diff.same_index,
                }
                for u in self.update
            ],
            "remove": [c.name for c in self.remove],
            "rename": [{"from": r.from_.name, "to": r.field_name} for r in self.rename],
            "add_index": [i.name for i in self.add_index],
            "drop_index": [i.name for i in self.drop_index],
        }


@dataclass
class SchemaDifference:
    """Table-level summary of a metadata versus live schema comparison."""

    create_tables: list[str] = field(default_factory=list)
    tables: dict[str, TableDifference] = field(default_factory=dict)
    drop_tables: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return (
            not self.create_tables
            and not self.drop_tables
            and all(d.is_empty() for d in self.tables.values())
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "create_tables": list(self.create_tables),
            "tables": {name: d.to_dict() for name, d in self.tables.items() if not d.is_empty()},
            "drop_tables": list(self.drop_tables),
        }


class SchemaComparator:
    """Computes TableDifference objects with a platform's sameness rules."""

    def __init__(self, platform: Platform) -> None:
        self._platform = platform

    def compare(
        self,
        registry: MetadataRegistry,
        schema: DatabaseSchema,
        safe: bool = False,
        drop_tables: bool = True,
    ) -> SchemaDifference:
        """Compare every table-owning entity with the live schema."""
        ret = SchemaDifference()
        metadata = table_metadata(registry)

        for meta in metadata:
            table = schema.get_table(meta.table_name or meta.name)
            if table is None:
                ret.create_tables.append(meta.table_name or meta.name)
            else:
                ret.tables[table.name] = self.compute_table_difference(meta, table, safe)

        if drop_tables and not safe:
            ret.drop_tables = self.find_removed_tables(metadata, schema)

        return ret

    def find_removed_tables(
        self, metadata: list[EntityMetadata], schema: DatabaseSchema
    ) -> list[str]:
        defined = {meta.table_name for meta in metadata}
        return [t.name for t in schema.get_tables() if t.name not in defined]

    def compute_table_difference(
        self, meta: EntityMetadata, table: DatabaseTable, safe: bool = False
    ) -> TableDifference:
        """Diff one entity against its live table.

        Args:
            meta: Table-owning entity metadata
            table: Live table with the same name
            safe: Suppress column removal, index drops and foreign key drops

        Returns:
            TableDifference for this table
        """
        props = column_properties(meta)
        diff = TableDifference()
        diff.remove = [
            column
            for column in table.get_columns()
            if not any(
                column.name in prop.field_names or column.name in prop.join_columns
                for prop in props
            )
        ]

        for prop in props:
            self._compute_column_difference(table, prop, diff)

        diff.rename = self.find_renamed_columns(diff.create, diff.remove)
        # indexes of renamed columns keep their old names and are dropped here
        diff.add_index, diff.drop_index = self.find_index_difference(meta, table, diff.remove)

        if safe:
            diff.remove = []
            diff.drop_index = []
            diff.update = [u for u in diff.update if not _drops_foreign_key_only(u)]

        return diff

    def _compute_column_difference(
        self, table: DatabaseTable, prop: EntityProperty, diff: TableDifference
    ) -> None:
        columns = prop.join_columns if prop.is_owning_reference else prop.field_names

        for idx, name in enumerate(columns):
            column = table.get_column(name)
            if column is None:
                if prop not in diff.create:
                    diff.create.append(prop)
                continue

            if not self._platform.supports_column_alter:
                continue

            comparison = self._platform.is_same(prop, column, idx)
            if not comparison.all:
                diff.update.append(ColumnUpdate(prop, column, comparison, idx))

    def find_renamed_columns(
        self, create: list[EntityProperty], remove: list[Column]
    ) -> list[ColumnRename]:
        """Reclassify create/remove pairs that a column rename would satisfy.

        A removed column matches a created property column when, renamed, it
        is identical to it (type, nullability, default and foreign key).
        Matched pairs are taken out of ``create`` and ``remove``.
        """
        renamed: list[ColumnRename] = []

        for prop in list(create):
            matches: list[ColumnRename] = []
            taken = {r.from_.name for r in renamed}
            for idx, field_name in enumerate(prop.field_names):
                match = next(
                    (
                        column
                        for column in remove
                        if column.name not in taken
                        and self._platform.is_same(prop, _renamed(column, field_name), idx).all
                    ),
                    None,
                )
                if match is None:
                    break
                taken.add(match.name)
                matches.append(ColumnRename(match, prop, field_name))
            else:
                renamed.extend(matches)

        for rename in renamed:
            if rename.to in create:
                create.remove(rename.to)
            if rename.from_ in remove:
                remove.remove(rename.from_)

        return renamed

    def find_index_difference(
        self, meta: EntityMetadata, table: DatabaseTable, remove: list[Column]
    ) -> tuple[list[LiveIndex], list[LiveIndex]]:
        """Set difference between expected and live index names."""
        table_name = meta.table_name or meta.name
        expected = expected_indexes(meta, self._platform)
        expected_names = {index.name for index in expected}

        # foreign key conventions some platforms materialize as indexes
        for prop in column_properties(meta):
            if prop.is_owning_reference:
                expected_names.add(self._platform.get_index_name(table_name, prop.field_names, "index"))
                expected_names.add(self._platform.get_index_name(table_name, prop.field_names, "foreign"))

        existing = table.get_indexes()
        add_index = [index for index in expected if index.name not in existing]

        removed_columns = {column.name for column in remove}
        drop_index = [
            index
            for name, index in existing.items()
            if name not in expected_names
            and not self._platform.is_implicit_index(name)
            and not removed_columns.intersection(index.columns)
        ]

        return add_index, drop_index


def _drops_foreign_key_only(update: ColumnUpdate) -> bool:
    return update.diff.same_definition and update.column.fk is not None


def _renamed(column: Column, name: str) -> Column:
    ret = copy.copy(column)
    ret.name = name
    return ret
