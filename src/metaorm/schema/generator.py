"""Schema generator.

Emits ordered DDL for creating, dropping and updating the schema described
by a resolved metadata registry. Statements are returned as data, in the
order they must be executed; nothing is run here.

Example:
    generator = SchemaGenerator(registry, SqlitePlatform())
    for sql in generator.get_create_schema_sql():
        print(sql)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metaorm.schema.commit_order import OPTIONAL, REQUIRED, CommitOrderCalculator
from metaorm.schema.diff import SchemaComparator, TableDifference
from metaorm.schema.introspection import (
    DatabaseSchema,
    DatabaseTable,
    ForeignKey,
    column_properties,
    expected_foreign_keys,
    expected_indexes,
    table_metadata,
)

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityMetadata, EntityProperty
    from metaorm.metadata.registry import MetadataRegistry
    from metaorm.platforms.base import Platform

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_TABLE = "metaorm_migrations"


class SchemaGenerator:
    """Builds DDL statement lists from metadata and live schema snapshots."""

    def __init__(
        self,
        registry: MetadataRegistry,
        platform: Platform,
        charset: str | None = None,
        migrations_table: str = DEFAULT_MIGRATIONS_TABLE,
    ) -> None:
        """Initialize the generator.

        Args:
            registry: Frozen, resolved metadata
            platform: Target platform
            charset: Charset passed to the platform schema preamble
            migrations_table: Table dropped by get_drop_schema_sql when asked
        """
        self._registry = registry
        self._platform = platform
        self._charset = charset
        self._migrations_table = migrations_table
        self._comparator = SchemaComparator(platform)

    @property
    def comparator(self) -> SchemaComparator:
        return self._comparator

    # === Public API ===

    def get_ordered_metadata(self) -> list[EntityMetadata]:
        """Table-owning entities in commit order.

        Raises:
            SchemaDependencyError: If required foreign keys form a cycle
        """
        metadata = table_metadata(self._registry)
        calc = CommitOrderCalculator()
        for meta in metadata:
            calc.add_node(meta.name)

        for meta in metadata:
            for prop in meta.props:
                if not prop.is_owning_reference:
                    continue
                target = self._registry.find(prop.target)
                if target is None:
                    continue
                target_name = target.root or target.name
                if calc.has_node(target_name):
                    weight = OPTIONAL if prop.nullable else REQUIRED
                    calc.add_dependency(target_name, meta.name, weight)

        return [self._registry.get(name) for name in calc.sort()]

    def get_create_schema_sql(self, wrap: bool = True) -> list[str]:
        """DDL creating every table, then foreign keys, then indexes."""
        metadata = self.get_ordered_metadata()
        ret = [self._create_table(meta) for meta in metadata]

        for meta in metadata:
            ret.extend(self._create_foreign_keys(meta, expected_foreign_keys(meta, self._platform)))

        for meta in metadata:
            ret.extend(self._create_indexes(meta))

        logger.info(f"Generated create schema SQL for {len(metadata)} tables")
        return self.wrap_schema(ret, wrap)

    def get_drop_schema_sql(self, wrap: bool = True, drop_migrations_table: bool = False) -> list[str]:
        """DDL dropping every table in reverse commit order."""
        metadata = list(reversed(self.get_ordered_metadata()))
        ret = [self._platform.get_drop_table_sql(meta.table_name or meta.name) for meta in metadata]

        if drop_migrations_table:
            ret.append(self._platform.get_drop_table_sql(self._migrations_table))

        return self.wrap_schema(ret, wrap)

    def get_update_schema_sql(
        self,
        schema: DatabaseSchema,
        wrap: bool = True,
        safe: bool = False,
        drop_tables: bool = True,
    ) -> list[str]:
        """DDL bringing a live schema in line with the metadata.

        Args:
            schema: Live schema snapshot
            wrap: Surround with the platform schema preamble/epilogue
            safe: Never drop columns, indexes, foreign keys or tables
            drop_tables: Drop live tables without metadata (ignored in safe mode)

        Returns:
            Ordered statements: tables and columns, foreign keys, indexes, table drops
        """
        metadata = self.get_ordered_metadata()
        diffs: dict[str, TableDifference] = {}
        ret: list[str] = []

        for meta in metadata:
            table = schema.get_table(meta.table_name or meta.name)
            if table is None:
                ret.append(self._create_table(meta))
                continue
            diff = self._comparator.compute_table_difference(meta, table, safe)
            diffs[meta.name] = diff
            ret.extend(self._update_table(meta, table, diff, safe))

        for meta in metadata:
            table = schema.get_table(meta.table_name or meta.name)
            fks = expected_foreign_keys(meta, self._platform)
            if table is not None:
                fks = [fk for fk in fks if fk.constraint_name not in table.foreign_keys]
            ret.extend(self._create_foreign_keys(meta, fks))

        for meta in metadata:
            diff = diffs.get(meta.name)
            if diff is None:
                ret.extend(self._create_indexes(meta))
                continue
            table_name = meta.table_name or meta.name
            for index in diff.drop_index:
                ret.append(self._platform.get_drop_index_sql(table_name, index.name, index.unique))
            for index in diff.add_index:
                ret.append(
                    self._platform.get_create_index_sql(
                        table_name, index.name, index.columns, index.unique, index.type
                    )
                )

        if drop_tables and not safe:
            for name in self._comparator.find_removed_tables(metadata, schema):
                ret.append(self._platform.get_drop_table_sql(name))

        logger.info(f"Generated {len(ret)} update schema statements (safe={safe})")
        return self.wrap_schema(ret, wrap)

    def generate(self) -> list[str]:
        """Drop and re-create the whole schema."""
        return self.wrap_schema(
            self.get_drop_schema_sql(wrap=False) + self.get_create_schema_sql(wrap=False)
        )

    def get_create_database_sql(self, name: str) -> list[str]:
        sql = self._platform.get_create_database_sql(name)
        return [sql] if sql else []

    def get_drop_database_sql(self, name: str) -> list[str]:
        sql = self._platform.get_drop_database_sql(name)
        return [sql] if sql else []

    # === Tables and columns ===

    def wrap_schema(self, statements: list[str], wrap: bool = True) -> list[str]:
        """Surround statements with the platform schema preamble and epilogue."""
        if not wrap:
            return statements
        return (
            self._platform.get_schema_beginning(self._charset)
            + statements
            + self._platform.get_schema_end()
        )

    def _create_table(self, meta: EntityMetadata) -> str:
        table_name = meta.table_name or meta.name
        parts: list[str] = []

        for prop in column_properties(meta):
            for idx, column_name in enumerate(prop.field_names):
                parts.append(self._column_sql(meta, prop, idx, column_name))

        if meta.composite_pk:
            parts.append(f"primary key ({self._platform.quote_columns(meta.primary_key_field_names())})")

        if self._platform.inline_foreign_keys:
            parts.extend(
                self._foreign_key_clause(fk) for fk in expected_foreign_keys(meta, self._platform)
            )

        logger.debug(f"Create table {table_name} with {len(parts)} definitions")
        return f"create table {self._platform.quote_identifier(table_name)} ({', '.join(parts)})"

    def _column_sql(
        self,
        meta: EntityMetadata,
        prop: EntityProperty,
        idx: int,
        column_name: str,
        inline_reference: bool = False,
    ) -> str:
        quoted = self._platform.quote_identifier(column_name)

        if prop.autoincrement and not meta.composite_pk:
            return f"{quoted} {self._platform.get_autoincrement_definition(prop)}"

        sql = f"{quoted} {prop.column_types[idx]}"
        if not prop.nullable or prop.primary:
            sql += " not null"
        if prop.primary and not meta.composite_pk:
            sql += " primary key"
        if prop.default_raw is not None:
            sql += f" default {prop.default_raw}"

        if inline_reference and prop.is_owning_reference and len(prop.field_names) == 1:
            fk = next(
                fk
                for fk in expected_foreign_keys(meta, self._platform)
                if fk.columns == prop.field_names
            )
            sql += " " + self._reference_clause(fk)

        return sql

    def _reference_clause(self, fk: ForeignKey) -> str:
        sql = (
            f"references {self._platform.quote_identifier(fk.referenced_table)} "
            f"({self._platform.quote_columns(fk.referenced_columns)})"
        )
        if fk.on_update:
            sql += f" on update {fk.on_update}"
        if fk.on_delete:
            sql += f" on delete {fk.on_delete}"
        return sql

    def _foreign_key_clause(self, fk: ForeignKey) -> str:
        return f"foreign key ({self._platform.quote_columns(fk.columns)}) {self._reference_clause(fk)}"

    def _update_table(
        self, meta: EntityMetadata, table: DatabaseTable, diff: TableDifference, safe: bool = False
    ) -> list[str]:
        table_name = table.name
        drop_constraints = self._platform.supports_schema_constraints and not safe
        ret: list[str] = []

        for column in diff.remove:
            if column.fk is not None and self._platform.supports_schema_constraints:
                ret.append(
                    self._platform.get_drop_foreign_key_sql(table_name, column.fk.constraint_name)
                )
            for index in column.indexes:
                if not self._platform.is_implicit_index(index.name):
                    ret.append(self._platform.get_drop_index_sql(table_name, index.name, index.unique))
            ret.append(self._platform.get_drop_column_sql(table_name, column.name))

        for rename in diff.rename:
            # the foreign key pass re-adds the constraint under the new column name
            if rename.from_.fk is not None and drop_constraints:
                ret.append(
                    self._platform.get_drop_foreign_key_sql(table_name, rename.from_.fk.constraint_name)
                )
            ret.append(
                self._platform.get_rename_column_sql(table_name, rename.from_.name, rename.field_name)
            )

        for prop in diff.create:
            for idx, column_name in enumerate(prop.field_names):
                if table.get_column(column_name) is not None:
                    continue
                column_sql = self._column_sql(
                    meta, prop, idx, column_name, inline_reference=self._platform.inline_foreign_keys
                )
                ret.append(self._platform.get_add_column_sql(table_name, column_sql))

        for update in diff.update:
            column = update.column
            if column.fk is not None and not update.diff.same_index:
                if drop_constraints:
                    ret.append(
                        self._platform.get_drop_foreign_key_sql(table_name, column.fk.constraint_name)
                    )
            if update.diff.same_definition:
                continue
            ret.extend(
                self._platform.get_alter_column_sql(
                    table_name,
                    column.name,
                    update.prop.column_types[update.idx],
                    bool(update.prop.nullable),
                    update.prop.default_raw,
                    update.diff,
                )
            )

        return ret

    def _create_foreign_keys(self, meta: EntityMetadata, fks: list[ForeignKey]) -> list[str]:
        if not self._platform.supports_schema_constraints:
            return []
        table_name = meta.table_name or meta.name
        return [
            self._platform.get_add_foreign_key_sql(
                table_name,
                fk.constraint_name,
                fk.columns,
                fk.referenced_table,
                fk.referenced_columns,
                fk.on_delete,
                fk.on_update,
            )
            for fk in fks
        ]

    def _create_indexes(self, meta: EntityMetadata) -> list[str]:
        table_name = meta.table_name or meta.name
        return [
            self._platform.get_create_index_sql(
                table_name, index.name, index.columns, index.unique, index.type
            )
            for index in expected_indexes(meta, self._platform)
        ]
