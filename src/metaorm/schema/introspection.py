"""Live database schema snapshot.

The differ never talks to a database: it reads a DatabaseSchema that was
built in memory, loaded from a JSON snapshot, introspected through
SQLAlchemy, or derived from resolved metadata.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from metaorm.core.types import ReferenceKind

if TYPE_CHECKING:
    from metaorm.metadata.models import EntityMetadata, EntityProperty
    from metaorm.metadata.registry import MetadataRegistry
    from metaorm.platforms.base import Platform


@dataclass
class ForeignKey:
    """Foreign key constraint of a live table."""

    constraint_name: str
    columns: list[str]
    referenced_table: str
    referenced_columns: list[str]
    on_delete: str | None = None
    on_update: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "constraint_name": self.constraint_name,
            "columns": list(self.columns),
            "referenced_table": self.referenced_table,
            "referenced_columns": list(self.referenced_columns),
            "on_delete": self.on_delete,
            "on_update": self.on_update,
        }


@dataclass
class LiveIndex:
    """Index of a live table."""

    name: str
    columns: list[str]
    unique: bool = False
    type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "columns": list(self.columns),
            "unique": self.unique,
            "type": self.type,
        }


@dataclass
class Column:
    """Column of a live table."""

    name: str
    type: str
    nullable: bool = True
    default: str | None = None
    fk: ForeignKey | None = None
    indexes: list[LiveIndex] = field(default_factory=list)
    primary: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "nullable": self.nullable,
            "default": self.default,
            "primary": self.primary,
        }


@dataclass
class DatabaseTable:
    """Table of a live schema."""

    name: str
    columns: dict[str, Column] = field(default_factory=dict)
    indexes: dict[str, LiveIndex] = field(default_factory=dict)
    foreign_keys: dict[str, ForeignKey] = field(default_factory=dict)

    def get_column(self, name: str) -> Column | None:
        return self.columns.get(name)

    def get_columns(self) -> list[Column]:
        return list(self.columns.values())

    def get_indexes(self) -> dict[str, LiveIndex]:
        return dict(self.indexes)

    @property
    def primary_key(self) -> list[str]:
        return [c.name for c in self.columns.values() if c.primary]

    def add_index(self, index: LiveIndex) -> None:
        """Register an index and link it to its columns."""
        self.indexes[index.name] = index
        for name in index.columns:
            column = self.columns.get(name)
            if column is not None and index not in column.indexes:
                column.indexes.append(index)

    def add_foreign_key(self, fk: ForeignKey) -> None:
        """Register a foreign key and link it to its columns."""
        self.foreign_keys[fk.constraint_name] = fk
        for name in fk.columns:
            column = self.columns.get(name)
            if column is not None:
                column.fk = fk

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns.values()],
            "indexes": [i.to_dict() for i in self.indexes.values()],
            "foreign_keys": [fk.to_dict() for fk in self.foreign_keys.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatabaseTable:
        table = cls(name=data["name"])
        for col in data.get("columns", []):
            table.columns[col["name"]] = Column(
                name=col["name"],
                type=col["type"],
                nullable=col.get("nullable", True),
                default=col.get("default"),
                primary=col.get("primary", False),
            )
        for idx in data.get("indexes", []):
            table.add_index(
                LiveIndex(
                    name=idx["name"],
                    columns=list(idx["columns"]),
                    unique=idx.get("unique", False),
                    type=idx.get("type"),
                )
            )
        for fk in data.get("foreign_keys", []):
            table.add_foreign_key(
                ForeignKey(
                    constraint_name=fk["constraint_name"],
                    columns=list(fk["columns"]),
                    referenced_table=fk["referenced_table"],
                    referenced_columns=list(fk["referenced_columns"]),
                    on_delete=fk.get("on_delete"),
                    on_update=fk.get("on_update"),
                )
            )
        return table


@dataclass
class DatabaseSchema:
    """Snapshot of every table in a database."""

    tables: dict[str, DatabaseTable] = field(default_factory=dict)

    def get_table(self, name: str) -> DatabaseTable | None:
        return self.tables.get(name)

    def get_tables(self) -> list[DatabaseTable]:
        return list(self.tables.values())

    def add_table(self, table: DatabaseTable) -> DatabaseTable:
        self.tables[table.name] = table
        return table

    def to_dict(self) -> dict[str, Any]:
        return {"tables": [t.to_dict() for t in self.tables.values()]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatabaseSchema:
        """Load a snapshot produced by to_dict (e.g. from a JSON file)."""
        schema = cls()
        for table in data.get("tables", []):
            schema.add_table(DatabaseTable.from_dict(table))
        return schema

    @classmethod
    def from_engine(cls, engine: Engine, platform: Platform, schema: str | None = None) -> DatabaseSchema:
        """Introspect a live database through SQLAlchemy.

        Column types are rendered with the platform dialect so they compare
        with the type definitions derived from metadata.
        """
        inspector = inspect(engine)
        ret = cls()

        for table_name in inspector.get_table_names(schema=schema):
            table = DatabaseTable(name=table_name)
            pk = inspector.get_pk_constraint(table_name, schema=schema)
            pk_columns = pk.get("constrained_columns") or []

            for col in inspector.get_columns(table_name, schema=schema):
                default = col.get("default")
                table.columns[col["name"]] = Column(
                    name=col["name"],
                    type=platform.compile_type(col["type"]),
                    nullable=bool(col.get("nullable", True)) and col["name"] not in pk_columns,
                    default=str(default) if default is not None else None,
                    primary=col["name"] in pk_columns,
                )

            for idx in inspector.get_indexes(table_name, schema=schema):
                if not idx.get("name"):
                    continue
                table.add_index(
                    LiveIndex(
                        name=idx["name"],
                        columns=[c for c in idx.get("column_names", []) if c],
                        unique=bool(idx.get("unique")),
                    )
                )

            for fk in inspector.get_foreign_keys(table_name, schema=schema):
                columns = fk["constrained_columns"]
                options = fk.get("options") or {}
                table.add_foreign_key(
                    ForeignKey(
                        constraint_name=fk.get("name")
                        or platform.get_index_name(table_name, columns, "foreign"),
                        columns=list(columns),
                        referenced_table=fk["referred_table"],
                        referenced_columns=list(fk["referred_columns"]),
                        on_delete=_lower(options.get("ondelete")),
                        on_update=_lower(options.get("onupdate")),
                    )
                )

            ret.add_table(table)

        return ret

    @classmethod
    def from_metadata(cls, registry: MetadataRegistry, platform: Platform) -> DatabaseSchema:
        """Snapshot that executing the create-schema DDL would produce."""
        schema = cls()
        for meta in table_metadata(registry):
            table_name = meta.table_name or meta.name
            table = DatabaseTable(name=table_name)

            for prop in column_properties(meta):
                for idx, column_name in enumerate(prop.field_names):
                    table.columns[column_name] = Column(
                        name=column_name,
                        type=prop.column_types[idx] if idx < len(prop.column_types) else "",
                        nullable=bool(prop.nullable) and not prop.primary,
                        default=prop.default_raw,
                        primary=prop.primary,
                    )

            for index in expected_indexes(meta, platform):
                table.add_index(index)

            if platform.supports_schema_constraints or platform.inline_foreign_keys:
                for fk in expected_foreign_keys(meta, platform):
                    table.add_foreign_key(fk)

            schema.add_table(table)
        return schema


def _lower(value: str | None) -> str | None:
    return value.lower() if value else None


def table_metadata(registry: MetadataRegistry) -> list[EntityMetadata]:
    """Entities that own a table: hierarchy roots that are not embeddables."""
    return [m for m in registry if m.is_root and not m.embeddable and not m.abstract]


def column_properties(meta: EntityMetadata) -> list[EntityProperty]:
    """Properties stored as columns of the entity table."""
    return [
        p
        for p in meta.props
        if p.persist and (p.kind == ReferenceKind.SCALAR or p.is_owning_reference)
    ]


def _index_name(
    platform: Platform, meta: EntityMetadata, value: bool | str | None, columns: list[str], type: str
) -> str:
    if isinstance(value, str):
        return value
    return platform.get_index_name(meta.table_name or meta.name, columns, type)


def expected_indexes(meta: EntityMetadata, platform: Platform) -> list[LiveIndex]:
    """Indexes derived from declared indexes, uniques and foreign key conventions."""
    ret: dict[str, LiveIndex] = {}

    def add(index: LiveIndex) -> None:
        ret.setdefault(index.name, index)

    for prop in column_properties(meta):
        columns = list(prop.field_names)
        if prop.index:
            add(LiveIndex(_index_name(platform, meta, prop.index, columns, "index"), columns))
        elif prop.index is None and prop.is_owning_reference and platform.index_foreign_keys:
            add(LiveIndex(_index_name(platform, meta, None, columns, "index"), columns))
        if prop.unique:
            add(LiveIndex(_index_name(platform, meta, prop.unique, columns, "unique"), columns, True))

    for unique, defs in ((False, meta.indexes), (True, meta.uniques)):
        for index in defs:
            if index.type == "fulltext" and not platform.supports_fulltext_index:
                continue
            columns = [c for name in index.properties for c in meta.properties[name].field_names]
            kind = "unique" if unique else "index"
            add(
                LiveIndex(
                    _index_name(platform, meta, index.name, columns, kind),
                    columns,
                    unique,
                    index.type,
                )
            )

    return list(ret.values())


def expected_foreign_keys(meta: EntityMetadata, platform: Platform) -> list[ForeignKey]:
    """Foreign keys of every owning relation stored on the entity table."""
    ret: list[ForeignKey] = []
    for prop in column_properties(meta):
        if not prop.is_owning_reference:
            continue
        on_delete = prop.on_delete or ("set null" if prop.nullable else None)
        ret.append(
            ForeignKey(
                constraint_name=platform.get_index_name(
                    meta.table_name or meta.name, prop.field_names, "foreign"
                ),
                columns=list(prop.field_names),
                referenced_table=prop.referenced_table_name or "",
                referenced_columns=list(prop.referenced_column_names),
                on_delete=on_delete,
                on_update=prop.on_update or "cascade",
            )
        )
    return ret
