"""Tests for schema diffing and update generation."""

import pytest

from metaorm.core.types import EntitySpec, PropertySpec
from metaorm.metadata.resolver import RelationshipResolver
from metaorm.schema.diff import SchemaComparator
from metaorm.schema.generator import SchemaGenerator
from metaorm.schema.introspection import Column, DatabaseSchema, DatabaseTable, LiveIndex


@pytest.fixture
def pg_generator(pg_library_registry, postgresql_platform) -> SchemaGenerator:
    return SchemaGenerator(pg_library_registry, postgresql_platform)


@pytest.fixture
def pg_snapshot(pg_library_registry, postgresql_platform) -> DatabaseSchema:
    """Live schema identical to the library metadata."""
    return DatabaseSchema.from_metadata(pg_library_registry, postgresql_platform)


def _rename_column(table: DatabaseTable, old: str, new: str) -> None:
    column = table.columns.pop(old)
    column.name = new
    table.columns[new] = column


def _rename_book_author(entities: list[EntitySpec]) -> list[EntitySpec]:
    """Rename Book.author to Book.writer on both sides of the relation."""
    author, book, _ = entities
    next(p for p in book.properties if p.name == "author").name = "writer"
    next(p for p in author.properties if p.name == "books").mapped_by = "writer"
    return entities


def _author_and_book(author_ref: PropertySpec) -> list[EntitySpec]:
    id_ = PropertySpec(name="id", type="int", primary=True)
    return [
        EntitySpec(name="Author", properties=[id_, PropertySpec(name="name")]),
        EntitySpec(name="Book", properties=[id_.model_copy(), PropertySpec(name="title"), author_ref]),
    ]


class TestIdempotence:
    """Test that in-sync schemas produce no statements."""

    def test_synced_schema_is_empty(self, pg_generator, pg_snapshot):
        """Test diffing metadata against its own snapshot yields nothing."""
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == []

    def test_diff_is_repeatable(self, pg_generator, pg_snapshot):
        """Test diffing twice gives the same statements."""
        del pg_snapshot.tables["tag"]
        first = pg_generator.get_update_schema_sql(pg_snapshot, wrap=False)
        second = pg_generator.get_update_schema_sql(pg_snapshot, wrap=False)
        assert first == second
        assert first[0].startswith('create table "tag"')

    def test_empty_database_matches_create(self, pg_generator):
        """Test updating an empty database is the same as creating the schema."""
        assert pg_generator.get_update_schema_sql(
            DatabaseSchema(), wrap=False
        ) == pg_generator.get_create_schema_sql(wrap=False)

    def test_snapshot_round_trip(self, pg_generator, pg_snapshot):
        """Test a serialized snapshot diffs like the original."""
        loaded = DatabaseSchema.from_dict(pg_snapshot.to_dict())
        assert pg_generator.get_update_schema_sql(loaded, wrap=False) == []


class TestColumnChanges:
    """Test column level updates."""

    def test_rename_detected(self, pg_generator, pg_snapshot):
        """Test a removed and an identical added column become a rename."""
        _rename_column(pg_snapshot.get_table("book"), "title", "name")
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == [
            'alter table "book" rename column "name" to "title"'
        ]

    def test_add_column(self, pg_generator, pg_snapshot):
        """Test a missing column is added with its definition."""
        del pg_snapshot.get_table("book").columns["attributes"]
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == [
            'alter table "book" add column "attributes" json'
        ]

    def test_alter_type(self, pg_generator, pg_snapshot):
        """Test a type change alters the column."""
        pg_snapshot.get_table("book").columns["title"].type = "text"
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == [
            'alter table "book" alter column "title" type varchar(255)'
        ]

    def test_alter_nullable(self, pg_generator, pg_snapshot):
        """Test a nullability change alters the column."""
        pg_snapshot.get_table("book").columns["title"].nullable = True
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == [
            'alter table "book" alter column "title" set not null'
        ]

    def test_drop_column(self, pg_generator, pg_snapshot):
        """Test a column without a property is dropped."""
        pg_snapshot.get_table("book").columns["legacy"] = Column(name="legacy", type="text")
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == [
            'alter table "book" drop column "legacy"'
        ]

    def test_safe_mode_keeps_columns(self, pg_generator, pg_snapshot):
        """Test safe mode never drops columns."""
        pg_snapshot.get_table("book").columns["legacy"] = Column(name="legacy", type="text")
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False, safe=True) == []

    def test_safe_mode_keeps_foreign_keys(self, resolve, postgresql_platform):
        """Test safe mode keeps the constraint of a relation turned into a scalar."""
        old = resolve(
            _author_and_book(PropertySpec(name="author", kind="many_to_one", target="Author")),
            postgresql_platform,
        )
        new = resolve(_author_and_book(PropertySpec(name="author_id", type="int")), postgresql_platform)
        live = DatabaseSchema.from_metadata(old, postgresql_platform)
        generator = SchemaGenerator(new, postgresql_platform)

        assert generator.get_update_schema_sql(live, wrap=False, safe=True) == []
        assert 'alter table "book" drop constraint "book_author_id_foreign"' in (
            generator.get_update_schema_sql(live, wrap=False)
        )

    def test_rename_relation_moves_foreign_key(self, library_entities, pg_snapshot, postgresql_platform):
        """Test renaming a relation re-creates its constraint under the new column name."""
        registry = RelationshipResolver(postgresql_platform).resolve(_rename_book_author(library_entities))
        sql = SchemaGenerator(registry, postgresql_platform).get_update_schema_sql(pg_snapshot, wrap=False)

        drop = 'alter table "book" drop constraint "book_author_id_foreign"'
        rename = 'alter table "book" rename column "author_id" to "writer_id"'
        assert sql.index(drop) < sql.index(rename)
        assert any(s.startswith('alter table "book" add constraint "book_writer_id_foreign"') for s in sql)

    def test_sqlite_added_relation_references_inline(self, library_registry, sqlite_platform):
        """Test a relation column added on SQLite carries an inline references clause."""
        snapshot = DatabaseSchema.from_metadata(library_registry, sqlite_platform)
        book = snapshot.get_table("book")
        del book.columns["author_id"]
        book.foreign_keys.clear()
        book.indexes = {n: i for n, i in book.indexes.items() if "author_id" not in i.columns}

        sql = SchemaGenerator(library_registry, sqlite_platform).get_update_schema_sql(snapshot, wrap=False)
        added = next(s for s in sql if s.startswith('alter table "book" add column "author_id"'))
        assert 'references "author" ("id")' in added

    def test_sqlite_never_alters(self, library_registry, sqlite_platform):
        """Test SQLite ignores type changes it cannot apply."""
        snapshot = DatabaseSchema.from_metadata(library_registry, sqlite_platform)
        snapshot.get_table("book").columns["title"].type = "text"
        generator = SchemaGenerator(library_registry, sqlite_platform)
        assert generator.get_update_schema_sql(snapshot, wrap=False) == []


class TestTableChanges:
    """Test table level updates."""

    def test_drop_unknown_table(self, pg_generator, pg_snapshot):
        """Test live tables without metadata are dropped last."""
        pg_snapshot.add_table(DatabaseTable(name="audit"))
        sql = pg_generator.get_update_schema_sql(pg_snapshot, wrap=False)
        assert sql == ['drop table if exists "audit" cascade']

    def test_keep_unknown_table(self, pg_generator, pg_snapshot):
        """Test unknown tables survive in safe mode or when table drops are off."""
        pg_snapshot.add_table(DatabaseTable(name="audit"))
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False, safe=True) == []
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False, drop_tables=False) == []

    def test_missing_foreign_key(self, pg_generator, pg_snapshot):
        """Test a missing foreign key constraint is added."""
        book = pg_snapshot.get_table("book")
        del book.foreign_keys["book_author_id_foreign"]
        book.columns["author_id"].fk = None
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == [
            'alter table "book" add constraint "book_author_id_foreign" foreign key ("author_id") '
            'references "author" ("id") on update cascade'
        ]


class TestIndexChanges:
    """Test index level updates."""

    def test_add_missing_index(self, pg_generator, pg_snapshot):
        """Test an expected index missing from the live table is created."""
        tag = pg_snapshot.get_table("tag")
        del tag.indexes["tag_name_unique"]
        tag.columns["name"].indexes = []
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == [
            'create unique index "tag_name_unique" on "tag" ("name")'
        ]

    def test_drop_unexpected_index(self, pg_generator, pg_snapshot):
        """Test unknown indexes are dropped, except in safe mode."""
        pg_snapshot.get_table("book").add_index(LiveIndex(name="book_title_index", columns=["title"]))
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False) == [
            'drop index "book_title_index"'
        ]
        assert pg_generator.get_update_schema_sql(pg_snapshot, wrap=False, safe=True) == []


class TestSchemaComparator:
    """Test the table level summary."""

    def test_compare_empty_database(self, pg_library_registry, postgresql_platform):
        """Test every table is reported as created."""
        diff = SchemaComparator(postgresql_platform).compare(pg_library_registry, DatabaseSchema())
        assert diff.create_tables == ["author", "book", "tag", "book_tags"]
        assert not diff.is_empty()

    def test_compare_in_sync(self, pg_library_registry, postgresql_platform, pg_snapshot):
        """Test an in-sync schema reports no differences."""
        diff = SchemaComparator(postgresql_platform).compare(pg_library_registry, pg_snapshot)
        assert diff.is_empty()
        assert diff.to_dict() == {"create_tables": [], "tables": {}, "drop_tables": []}

    def test_compare_reports_rename(self, pg_library_registry, postgresql_platform, pg_snapshot):
        """Test renames show up in the serialized difference."""
        _rename_column(pg_snapshot.get_table("book"), "title", "name")
        diff = SchemaComparator(postgresql_platform).compare(pg_library_registry, pg_snapshot)
        assert diff.to_dict()["tables"] == {
            "book": {
                "create": [],
                "update": [],
                "remove": [],
                "rename": [{"from": "name", "to": "title"}],
                "add_index": [],
                "drop_index": [],
            }
        }


class TestLiveDatabase:
    """Test against a real SQLite database."""

    def test_create_then_update_is_empty(self, library_registry, sqlite_platform, memory_connection):
        """Test an introspected freshly created schema needs no update."""
        generator = SchemaGenerator(library_registry, sqlite_platform)
        memory_connection.execute(generator.get_create_schema_sql())

        live = memory_connection.introspect(sqlite_platform)
        assert sorted(live.tables) == ["author", "book", "book_tags", "tag"]
        assert generator.get_update_schema_sql(live, wrap=False) == []

    def test_rename_relation_then_update_is_empty(
        self, library_registry, library_entities, sqlite_platform, memory_connection
    ):
        """Test a renamed relation leaves nothing to do on the next update."""
        memory_connection.execute(SchemaGenerator(library_registry, sqlite_platform).get_create_schema_sql())

        registry = RelationshipResolver(sqlite_platform).resolve(_rename_book_author(library_entities))
        generator = SchemaGenerator(registry, sqlite_platform)
        first = generator.get_update_schema_sql(memory_connection.introspect(sqlite_platform), wrap=False)
        assert first[0] == 'alter table "book" rename column "author_id" to "writer_id"'
        assert 'drop index "book_author_id_index"' in first

        memory_connection.execute(first)
        live = memory_connection.introspect(sqlite_platform)
        assert "book_author_id_index" not in live.get_table("book").indexes
        assert generator.get_update_schema_sql(live, wrap=False) == []

    def test_introspected_foreign_keys(self, library_registry, sqlite_platform, memory_connection):
        """Test inline foreign keys are read back under their conventional names."""
        generator = SchemaGenerator(library_registry, sqlite_platform)
        memory_connection.execute(generator.get_create_schema_sql())

        book = memory_connection.introspect(sqlite_platform).get_table("book")
        fk = book.foreign_keys["book_author_id_foreign"]
        assert fk.referenced_table == "author"
        assert book.columns["author_id"].fk is fk
