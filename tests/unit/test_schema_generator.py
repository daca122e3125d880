"""Tests for DDL generation."""

import pytest

from metaorm.core.types import EntitySpec, IndexSpec, PropertySpec
from metaorm.metadata.resolver import RelationshipResolver
from metaorm.schema.generator import SchemaGenerator


@pytest.fixture
def sqlite_generator(library_registry, sqlite_platform) -> SchemaGenerator:
    return SchemaGenerator(library_registry, sqlite_platform)


@pytest.fixture
def pg_generator(pg_library_registry, postgresql_platform) -> SchemaGenerator:
    return SchemaGenerator(pg_library_registry, postgresql_platform)


class TestCreateSchemaSqlite:
    """Test create statements on SQLite."""

    def test_wrapped_in_pragmas(self, sqlite_generator):
        """Test the schema is surrounded by the foreign key pragmas."""
        sql = sqlite_generator.get_create_schema_sql()
        assert sql[0] == "pragma foreign_keys = off"
        assert sql[-1] == "pragma foreign_keys = on"

    def test_tables_in_commit_order(self, sqlite_generator):
        """Test tables are created before the tables referencing them."""
        sql = sqlite_generator.get_create_schema_sql(wrap=False)
        tables = [s.split('"')[1] for s in sql if s.startswith("create table")]
        assert tables == ["author", "book", "tag", "book_tags"]

    def test_table_definitions(self, sqlite_generator):
        """Test columns, defaults and inline foreign keys."""
        sql = sqlite_generator.get_create_schema_sql(wrap=False)
        assert sql[0] == (
            'create table "author" ("id" integer not null primary key autoincrement, '
            '"name" varchar(255) not null)'
        )
        assert sql[1] == (
            'create table "book" ("id" integer not null primary key autoincrement, '
            '"title" varchar(255) not null, "author_id" integer not null, '
            '"version" integer not null default 1, "attributes" json, '
            'foreign key ("author_id") references "author" ("id") on update cascade)'
        )

    def test_pivot_table(self, sqlite_generator):
        """Test the pivot table has a composite key and cascading foreign keys."""
        sql = sqlite_generator.get_create_schema_sql(wrap=False)
        assert sql[3] == (
            'create table "book_tags" ("book_id" integer not null, "tag_id" integer not null, '
            'primary key ("book_id", "tag_id"), '
            'foreign key ("book_id") references "book" ("id") on update cascade on delete cascade, '
            'foreign key ("tag_id") references "tag" ("id") on update cascade on delete cascade)'
        )

    def test_indexes_follow_tables(self, sqlite_generator):
        """Test foreign key and unique indexes come after every table."""
        sql = sqlite_generator.get_create_schema_sql(wrap=False)
        assert sql[4:] == [
            'create index "book_author_id_index" on "book" ("author_id")',
            'create unique index "tag_name_unique" on "tag" ("name")',
            'create index "book_tags_book_id_index" on "book_tags" ("book_id")',
            'create index "book_tags_tag_id_index" on "book_tags" ("tag_id")',
        ]

    def test_no_alter_foreign_keys(self, sqlite_generator):
        """Test SQLite never gets separate foreign key constraints."""
        sql = sqlite_generator.get_create_schema_sql(wrap=False)
        assert not any("add constraint" in s for s in sql)


class TestCreateSchemaPostgreSql:
    """Test create statements on PostgreSQL."""

    def test_serial_primary_key(self, pg_generator):
        """Test auto-increment keys use serial."""
        sql = pg_generator.get_create_schema_sql(wrap=False)
        assert sql[0] == 'create table "author" ("id" serial primary key, "name" varchar(255) not null)'

    def test_foreign_keys_after_tables(self, pg_generator):
        """Test foreign keys are added by name once every table exists."""
        sql = pg_generator.get_create_schema_sql(wrap=False)
        fks = [s for s in sql if "add constraint" in s]
        assert fks[0] == (
            'alter table "book" add constraint "book_author_id_foreign" foreign key ("author_id") '
            'references "author" ("id") on update cascade'
        )
        assert fks[1].endswith("on update cascade on delete cascade")
        last_table = max(i for i, s in enumerate(sql) if s.startswith("create table"))
        assert all(sql.index(fk) > last_table for fk in fks)

    def test_preamble(self, pg_generator):
        """Test the preamble sets the charset and disables triggers."""
        sql = pg_generator.get_create_schema_sql()
        assert sql[0] == "set names 'utf8'"
        assert sql[-1] == "set session_replication_role = 'origin'"

    def test_charset(self, pg_library_registry, postgresql_platform):
        """Test a configured charset reaches the preamble."""
        generator = SchemaGenerator(pg_library_registry, postgresql_platform, charset="latin1")
        assert generator.get_create_schema_sql()[0] == "set names 'latin1'"

    def test_datetime_version_default(self, resolve, postgresql_platform):
        """Test date version columns default to the current timestamp."""
        registry = resolve(
            [
                EntitySpec(
                    name="Doc",
                    properties=[
                        PropertySpec(name="id", type="int", primary=True),
                        PropertySpec(name="updatedAt", type="datetime", version=True),
                    ],
                )
            ],
            postgresql_platform,
        )
        sql = SchemaGenerator(registry, postgresql_platform).get_create_schema_sql(wrap=False)
        assert '"updated_at" timestamp without time zone not null default current_timestamp(3)' in sql[0]

    def test_fulltext_index(self, resolve, postgresql_platform):
        """Test full-text indexes use a GIN expression index."""
        registry = resolve(
            [
                EntitySpec(
                    name="Post",
                    properties=[
                        PropertySpec(name="id", type="int", primary=True),
                        PropertySpec(name="body", type="text"),
                    ],
                    indexes=[IndexSpec(properties=["body"], type="fulltext")],
                )
            ],
            postgresql_platform,
        )
        sql = SchemaGenerator(registry, postgresql_platform).get_create_schema_sql(wrap=False)
        assert sql[-1] == (
            'create index "post_body_index" on "post" '
            "using gin (to_tsvector('simple', \"body\"))"
        )


class TestCreateSchemaMySql:
    """Test create statements on MySQL."""

    def test_backtick_quoting(self, library_entities, mysql_platform):
        """Test identifiers are quoted with backticks."""
        registry = RelationshipResolver(mysql_platform).resolve(library_entities)
        sql = SchemaGenerator(registry, mysql_platform).get_create_schema_sql()
        assert sql[:2] == ["set names utf8mb4", "set foreign_key_checks = 0"]
        assert sql[2] == (
            "create table `author` (`id` integer not null auto_increment primary key, "
            "`name` varchar(255) not null)"
        )

    def test_fulltext_skipped_without_support(self, resolve, sqlite_platform):
        """Test full-text indexes are left out where the platform lacks them."""
        registry = resolve(
            [
                EntitySpec(
                    name="Post",
                    properties=[
                        PropertySpec(name="id", type="int", primary=True),
                        PropertySpec(name="body", type="text"),
                    ],
                    indexes=[IndexSpec(properties=["body"], type="fulltext")],
                )
            ]
        )
        sql = SchemaGenerator(registry, sqlite_platform).get_create_schema_sql(wrap=False)
        assert sql == ['create table "post" ("id" integer not null primary key autoincrement, "body" text not null)']


class TestCompositeKeys:
    """Test composite primary and foreign keys."""

    def test_composite_foreign_key(self, resolve, geography_entities, postgresql_platform):
        """Test a relation to a composite key references every key column."""
        registry = resolve(geography_entities, postgresql_platform)
        sql = SchemaGenerator(registry, postgresql_platform).get_create_schema_sql(wrap=False)
        assert sql[0] == (
            'create table "country" ("code" varchar(255) not null, "region" varchar(255) not null, '
            '"name" varchar(255) not null, primary key ("code", "region"))'
        )
        assert (
            'alter table "city" add constraint "city_country_code_country_region_foreign" '
            'foreign key ("country_code", "country_region") '
            'references "country" ("code", "region") on update cascade'
        ) in sql
        assert 'create index "city_name_index" on "city" ("name")' in sql
        assert (
            'create index "city_country_code_country_region_index" '
            'on "city" ("country_code", "country_region")'
        ) in sql


class TestDropSchema:
    """Test drop statements."""

    def test_reverse_commit_order(self, sqlite_generator):
        """Test tables are dropped in reverse commit order."""
        sql = sqlite_generator.get_drop_schema_sql(wrap=False)
        assert sql == [
            'drop table if exists "book_tags"',
            'drop table if exists "tag"',
            'drop table if exists "book"',
            'drop table if exists "author"',
        ]

    def test_cascade_and_migrations_table(self, pg_generator):
        """Test PostgreSQL drops cascade and the migrations table can be dropped."""
        sql = pg_generator.get_drop_schema_sql(wrap=False, drop_migrations_table=True)
        assert sql[0] == 'drop table if exists "book_tags" cascade'
        assert sql[-1] == 'drop table if exists "metaorm_migrations" cascade'

    def test_generate_drops_then_creates(self, sqlite_generator):
        """Test a full regeneration drops before creating, wrapped once."""
        sql = sqlite_generator.generate()
        assert sql[0] == "pragma foreign_keys = off"
        assert sql[1] == 'drop table if exists "book_tags"'
        assert sql[5].startswith('create table "author"')
        assert sql.count("pragma foreign_keys = on") == 1


class TestDatabaseStatements:
    """Test database level statements."""

    def test_sqlite_has_no_databases(self, sqlite_generator):
        """Test SQLite yields no create/drop database statements."""
        assert sqlite_generator.get_create_database_sql("app") == []
        assert sqlite_generator.get_drop_database_sql("app") == []

    def test_postgresql_databases(self, pg_generator):
        """Test PostgreSQL quotes database names."""
        assert pg_generator.get_create_database_sql("app") == ['create database "app"']
        assert pg_generator.get_drop_database_sql("app") == ['drop database if exists "app"']


class TestInheritanceSchema:
    """Test single table inheritance tables."""

    def test_one_table_for_hierarchy(self, resolve, sqlite_platform):
        """Test the hierarchy maps to one table with a discriminator column."""
        registry = resolve(
            [
                EntitySpec(
                    name="Person",
                    discriminator_column="type",
                    properties=[PropertySpec(name="id", type="int", primary=True)],
                ),
                EntitySpec(
                    name="Employee",
                    extends="Person",
                    properties=[PropertySpec(name="salary", type="int")],
                ),
            ]
        )
        sql = SchemaGenerator(registry, sqlite_platform).get_create_schema_sql(wrap=False)
        assert sql == [
            'create table "person" ("id" integer not null primary key autoincrement, '
            '"type" varchar(255) not null, "salary" integer)',
            'create index "person_type_index" on "person" ("type")',
        ]
