"""Tests for the metaorm CLI."""

import json
import os
from pathlib import Path

import pytest
from typer.testing import CliRunner

from metaorm.cli.main import app
from metaorm.cli.parsing import load_entities
from metaorm.metadata.resolver import RelationshipResolver
from metaorm.platforms import PostgreSqlPlatform
from metaorm.schema.introspection import DatabaseSchema

runner = CliRunner()

ENTITIES = {
    "entities": [
        {
            "name": "Author",
            "properties": [
                {"name": "id", "type": "int", "primary": True},
                {"name": "name"},
                {"name": "books", "kind": "one_to_many", "target": "Book", "mapped_by": "author"},
            ],
        },
        {
            "name": "Book",
            "properties": [
                {"name": "id", "type": "int", "primary": True},
                {"name": "title"},
                {"name": "author", "kind": "many_to_one", "target": "Author"},
            ],
        },
    ]
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("METAORM_"):
            monkeypatch.delenv(name)


@pytest.fixture
def entities_file(tmp_path: Path) -> str:
    path = tmp_path / "entities.json"
    path.write_text(json.dumps(ENTITIES))
    return str(path)


@pytest.fixture
def temp_db(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'app.db'}"


class TestVersionCommand:
    """Test version command."""

    def test_version(self) -> None:
        """Test version command shows version."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "metaorm v" in result.stdout


class TestSchemaCreate:
    """Test schema create command."""

    def test_create_json(self, entities_file: str) -> None:
        """Test statements are printed as a JSON array."""
        result = runner.invoke(app, ["-e", entities_file, "--json", "schema", "create"])
        assert result.exit_code == 0
        statements = json.loads(result.stdout)["statements"]
        assert statements[0] == "pragma foreign_keys = off"
        assert statements[1].startswith('create table "author"')
        assert statements[2].startswith('create table "book"')

    def test_create_without_wrap(self, entities_file: str) -> None:
        """Test --no-wrap drops the pragmas."""
        result = runner.invoke(
            app, ["-e", entities_file, "--no-wrap", "--json", "schema", "create"]
        )
        assert result.exit_code == 0
        statements = json.loads(result.stdout)["statements"]
        assert statements == [
            'create table "author" ("id" integer not null primary key autoincrement, '
            '"name" varchar(255) not null)',
            'create table "book" ("id" integer not null primary key autoincrement, '
            '"title" varchar(255) not null, "author_id" integer not null, '
            'foreign key ("author_id") references "author" ("id") on update cascade)',
            'create index "book_author_id_index" on "book" ("author_id")',
        ]

    def test_create_postgresql(self, entities_file: str) -> None:
        """Test --platform switches the dialect."""
        result = runner.invoke(
            app, ["-e", entities_file, "-p", "postgresql", "--json", "schema", "create"]
        )
        assert result.exit_code == 0
        statements = json.loads(result.stdout)["statements"]
        assert statements[2] == 'create table "author" ("id" serial primary key, "name" varchar(255) not null)'

    def test_create_terminal_output(self, entities_file: str) -> None:
        """Test the Rich output shows the statements."""
        result = runner.invoke(app, ["-e", entities_file, "schema", "create"])
        assert result.exit_code == 0
        assert "Create schema" in result.stdout
        assert "author" in result.stdout


class TestSchemaRun:
    """Test executing statements against a database."""

    def test_create_then_update(self, entities_file: str, temp_db: str) -> None:
        """Test a created schema needs no update."""
        result = runner.invoke(
            app, ["-e", entities_file, "-d", temp_db, "--json", "schema", "create", "--run"]
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["statements"] == 5

        result = runner.invoke(app, ["-e", entities_file, "-d", temp_db, "--json", "schema", "update"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"statements": []}

    def test_update_requires_database(self, entities_file: str) -> None:
        """Test update without --database or --snapshot is a configuration error."""
        result = runner.invoke(app, ["-e", entities_file, "--json", "schema", "update"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "ConfigurationError"

    def test_drop_cancelled(self, entities_file: str, temp_db: str) -> None:
        """Test drop --run asks for confirmation."""
        result = runner.invoke(
            app, ["-e", entities_file, "-d", temp_db, "schema", "drop", "--run"], input="n\n"
        )
        assert result.exit_code == 0
        assert "Cancelled." in result.stdout


class TestSchemaSnapshot:
    """Test update and diff against JSON snapshots."""

    def test_update_against_matching_snapshot(self, entities_file: str, tmp_path: Path) -> None:
        """Test a snapshot of the metadata itself yields no statements."""
        platform = PostgreSqlPlatform()
        registry = RelationshipResolver(platform).resolve(load_entities(entities_file))
        snapshot = tmp_path / "live.json"
        snapshot.write_text(json.dumps(DatabaseSchema.from_metadata(registry, platform).to_dict()))

        result = runner.invoke(
            app,
            ["-e", entities_file, "-p", "postgresql", "--json", "schema", "update", "-s", str(snapshot)],
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"statements": []}

    def test_diff_against_empty_snapshot(self, entities_file: str, tmp_path: Path) -> None:
        """Test every table is reported as created."""
        snapshot = tmp_path / "empty.json"
        snapshot.write_text(json.dumps({"tables": []}))

        result = runner.invoke(
            app, ["-e", entities_file, "--json", "schema", "diff", "--snapshot", str(snapshot)]
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {
            "create_tables": ["author", "book"],
            "tables": {},
            "drop_tables": [],
        }


class TestSchemaOrder:
    """Test schema order command."""

    def test_order_json(self, entities_file: str) -> None:
        """Test referenced tables come first."""
        result = runner.invoke(app, ["-e", entities_file, "--json", "schema", "order"])
        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert [row["Table"] for row in rows] == ["author", "book"]
        assert rows[0]["Position"] == 1


class TestErrors:
    """Test error reporting."""

    def test_missing_entities_file(self, tmp_path: Path) -> None:
        """Test a missing entities file exits with an error."""
        missing = str(tmp_path / "missing.json")
        result = runner.invoke(app, ["-e", missing, "--json", "schema", "create"])
        assert result.exit_code == 1
        assert "File not found" in json.loads(result.stdout)["error"]

    def test_unresolvable_target(self, tmp_path: Path) -> None:
        """Test resolution errors are reported with their context."""
        path = tmp_path / "entities.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "name": "Book",
                        "properties": [
                            {"name": "id", "type": "int", "primary": True},
                            {"name": "publisher", "kind": "many_to_one", "target": "Publisher"},
                        ],
                    }
                ]
            )
        )
        result = runner.invoke(app, ["-e", str(path), "--json", "schema", "create"])
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] == "MetadataResolutionError"
        assert "Publisher" in data["message"]


class TestDebugCommand:
    """Test debug command."""

    def test_debug_json(self, entities_file: str) -> None:
        """Test debug reports configuration and the described entities."""
        result = runner.invoke(app, ["-e", entities_file, "--json", "debug"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["config"]["entities_path"] == entities_file
        assert data["entities_file"]["entities"] == ["Author", "Book"]
        assert "sqlalchemy" in data["dependencies"]
