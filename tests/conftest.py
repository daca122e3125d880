"""Shared test fixtures for metaorm."""

from collections.abc import Callable, Generator

import pytest

from metaorm.core.connection import DatabaseConnection
from metaorm.core.types import EntitySpec, IndexSpec, PropertySpec
from metaorm.metadata.registry import MetadataRegistry
from metaorm.metadata.resolver import RelationshipResolver
from metaorm.platforms import MySqlPlatform, Platform, PostgreSqlPlatform, SqlitePlatform


def pk(name: str = "id", type: str = "int") -> PropertySpec:
    return PropertySpec(name=name, type=type, primary=True)


@pytest.fixture
def sqlite_platform() -> SqlitePlatform:
    return SqlitePlatform()


@pytest.fixture
def postgresql_platform() -> PostgreSqlPlatform:
    return PostgreSqlPlatform()


@pytest.fixture
def mysql_platform() -> MySqlPlatform:
    return MySqlPlatform()


@pytest.fixture
def library_entities() -> list[EntitySpec]:
    """Author 1:N Book N:M Tag, with a versioned Book."""
    return [
        EntitySpec(
            name="Author",
            properties=[
                pk(),
                PropertySpec(name="name"),
                PropertySpec(
                    name="books", kind="one_to_many", target="Book", mapped_by="author"
                ),
            ],
        ),
        EntitySpec(
            name="Book",
            properties=[
                pk(),
                PropertySpec(name="title"),
                PropertySpec(name="author", kind="many_to_one", target="Author"),
                PropertySpec(
                    name="tags", kind="many_to_many", target="Tag", inversed_by="books"
                ),
                PropertySpec(name="version", type="int", version=True),
                PropertySpec(name="attributes", type="json", nullable=True),
            ],
        ),
        EntitySpec(
            name="Tag",
            properties=[
                pk(),
                PropertySpec(name="name", unique=True),
                PropertySpec(name="books", kind="many_to_many", target="Book", mapped_by="tags"),
            ],
        ),
    ]


@pytest.fixture
def geography_entities() -> list[EntitySpec]:
    """Country with a composite primary key referenced by City."""
    return [
        EntitySpec(
            name="Country",
            properties=[
                pk("code", "string"),
                pk("region", "string"),
                PropertySpec(name="name"),
            ],
        ),
        EntitySpec(
            name="City",
            properties=[
                pk(),
                PropertySpec(name="name"),
                PropertySpec(name="country", kind="many_to_one", target="Country"),
            ],
            indexes=[IndexSpec(properties=["name"])],
        ),
    ]


@pytest.fixture
def resolve() -> Callable[..., MetadataRegistry]:
    """Resolve entity specs on a platform (SQLite unless given)."""

    def _resolve(entities: list[EntitySpec], platform: Platform | None = None) -> MetadataRegistry:
        return RelationshipResolver(platform or SqlitePlatform()).resolve(entities)

    return _resolve


@pytest.fixture
def library_registry(library_entities, sqlite_platform) -> MetadataRegistry:
    return RelationshipResolver(sqlite_platform).resolve(library_entities)


@pytest.fixture
def pg_library_registry(library_entities, postgresql_platform) -> MetadataRegistry:
    return RelationshipResolver(postgresql_platform).resolve(library_entities)


@pytest.fixture
def memory_connection() -> Generator[DatabaseConnection, None, None]:
    """DatabaseConnection to a SQLite in-memory database."""
    connection = DatabaseConnection("sqlite:///:memory:")
    yield connection
    connection.close()
