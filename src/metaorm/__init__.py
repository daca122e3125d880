"""metaorm - Metadata-driven relational mapping core.

Resolves declarative entity descriptions into a canonical metadata graph,
synchronizes relational schemas against it and compiles declarative query
conditions into parameterized SQL. Nothing here executes SQL; statements and
fragments are returned as data.

Example:
    from metaorm import (
        EntitySpec,
        PropertySpec,
        QueryConditionCompiler,
        RelationshipResolver,
        SchemaGenerator,
        SqlitePlatform,
    )

    platform = SqlitePlatform()
    registry = RelationshipResolver(platform).resolve([
        EntitySpec(name="Author", properties=[
            PropertySpec(name="id", type="int", primary=True),
            PropertySpec(name="name"),
        ]),
        EntitySpec(name="Book", properties=[
            PropertySpec(name="id", type="int", primary=True),
            PropertySpec(name="author", kind="many_to_one", target="Author"),
        ]),
    ])

    # Ordered DDL: author before book
    statements = SchemaGenerator(registry, platform).get_create_schema_sql()

    # Parameterized conditions
    compiler = QueryConditionCompiler("Book", "b", registry, platform)
    where = compiler.compile_where({"author": 1})  # where "b"."author_id" = ?
"""

from metaorm.core.config import Configuration
from metaorm.core.types import (
    ClauseKind,
    EntitySpec,
    FieldType,
    IndexSpec,
    JoinKind,
    LockMode,
    PropertySpec,
    QueryOrder,
    QueryType,
    ReferenceKind,
)
from metaorm.exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    MetadataResolutionError,
    MetaORMError,
    QueryCompilationError,
    SchemaDependencyError,
)
from metaorm.metadata import (
    EntityCaseNamingStrategy,
    EntityMetadata,
    EntityProperty,
    MetadataRegistry,
    NamingStrategy,
    UnderscoreNamingStrategy,
)
from metaorm.metadata.resolver import RelationshipResolver
from metaorm.platforms import MySqlPlatform, Platform, PostgreSqlPlatform, SqlitePlatform
from metaorm.query import CompiledFragment, JoinSpec, QueryConditionCompiler, parse_condition
from metaorm.schema import (
    CommitOrderCalculator,
    DatabaseSchema,
    SchemaComparator,
    SchemaGenerator,
    TableDifference,
)

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "Configuration",
    # Types
    "ClauseKind",
    "EntitySpec",
    "FieldType",
    "IndexSpec",
    "JoinKind",
    "LockMode",
    "PropertySpec",
    "QueryOrder",
    "QueryType",
    "ReferenceKind",
    # Metadata
    "EntityCaseNamingStrategy",
    "EntityMetadata",
    "EntityProperty",
    "MetadataRegistry",
    "NamingStrategy",
    "RelationshipResolver",
    "UnderscoreNamingStrategy",
    # Platforms
    "MySqlPlatform",
    "Platform",
    "PostgreSqlPlatform",
    "SqlitePlatform",
    # Schema
    "CommitOrderCalculator",
    "DatabaseSchema",
    "SchemaComparator",
    "SchemaGenerator",
    "TableDifference",
    # Query
    "CompiledFragment",
    "JoinSpec",
    "QueryConditionCompiler",
    "parse_condition",
    # Exceptions
    "ConfigurationError",
    "DatabaseConnectionError",
    "MetaORMError",
    "MetadataResolutionError",
    "QueryCompilationError",
    "SchemaDependencyError",
]
