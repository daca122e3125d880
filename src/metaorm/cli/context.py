"""CLI context management for configuration, metadata and database connections."""

from dataclasses import dataclass, field

from metaorm.cli.parsing import load_entities, load_snapshot
from metaorm.core.config import Configuration
from metaorm.core.connection import DatabaseConnection
from metaorm.exceptions import ConfigurationError
from metaorm.metadata.registry import MetadataRegistry
from metaorm.metadata.resolver import RelationshipResolver
from metaorm.platforms.base import Platform
from metaorm.schema.generator import SchemaGenerator
from metaorm.schema.introspection import DatabaseSchema


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Resolves metadata and opens the database connection lazily, so commands
    that only print DDL never need a database.
    """

    config: Configuration
    json_output: bool
    echo: bool = False
    _platform: Platform | None = field(default=None, init=False, repr=False)
    _registry: MetadataRegistry | None = field(default=None, init=False, repr=False)
    _connection: DatabaseConnection | None = field(default=None, init=False, repr=False)

    def get_platform(self) -> Platform:
        if self._platform is None:
            self._platform = self.config.get_platform()
        return self._platform

    def get_registry(self) -> MetadataRegistry:
        """Load and resolve the entity descriptions (lazy initialization)."""
        if self._registry is None:
            entities = load_entities(self.config.entities_path)
            resolver = RelationshipResolver(self.get_platform())
            self._registry = resolver.resolve(entities)
        return self._registry

    def get_generator(self) -> SchemaGenerator:
        return SchemaGenerator(self.get_registry(), self.get_platform(), charset=self.config.charset)

    def get_connection(self) -> DatabaseConnection:
        """Get or create the database connection.

        Raises:
            ConfigurationError: If no database URL is configured
        """
        if self._connection is None:
            if not self.config.database_url:
                raise ConfigurationError(
                    "No database URL configured. Pass --database or set METAORM_DATABASE_URL.",
                    {"option": "--database", "env": "METAORM_DATABASE_URL"},
                )
            self._connection = DatabaseConnection(self.config.database_url, echo=self.echo)
        return self._connection

    def get_live_schema(self, snapshot: str | None = None) -> DatabaseSchema:
        """Live schema from a JSON snapshot, or introspected from the database."""
        if snapshot:
            return load_snapshot(snapshot)
        return self.get_connection().introspect(self.get_platform())

    def close(self) -> None:
        """Close database connection if open."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
