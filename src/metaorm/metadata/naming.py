"""Naming strategies: pure mappings from logical names to physical identifiers."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


class NamingStrategy(ABC):
    """Interface for naming strategies.

    The resolver only talks to this interface, so any strategy can be
    plugged into the configuration.
    """

    @abstractmethod
    def class_to_table_name(self, entity_name: str) -> str:
        """Table name for an entity (e.g., BookTag -> book_tag)."""
        ...

    @abstractmethod
    def property_to_column_name(self, property_name: str) -> str:
        """Column name for a scalar property."""
        ...

    @abstractmethod
    def reference_column_name(self) -> str:
        """Default primary key column name (e.g., id)."""
        ...

    @abstractmethod
    def join_column_name(self, property_name: str) -> str:
        """Join column for a to-many relation derived from the owning property."""
        ...

    @abstractmethod
    def join_key_column_name(
        self, entity_name: str, referenced_column_name: str | None = None, composite: bool = False
    ) -> str:
        """Join key column for a relation, per referenced primary key column."""
        ...

    @abstractmethod
    def join_table_name(self, source_entity: str, target_entity: str, property_name: str) -> str:
        """Pivot table name for a many-to-many relation."""
        ...


class UnderscoreNamingStrategy(NamingStrategy):
    """snake_case tables and columns (default)."""

    def _underscore(self, name: str) -> str:
        return _CAMEL_BOUNDARY.sub(r"\1_\2", name).lower()

    def class_to_table_name(self, entity_name: str) -> str:
        return self._underscore(entity_name)

    def property_to_column_name(self, property_name: str) -> str:
        return self._underscore(property_name)

    def reference_column_name(self) -> str:
        return "id"

    def join_column_name(self, property_name: str) -> str:
        return self.property_to_column_name(property_name) + "_" + self.reference_column_name()

    def join_key_column_name(
        self, entity_name: str, referenced_column_name: str | None = None, composite: bool = False
    ) -> str:
        return (
            self.class_to_table_name(entity_name)
            + "_"
            + (referenced_column_name or self.reference_column_name())
        )

    def join_table_name(self, source_entity: str, target_entity: str, property_name: str) -> str:
        return (
            self.class_to_table_name(source_entity)
            + "_"
            + self.class_to_table_name(property_name)
        )


class EntityCaseNamingStrategy(NamingStrategy):
    """Keeps entity and property names as declared (e.g., Book.authorId)."""

    def class_to_table_name(self, entity_name: str) -> str:
        return entity_name[:1].lower() + entity_name[1:]

    def property_to_column_name(self, property_name: str) -> str:
        return property_name

    def reference_column_name(self) -> str:
        return "id"

    def join_column_name(self, property_name: str) -> str:
        return property_name

    def join_key_column_name(
        self, entity_name: str, referenced_column_name: str | None = None, composite: bool = False
    ) -> str:
        entity = entity_name[:1].lower() + entity_name[1:]
        if composite and referenced_column_name:
            return entity + "_" + referenced_column_name
        return entity

    def join_table_name(self, source_entity: str, target_entity: str, property_name: str) -> str:
        return self.class_to_table_name(source_entity) + "_" + property_name


NAMING_STRATEGIES: dict[str, type[NamingStrategy]] = {
    "underscore": UnderscoreNamingStrategy,
    "entity_case": EntityCaseNamingStrategy,
}
