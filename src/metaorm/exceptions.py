"""Custom exceptions for metaorm.

Errors follow the same principles across the package:
- Messages say what went wrong AND how to fix it
- Context carries the available options when relevant
"""

from __future__ import annotations

from typing import Any


class MetaORMError(Exception):
    """Base exception for all metaorm errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


# === Metadata resolution ===


class MetadataResolutionError(MetaORMError):
    """Entity descriptions could not be resolved into a metadata graph.

    Raised for unresolvable relation targets, missing mapped properties,
    missing primary keys and invalid types. Aborts the whole resolution pass.
    """

    @classmethod
    def entity_not_found(
        cls, entity_name: str, available: list[str], referenced_from: str | None = None
    ) -> MetadataResolutionError:
        origin = f" (referenced from '{referenced_from}')" if referenced_from else ""
        if available:
            message = (
                f"Entity '{entity_name}'{origin} not found. "
                f"Available entities: {', '.join(available)}"
            )
        else:
            message = f"Entity '{entity_name}'{origin} not found. No entities were described."
        return cls(
            message,
            {
                "entity_name": entity_name,
                "referenced_from": referenced_from,
                "available_entities": available,
            },
        )

    @classmethod
    def property_not_found(
        cls, entity_name: str, property_name: str, available: list[str]
    ) -> MetadataResolutionError:
        message = (
            f"Property '{property_name}' not found on '{entity_name}'. "
            f"Available properties: {', '.join(available) or 'none'}"
        )
        return cls(
            message,
            {
                "entity_name": entity_name,
                "property_name": property_name,
                "available_properties": available,
            },
        )

    @classmethod
    def missing_primary_key(cls, entity_name: str) -> MetadataResolutionError:
        return cls(
            f"Entity '{entity_name}' has no primary key. "
            "Mark at least one property with primary=True.",
            {"entity_name": entity_name},
        )

    @classmethod
    def invalid_type(
        cls, entity_name: str, property_name: str, type_name: str, valid_types: list[str]
    ) -> MetadataResolutionError:
        return cls(
            f"Invalid type '{type_name}' for '{entity_name}.{property_name}'. "
            f"Valid types: {', '.join(valid_types)}",
            {
                "entity_name": entity_name,
                "property_name": property_name,
                "type": type_name,
                "valid_types": valid_types,
            },
        )

    @classmethod
    def duplicate_entity(cls, entity_name: str) -> MetadataResolutionError:
        return cls(
            f"Entity '{entity_name}' is described more than once. Entity names must be unique.",
            {"entity_name": entity_name},
        )

    @classmethod
    def missing_mapped_by(cls, entity_name: str, property_name: str) -> MetadataResolutionError:
        return cls(
            f"One-to-many property '{entity_name}.{property_name}' needs mapped_by "
            "pointing at the owning many-to-one property on the target entity.",
            {"entity_name": entity_name, "property_name": property_name},
        )

    @classmethod
    def not_embeddable(
        cls, entity_name: str, property_name: str, target: str
    ) -> MetadataResolutionError:
        return cls(
            f"Property '{entity_name}.{property_name}' embeds '{target}', "
            f"which is not embeddable. Mark '{target}' with embeddable=True.",
            {"entity_name": entity_name, "property_name": property_name, "target": target},
        )

    @classmethod
    def extends_cycle(cls, chain: list[str]) -> MetadataResolutionError:
        return cls(
            f"Entity inheritance forms a cycle: {' -> '.join(chain)}",
            {"chain": chain},
        )

    @classmethod
    def arity_mismatch(
        cls, entity_name: str, property_name: str, expected: int, actual: list[str]
    ) -> MetadataResolutionError:
        return cls(
            f"Property '{entity_name}.{property_name}' has {len(actual)} join column(s) "
            f"{actual}, but the target primary key has {expected} column(s).",
            {
                "entity_name": entity_name,
                "property_name": property_name,
                "expected": expected,
                "join_columns": actual,
            },
        )

    @classmethod
    def duplicate_column(
        cls, entity_name: str, column_name: str, properties: list[str]
    ) -> MetadataResolutionError:
        return cls(
            f"Column '{column_name}' of '{entity_name}' is mapped by more than one "
            f"property: {', '.join(properties)}. Set an explicit field_name on one of them.",
            {"entity_name": entity_name, "column_name": column_name, "properties": properties},
        )


# === Schema synchronization ===


class SchemaDependencyError(MetaORMError):
    """Required foreign keys form a cycle, so no creation order exists."""

    def __init__(self, cycle: list[str]) -> None:
        path = " -> ".join(cycle)
        message = (
            f"Required foreign keys form a dependency cycle: {path}. "
            "Make at least one of these relations nullable."
        )
        super().__init__(message, {"cycle": cycle})
        self.cycle = cycle


# === Query compilation ===


class QueryCompilationError(MetaORMError):
    """A condition tree could not be compiled into SQL.

    Only the query being compiled is affected; shared metadata is untouched.
    """

    VALID_OPERATORS = [
        "$eq",
        "$ne",
        "$in",
        "$nin",
        "$gt",
        "$gte",
        "$lt",
        "$lte",
        "$like",
        "$re",
        "$fulltext",
        "$not",
    ]

    @classmethod
    def invalid_condition(cls, condition: Any) -> QueryCompilationError:
        return cls(
            f"Invalid query condition: {condition!r}. "
            f"Valid operators: {', '.join(cls.VALID_OPERATORS)}",
            {"condition": repr(condition), "valid_operators": cls.VALID_OPERATORS},
        )


# === Configuration ===


class ConfigurationError(MetaORMError):
    """Invalid configuration or a request the metadata cannot satisfy."""

    @classmethod
    def not_versioned(cls, entity_name: str) -> ConfigurationError:
        return cls(
            f"Cannot obtain optimistic lock on unversioned entity '{entity_name}'. "
            "Add a property with version=True to the entity.",
            {"entity_name": entity_name},
        )

    @classmethod
    def lock_version_mismatch(
        cls, entity_name: str, expected: Any, actual: Any
    ) -> ConfigurationError:
        return cls(
            f"The optimistic lock on entity '{entity_name}' failed: "
            f"version {expected!r} was expected, but is actually {actual!r}.",
            {"entity_name": entity_name, "expected": expected, "actual": actual},
        )


# === Execution ===


class DatabaseConnectionError(MetaORMError):
    """The external executor could not connect to or introspect a database."""
