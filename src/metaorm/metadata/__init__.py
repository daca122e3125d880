"""Entity metadata model, naming strategies and registry."""

from metaorm.metadata.models import EntityMetadata, EntityProperty, IndexDef
from metaorm.metadata.naming import (
    NAMING_STRATEGIES,
    EntityCaseNamingStrategy,
    NamingStrategy,
    UnderscoreNamingStrategy,
)
from metaorm.metadata.registry import MetadataRegistry

__all__ = [
    "NAMING_STRATEGIES",
    "EntityCaseNamingStrategy",
    "EntityMetadata",
    "EntityProperty",
    "IndexDef",
    "MetadataRegistry",
    "NamingStrategy",
    "UnderscoreNamingStrategy",
]
