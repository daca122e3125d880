"""Explicitly owned metadata registry.

The registry replaces a process-wide metadata singleton: the resolver
returns one, and the schema generator and query compiler receive it by
reference. After resolution it is frozen and only read.
"""

from __future__ import annotations

from collections.abc import Iterator

from metaorm.exceptions import ConfigurationError, MetadataResolutionError
from metaorm.metadata.models import EntityMetadata


class MetadataRegistry:
    """Holds EntityMetadata by entity name, in registration order."""

    def __init__(self, metadata: list[EntityMetadata] | None = None) -> None:
        self._metadata: dict[str, EntityMetadata] = {}
        self._frozen = False
        for meta in metadata or []:
            self.set(meta)

    def set(self, meta: EntityMetadata) -> EntityMetadata:
        """Register (or replace) metadata under its entity name."""
        if self._frozen:
            raise ConfigurationError(
                f"Cannot register '{meta.name}': metadata registry is frozen after resolution.",
                {"entity_name": meta.name},
            )
        self._metadata[meta.name] = meta
        return meta

    def get(self, name: str, referenced_from: str | None = None) -> EntityMetadata:
        """Get metadata by entity name.

        Raises:
            MetadataResolutionError: If the entity is not registered
        """
        meta = self._metadata.get(name)
        if meta is None:
            raise MetadataResolutionError.entity_not_found(
                name, self.names(), referenced_from=referenced_from
            )
        return meta

    def find(self, name: str | None) -> EntityMetadata | None:
        """Get metadata by entity name, or None."""
        if name is None:
            return None
        return self._metadata.get(name)

    def find_by_table(self, table_name: str) -> EntityMetadata | None:
        for meta in self._metadata.values():
            if meta.table_name == table_name and meta.is_root:
                return meta
        return None

    def has(self, name: str) -> bool:
        return name in self._metadata

    def names(self) -> list[str]:
        return list(self._metadata)

    def all(self) -> list[EntityMetadata]:
        return list(self._metadata.values())

    def freeze(self) -> MetadataRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._metadata

    def __iter__(self) -> Iterator[EntityMetadata]:
        return iter(list(self._metadata.values()))

    def __len__(self) -> int:
        return len(self._metadata)
