"""Structural validation of entity metadata.

Two checkpoints run inside the resolver: one before naming, when only the
declared shape exists, and one after, when every join column is known.
"""

from __future__ import annotations

from metaorm.core.types import ReferenceKind
from metaorm.exceptions import MetadataResolutionError
from metaorm.metadata.models import EntityMetadata, EntityProperty
from metaorm.metadata.registry import MetadataRegistry


class MetadataValidator:
    """Raises MetadataResolutionError for descriptions that cannot be resolved."""

    def validate_entity_definition(self, registry: MetadataRegistry, meta: EntityMetadata) -> None:
        """Check declared shape: primary key, relation targets and mapped properties."""
        if not meta.primary_keys and not (meta.embeddable or meta.abstract or meta.pivot_table):
            raise MetadataResolutionError.missing_primary_key(meta.name)

        for prop in meta.props:
            if prop.kind == ReferenceKind.SCALAR:
                continue

            origin = f"{meta.name}.{prop.name}"
            if prop.target is None:
                raise MetadataResolutionError(
                    f"Relation '{origin}' has no target entity. Set target to one of: "
                    f"{', '.join(registry.names())}",
                    {"entity_name": meta.name, "property_name": prop.name},
                )
            target = registry.get(prop.target, referenced_from=origin)

            if prop.kind == ReferenceKind.EMBEDDED:
                if not target.embeddable:
                    raise MetadataResolutionError.not_embeddable(meta.name, prop.name, target.name)
                continue

            if prop.kind == ReferenceKind.ONE_TO_MANY and not prop.mapped_by:
                raise MetadataResolutionError.missing_mapped_by(meta.name, prop.name)

            for attr in ("mapped_by", "inversed_by"):
                other = getattr(prop, attr)
                if other and other not in target.properties:
                    raise MetadataResolutionError.property_not_found(
                        target.name, other, list(target.properties)
                    )

    def validate_discovered(self, registry: MetadataRegistry) -> None:
        """Check resolved join-column arity and column uniqueness."""
        for meta in registry:
            if meta.embeddable or meta.abstract:
                continue
            for prop in meta.props:
                self._validate_arity(registry, meta, prop)
            self._validate_columns(meta)

    def _validate_arity(
        self, registry: MetadataRegistry, meta: EntityMetadata, prop: EntityProperty
    ) -> None:
        if prop.is_owning_reference:
            target = registry.get(prop.target, referenced_from=f"{meta.name}.{prop.name}")
            expected = len(target.primary_key_field_names())
            if len(prop.join_columns) != expected:
                raise MetadataResolutionError.arity_mismatch(
                    meta.name, prop.name, expected, prop.join_columns
                )

        if prop.kind == ReferenceKind.MANY_TO_MANY and prop.owner:
            target = registry.get(prop.target, referenced_from=f"{meta.name}.{prop.name}")
            expected = len(meta.primary_key_field_names())
            if len(prop.join_columns) != expected:
                raise MetadataResolutionError.arity_mismatch(
                    meta.name, prop.name, expected, prop.join_columns
                )
            expected = len(target.primary_key_field_names())
            if len(prop.inverse_join_columns) != expected:
                raise MetadataResolutionError.arity_mismatch(
                    meta.name, prop.name, expected, prop.inverse_join_columns
                )

    def _validate_columns(self, meta: EntityMetadata) -> None:
        owners: dict[str, list[str]] = {}
        for prop in meta.props:
            if not prop.persist:
                continue
            if prop.kind == ReferenceKind.SCALAR or prop.is_owning_reference:
                for column in prop.field_names:
                    owners.setdefault(column, []).append(prop.name)

        for column, props in owners.items():
            if len(props) > 1:
                raise MetadataResolutionError.duplicate_column(meta.name, column, props)
