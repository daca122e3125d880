"""Input parsing utilities for CLI commands."""

import json
from pathlib import Path
from typing import Any

from metaorm.core.types import EntitySpec
from metaorm.schema.introspection import DatabaseSchema


def read_json_file(path: str) -> Any:
    """Read a JSON document from file.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON document

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file contains invalid JSON
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    with file_path.open("r") as f:
        return json.load(f)


def load_entities(path: str) -> list[EntitySpec]:
    """Load entity descriptions.

    The file holds either a list of entity objects or an object with an
    ``entities`` list:

        {"entities": [{"name": "Author", "properties": [...]}, ...]}

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the document has neither shape
        pydantic.ValidationError: If an entity description is invalid
    """
    data = read_json_file(path)
    if isinstance(data, dict):
        data = data.get("entities")
    if not isinstance(data, list):
        raise ValueError(
            f"Invalid entities file: '{path}'. "
            "Expected a list of entities or an object with an 'entities' list."
        )
    return [EntitySpec.model_validate(item) for item in data]


def load_snapshot(path: str) -> DatabaseSchema:
    """Load a live schema snapshot written by ``DatabaseSchema.to_dict``."""
    data = read_json_file(path)
    if not isinstance(data, dict):
        raise ValueError(f"Invalid schema snapshot: '{path}'. Expected an object with 'tables'.")
    return DatabaseSchema.from_dict(data)
