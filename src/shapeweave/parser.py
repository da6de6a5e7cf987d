"""Schema loading: YAML/JSON text, files, or already-parsed dicts."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from shapeweave.errors import SchemaError
from shapeweave.models import Schema


def _make_yaml() -> YAML:
    """Create a ruamel.yaml safe loader that errors on duplicate keys.

    JSON documents are valid YAML 1.2, so the same loader reads both.
    """
    yml = YAML(typ="safe")
    yml.allow_duplicate_keys = False
    return yml


def _read_source_text(source: str | Path) -> str:
    """Read source content from path or treat input as raw text."""
    if isinstance(source, Path):
        try:
            return source.read_text(encoding="utf-8")
        except OSError as e:
            raise SchemaError(f"Cannot read file: {e}") from e
    return source


def load_schema_data(source: str | Path | Mapping[str, Any]) -> dict:
    """Load a schema document into a plain dict, before validation."""
    if isinstance(source, Mapping):
        return dict(source)

    text = _read_source_text(source)
    try:
        data = _make_yaml().load(text)
    except YAMLError as e:
        raise SchemaError(f"Invalid schema document: {e}") from e

    if not isinstance(data, dict):
        raise SchemaError("Top-level schema value must be a mapping")
    return data


def load_value(text: str) -> Any:
    """Read a single YAML value (scalar, flow list or flow mapping)."""
    return _make_yaml().load(text)


def parse_schema(source: str | Path | Mapping[str, Any] | Schema) -> Schema:
    """Parse and validate a schema.

    Args:
        source: YAML/JSON text, a path to a schema file, a dict, or a Schema.

    Returns:
        The validated Schema. Actions are left raw for normalization.

    Raises:
        SchemaError: On unreadable input, syntax errors or schema violations.
    """
    if isinstance(source, Schema):
        return source
    data = load_schema_data(source)
    try:
        return Schema.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaError(f"Schema validation failed:\n{e}") from e
