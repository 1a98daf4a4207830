from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from csschunk.resources import schemas_dir


def load_json_schema(schema_path: Path) -> dict[str, Any]:
    try:
        schema = json.loads(schema_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Failed to load schema from {schema_path}: {exc}") from exc
    if not isinstance(schema, dict):
        raise ValueError(f"Schema JSON must be an object: {schema_path}")
    return schema


def build_schema_registry(directory: Path) -> Registry:
    registry: Registry = Registry()
    for schema_file in sorted(directory.glob("*.schema.json")):
        schema = load_json_schema(schema_file)
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        registry = registry.with_resource(schema_file.resolve().as_uri(), resource)
        schema_id = schema.get("$id")
        if isinstance(schema_id, str) and schema_id:
            registry = registry.with_resource(schema_id, resource)
    return registry


def schema_errors(payload: Any, schema_name: str) -> list[str]:
    """Validate ``payload`` against a packaged schema, one message per error."""
    directory = schemas_dir()
    schema = load_json_schema(directory / schema_name)
    validator = jsonschema.Draft202012Validator(
        schema,
        registry=build_schema_registry(directory),
    )
    errors = sorted(validator.iter_errors(payload), key=lambda err: [str(part) for part in err.path])
    messages: list[str] = []
    for err in errors:
        path = ".".join(str(part) for part in err.path) or "$"
        messages.append(f"{path}: {err.message}")
    return messages


def validate_against_schema(payload: Any, schema_name: str, *, label: str) -> None:
    errors = schema_errors(payload, schema_name)
    if errors:
        raise ValueError(f"{label} schema validation failed:\n- " + "\n- ".join(errors))
