"""JSON Schema validation for deployment manifests.

The manifest files are edited by hand as often as by tooling, so each one is
checked against a schema on load before any of its contents are trusted.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

ADDRESS_PATTERN = "^0x[0-9a-fA-F]{40}$"

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "config.json",
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "properties": {"deploy": {"type": "boolean"}},
    },
}

DEPLOYMENT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "deployment.json",
    "type": "object",
    "required": ["targets", "sources"],
    "properties": {
        "targets": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["address", "source"],
                "properties": {
                    "name": {"type": "string"},
                    "address": {"type": "string", "pattern": ADDRESS_PATTERN},
                    "source": {"type": "string", "minLength": 1},
                },
            },
        },
        "sources": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["abi"],
                "properties": {"abi": {"type": "array"}},
            },
        },
    },
}

SYNTHS_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "synths.json",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["name"],
        "properties": {"name": {"type": "string", "minLength": 1}},
    },
}

OWNER_ACTIONS_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "owner-actions.json",
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "required": ["target", "action"],
        "properties": {
            "target": {"type": "string"},
            "action": {"type": "string"},
            "complete": {"type": "boolean"},
            "link": {"type": "string"},
        },
    },
}

SCHEMAS: Dict[str, Dict[str, Any]] = {
    "config": CONFIG_SCHEMA,
    "deployment": DEPLOYMENT_SCHEMA,
    "synths": SYNTHS_SCHEMA,
    "owner-actions": OWNER_ACTIONS_SCHEMA,
}


@lru_cache(maxsize=None)
def schema_validator(kind: str) -> Draft202012Validator:
    """Return a cached validator for one manifest kind."""
    if kind not in SCHEMAS:
        raise KeyError(f"Unknown manifest kind: {kind}")
    return Draft202012Validator(SCHEMAS[kind])


def validate_manifest(obj: Any, kind: str) -> List[str]:
    """Validate a loaded manifest.

    Returns:
        List of validation error messages (empty if valid)
    """
    return [
        f"{error.json_path}: {error.message}"
        for error in schema_validator(kind).iter_errors(obj)
    ]
