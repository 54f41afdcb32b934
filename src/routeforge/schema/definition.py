"""JSON Schema validation for record-type YAML files.

Usage:
    from routeforge.schema.definition import validate_schema_dir

    issues = validate_schema_dir(Path("schemas"))
    for issue in issues:
        print(issue)

Only files with a top-level `record` key are record types; `api.yaml` and
other YAML files in the directory are skipped, as the loader skips them.
Function names (`methods`, `preSave`, `validate[].fn`) are not resolved
here; that happens when the schemas are loaded.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as SchemaError

from routeforge.schema.types import FIELD_TYPES

logger = logging.getLogger(__name__)

_NAME_PATTERN = "^[A-Za-z_][A-Za-z0-9_]*$"

RECORD_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "routeforge record type",
    "type": "object",
    "required": ["record"],
    "additionalProperties": False,
    "properties": {
        "record": {"type": "string", "pattern": _NAME_PATTERN},
        "pluralName": {"type": "string", "minLength": 1},
        "fields": {"type": "array", "items": {"$ref": "#/$defs/field"}},
        "indexes": {
            "type": "array",
            "items": {
                "type": "object",
                "minProperties": 1,
                "additionalProperties": {"type": ["string", "integer", "boolean"]},
            },
        },
        "methods": {"$ref": "#/$defs/names"},
        "preSave": {"$ref": "#/$defs/names"},
    },
    "$defs": {
        "names": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "constraints": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "required": {"type": "boolean"},
                "enum": {"type": "array"},
                "min": {"type": "number"},
                "max": {"type": "number"},
                "minLength": {"type": "integer", "minimum": 0},
                "maxLength": {"type": "integer", "minimum": 0},
                "pattern": {"type": "string"},
            },
        },
        "field": {
            "type": "object",
            "required": ["name"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string", "pattern": _NAME_PATTERN},
                "type": {"enum": list(FIELD_TYPES)},
                "default": {},
                "auto": {"enum": ["now", "uuid"]},
                "ref": {"type": "string", "pattern": _NAME_PATTERN},
                "array": {"type": "boolean"},
                "index": {"type": ["boolean", "string"]},
                "required": {"type": "boolean"},
                "enum": {"type": "array"},
                "min": {"type": "number"},
                "max": {"type": "number"},
                "minLength": {"type": "integer", "minimum": 0},
                "maxLength": {"type": "integer", "minimum": 0},
                "pattern": {"type": "string"},
                "validation": {"$ref": "#/$defs/constraints"},
                "validate": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["fn"],
                        "additionalProperties": False,
                        "properties": {
                            "fn": {"type": "string", "minLength": 1},
                            "message": {"type": "string"},
                        },
                    },
                },
                "schemaName": {"type": "string", "pattern": _NAME_PATTERN},
                "fields": {"type": "array", "items": {"$ref": "#/$defs/field"}},
                "preSave": {"$ref": "#/$defs/names"},
            },
        },
    },
}


@dataclass
class SchemaIssue:
    """A single validation finding for a record-type YAML file."""

    file: Path
    message: str
    path: str = ""
    severity: str = "error"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{loc}: {self.message}"


def _json_path(error: SchemaError) -> str:
    """fields/0/name style path of a jsonschema error."""
    parts = []
    for p in error.absolute_path:
        parts.append(f"[{p}]" if isinstance(p, int) else str(p))
    return "/".join(parts).replace("/[", "[")


def validate_definition(data: Any, file: Path) -> list[SchemaIssue]:
    """Validate one parsed record-type definition."""
    validator = Draft202012Validator(RECORD_SCHEMA)
    return [
        SchemaIssue(file=file, message=error.message, path=_json_path(error))
        for error in sorted(validator.iter_errors(data), key=lambda e: list(map(str, e.path)))
    ]


def validate_yaml_file(yaml_path: Path) -> list[SchemaIssue]:
    """Parse and validate one YAML file; files without `record` are skipped."""
    try:
        with yaml_path.open() as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        return [SchemaIssue(file=yaml_path, message=f"YAML parse error: {exc}")]

    if raw is None:
        return [
            SchemaIssue(
                file=yaml_path,
                message="File is empty or contains only whitespace",
                severity="warning",
            )
        ]
    if not isinstance(raw, dict) or "record" not in raw:
        logger.debug("Skipping %s: not a record-type definition", yaml_path)
        return []
    return validate_definition(raw, yaml_path)


def validate_schema_dir(schema_path: Path) -> list[SchemaIssue]:
    """Validate every *.yaml / *.yml file under schema_path.

    Also reports record names declared by more than one file.
    """
    issues: list[SchemaIssue] = []
    seen: dict[str, Path] = {}
    files = sorted(
        [*schema_path.glob("*.yaml"), *schema_path.glob("*.yml")], key=lambda p: p.name
    )
    for yaml_file in files:
        file_issues = validate_yaml_file(yaml_file)
        issues.extend(file_issues)
        if any(i.severity == "error" for i in file_issues):
            continue
        with yaml_file.open() as fh:
            raw = yaml.safe_load(fh)
        if isinstance(raw, dict) and "record" in raw:
            name = raw["record"]
            if name in seen:
                issues.append(
                    SchemaIssue(
                        file=yaml_file,
                        message=f"Record type '{name}' is already defined in {seen[name].name}",
                        path="record",
                    )
                )
            else:
                seen[name] = yaml_file
    return issues
