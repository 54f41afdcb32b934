"""Load record-type definitions from YAML files.

One record type per file:

    record: Post
    pluralName: posts          # optional
    fields:
      - name: title
        type: string
        required: true
      - name: author
        ref: User
      - name: comments
        array: true
        fields:                # inline sub-document schema
          - name: message
            required: true
        preSave: [ensureLongComment]
      - name: createdAt
        type: date
        auto: now
    indexes:
      - location: 2dsphere
    methods: [publish]
    preSave: [touchUpdatedAt]
"""

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from routeforge.schema.registry import SchemaFunctions, SchemaRegistry
from routeforge.schema.types import (
    FieldDefinition,
    FieldValidator,
    RecordType,
    ValidationRules,
    new_id,
)


def _now() -> datetime:
    return datetime.now(UTC)


AUTO_DEFAULTS = {
    "now": _now,
    "uuid": new_id,
}


class SchemaLoader:
    """Loads record types from a directory of YAML files."""

    def __init__(self, schema_path: Path):
        self.schema_path = Path(schema_path)
        self.registry = SchemaRegistry()

    def load_all(self) -> SchemaRegistry:
        """Load every *.yaml / *.yml file, in sorted file-name order."""
        if not self.schema_path.exists():
            return self.registry

        files = sorted(
            [*self.schema_path.glob("*.yaml"), *self.schema_path.glob("*.yml")],
            key=lambda p: p.name,
        )
        for yaml_file in files:
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
            if data and "record" in data:
                self.registry.register(self.resolve_record(data))
        return self.registry

    def resolve_record(self, data: dict[str, Any]) -> RecordType:
        """Convert a record-type dict into a RecordType."""
        name = data["record"]
        fields = [self._resolve_field(name, f) for f in data.get("fields", [])]
        return RecordType(
            name=name,
            fields=fields,
            indexes=[dict(index) for index in data.get("indexes", [])],
            plural_name=data.get("pluralName"),
            methods={m: SchemaFunctions.get(m) for m in data.get("methods", [])},
            pre_save=[SchemaFunctions.get(fn) for fn in data.get("preSave", [])],
        )

    def _resolve_field(self, record_name: str, data: dict[str, Any]) -> FieldDefinition:
        """Convert a field dict into a FieldDefinition."""
        name = data["name"]

        # Constraints may be given inline or in a `validation:` block
        validation_data = {**data.get("validation", {})}
        for key in ("required", "enum", "min", "max", "minLength", "maxLength", "pattern"):
            if key in data:
                validation_data.setdefault(key, data[key])
        validation = ValidationRules(
            required=validation_data.get("required", False),
            enum=validation_data.get("enum"),
            min=validation_data.get("min"),
            max=validation_data.get("max"),
            min_length=validation_data.get("minLength"),
            max_length=validation_data.get("maxLength"),
            pattern=validation_data.get("pattern"),
        )

        validators = [
            FieldValidator(
                fn=SchemaFunctions.get(v["fn"]),
                message=v.get("message", "Validator failed"),
            )
            for v in data.get("validate", [])
        ]

        schema = None
        if "fields" in data:
            schema = self.resolve_record({
                "record": data.get("schemaName", self._embedded_name(name)),
                "fields": data["fields"],
                "preSave": data.get("preSave", []),
            })

        default = data.get("default")
        auto = data.get("auto")
        if auto is not None:
            if auto not in AUTO_DEFAULTS:
                raise ValueError(
                    f"{record_name}.{name}: unknown auto default '{auto}'. "
                    f"Expected one of: {', '.join(AUTO_DEFAULTS)}"
                )
            default = AUTO_DEFAULTS[auto]

        return FieldDefinition(
            name=name,
            type=data.get("type", "string"),
            default=default,
            ref=data.get("ref"),
            array=data.get("array", False),
            schema=schema,
            index=data.get("index"),
            validation=validation,
            validators=validators,
        )

    def _embedded_name(self, field_name: str) -> str:
        """comments -> Comment."""
        base = field_name[:-1] if field_name.endswith("s") and len(field_name) > 1 else field_name
        return base[:1].upper() + base[1:]


def load_schemas(schema_path: Path) -> SchemaRegistry:
    """Load all record types under a directory into a new registry."""
    return SchemaLoader(schema_path).load_all()
