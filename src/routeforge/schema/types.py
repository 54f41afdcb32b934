"""Explicit record-type descriptions.

A RecordType is built once (in Python or from YAML) and registered with a
SchemaRegistry. Everything downstream (introspection, relationship
resolution, routing, validation) reads these declared attributes; nothing
inspects model classes at runtime.
"""

import copy
import math
import re
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any


# (record, params, body) -> payload
MethodFn = Callable[[dict[str, Any], dict[str, Any], dict[str, Any]], Any]
# (document) -> None; raise ValidationError to reject the write
PreSaveFn = Callable[[dict[str, Any]], Awaitable[None] | None]

ID_FIELD = "_id"
VERSION_FIELD = "__v"
INTERNAL_FIELDS = (ID_FIELD, VERSION_FIELD)

GEO_INDEX_KINDS = ("2dsphere", "2d")


def new_id() -> str:
    """Generate a record identifier."""
    return uuid.uuid4().hex


class CastError(ValueError):
    """A value could not be converted to the field's declared type."""

    def __init__(self, kind: str, value: Any, path: str):
        super().__init__(f'Cast to {kind} failed for value "{value}" at path "{path}"')
        self.kind = kind
        self.value = value
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": "CastError",
            "kind": self.kind,
            "path": self.path,
            "value": self.value,
            "message": str(self),
        }


# =============================================================================
# Scalar casts
# =============================================================================


_INT_PATTERN = re.compile(r"^[+-]?\d+$")
_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


def _cast_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value).lower() if isinstance(value, bool) else str(value)
    raise TypeError


def _cast_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError
        return value
    if isinstance(value, str):
        text = value.strip()
        if _INT_PATTERN.match(text):
            return int(text)
        number = float(text)
        if not math.isfinite(number):
            raise ValueError
        return number
    raise TypeError


def _cast_integer(value: Any) -> int:
    number = _cast_number(value)
    if isinstance(number, float):
        if not number.is_integer():
            raise ValueError
        return int(number)
    return number


def _cast_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError


def _cast_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, bool):
        raise TypeError
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, UTC)
    if isinstance(value, str):
        text = value.strip()
        if _INT_PATTERN.match(text):
            return datetime.fromtimestamp(int(text) / 1000, UTC)
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise TypeError


def _cast_objectid(value: Any) -> str:
    if isinstance(value, bool):
        raise TypeError
    if isinstance(value, (str, int)):
        return str(value)
    if isinstance(value, dict) and ID_FIELD in value:
        # A populated reference written back as a whole document
        return str(value[ID_FIELD])
    raise TypeError


def _cast_mixed(value: Any) -> Any:
    return value


def _cast_geopoint(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        if value.get("type") != "Point":
            raise ValueError
        coordinates = value.get("coordinates")
    else:
        coordinates = value
    if not isinstance(coordinates, (list, tuple)) or len(coordinates) != 2:
        raise ValueError
    lon, lat = (float(_cast_number(c)) for c in coordinates)
    return {"type": "Point", "coordinates": [lon, lat]}


FIELD_TYPES: dict[str, Callable[[Any], Any]] = {
    "string": _cast_string,
    "number": _cast_number,
    "integer": _cast_integer,
    "boolean": _cast_boolean,
    "date": _cast_date,
    "objectid": _cast_objectid,
    "mixed": _cast_mixed,
    "geopoint": _cast_geopoint,
}


# =============================================================================
# Field and record descriptions
# =============================================================================


@dataclass
class ValidationRules:
    required: bool = False
    enum: list[Any] | None = None
    min: float | None = None
    max: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None


@dataclass
class FieldValidator:
    """Custom per-field check.

    Attributes:
        fn: Receives the cast value, returns False to reject it
        message: Reported as the error message (e.g. "InvalidType")
    """

    fn: Callable[[Any], bool]
    message: str = "Validator failed"


@dataclass
class FieldDefinition:
    """One declared field of a record type.

    Attributes:
        name: Field name as stored
        type: Semantic type, one of FIELD_TYPES
        default: Static value, or a zero-argument callable evaluated lazily
        ref: Name of the record type this field references
        array: Field holds a list of values
        schema: Nested record type; with array=True this is a sub-document
            collection
        index: True, or an index kind such as "2dsphere"
    """

    name: str
    type: str = "string"
    default: Any = None
    ref: str | None = None
    array: bool = False
    schema: "RecordType | None" = None
    index: bool | str | None = None
    validation: ValidationRules = field(default_factory=ValidationRules)
    validators: list[FieldValidator] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.schema is not None:
            self.type = "mixed"
        elif self.ref is not None and self.type == "string":
            self.type = "objectid"
        if self.type not in FIELD_TYPES:
            raise ValueError(
                f"Field '{self.name}' has unknown type '{self.type}'. "
                f"Expected one of: {', '.join(FIELD_TYPES)}"
            )

    @property
    def required(self) -> bool:
        return self.validation.required

    @property
    def is_subdocument(self) -> bool:
        """Embedded record(s) described by a nested schema."""
        return self.schema is not None

    @property
    def is_subdocument_array(self) -> bool:
        return self.schema is not None and self.array

    @property
    def has_default(self) -> bool:
        return self.default is not None or self.array

    def default_value(self) -> Any:
        """Produce the default, evaluating deferred defaults now."""
        if callable(self.default):
            return self.default()
        if self.default is None:
            return [] if self.array else None
        return copy.deepcopy(self.default)

    def cast(self, value: Any, path: str | None = None) -> Any:
        """Cast a value to this field's type (element-wise for arrays)."""
        path = path or self.name
        if value is None:
            return None
        if self.array:
            items = value if isinstance(value, list) else [value]
            return [self.cast_item(item, f"{path}.{i}") for i, item in enumerate(items)]
        return self.cast_item(value, path)

    def cast_item(self, value: Any, path: str | None = None) -> Any:
        """Cast a single (non-array) value."""
        path = path or self.name
        if value is None:
            return None
        if self.schema is not None:
            if not isinstance(value, dict):
                raise CastError("Embedded", value, path)
            return value
        try:
            return FIELD_TYPES[self.type](value)
        except (TypeError, ValueError, OverflowError):
            raise CastError(self.type, value, path) from None


@dataclass
class RecordType:
    """A named schema describing one kind of persisted record.

    Attributes:
        name: Record type name (e.g. "Post")
        fields: Declared fields in order
        indexes: Explicit index declarations, each a {field: kind} mapping
        plural_name: Overrides the derived plural route segment
        methods: Instance methods exposed as POST sub-routes
        pre_save: Functions run before every insert/save
    """

    name: str
    fields: list[FieldDefinition] = field(default_factory=list)
    indexes: list[dict[str, Any]] = field(default_factory=list)
    plural_name: str | None = None
    methods: dict[str, MethodFn] = field(default_factory=dict)
    pre_save: list[PreSaveFn] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for f in self.fields:
            if f.name in INTERNAL_FIELDS:
                raise ValueError(
                    f"Record type '{self.name}' declares reserved field '{f.name}'"
                )
            if f.name in seen:
                raise ValueError(
                    f"Record type '{self.name}' declares field '{f.name}' twice"
                )
            seen.add(f.name)

    def get_field(self, name: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def method(self, name: str | None = None) -> Callable[[MethodFn], MethodFn]:
        """Decorator exposing a function as an instance method.

        Usage:
            @post.method("publish")
            async def publish(record, params, body):
                ...
        """

        def decorator(fn: MethodFn) -> MethodFn:
            self.methods[name or fn.__name__] = fn
            return fn

        return decorator

    def before_save(self, fn: PreSaveFn) -> PreSaveFn:
        """Decorator adding a pre-save function."""
        self.pre_save.append(fn)
        return fn
