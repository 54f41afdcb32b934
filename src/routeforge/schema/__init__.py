"""Record-type schemas: description, registry, loading and introspection."""

from routeforge.schema.introspect import SchemaIntrospection, find_geo_field, introspect
from routeforge.schema.loader import SchemaLoader, load_schemas
from routeforge.schema.registry import SchemaFunctions, SchemaRegistry, schema_function
from routeforge.schema.types import (
    ID_FIELD,
    INTERNAL_FIELDS,
    VERSION_FIELD,
    CastError,
    FieldDefinition,
    FieldValidator,
    RecordType,
    ValidationRules,
    new_id,
)
from routeforge.schema.validation import prepare_document

__all__ = [
    "CastError",
    "FieldDefinition",
    "FieldValidator",
    "ID_FIELD",
    "INTERNAL_FIELDS",
    "RecordType",
    "SchemaFunctions",
    "SchemaIntrospection",
    "SchemaLoader",
    "SchemaRegistry",
    "VERSION_FIELD",
    "ValidationRules",
    "find_geo_field",
    "introspect",
    "load_schemas",
    "new_id",
    "prepare_document",
    "schema_function",
]
