"""routeforge: REST APIs derived from declarative record-type schemas."""

from routeforge.api import RestApi, create_api, create_app
from routeforge.config import ApiOptions, AppSettings
from routeforge.errors import (
    AbortError,
    ClientInputError,
    ConfigurationError,
    NotFoundError,
    RelationshipMaintenanceError,
    ValidationError,
)
from routeforge.hooks import HookContext, HookResult, Phase, hook
from routeforge.persistence import DatabaseConfig, MemoryStore, create_store
from routeforge.schema import (
    FieldDefinition,
    RecordType,
    SchemaRegistry,
    ValidationRules,
    load_schemas,
    schema_function,
)

__version__ = "0.1.0"

__all__ = [
    "AbortError",
    "ApiOptions",
    "AppSettings",
    "ClientInputError",
    "ConfigurationError",
    "DatabaseConfig",
    "FieldDefinition",
    "HookContext",
    "HookResult",
    "MemoryStore",
    "NotFoundError",
    "Phase",
    "RecordType",
    "RelationshipMaintenanceError",
    "RestApi",
    "SchemaRegistry",
    "ValidationError",
    "ValidationRules",
    "create_api",
    "create_app",
    "create_store",
    "hook",
    "load_schemas",
    "schema_function",
]
