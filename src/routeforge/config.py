"""API options and process settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from routeforge.persistence.config import DatabaseConfig

logger = logging.getLogger(__name__)

API_CONFIG_FILE = "api.yaml"

_TRUE_STRINGS = ("1", "true", "yes", "on")


class ApiOptions(BaseModel):
    """Options for one generated API.

    Accepts snake_case or camelCase keys (`case_sensitive` / `caseSensitive`).

    Attributes:
        path: Mount prefix, normalized to start and end with "/"
        pluralize: Pluralize route segments ("post" -> "posts")
        lowercase: Lower-case route segments
        exclude: Record types that get a handle but no routes
        puts: Register PUT aliases for create and update
        relate: Maintain the inverse side of relationships on create/delete
        hooks: {record type: {phase: hook function or registered name}}
        case_sensitive: Match route paths case-sensitively
        strict: Treat "/posts" and "/posts/" as different paths
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra="forbid",
    )

    path: str = "/"
    pluralize: bool = False
    lowercase: bool = True
    exclude: list[str] = []
    puts: bool = False
    relate: bool = False
    hooks: dict[str, dict[str, Any]] = {}
    case_sensitive: bool = True
    strict: bool = True

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        value = value.strip() or "/"
        if not value.startswith("/"):
            value = "/" + value
        if not value.endswith("/"):
            value = value + "/"
        return value

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ApiOptions:
        return cls.model_validate(data or {})


def _env_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_STRINGS


def _env_list(value: str | None) -> list[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


@dataclass
class AppSettings:
    """Process configuration for the bundled application.

    Attributes:
        schema_path: Directory of YAML record-type definitions
        database: Store selection
        plugins: Modules imported at startup to register hooks and
            schema functions
        cors_origins: Allowed CORS origins; empty disables CORS
        api: Options for the generated API
        log_level: Root log level for `routeforge serve`
    """

    schema_path: Path = field(default_factory=lambda: Path("schemas"))
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    plugins: list[str] = field(default_factory=list)
    cors_origins: list[str] = field(default_factory=list)
    api: ApiOptions = field(default_factory=ApiOptions)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> AppSettings:
        """Create settings from environment variables.

        Resolution order for API options:
        1. `api.yaml` inside the schema directory, if present
        2. ROUTEFORGE_API_PATH / ROUTEFORGE_PLURALIZE / ROUTEFORGE_PUTS /
           ROUTEFORGE_RELATE override individual options
        """
        schema_path = Path(os.environ.get("ROUTEFORGE_SCHEMA_PATH", "schemas"))
        return cls(
            schema_path=schema_path,
            database=DatabaseConfig.from_env(),
            plugins=_env_list(os.environ.get("ROUTEFORGE_PLUGINS")),
            cors_origins=_env_list(os.environ.get("ROUTEFORGE_CORS_ORIGINS")),
            api=load_api_options(schema_path),
            log_level=os.environ.get("ROUTEFORGE_LOG_LEVEL", "INFO").upper(),
        )


def load_api_options(schema_path: Path) -> ApiOptions:
    """Read api.yaml from the schema directory and apply env overrides."""
    data: dict[str, Any] = {}
    config_file = Path(schema_path) / API_CONFIG_FILE
    if config_file.exists():
        with open(config_file) as f:
            data = yaml.safe_load(f) or {}
        logger.debug("Loaded API options from %s", config_file)

    overrides = {
        "ROUTEFORGE_API_PATH": ("path", str),
        "ROUTEFORGE_PLURALIZE": ("pluralize", _env_bool),
        "ROUTEFORGE_PUTS": ("puts", _env_bool),
        "ROUTEFORGE_RELATE": ("relate", _env_bool),
    }
    for env_var, (key, convert) in overrides.items():
        value = os.environ.get(env_var)
        if value is not None:
            data.pop(to_camel(key), None)
            data[key] = convert(value)

    return ApiOptions.from_dict(data)
