"""Store selection from a database URL."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from routeforge.persistence.base import BaseStore
    from routeforge.schema.registry import SchemaRegistry

MEMORY_URL = "memory://"


@dataclass
class DatabaseConfig:
    """Where records live, as a URL.

    memory:// keeps everything in process; sqlite:/// and postgresql://
    select the SQLAlchemy document store; mongodb:// (or mongodb+srv://)
    selects the motor store.
    """

    url: str = MEMORY_URL

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        """Read the URL from the environment.

        DATABASE_URL wins; otherwise ROUTEFORGE_DB_PATH names a SQLite file;
        otherwise records are kept in memory.
        """
        if url := os.environ.get("DATABASE_URL"):
            return cls(url=url)
        if db_path := os.environ.get("ROUTEFORGE_DB_PATH"):
            return cls(url=f"sqlite:///{db_path}")
        return cls()

    @property
    def scheme(self) -> str:
        """URL scheme without any "+driver" suffix."""
        return self.url.split(":", 1)[0].split("+", 1)[0].lower()

    @property
    def is_memory(self) -> bool:
        return self.scheme == "memory"

    @property
    def is_sqlite(self) -> bool:
        return self.scheme == "sqlite"

    @property
    def is_postgresql(self) -> bool:
        return self.scheme in ("postgresql", "postgres")

    @property
    def is_mongodb(self) -> bool:
        return self.scheme == "mongodb"

    @property
    def sqlalchemy_url(self) -> str:
        """The URL with a driver-less PostgreSQL scheme bound to psycopg 3."""
        for prefix in ("postgresql://", "postgres://"):
            if self.url.startswith(prefix):
                return "postgresql+psycopg://" + self.url[len(prefix):]
        return self.url


def create_store(config: DatabaseConfig, registry: SchemaRegistry | None = None) -> BaseStore:
    """Build the (unconnected) store the URL selects.

    Backends are imported lazily so the optional drivers are only needed
    when used.

    Raises:
        ValueError: The URL scheme names no known backend
    """
    if config.is_memory:
        from routeforge.persistence.memory import MemoryStore

        return MemoryStore(registry)

    if config.is_sqlite or config.is_postgresql:
        from routeforge.persistence.sql import SQLStore

        return SQLStore(config.sqlalchemy_url, registry)

    if config.is_mongodb:
        from routeforge.persistence.mongo import MongoStore

        return MongoStore(config.url, registry)

    raise ValueError(f"Unsupported database URL scheme '{config.scheme}' in {config.url}")
