"""Document stores."""

from routeforge.persistence.adapter import DocumentStore
from routeforge.persistence.base import BaseStore
from routeforge.persistence.config import DatabaseConfig, create_store
from routeforge.persistence.memory import MemoryStore

__all__ = [
    "BaseStore",
    "DatabaseConfig",
    "DocumentStore",
    "MemoryStore",
    "create_store",
]
