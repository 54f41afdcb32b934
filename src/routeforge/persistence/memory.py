"""In-memory document store.

Default backend and the one the test-suite runs against. Documents are
deep-copied on the way in and out, so callers never share state with the
store.
"""

import copy
from typing import Any

from routeforge.persistence.base import BaseStore
from routeforge.schema.registry import SchemaRegistry
from routeforge.schema.types import ID_FIELD


class MemoryStore(BaseStore):
    """Process-local store keyed by record type name, then identifier."""

    def __init__(self, registry: SchemaRegistry | None = None):
        super().__init__(registry)
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    async def _load_all(self, type_name: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(d) for d in self._collections.get(type_name, {}).values()]

    async def _load(self, type_name: str, id: Any) -> dict[str, Any] | None:
        doc = self._collections.get(type_name, {}).get(str(id))
        return copy.deepcopy(doc) if doc is not None else None

    async def _write(self, type_name: str, doc: dict[str, Any]) -> None:
        self._collections.setdefault(type_name, {})[str(doc[ID_FIELD])] = copy.deepcopy(doc)

    async def _delete(self, type_name: str, id: Any) -> None:
        self._collections.get(type_name, {}).pop(str(id), None)

    def clear(self) -> None:
        """Drop every document. Primarily for testing."""
        self._collections.clear()
