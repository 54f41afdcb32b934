"""Shared store behaviour.

BaseStore implements every DocumentStore operation on top of four storage
primitives, so a backend only has to load, write and delete whole
documents. Backends that can execute queries natively override find,
count, distinct and find_by_id_and_update.
"""

import asyncio
import copy
import logging
import weakref
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from routeforge.errors import ValidationError
from routeforge.persistence.documents import (
    apply_update,
    distinct_values,
    matches,
    near_clause,
    sort_by_distance,
    sort_documents,
)
from routeforge.query import QuerySpec
from routeforge.schema.registry import SchemaRegistry
from routeforge.schema.types import ID_FIELD, INTERNAL_FIELDS, VERSION_FIELD, RecordType, new_id
from routeforge.schema.validation import prepare_document

logger = logging.getLogger(__name__)


class BaseStore(ABC):
    """Document store over load/write/delete primitives.

    Args:
        registry: Record types, used to resolve populated references
    """

    def __init__(self, registry: SchemaRegistry | None = None):
        self.registry = registry or SchemaRegistry()
        # Entries go away once no coroutine holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _load_all(self, type_name: str) -> list[dict[str, Any]]:
        """Every document of a type, as independent copies."""

    @abstractmethod
    async def _load(self, type_name: str, id: Any) -> dict[str, Any] | None:
        """One document by identifier, as an independent copy."""

    @abstractmethod
    async def _write(self, type_name: str, doc: dict[str, Any]) -> None:
        """Insert or replace a document by its identifier."""

    @abstractmethod
    async def _delete(self, type_name: str, id: Any) -> None:
        """Delete a document by identifier; missing documents are ignored."""

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _matching(self, record_type: RecordType, filter: dict[str, Any]) -> list[dict[str, Any]]:
        return [d for d in await self._load_all(record_type.name) if matches(d, filter)]

    async def find(self, record_type: RecordType, spec: QuerySpec) -> list[dict[str, Any]]:
        docs = await self._matching(record_type, spec.filter)

        near = near_clause(spec.filter)
        if near is not None:
            docs = sort_by_distance(docs, *near)
        if spec.sort:
            docs = sort_documents(docs, spec.sort)
        if spec.skip:
            docs = docs[spec.skip:]
        if spec.limit:
            docs = docs[: spec.limit]
        if spec.populate:
            docs = await self.populate(record_type, docs, spec.populate)
        return docs

    async def count(self, record_type: RecordType, filter: dict[str, Any]) -> int:
        return len(await self._matching(record_type, filter))

    async def distinct(
        self, record_type: RecordType, field: str, filter: dict[str, Any]
    ) -> list[Any]:
        return distinct_values(await self._matching(record_type, filter), field)

    async def get(
        self, record_type: RecordType, id: str, populate: list[str] | None = None
    ) -> dict[str, Any] | None:
        doc = await self._load(record_type.name, id)
        if doc is None:
            return None
        if populate:
            doc = (await self.populate(record_type, [doc], populate))[0]
        return doc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, record_type: RecordType, data: dict[str, Any]) -> dict[str, Any]:
        """Validate and insert a new document.

        Raises:
            ValidationError: The document failed validation or a pre-save
                function, or its identifier is already taken
        """
        doc = await prepare_document(record_type, data, is_new=True)
        doc[ID_FIELD] = str(doc[ID_FIELD]) if doc.get(ID_FIELD) else new_id()
        if await self._load(record_type.name, doc[ID_FIELD]) is not None:
            raise ValidationError(
                f"{record_type.name} with {ID_FIELD} '{doc[ID_FIELD]}' already exists",
                name="DuplicateKey",
            )
        doc[VERSION_FIELD] = 0
        await self._write(record_type.name, doc)
        return copy.deepcopy(doc)

    async def update(
        self,
        record_type: RecordType,
        id: str,
        changes: dict[str, Any],
        removed: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        """Merge changes into the stored document, validate, write the difference.

        The merge is applied to a fresh copy of the stored document and only
        the fields that end up different are written, with the version
        incremented, so concurrent writes to other fields are preserved.

        Args:
            record_type: Type of the document
            id: Identifier of the document
            changes: Fields to set
            removed: Fields to drop

        Returns:
            The updated document, or None if it does not exist

        Raises:
            ValidationError: The merged document failed validation or a
                pre-save function
        """
        current = await self._load(record_type.name, id)
        if current is None:
            return None

        merged = {**copy.deepcopy(current), **changes}
        for name in removed:
            merged.pop(name, None)
        doc = await prepare_document(record_type, merged, is_new=False)

        update: dict[str, Any] = {"$inc": {VERSION_FIELD: 1}}
        changed = {
            k: v for k, v in doc.items()
            if k not in INTERNAL_FIELDS and (k not in current or current[k] != v)
        }
        if changed:
            update["$set"] = changed
        dropped = {k: "" for k in current if k not in doc and k not in INTERNAL_FIELDS}
        if dropped:
            update["$unset"] = dropped
        return await self.find_by_id_and_update(record_type.name, id, update)

    async def remove(self, record_type: RecordType, id: str) -> dict[str, Any] | None:
        """Delete by identifier, returning the removed document."""
        doc = await self._load(record_type.name, id)
        if doc is not None:
            await self._delete(record_type.name, id)
        return doc

    async def find_by_id_and_update(
        self, type_name: str, id: Any, update: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Apply a raw update document; no validation, no pre-save functions.

        Load, apply and write run under a per-document lock so concurrent
        updates of one document are applied one after another.
        """
        async with self._document_lock(type_name, id):
            doc = await self._load(type_name, id)
            if doc is None:
                return None
            apply_update(doc, update)
            await self._write(type_name, doc)
        return doc

    def _document_lock(self, type_name: str, id: Any) -> asyncio.Lock:
        key = (type_name, str(id))
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    async def populate(
        self,
        record_type: RecordType,
        records: list[dict[str, Any]],
        fields: list[str],
    ) -> list[dict[str, Any]]:
        """Replace reference identifiers with the referenced documents.

        Unknown and non-reference fields are skipped. A dangling single
        reference becomes None; dangling array entries are dropped.
        """
        for name in fields:
            definition = record_type.get_field(name)
            if definition is None or not definition.ref:
                logger.debug("Cannot populate %s.%s; not a reference", record_type.name, name)
                continue

            cache: dict[Any, dict[str, Any] | None] = {}

            async def fetch(id: Any) -> dict[str, Any] | None:
                if isinstance(id, dict):
                    return id
                if id not in cache:
                    cache[id] = await self._load(definition.ref, id)
                return cache[id]

            for record in records:
                value = record.get(name)
                if value is None:
                    continue
                if definition.array and isinstance(value, list):
                    found = [await fetch(v) for v in value]
                    record[name] = [d for d in found if d is not None]
                else:
                    record[name] = await fetch(value)
        return records
