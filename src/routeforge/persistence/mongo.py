"""MongoDB document store (motor).

Filters, sorting, paging, distinct and raw updates execute natively; the
query dialect emitted by the translator is MongoDB's own. Validation and
pre-save functions still run in-process through BaseStore.insert/update.

Requires the `mongo` extra (motor).
"""

import logging
from typing import Any

from routeforge.persistence.base import BaseStore
from routeforge.persistence.documents import EARTH_RADIUS_METERS, near_clause, point_coordinates
from routeforge.query import QuerySpec
from routeforge.schema.introspect import find_geo_field
from routeforge.schema.registry import SchemaRegistry
from routeforge.schema.types import ID_FIELD, RecordType

logger = logging.getLogger(__name__)


def _without_near(filter: dict[str, Any]) -> dict[str, Any]:
    """Rewrite $nearSphere for commands that reject it (count, distinct).

    A bounded proximity becomes $geoWithin/$centerSphere (radians); an
    unbounded one only requires the field to exist.
    """
    near = near_clause(filter)
    if near is None:
        return filter
    field, operand = near
    result = dict(filter)
    origin = point_coordinates(operand.get("$geometry", operand))
    max_distance = operand.get("$maxDistance")
    if origin is None or max_distance is None:
        result[field] = {"$exists": True}
    else:
        result[field] = {
            "$geoWithin": {
                "$centerSphere": [list(origin), max_distance / EARTH_RADIUS_METERS]
            }
        }
    return result


class MongoStore(BaseStore):
    """Document store on a MongoDB database, one collection per record type."""

    def __init__(
        self,
        mongodb_url: str,
        registry: SchemaRegistry | None = None,
        database_name: str = "routeforge",
    ):
        super().__init__(registry)
        self._mongodb_url = mongodb_url
        self._database_name = database_name
        self._client = None
        self._db = None

    async def connect(self) -> None:
        """Connect to MongoDB and create geospatial indexes."""
        try:
            from motor.motor_asyncio import AsyncIOMotorClient
        except ImportError:
            raise ImportError(
                "motor package is required for MongoDB. Install with: pip install routeforge[mongo]"
            ) from None

        self._client = AsyncIOMotorClient(self._mongodb_url, tz_aware=True)
        self._db = self._client.get_default_database(self._database_name)
        logger.info("Connected to MongoDB database: %s", self._db.name)

        for record_type in self.registry:
            geo_field = find_geo_field(record_type)
            if geo_field:
                await self._db[record_type.name].create_index([(geo_field, "2dsphere")])
                logger.debug("Ensured 2dsphere index on %s.%s", record_type.name, geo_field)

    async def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    def _collection(self, type_name: str):
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db[type_name]

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    async def _load_all(self, type_name: str) -> list[dict[str, Any]]:
        return await self._collection(type_name).find({}).to_list(length=None)

    async def _load(self, type_name: str, id: Any) -> dict[str, Any] | None:
        return await self._collection(type_name).find_one({ID_FIELD: str(id)})

    async def _write(self, type_name: str, doc: dict[str, Any]) -> None:
        await self._collection(type_name).replace_one({ID_FIELD: doc[ID_FIELD]}, doc, upsert=True)

    async def _delete(self, type_name: str, id: Any) -> None:
        await self._collection(type_name).delete_one({ID_FIELD: str(id)})

    # ------------------------------------------------------------------
    # Native queries
    # ------------------------------------------------------------------

    async def find(self, record_type: RecordType, spec: QuerySpec) -> list[dict[str, Any]]:
        cursor = self._collection(record_type.name).find(spec.filter)
        if spec.sort:
            cursor = cursor.sort(spec.sort)
        if spec.skip:
            cursor = cursor.skip(spec.skip)
        if spec.limit:
            cursor = cursor.limit(spec.limit)
        docs = await cursor.to_list(length=None)
        if spec.populate:
            docs = await self.populate(record_type, docs, spec.populate)
        return docs

    async def count(self, record_type: RecordType, filter: dict[str, Any]) -> int:
        return await self._collection(record_type.name).count_documents(_without_near(filter))

    async def distinct(
        self, record_type: RecordType, field: str, filter: dict[str, Any]
    ) -> list[Any]:
        return await self._collection(record_type.name).distinct(field, _without_near(filter))

    async def find_by_id_and_update(
        self, type_name: str, id: Any, update: dict[str, Any]
    ) -> dict[str, Any] | None:
        from pymongo import ReturnDocument

        if not any(k.startswith("$") for k in update):
            update = {"$set": update}
        return await self._collection(type_name).find_one_and_update(
            {ID_FIELD: str(id)}, update, return_document=ReturnDocument.AFTER
        )
