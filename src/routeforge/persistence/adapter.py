"""DocumentStore protocol: the store collaborator every backend implements."""

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from routeforge.query import QuerySpec
from routeforge.schema.types import RecordType


@runtime_checkable
class DocumentStore(Protocol):
    """Interface all document stores must implement.

    Writes through insert/update run defaults, casting, validation and
    pre-save functions and raise ValidationError on rejection. update
    writes only the fields that differ from the stored document.
    find_by_id_and_update applies a raw update and bypasses all of that.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def find(self, record_type: RecordType, spec: QuerySpec) -> list[dict[str, Any]]: ...

    async def count(self, record_type: RecordType, filter: dict[str, Any]) -> int: ...

    async def distinct(
        self, record_type: RecordType, field: str, filter: dict[str, Any]
    ) -> list[Any]: ...

    async def get(
        self, record_type: RecordType, id: str, populate: list[str] | None = None
    ) -> dict[str, Any] | None: ...

    async def insert(self, record_type: RecordType, data: dict[str, Any]) -> dict[str, Any]: ...

    async def update(
        self,
        record_type: RecordType,
        id: str,
        changes: dict[str, Any],
        removed: Iterable[str] = (),
    ) -> dict[str, Any] | None: ...

    async def remove(self, record_type: RecordType, id: str) -> dict[str, Any] | None: ...

    async def find_by_id_and_update(
        self, type_name: str, id: Any, update: dict[str, Any]
    ) -> dict[str, Any] | None: ...

    async def populate(
        self,
        record_type: RecordType,
        records: list[dict[str, Any]],
        fields: list[str],
    ) -> list[dict[str, Any]]: ...
