"""Endpoint handlers for one sub-document array field.

Sub-documents live inside their parent: every write loads the parent,
changes the embedded array and writes the array back through the store's
update, so validation and pre-save functions (the sub-schema's included)
run on every change while other parent fields stay untouched.
Sub-documents have no hooks and no instance methods.
"""

from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import Response

from routeforge.api.handlers import json_response, merge_body, path_id, read_body, responds
from routeforge.errors import NotFoundError
from routeforge.schema.types import ID_FIELD

if TYPE_CHECKING:
    from routeforge.api.handlers import ResourceHandlers


class SubdocumentHandlers:
    """Search, create, read, update and delete within `parent.<field>`."""

    def __init__(self, parent: "ResourceHandlers", field: str):
        self.parent = parent
        self.field = field

    def __repr__(self) -> str:
        return f"SubdocumentHandlers({self.parent.name!r}, {self.field!r})"

    async def _load_parent(self, request: Request) -> dict[str, Any]:
        record = await self.parent.store.get(self.parent.record_type, path_id(request))
        if record is None:
            raise NotFoundError()
        if not isinstance(record.get(self.field), list):
            record[self.field] = []
        return record

    def _index(self, record: dict[str, Any], request: Request) -> int:
        sub_id = path_id(request, "sub_id")
        for i, item in enumerate(record[self.field]):
            if isinstance(item, dict) and str(item.get(ID_FIELD)) == sub_id:
                return i
        raise NotFoundError()

    async def _save(self, record: dict[str, Any]) -> dict[str, Any]:
        saved = await self.parent.store.update(
            self.parent.record_type, record[ID_FIELD], {self.field: record[self.field]}
        )
        if saved is None:
            raise NotFoundError()
        return saved

    @responds
    async def search(self, request: Request) -> Response:
        record = await self._load_parent(request)
        return json_response(record[self.field])

    @responds
    async def create(self, request: Request) -> Response:
        record = await self._load_parent(request)
        body = await read_body(request)
        body.pop(ID_FIELD, None)
        record[self.field].append(body)
        saved = await self._save(record)
        return json_response(saved[self.field][-1], status_code=201)

    @responds
    async def read(self, request: Request) -> Response:
        record = await self._load_parent(request)
        return json_response(record[self.field][self._index(record, request)])

    @responds
    async def update(self, request: Request) -> Response:
        record = await self._load_parent(request)
        index = self._index(record, request)
        body = await read_body(request)
        merge_body(record[self.field][index], body)
        await self._save(record)
        return Response(status_code=204)

    @responds
    async def delete(self, request: Request) -> Response:
        record = await self._load_parent(request)
        del record[self.field][self._index(record, request)]
        await self._save(record)
        return Response(status_code=204)
