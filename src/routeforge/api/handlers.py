"""Endpoint handlers for one record type.

Each endpoint takes the request and returns a response; every core error
is converted here, so a handle behaves the same whether it is mounted by
RestApi or bound to a route by hand:

    app.add_api_route("/legacy/{id}", api["Excluded"].read, methods=["GET"])

Per request: parse parameters, run the store operation, run the hook for
the phase, respond. Relationship maintenance after create/delete is spawned
as background tasks and never delays or fails the response.
"""

import asyncio
import copy
import functools
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from routeforge.errors import (
    AbortError,
    ClientInputError,
    NotFoundError,
    RelationshipMaintenanceError,
    RouteforgeError,
)
from routeforge.hooks import HookContext, HookDispatcher, Phase, compute_changes
from routeforge.persistence.adapter import DocumentStore
from routeforge.query import parse_populate, translate_query
from routeforge.relations import RelationshipDescriptor
from routeforge.schema.introspect import SchemaIntrospection
from routeforge.schema.types import ID_FIELD, INTERNAL_FIELDS

logger = logging.getLogger(__name__)

Endpoint = Callable[[Request], Awaitable[Response]]


def responds(fn: Callable[..., Awaitable[Response]]) -> Callable[..., Awaitable[Response]]:
    """Convert RouteforgeError raised by an endpoint into its response."""

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Response:
        try:
            return await fn(*args, **kwargs)
        except RouteforgeError as e:
            return e.to_response()

    return wrapper


def json_response(content: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def query_params(request: Request) -> dict[str, str | list[str]]:
    """Flat query mapping; repeated keys collect into a list."""
    params: dict[str, str | list[str]] = {}
    for key, value in request.query_params.multi_items():
        if key in params:
            existing = params[key]
            params[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value
    return params


async def read_body(request: Request) -> dict[str, Any]:
    """Parse the JSON body; an empty body is an empty object.

    Raises:
        ClientInputError: Malformed JSON or a non-object body
    """
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ClientInputError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ClientInputError("Request body must be a JSON object")
    return body


def path_id(request: Request, name: str = "id") -> str:
    """Identifier path parameter.

    Raises:
        NotFoundError: The identifier is missing or empty
    """
    value = request.path_params.get(name)
    if not value:
        raise NotFoundError()
    return str(value)


def merge_body(record: dict[str, Any], body: dict[str, Any]) -> None:
    """Shallow merge; every body key except identity/version overwrites."""
    for key, value in body.items():
        if key in INTERNAL_FIELDS:
            continue
        record[key] = value


class ResourceHandlers:
    """Search, create, read, update, delete, blank and method endpoints.

    Attributes:
        introspection: Schema view of the record type served
        store: Document store
        dispatcher: Hook dispatcher shared across the API
        relationships: Descriptors this type owns; empty unless relate is on
        tasks: Shared set holding in-flight relationship updates
        subdocuments: Sub-document handlers keyed by array field name
    """

    def __init__(
        self,
        introspection: SchemaIntrospection,
        store: DocumentStore,
        dispatcher: HookDispatcher,
        relationships: tuple[RelationshipDescriptor, ...] = (),
        tasks: set[asyncio.Task] | None = None,
    ):
        from routeforge.api.subdocuments import SubdocumentHandlers

        self.introspection = introspection
        self.store = store
        self.dispatcher = dispatcher
        self.relationships = relationships
        self.tasks = tasks if tasks is not None else set()
        self.subdocuments = {
            name: SubdocumentHandlers(self, name) for name in introspection.subdocument_fields
        }
        self._method_endpoints: dict[str, Endpoint] = {}

    @property
    def record_type(self):
        return self.introspection.record_type

    @property
    def name(self) -> str:
        return self.introspection.name

    def __repr__(self) -> str:
        return f"ResourceHandlers({self.name!r})"

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def run_hook(
        self,
        phase: Phase,
        record: Any,
        request: Request,
        original: dict[str, Any] | None = None,
    ) -> tuple[HookContext, Response | None]:
        """Dispatch the hook for phase.

        Returns:
            The context (record possibly updated by the hook) and, when the
            hook aborted or supplied its own response, the response to send
        """
        context = HookContext(
            record_type=self.name,
            phase=phase,
            record=record,
            request=request,
            original=original,
            changes=compute_changes(record, original) if original is not None else None,
        )
        result = await self.dispatcher.dispatch(context)
        if result is None:
            return context, None
        if result.aborted:
            return context, AbortError(result.abort).to_response()
        return context, result.response

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    @responds
    async def search(self, request: Request) -> Response:
        spec = translate_query(query_params(request), self.introspection)
        if spec.count:
            result: list[Any] = [await self.store.count(self.record_type, spec.filter)]
        elif spec.distinct:
            result = await self.store.distinct(self.record_type, spec.distinct, spec.filter)
        else:
            result = await self.store.find(self.record_type, spec)

        context, response = await self.run_hook(Phase.SEARCH, result, request)
        if response is not None:
            return response
        return json_response(context.record)

    @responds
    async def create(self, request: Request) -> Response:
        record = self.introspection.construct(await read_body(request))

        context, response = await self.run_hook(Phase.CREATE, record, request)
        if response is not None:
            return response

        saved = await self.store.insert(self.record_type, context.record)
        self.relate(saved, link=True)
        return json_response(saved, status_code=201)

    @responds
    async def read(self, request: Request) -> Response:
        id = path_id(request)
        populate = parse_populate(request.query_params.get("__populate", ""))
        record = await self.store.get(self.record_type, id, populate or None)
        if record is None:
            raise NotFoundError()

        context, response = await self.run_hook(Phase.READ, record, request)
        if response is not None:
            return response
        return json_response(context.record)

    @responds
    async def update(self, request: Request) -> Response:
        id = path_id(request)
        record = await self.store.get(self.record_type, id)
        if record is None:
            raise NotFoundError()
        body = await read_body(request)

        original = copy.deepcopy(record)
        merge_body(record, body)

        context, response = await self.run_hook(Phase.UPDATE, record, request, original)
        if response is not None:
            return response

        merged = context.record
        removed = [name for name in original if name not in merged]
        updated = await self.store.update(
            self.record_type, id, compute_changes(merged, original), removed
        )
        if updated is None:
            raise NotFoundError()
        return Response(status_code=204)

    @responds
    async def delete(self, request: Request) -> Response:
        id = path_id(request)
        record = await self.store.get(self.record_type, id)
        if record is None:
            raise NotFoundError()

        _, response = await self.run_hook(Phase.DELETE, record, request)
        if response is not None:
            return response

        removed = await self.store.remove(self.record_type, id)
        if removed is None:
            raise NotFoundError()
        self.relate(removed, link=False)
        return Response(status_code=204)

    @responds
    async def blank(self, request: Request) -> Response:
        return json_response(self.introspection.blank())

    def method_endpoint(self, method_name: str) -> Endpoint:
        """Endpoint invoking an instance method on the addressed record.

        The method receives (record, query params, body). Raising
        AbortError responds 400 with its payload; any other exception is
        logged and responds 400 with its name and message.
        """
        if method_name in self._method_endpoints:
            return self._method_endpoints[method_name]

        fn = self.record_type.methods[method_name]

        @responds
        async def invoke(request: Request) -> Response:
            id = path_id(request)
            record = await self.store.get(self.record_type, id)
            if record is None:
                raise NotFoundError()
            body = await read_body(request)

            try:
                result = fn(record, query_params(request), body)
                if inspect.isawaitable(result):
                    result = await result
            except RouteforgeError:
                raise
            except Exception as e:
                logger.error(
                    "Method %s.%s failed: %s", self.name, method_name, e, exc_info=True
                )
                raise AbortError({"name": type(e).__name__, "message": str(e)}) from e
            return json_response(result)

        invoke.__name__ = f"{self.name}_{method_name}"
        self._method_endpoints[method_name] = invoke
        return invoke

    # ------------------------------------------------------------------
    # Relationship fan-out
    # ------------------------------------------------------------------

    def relate(self, record: dict[str, Any], *, link: bool) -> None:
        """Spawn one inverse-side update per referenced identifier.

        Updates run concurrently in the background; failures are logged.
        """
        record_id = record.get(ID_FIELD)
        for descriptor in self.relationships:
            update = (
                descriptor.link_update(record_id) if link else descriptor.unlink_update(record_id)
            )
            for related_id in descriptor.referenced_ids(record):
                task = asyncio.create_task(
                    self._apply_relationship(descriptor, related_id, update)
                )
                self.tasks.add(task)
                task.add_done_callback(self.tasks.discard)

    async def _apply_relationship(
        self, descriptor: RelationshipDescriptor, related_id: Any, update: dict[str, Any]
    ) -> None:
        try:
            result = await self.store.find_by_id_and_update(
                descriptor.related_type, related_id, update
            )
        except Exception as e:
            error = RelationshipMaintenanceError(
                descriptor.related_type, descriptor.related_field, related_id, e
            )
            logger.warning("%s", error, exc_info=True)
            return
        if result is None:
            logger.warning(
                "Relationship target %s %r not found; %s not updated",
                descriptor.related_type,
                related_id,
                descriptor.related_field,
            )
        else:
            logger.debug(
                "Related %s.%s on %r", descriptor.related_type, descriptor.related_field, related_id
            )
