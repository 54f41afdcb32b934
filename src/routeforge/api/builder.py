"""The constructed API object."""

import asyncio
import logging
from collections.abc import Iterator
from typing import Any

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute

from routeforge.api.handlers import ResourceHandlers
from routeforge.api.routes import CaseInsensitiveRoute, RouteEntry, build_route_table, route_name
from routeforge.config import ApiOptions
from routeforge.errors import ConfigurationError
from routeforge.hooks import HookDispatcher, HookFn, HookSet, Phase
from routeforge.persistence.adapter import DocumentStore
from routeforge.relations import RelationshipDescriptor, resolve_relationships
from routeforge.schema.introspect import introspect
from routeforge.schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)


class RestApi:
    """REST surface generated from a schema registry.

    Introspection, relationship resolution and the route table are
    computed once, here. Hooks stay mutable through register_hook() and
    are looked up on every request.

    Attributes:
        registry: Record types served
        store: Document store
        options: API options
        hooks: Hook bindings consulted per request
        relationships: Descriptors keyed by owning type name
        handles: Endpoint handlers keyed by route segment, excluded types
            included
        routes: The immutable route table
        router: FastAPI router carrying the routes
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        store: DocumentStore,
        options: ApiOptions | None = None,
    ):
        self.registry = registry
        self.store = store
        self.options = options or ApiOptions()
        self.hooks = HookSet(self.options.hooks)
        self._dispatcher = HookDispatcher(self.hooks)
        self._tasks: set[asyncio.Task] = set()

        self.relationships: dict[str, tuple[RelationshipDescriptor, ...]] = {}
        self.handles: dict[str, ResourceHandlers] = {}
        self._by_type: dict[str, ResourceHandlers] = {}

        for record_type in registry:
            if self.options.relate:
                self.relationships[record_type.name] = tuple(
                    resolve_relationships(record_type, registry)
                )
            segment = route_name(record_type, self.options)
            if segment in self.handles:
                raise ConfigurationError(
                    f"{record_type.name} and {self.handles[segment].name} "
                    f"both map to route '{segment}'"
                )
            handle = ResourceHandlers(
                introspect(record_type),
                store,
                self._dispatcher,
                relationships=self.relationships.get(record_type.name, ()),
                tasks=self._tasks,
            )
            self.handles[segment] = handle
            self._by_type[record_type.name] = handle

        self.routes: tuple[RouteEntry, ...] = build_route_table(self.handles, self.options)
        self.router = self._build_router()

    def _build_router(self) -> APIRouter:
        route_class = APIRoute if self.options.case_sensitive else CaseInsensitiveRoute
        router = APIRouter(route_class=route_class)
        for entry in self.routes:
            router.add_api_route(
                entry.path,
                entry.handler,
                methods=[entry.method],
                name=entry.name,
            )
            logger.debug("%-7s%s", entry.method, entry.path)
        return router

    def __getitem__(self, name: str) -> ResourceHandlers:
        """Handle by route segment ("posts") or record type name ("Post")."""
        if name in self.handles:
            return self.handles[name]
        if name in self._by_type:
            return self._by_type[name]
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        return name in self.handles or name in self._by_type

    def __iter__(self) -> Iterator[str]:
        return iter(self.handles)

    def register_hook(self, record_type: str, phase: Phase | str, hook_fn: HookFn | str) -> None:
        """Bind or replace a hook; applies to subsequent requests."""
        self.hooks.register(record_type, phase, hook_fn)

    def mount(self, app: FastAPI, **kwargs: Any) -> None:
        """Include the router in an application and apply routing strictness."""
        app.include_router(self.router, **kwargs)
        app.router.redirect_slashes = not self.options.strict

    @property
    def pending(self) -> int:
        """Relationship updates still in flight."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for in-flight relationship updates to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def create_api(
    registry: SchemaRegistry,
    store: DocumentStore,
    options: ApiOptions | dict[str, Any] | None = None,
) -> RestApi:
    """Build a RestApi; options may be given as a dict of option names."""
    if isinstance(options, dict):
        options = ApiOptions.from_dict(options)
    return RestApi(registry, store, options)
