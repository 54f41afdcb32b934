"""FastAPI application factory.

    uvicorn routeforge.api.app:create_app --factory

Startup: import plugin modules (hooks, schema functions), load the YAML
record types, create the store and mount the generated API. The store is
connected and closed in the lifespan; in-flight relationship updates are
drained before it closes.
"""

import importlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routeforge.api.builder import RestApi
from routeforge.config import AppSettings
from routeforge.persistence import DocumentStore, create_store
from routeforge.schema.loader import load_schemas
from routeforge.schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)


def load_plugins(modules: list[str]) -> None:
    """Import plugin modules so their @hook / @schema_function decorators run."""
    for module in modules:
        importlib.import_module(module)
        logger.info("Loaded plugin %s", module)


def create_app(
    settings: AppSettings | None = None,
    *,
    registry: SchemaRegistry | None = None,
    store: DocumentStore | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Process settings; read from the environment when omitted
        registry: Record types; loaded from settings.schema_path when omitted
        store: Document store; created from settings.database when omitted
    """
    settings = settings or AppSettings.from_env()
    load_plugins(settings.plugins)

    if registry is None:
        registry = load_schemas(settings.schema_path)
        logger.info(
            "Loaded %d record types from %s: %s",
            len(registry),
            settings.schema_path,
            ", ".join(registry.list_types()),
        )
    if store is None:
        store = create_store(settings.database, registry)

    api = RestApi(registry, store, settings.api)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Connect the store on startup, drain and close on shutdown."""
        await store.connect()
        try:
            yield
        finally:
            await api.drain()
            await store.close()

    app = FastAPI(title="routeforge API", lifespan=lifespan)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    api.mount(app)
    app.state.api = api
    app.state.store = store
    return app
