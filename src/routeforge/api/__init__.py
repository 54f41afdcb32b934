"""Generated REST surface: handlers, route table, API object and app factory."""

from routeforge.api.app import create_app
from routeforge.api.builder import RestApi, create_api
from routeforge.api.handlers import ResourceHandlers
from routeforge.api.routes import RouteEntry, build_route_table, pluralize, route_name
from routeforge.api.subdocuments import SubdocumentHandlers

__all__ = [
    "ResourceHandlers",
    "RestApi",
    "RouteEntry",
    "SubdocumentHandlers",
    "build_route_table",
    "create_api",
    "create_app",
    "pluralize",
    "route_name",
]
