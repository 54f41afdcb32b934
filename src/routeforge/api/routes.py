"""Route table construction.

Walks the registered record types once and derives one RouteEntry per
(method, path) pair. Per type, in this order:

    GET     prefix                      search
    POST    prefix                      create
    PUT     prefix                      create       (puts)
    GET     prefix/new                  blank
    GET     prefix/{id}                 read
    PUT     prefix/{id}                 update       (puts)
    POST    prefix/{id}                 update
    DELETE  prefix/{id}                 delete
    POST    prefix/{id}/<method>        instance method, per method
    GET     prefix/{id}/<field>         sub-document search, per field
    POST    prefix/{id}/<field>         sub-document create
    PUT     prefix/{id}/<field>         sub-document create  (puts)
    GET     prefix/{id}/<field>/{sub_id}
    PUT     prefix/{id}/<field>/{sub_id}                     (puts)
    POST    prefix/{id}/<field>/{sub_id}
    DELETE  prefix/{id}/<field>/{sub_id}

The table is immutable; types registered after the build get no routes.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import inflect
from fastapi.routing import APIRoute

from routeforge.errors import ConfigurationError
from routeforge.schema.types import RecordType

if TYPE_CHECKING:
    from routeforge.api.handlers import ResourceHandlers
    from routeforge.config import ApiOptions

logger = logging.getLogger(__name__)

BLANK_SEGMENT = "new"

_inflector = inflect.engine()
# Record type names are capitalized; inflect them as common nouns
_inflector.classical(names=False)


def pluralize(word: str) -> str:
    """English plural of a record type name, preserving a leading capital."""
    if not word:
        return word
    return _inflector.plural_noun(word)


def route_name(record_type: RecordType, options: "ApiOptions") -> str:
    """Route segment for a record type: optionally lower-cased and pluralized."""
    name = record_type.name
    if options.pluralize:
        name = record_type.plural_name or pluralize(name)
    if options.lowercase:
        name = name.lower()
    return name


@dataclass(frozen=True)
class RouteEntry:
    """One bound route.

    Attributes:
        method: HTTP method
        path: Path template, identifiers as {id} and {sub_id}
        handler: Endpoint taking the request
        record_type: Name of the record type served
        operation: search, create, blank, read, update, delete, method,
            or sub-document operations prefixed "sub_"
    """

    method: str
    path: str
    handler: Callable[..., Any]
    record_type: str
    operation: str

    @property
    def name(self) -> str:
        """Unique route name."""
        return f"{self.method.lower()}:{self.path}"


class CaseInsensitiveRoute(APIRoute):
    """APIRoute whose path pattern ignores case."""

    def __init__(self, path: str, endpoint: Callable[..., Any], **kwargs: Any):
        super().__init__(path, endpoint, **kwargs)
        self.path_regex = re.compile(self.path_regex.pattern, re.IGNORECASE)


def resource_routes(prefix: str, handle: "ResourceHandlers", puts: bool) -> list[RouteEntry]:
    """Routes for one record type, in registration order."""
    name = handle.record_type.name
    item = f"{prefix}/{{id}}"
    entries: list[tuple[str, str, Callable[..., Any], str]] = [
        ("GET", prefix, handle.search, "search"),
        ("POST", prefix, handle.create, "create"),
    ]
    if puts:
        entries.append(("PUT", prefix, handle.create, "create"))
    entries.append(("GET", f"{prefix}/{BLANK_SEGMENT}", handle.blank, "blank"))
    entries.append(("GET", item, handle.read, "read"))
    if puts:
        entries.append(("PUT", item, handle.update, "update"))
    entries.append(("POST", item, handle.update, "update"))
    entries.append(("DELETE", item, handle.delete, "delete"))

    for method_name in handle.introspection.methods:
        entries.append(
            ("POST", f"{item}/{method_name}", handle.method_endpoint(method_name), "method")
        )

    for field_name, sub in handle.subdocuments.items():
        collection = f"{item}/{field_name}"
        sub_item = f"{collection}/{{sub_id}}"
        entries.append(("GET", collection, sub.search, "sub_search"))
        entries.append(("POST", collection, sub.create, "sub_create"))
        if puts:
            entries.append(("PUT", collection, sub.create, "sub_create"))
        entries.append(("GET", sub_item, sub.read, "sub_read"))
        if puts:
            entries.append(("PUT", sub_item, sub.update, "sub_update"))
        entries.append(("POST", sub_item, sub.update, "sub_update"))
        entries.append(("DELETE", sub_item, sub.delete, "sub_delete"))

    return [RouteEntry(m, p, h, name, op) for m, p, h, op in entries]


def build_route_table(
    handles: dict[str, "ResourceHandlers"], options: "ApiOptions"
) -> tuple[RouteEntry, ...]:
    """Derive the route table for every non-excluded handle.

    Args:
        handles: Handles keyed by route segment, in registration order

    Raises:
        ConfigurationError: Two routes share a method and path, e.g. an
            instance method named like a sub-document field
    """
    table: list[RouteEntry] = []
    seen: dict[tuple[str, str], RouteEntry] = {}
    excluded = set(options.exclude)

    for segment, handle in handles.items():
        if handle.record_type.name in excluded:
            logger.debug("Excluded %s; handle only", handle.record_type.name)
            continue
        for entry in resource_routes(options.path + segment, handle, options.puts):
            key = (entry.method, entry.path if options.case_sensitive else entry.path.lower())
            if key in seen:
                raise ConfigurationError(
                    f"Route {entry.method} {entry.path} for {entry.record_type} "
                    f"({entry.operation}) conflicts with {seen[key].record_type} "
                    f"({seen[key].operation})"
                )
            seen[key] = entry
            table.append(entry)

    return tuple(table)
