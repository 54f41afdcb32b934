"""Error taxonomy for routeforge.

Every error raised by the core resolves to an HTTP response:
- ConfigurationError: geospatial query without a geospatial index, or an
  inconsistent route table (400 at request time, raised at build time)
- ClientInputError: malformed filters, paging values or bodies (400)
- ValidationError: the store rejected a write (400, payload passed through)
- NotFoundError: fetch-by-identifier returned nothing (404, empty body)
- AbortError: a hook or instance method refused the request (400, payload verbatim)
- RelationshipMaintenanceError: inverse-side update failed (logged only)
"""

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.responses import Response


GEO_INDEX_MESSAGE = (
    "The $nearSphere operator requires a geospatial index on a field holding "
    "GeoJSON points or legacy coordinate pairs. Declare one with "
    "`index: 2dsphere` on the field or an `indexes: [{<field>: 2dsphere}]` entry."
)


class RouteforgeError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 400

    def to_dict(self) -> dict[str, Any] | None:
        return {"name": type(self).__name__, "message": str(self)}

    def to_response(self) -> Response:
        payload = self.to_dict()
        if payload is None:
            return Response(status_code=self.status_code)
        return JSONResponse(
            status_code=self.status_code, content=jsonable_encoder(payload)
        )


class ConfigurationError(RouteforgeError):
    """The schema or API configuration cannot satisfy the request."""

    def __init__(self, message: str, *, error: str = "Configuration Error"):
        super().__init__(message)
        self.error = error

    @classmethod
    def geospatial_index_required(cls, record_type: str) -> "ConfigurationError":
        return cls(
            f"{record_type}: {GEO_INDEX_MESSAGE}",
            error="Geospatial Index Not Found",
        )

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "message": str(self)}


class ClientInputError(RouteforgeError):
    """The request parameters or body could not be interpreted."""


class NotFoundError(RouteforgeError):
    """No record exists for the requested identifier."""

    status_code = 404

    def to_dict(self) -> None:
        return None


class ValidationError(RouteforgeError):
    """The store refused a write.

    Attributes:
        name: Error name reported to the client (e.g. "ValidationError",
            "ValidateLength")
        errors: Per-path error details, keyed by dotted field path
    """

    def __init__(
        self,
        message: str,
        *,
        name: str = "ValidationError",
        errors: dict[str, dict[str, Any]] | None = None,
    ):
        super().__init__(message)
        self.name = name
        self.errors = errors

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "message": str(self)}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class AbortError(RouteforgeError):
    """Raised by hooks and instance methods to refuse a request.

    The payload is sent back unmodified with a 400 status.
    """

    def __init__(self, payload: Any):
        super().__init__(payload.get("message", "") if isinstance(payload, dict) else str(payload))
        self.payload = payload

    def to_dict(self) -> Any:
        return self.payload


class RelationshipMaintenanceError(RouteforgeError):
    """An inverse-side relationship update failed.

    Never surfaced to clients; carried into the log record.
    """

    def __init__(self, related_type: str, related_field: str, id: Any, cause: BaseException):
        super().__init__(
            f"Failed to relate {related_type}.{related_field} on {id!r}: {cause}"
        )
        self.related_type = related_type
        self.related_field = related_field
        self.id = id
        self.cause = cause
