"""Values exchanged between endpoint handlers and hooks.

A hook receives a HookContext describing the request in flight and may
return a HookResult, call ctx.abort(payload), or return nothing.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, NoReturn

from starlette.requests import Request
from starlette.responses import Response

from routeforge.errors import AbortError


class Phase(Enum):
    """Lifecycle phase a hook intercepts."""

    SEARCH = "search"
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class HookContext:
    """What a hook sees of the request it intercepts.

    Attributes:
        record_type: Name of the record type being operated on
        phase: The current phase
        record: In-flight record (unsaved on create, merged on update,
            fetched on read/delete) or the result list on search
        request: The raw HTTP request
        original: Record state before the merge (update only)
        changes: Fields whose value differs from original (update only)
    """

    record_type: str
    phase: Phase
    record: Any
    request: Request | None = None
    original: dict[str, Any] | None = None
    changes: dict[str, Any] | None = None

    def abort(self, payload: Any) -> NoReturn:
        """Refuse the request; the payload is sent back verbatim with a 400."""
        raise AbortError(payload)


@dataclass
class HookResult:
    """Optional instructions a hook hands back.

    Attributes:
        update: Fields to merge into the in-flight record
        abort: Error payload; short-circuits the request with a 400
        response: Response to send instead of the handler's own
    """

    update: dict[str, Any] | None = None
    abort: Any = None
    response: Response | None = None

    @property
    def aborted(self) -> bool:
        return self.abort is not None


def compute_changes(
    merged: dict[str, Any], before: dict[str, Any] | None
) -> dict[str, Any] | None:
    """Fields of merged that are new or differ from before; None without before."""
    if before is None:
        return None
    missing = object()
    return {
        key: value
        for key, value in merged.items()
        if before.get(key, missing) != value
    }
