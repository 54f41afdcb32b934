"""Registries for record types and the named functions schemas refer to."""

from collections.abc import Callable, Iterator
from typing import Any

from routeforge.schema.types import RecordType


class SchemaRegistry:
    """Ordered collection of record types.

    Registration order is preserved and drives route ordering, so the same
    set of registrations always yields the same route table.
    """

    def __init__(self, record_types: list[RecordType] | None = None):
        self._types: dict[str, RecordType] = {}
        for record_type in record_types or []:
            self.register(record_type)

    def register(self, record_type: RecordType) -> RecordType:
        """Register a record type.

        Raises:
            ValueError: If a type with the same name is already registered
        """
        if record_type.name in self._types:
            raise ValueError(f"Record type '{record_type.name}' is already registered")
        self._types[record_type.name] = record_type
        return record_type

    def get(self, name: str) -> RecordType | None:
        return self._types.get(name)

    def require(self, name: str) -> RecordType:
        record_type = self._types.get(name)
        if record_type is None:
            raise KeyError(f"Record type '{name}' is not registered")
        return record_type

    def list_types(self) -> list[str]:
        return list(self._types.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[RecordType]:
        return iter(list(self._types.values()))

    def __len__(self) -> int:
        return len(self._types)


class SchemaFunctions:
    """Named instance methods, pre-save functions and field validators.

    YAML schemas cannot carry code, so they refer to functions by name.
    Plugins register them at startup:

        @schema_function("ensureLongComment")
        def ensure_long_comment(doc):
            ...
    """

    _functions: dict[str, Callable[..., Any]] = {}

    @classmethod
    def register(cls, name: str, fn: Callable[..., Any]) -> None:
        """Register a function by name. Re-registering replaces it."""
        cls._functions[name] = fn

    @classmethod
    def get(cls, name: str) -> Callable[..., Any]:
        if name not in cls._functions:
            raise ValueError(
                f"Schema function '{name}' is not registered. "
                "Import the plugin module that defines it before loading schemas."
            )
        return cls._functions[name]

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._functions

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._functions.clear()


def schema_function(name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator registering a function with SchemaFunctions."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        SchemaFunctions.register(name or fn.__name__, fn)
        return fn

    return decorator
