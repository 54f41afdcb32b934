"""Translate search parameters into a QuerySpec for the store.

Input is the flat query-string mapping of a search request. Keys prefixed
with a double underscore are control parameters:

    __count     count-only result ([n])
    __populate  reference fields to replace with the referenced records
    __sort      "-createdAt title", "a,-b" or {"createdAt": -1}
    __skip      records to skip
    __limit     maximum records returned
    __near      "lon,lat[,maxDistanceMeters]" proximity search
    __distinct  distinct values of one field

Everything else is a field filter. A value written as a JSON object
(`createdAt={"$gte":"2013-01-01"}`) is an operator expression; any other
value is an equality match. Repeated keys match any of the given values.

When no sort is requested the result order is whatever the store returns;
it is not guaranteed to be stable between calls.
"""

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from routeforge.errors import ClientInputError
from routeforge.schema.introspect import SchemaIntrospection
from routeforge.schema.types import CastError, FieldDefinition, RecordType

CONTROL_PREFIX = "__"
CONTROL_PARAMS = ("count", "populate", "sort", "skip", "limit", "near", "distinct")

COMPARISON_OPERATORS = ("$eq", "$ne", "$gt", "$gte", "$lt", "$lte")
LIST_OPERATORS = ("$in", "$nin", "$all")

ParamValue = str | list[str]


@dataclass(frozen=True)
class NearClause:
    field: str
    longitude: float
    latitude: float
    max_distance: float | None = None

    def to_filter(self) -> dict[str, Any]:
        near: dict[str, Any] = {
            "$geometry": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude],
            }
        }
        if self.max_distance is not None:
            near["$maxDistance"] = self.max_distance
        return {"$nearSphere": near}


@dataclass
class QuerySpec:
    """Everything the store needs to execute one search.

    Attributes:
        filter: Field predicates, including any proximity clause
        skip: Records to skip
        limit: Maximum records to return
        sort: (field, 1 | -1) pairs in priority order
        populate: Reference fields to populate
        count: Return only the number of matches
        distinct: Return distinct values of this field
        near: Proximity clause, also present in filter
    """

    filter: dict[str, Any] = field(default_factory=dict)
    skip: int | None = None
    limit: int | None = None
    sort: list[tuple[str, int]] = field(default_factory=list)
    populate: list[str] = field(default_factory=list)
    count: bool = False
    distinct: str | None = None
    near: NearClause | None = None


def translate_query(
    params: Mapping[str, ParamValue], introspection: SchemaIntrospection
) -> QuerySpec:
    """Build a QuerySpec from search parameters.

    Raises:
        ClientInputError: Malformed operator JSON, paging values, sort,
            proximity coordinates, or uncastable filter values
        ConfigurationError: __near on a type without a geospatial index
    """
    fields = dict(params)
    controls: dict[str, str] = {}
    for name in CONTROL_PARAMS:
        key = CONTROL_PREFIX + name
        if key in fields:
            controls[name] = _last(fields.pop(key))

    spec = QuerySpec()
    spec.filter = build_filter(fields, introspection.record_type)

    if "count" in controls:
        spec.count = controls["count"].strip().lower() not in ("false", "0")

    if "near" in controls:
        geo_field = introspection.require_geo_field()
        spec.near = parse_near(controls["near"], geo_field)
        spec.filter[geo_field] = spec.near.to_filter()

    if spec.count:
        return spec

    if controls.get("skip"):
        spec.skip = _parse_non_negative("__skip", controls["skip"])
    if controls.get("limit"):
        spec.limit = _parse_non_negative("__limit", controls["limit"]) or None
    if controls.get("sort"):
        spec.sort = parse_sort(controls["sort"])
    if controls.get("distinct"):
        spec.distinct = controls["distinct"].strip()
    if controls.get("populate"):
        spec.populate = parse_populate(controls["populate"])

    return spec


def build_filter(
    fields: Mapping[str, ParamValue], record_type: RecordType
) -> dict[str, Any]:
    """Convert non-control parameters into store predicates."""
    predicates: dict[str, Any] = {}
    for key, raw in fields.items():
        definition = resolve_path(record_type, key)
        try:
            if isinstance(raw, list):
                if len(raw) == 1:
                    predicates[key] = _predicate(definition, key, raw[0])
                else:
                    predicates[key] = {
                        "$in": [_cast_operand(definition, v) for v in raw]
                    }
            else:
                predicates[key] = _predicate(definition, key, raw)
        except CastError as e:
            raise ClientInputError(str(e)) from e
    return predicates


def resolve_path(record_type: RecordType, path: str) -> FieldDefinition | None:
    """Find the field a dotted path names, descending into nested schemas."""
    head, _, rest = path.partition(".")
    definition = record_type.get_field(head)
    if definition is None or not rest:
        return definition
    if definition.schema is not None:
        if definition.array and rest.split(".", 1)[0].isdigit():
            rest = rest.split(".", 1)[1] if "." in rest else ""
            if not rest:
                return None
        return resolve_path(definition.schema, rest)
    return None


def _predicate(definition: FieldDefinition | None, key: str, raw: str) -> Any:
    text = raw.strip()
    if text.startswith("{") and text.endswith("}"):
        try:
            expression = json.loads(text)
        except json.JSONDecodeError as e:
            raise ClientInputError(f"Invalid JSON filter for '{key}': {e.msg}") from e
        if not isinstance(expression, dict):
            raise ClientInputError(f"Filter for '{key}' must be a JSON object")
        return _cast_expression(definition, key, expression)
    return _cast_operand(definition, raw)


def _cast_expression(
    definition: FieldDefinition | None, key: str, expression: dict[str, Any]
) -> dict[str, Any]:
    if definition is None:
        return expression
    result: dict[str, Any] = {}
    for op, operand in expression.items():
        if op in COMPARISON_OPERATORS:
            result[op] = _cast_operand(definition, operand)
        elif op in LIST_OPERATORS:
            if not isinstance(operand, list):
                raise ClientInputError(f"Operator {op} on '{key}' requires an array")
            result[op] = [_cast_operand(definition, v) for v in operand]
        elif op == "$not" and isinstance(operand, dict):
            result[op] = _cast_expression(definition, key, operand)
        else:
            result[op] = operand
    return result


def _cast_operand(definition: FieldDefinition | None, value: Any) -> Any:
    if definition is None or definition.is_subdocument or value is None:
        return value
    return definition.cast_item(value)


def parse_sort(value: str) -> list[tuple[str, int]]:
    """Parse "-a b", "a,-b" or a JSON object into (field, direction) pairs."""
    text = value.strip()
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ClientInputError(f"Invalid JSON sort: {e.msg}") from e
        if not isinstance(data, dict):
            raise ClientInputError("__sort must be a JSON object")
        return [(name, _sort_direction(name, d)) for name, d in data.items()]

    pairs = []
    for token in text.replace(",", " ").split():
        if token.startswith("-"):
            pairs.append((token[1:], -1))
        else:
            pairs.append((token.lstrip("+"), 1))
    return [(name, direction) for name, direction in pairs if name]


def _sort_direction(name: str, direction: Any) -> int:
    if direction in (1, "1", "asc", "ascending"):
        return 1
    if direction in (-1, "-1", "desc", "descending"):
        return -1
    raise ClientInputError(f"Invalid sort direction for '{name}': {direction!r}")


def parse_populate(value: str) -> list[str]:
    return [name for name in value.replace(",", " ").split() if name]


def parse_near(value: str, geo_field: str) -> NearClause:
    """Parse "lon,lat[,maxDistance]"."""
    parts = [p.strip() for p in value.split(",")]
    if len(parts) not in (2, 3):
        raise ClientInputError(
            "__near expects 'longitude,latitude' or 'longitude,latitude,maxDistance'"
        )
    try:
        numbers = [float(p) for p in parts]
    except ValueError as e:
        raise ClientInputError(f"__near components must be numbers: {value!r}") from e
    if not all(math.isfinite(n) for n in numbers):
        raise ClientInputError(f"__near components must be finite: {value!r}")
    return NearClause(
        field=geo_field,
        longitude=numbers[0],
        latitude=numbers[1],
        max_distance=numbers[2] if len(numbers) == 3 else None,
    )


def _parse_non_negative(name: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise ClientInputError(f"{name} must be an integer: {value!r}") from e
    if number < 0:
        raise ClientInputError(f"{name} must not be negative")
    return number


def _last(value: ParamValue) -> str:
    if isinstance(value, list):
        return value[-1] if value else ""
    return value
