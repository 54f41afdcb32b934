"""Filter matching, updates and ordering over plain document dicts.

Stores that keep documents outside a database engine (memory, SQL JSON
rows) evaluate the query dialect here:

    filters   implicit equality, $eq $ne $gt $gte $lt $lte $in $nin $exists
              $regex/$options $size $all $elemMatch $not $and $or $nor
              $nearSphere
    updates   $set $unset $addToSet $pull $push $inc (plain dicts are $set)

Equality against an array value matches when the array contains the value,
and dotted paths descend through arrays of sub-documents.
"""

import math
import re
from datetime import datetime
from typing import Any

from routeforge.errors import ClientInputError

EARTH_RADIUS_METERS = 6378100.0

_MISSING = object()


# =============================================================================
# Path resolution
# =============================================================================


def resolve(doc: Any, path: str) -> list[Any]:
    """All values a dotted path reaches; empty when the path is absent."""
    head, _, rest = path.partition(".")
    if isinstance(doc, list):
        if head.isdigit():
            index = int(head)
            if index >= len(doc):
                return []
            return resolve(doc[index], rest) if rest else [doc[index]]
        values: list[Any] = []
        for item in doc:
            if isinstance(item, dict):
                values.extend(resolve(item, path))
        return values
    if not isinstance(doc, dict) or head not in doc:
        return []
    value = doc[head]
    if not rest:
        return [value]
    return resolve(value, rest)


def _expand(values: list[Any]) -> list[Any]:
    """Candidates for comparison: each value plus the elements of arrays."""
    expanded: list[Any] = []
    for value in values:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


# =============================================================================
# Filters
# =============================================================================


def matches(doc: dict[str, Any], filter: dict[str, Any]) -> bool:
    """True when doc satisfies every predicate in filter."""
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
        elif key == "$nor":
            if any(matches(doc, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            raise ClientInputError(f"Unknown top-level operator {key}")
        elif not _match_condition(resolve(doc, key), condition):
            return False
    return True


def _is_operator_expression(condition: Any) -> bool:
    return isinstance(condition, dict) and bool(condition) and all(
        k.startswith("$") for k in condition
    )


def _match_condition(values: list[Any], condition: Any) -> bool:
    if _is_operator_expression(condition):
        return all(
            _match_operator(values, op, operand, condition)
            for op, operand in condition.items()
            if op not in ("$options", "$maxDistance", "$minDistance")
        )
    return _equals_any(values, condition)


def _equals(value: Any, target: Any) -> bool:
    if value == target:
        return True
    return isinstance(value, list) and target in value


def _equals_any(values: list[Any], target: Any) -> bool:
    if not values:
        return target is None
    return any(_equals(v, target) for v in values)


def _compare(a: Any, b: Any, op: str) -> bool:
    if a is None or b is None or isinstance(a, (list, dict)):
        return False
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    try:
        if op == "$gt":
            return a > b
        if op == "$gte":
            return a >= b
        if op == "$lt":
            return a < b
        return a <= b
    except TypeError:
        return False


def _match_operator(values: list[Any], op: str, operand: Any, expression: dict[str, Any]) -> bool:
    if op == "$eq":
        return _equals_any(values, operand)
    if op == "$ne":
        return not _equals_any(values, operand)
    if op in ("$gt", "$gte", "$lt", "$lte"):
        return any(_compare(v, operand, op) for v in _expand(values))
    if op in ("$in", "$nin"):
        if not isinstance(operand, list):
            raise ClientInputError(f"{op} requires an array")
        found = any(_equals_any(values, target) for target in operand)
        return found if op == "$in" else not found
    if op == "$exists":
        return bool(values) == bool(operand)
    if op == "$regex":
        pattern = _compile_regex(operand, expression.get("$options", ""))
        return any(isinstance(v, str) and pattern.search(v) for v in _expand(values))
    if op == "$size":
        return any(isinstance(v, list) and len(v) == operand for v in values)
    if op == "$all":
        if not isinstance(operand, list):
            raise ClientInputError("$all requires an array")
        return any(
            isinstance(v, list) and all(target in v for target in operand)
            for v in values
        )
    if op == "$elemMatch":
        for v in values:
            if not isinstance(v, list):
                continue
            for item in v:
                if isinstance(item, dict) and not _is_operator_expression(operand):
                    if matches(item, operand):
                        return True
                elif _match_condition([item], operand):
                    return True
        return False
    if op == "$not":
        return not _match_condition(values, operand)
    if op == "$nearSphere":
        return _match_near(values, operand)
    raise ClientInputError(f"Unknown operator {op}")


def _compile_regex(pattern: Any, options: str) -> re.Pattern[str]:
    flags = 0
    for option in options or "":
        flags |= {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}.get(
            option, 0
        )
    try:
        return re.compile(str(pattern), flags)
    except re.error as e:
        raise ClientInputError(f"Invalid $regex: {e}") from e


# =============================================================================
# Geospatial
# =============================================================================


def point_coordinates(value: Any) -> tuple[float, float] | None:
    """(lon, lat) from a GeoJSON point or a legacy [lon, lat] pair."""
    if isinstance(value, dict) and value.get("type") == "Point":
        value = value.get("coordinates")
    if isinstance(value, (list, tuple)) and len(value) == 2:
        try:
            return float(value[0]), float(value[1])
        except (TypeError, ValueError):
            return None
    return None


def haversine(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Great-circle distance in meters between two (lon, lat) points."""
    lon1, lat1 = map(math.radians, a)
    lon2, lat2 = map(math.radians, b)
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def _near_origin(operand: dict[str, Any]) -> tuple[tuple[float, float], float | None, float | None]:
    geometry = operand.get("$geometry", operand)
    origin = point_coordinates(geometry)
    if origin is None:
        raise ClientInputError("$nearSphere requires a Point $geometry")
    return origin, operand.get("$maxDistance"), operand.get("$minDistance")


def _match_near(values: list[Any], operand: Any) -> bool:
    origin, max_distance, min_distance = _near_origin(operand)
    for value in values:
        point = point_coordinates(value)
        if point is None:
            continue
        distance = haversine(origin, point)
        if max_distance is not None and distance > max_distance:
            continue
        if min_distance is not None and distance < min_distance:
            continue
        return True
    return False


def near_clause(filter: dict[str, Any]) -> tuple[str, dict[str, Any]] | None:
    """The (field, $nearSphere operand) pair in a filter, if any."""
    for key, condition in filter.items():
        if isinstance(condition, dict) and "$nearSphere" in condition:
            return key, condition["$nearSphere"]
    return None


def sort_by_distance(docs: list[dict[str, Any]], field: str, operand: dict[str, Any]) -> list[dict[str, Any]]:
    origin, _, _ = _near_origin(operand)

    def distance(doc: dict[str, Any]) -> float:
        points = [p for p in map(point_coordinates, resolve(doc, field)) if p]
        return min((haversine(origin, p) for p in points), default=math.inf)

    return sorted(docs, key=distance)


# =============================================================================
# Ordering and projection
# =============================================================================


def _sort_key(value: Any) -> tuple:
    if value is None:
        return (0,)
    if isinstance(value, bool):
        return (4, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, datetime):
        return (3, value.timestamp())
    return (5, str(value))


def sort_documents(docs: list[dict[str, Any]], sort: list[tuple[str, int]]) -> list[dict[str, Any]]:
    """Stable multi-key sort; missing values order first ascending."""
    result = list(docs)
    for field, direction in reversed(sort):
        def key(doc: dict[str, Any], field: str = field) -> tuple:
            values = resolve(doc, field)
            return _sort_key(values[0] if values else None)

        result.sort(key=key, reverse=direction < 0)
    return result


def distinct_values(docs: list[dict[str, Any]], field: str) -> list[Any]:
    """Distinct values of a field, flattening arrays, in first-seen order."""
    seen: list[Any] = []
    for doc in docs:
        for value in resolve(doc, field):
            for item in value if isinstance(value, list) else [value]:
                if item not in seen:
                    seen.append(item)
    return seen


# =============================================================================
# Updates
# =============================================================================


def _parent(doc: dict[str, Any], path: str, create: bool) -> tuple[Any, str]:
    parts = path.split(".")
    node: Any = doc
    for part in parts[:-1]:
        if isinstance(node, list) and part.isdigit():
            node = node[int(part)]
            continue
        if part not in node or node[part] is None:
            if not create:
                return None, parts[-1]
            node[part] = {}
        node = node[part]
    return node, parts[-1]


def _get(doc: dict[str, Any], path: str) -> Any:
    values = resolve(doc, path)
    return values[0] if values else _MISSING


def apply_update(doc: dict[str, Any], update: dict[str, Any]) -> None:
    """Apply an update document in place."""
    if not any(k.startswith("$") for k in update):
        update = {"$set": update}

    for op, changes in update.items():
        for path, value in changes.items():
            if op == "$set":
                parent, key = _parent(doc, path, create=True)
                parent[key] = value
            elif op == "$unset":
                parent, key = _parent(doc, path, create=False)
                if isinstance(parent, dict):
                    parent.pop(key, None)
            elif op in ("$addToSet", "$push"):
                items = value["$each"] if isinstance(value, dict) and "$each" in value else [value]
                current = _get(doc, path)
                if current is _MISSING or current is None:
                    current = []
                    parent, key = _parent(doc, path, create=True)
                    parent[key] = current
                elif not isinstance(current, list):
                    raise ClientInputError(f"Cannot apply {op} to non-array field '{path}'")
                for item in items:
                    if op == "$push" or item not in current:
                        current.append(item)
            elif op == "$pull":
                current = _get(doc, path)
                if isinstance(current, list):
                    current[:] = [
                        item for item in current
                        if not (_match_condition([item], value) if _is_operator_expression(value) else item == value)
                    ]
            elif op == "$inc":
                current = _get(doc, path)
                parent, key = _parent(doc, path, create=True)
                parent[key] = (0 if current in (_MISSING, None) else current) + value
            else:
                raise ClientInputError(f"Unknown update operator {op}")
