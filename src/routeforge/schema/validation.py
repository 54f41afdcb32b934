"""Write-time document preparation.

Every insert and update passes through prepare_document():
- defaults are applied to new documents and new sub-documents
- values are cast to their declared types
- field constraints (required, enum, bounds, lengths, pattern, custom
  validators) are checked and collected per dotted path
- pre-save functions run, sub-document ones first

Any failure raises a single ValidationError whose payload is what the
client receives.
"""

import inspect
import logging
import re
from typing import Any

from routeforge.errors import ValidationError
from routeforge.schema.types import (
    ID_FIELD,
    CastError,
    FieldDefinition,
    RecordType,
    new_id,
)

logger = logging.getLogger(__name__)


async def prepare_document(
    record_type: RecordType, data: dict[str, Any], *, is_new: bool
) -> dict[str, Any]:
    """Return a defaulted, cast and validated copy of data.

    Keys that are not declared fields are kept as they are.

    Raises:
        ValidationError: On cast failures, constraint violations, or a
            pre-save function rejecting the document
    """
    doc = dict(data)
    errors: dict[str, dict[str, Any]] = {}
    _prepare(record_type, doc, is_new=is_new, prefix="", errors=errors)
    if errors:
        raise ValidationError(f"{record_type.name} validation failed", errors=errors)
    await _run_pre_save(record_type, doc)
    return doc


def _prepare(
    record_type: RecordType,
    doc: dict[str, Any],
    *,
    is_new: bool,
    prefix: str,
    errors: dict[str, dict[str, Any]],
) -> None:
    for f in record_type.fields:
        path = prefix + f.name

        if is_new and f.name not in doc and f.has_default:
            doc[f.name] = f.default_value()

        try:
            value = f.cast(doc.get(f.name), path)
        except CastError as e:
            errors[path] = e.to_dict()
            continue
        if f.name in doc:
            doc[f.name] = value

        if f.is_subdocument and value is not None:
            items = value if f.array else [value]
            for i, item in enumerate(items):
                sub_new = ID_FIELD not in item
                if sub_new:
                    item[ID_FIELD] = new_id()
                sub_prefix = f"{path}.{i}." if f.array else f"{path}."
                _prepare(f.schema, item, is_new=sub_new, prefix=sub_prefix, errors=errors)

        _check_rules(f, value, path, errors)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _check_rules(
    f: FieldDefinition, value: Any, path: str, errors: dict[str, dict[str, Any]]
) -> None:
    """Check declared constraints, recording the first failure for the path."""
    rules = f.validation

    if rules.required and _is_empty(value):
        errors[path] = _validator_error(path, "required", f"Path `{path}` is required.", value)
        return

    if _is_empty(value) or f.is_subdocument:
        return

    items = value if f.array else [value]
    for item in items:
        error = _check_item(f, item, path)
        if error:
            errors[path] = error
            return


def _check_item(f: FieldDefinition, value: Any, path: str) -> dict[str, Any] | None:
    rules = f.validation

    if rules.enum is not None and value not in rules.enum:
        return _validator_error(
            path, "enum", f"`{value}` is not a valid enum value for path `{path}`.", value
        )

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if rules.min is not None and value < rules.min:
            return _validator_error(
                path, "min",
                f"Path `{path}` ({value}) is less than minimum allowed value ({rules.min}).",
                value,
            )
        if rules.max is not None and value > rules.max:
            return _validator_error(
                path, "max",
                f"Path `{path}` ({value}) is more than maximum allowed value ({rules.max}).",
                value,
            )

    if isinstance(value, str):
        if rules.min_length is not None and len(value) < rules.min_length:
            return _validator_error(
                path, "minlength",
                f"Path `{path}` is shorter than the minimum allowed length ({rules.min_length}).",
                value,
            )
        if rules.max_length is not None and len(value) > rules.max_length:
            return _validator_error(
                path, "maxlength",
                f"Path `{path}` is longer than the maximum allowed length ({rules.max_length}).",
                value,
            )
        if rules.pattern and not re.search(rules.pattern, value):
            return _validator_error(
                path, "regexp", f"Path `{path}` is invalid ({value}).", value
            )

    for validator in f.validators:
        try:
            ok = validator.fn(value)
        except Exception:
            logger.warning("Validator on '%s' raised; treating as failure", path, exc_info=True)
            ok = False
        if not ok:
            return _validator_error(path, "user defined", validator.message, value)

    return None


def _validator_error(path: str, kind: str, message: str, value: Any) -> dict[str, Any]:
    return {
        "name": "ValidatorError",
        "kind": kind,
        "path": path,
        "value": value,
        "message": message,
    }


async def _run_pre_save(record_type: RecordType, doc: dict[str, Any]) -> None:
    for f in record_type.fields:
        if not f.is_subdocument or not f.schema.pre_save:
            continue
        value = doc.get(f.name)
        if value is None:
            continue
        for item in value if f.array else [value]:
            await _run_pre_save(f.schema, item)

    for fn in record_type.pre_save:
        try:
            result = fn(doc)
            if inspect.isawaitable(result):
                await result
        except ValidationError:
            raise
        except Exception as e:
            raise ValidationError(str(e), name=getattr(e, "name", type(e).__name__)) from e
