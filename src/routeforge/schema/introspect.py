"""Schema introspection.

Extracts what routing and request translation need from a RecordType:
the ordered field list, sub-document fields, reference fields, the
geospatial field, and a blank-record factory.
"""

from dataclasses import dataclass
from typing import Any

from routeforge.errors import ConfigurationError
from routeforge.schema.types import GEO_INDEX_KINDS, ID_FIELD, FieldDefinition, RecordType, new_id


def find_geo_field(record_type: RecordType) -> str | None:
    """Name of the field carrying a geospatial index, if any.

    Explicit index declarations are scanned first; an inline per-field
    index marker overrides them.
    """
    geo_field = None
    for index in record_type.indexes:
        for name, kind in index.items():
            if kind in GEO_INDEX_KINDS:
                geo_field = name
                break
    for f in record_type.fields:
        if f.index in GEO_INDEX_KINDS:
            geo_field = f.name
    return geo_field


@dataclass(frozen=True)
class SchemaIntrospection:
    """Read-only view of a record type, computed once per route build."""

    record_type: RecordType
    fields: tuple[FieldDefinition, ...]
    subdocument_fields: tuple[str, ...]
    references: tuple[tuple[str, str, bool], ...]
    geo_field: str | None

    @property
    def name(self) -> str:
        return self.record_type.name

    @property
    def methods(self) -> tuple[str, ...]:
        return tuple(self.record_type.methods)

    def default_snapshot(self) -> dict[str, Any]:
        """Field -> declared default, with callables left unevaluated."""
        return {f.name: f.default for f in self.fields}

    def blank(self) -> dict[str, Any]:
        """A record with every field at its default, or None without one.

        Deferred defaults are evaluated on each call.
        """
        return {f.name: f.default_value() for f in self.fields}

    def construct(self, data: dict[str, Any]) -> dict[str, Any]:
        """An unsaved record: data over the declared defaults, with an identifier."""
        record = {f.name: f.default_value() for f in self.fields if f.has_default}
        record.update(data)
        if not record.get(ID_FIELD):
            record[ID_FIELD] = new_id()
        return record

    def require_geo_field(self) -> str:
        if self.geo_field is None:
            raise ConfigurationError.geospatial_index_required(self.name)
        return self.geo_field


def introspect(record_type: RecordType) -> SchemaIntrospection:
    """Build the introspection view for a record type."""
    return SchemaIntrospection(
        record_type=record_type,
        fields=tuple(record_type.fields),
        subdocument_fields=tuple(
            f.name for f in record_type.fields if f.is_subdocument_array
        ),
        references=tuple(
            (f.name, f.ref, f.array) for f in record_type.fields if f.ref
        ),
        geo_field=find_geo_field(record_type),
    )
