"""Bidirectional relationship resolution.

A relationship exists when a reference field on one record type points at a
second type which, in turn, has a reference field pointing back. Creating or
deleting a record on the owning side then keeps the inverse side in step.
"""

import logging
from dataclasses import dataclass
from typing import Any

from routeforge.schema.registry import SchemaRegistry
from routeforge.schema.types import ID_FIELD, RecordType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelationshipDescriptor:
    """One owning-field -> inverse-field pairing.

    Attributes:
        owning_type: Type whose records are created/deleted
        owning_field: Reference field on the owning type
        owning_array: Owning field holds a list of references
        related_type: Type referenced by owning_field
        related_field: Field on related_type referencing back
        related_array: Inverse field holds a list of references
    """

    owning_type: str
    owning_field: str
    owning_array: bool
    related_type: str
    related_field: str
    related_array: bool

    def referenced_ids(self, record: dict[str, Any]) -> list[Any]:
        """Identifiers held by the owning field, normalized to a list."""
        value = record.get(self.owning_field)
        values = value if isinstance(value, list) else [value]
        ids = []
        for v in values:
            if isinstance(v, dict):
                v = v.get(ID_FIELD)
            if v is not None and v != "":
                ids.append(v)
        return ids

    def link_update(self, record_id: Any) -> dict[str, Any]:
        """Store update adding record_id to the inverse field."""
        if self.related_array:
            return {"$addToSet": {self.related_field: record_id}}
        return {"$set": {self.related_field: record_id}}

    def unlink_update(self, record_id: Any) -> dict[str, Any]:
        """Store update removing record_id from the inverse field."""
        if self.related_array:
            return {"$pull": {self.related_field: record_id}}
        return {"$unset": {self.related_field: ""}}


def resolve_relationships(
    record_type: RecordType, registry: SchemaRegistry
) -> list[RelationshipDescriptor]:
    """Build the relationship descriptors owned by record_type.

    For self-referencing types a field is paired with itself only when no
    other field on the type refers back (e.g. a symmetric `friends` list);
    otherwise `parent`/`children` pairs would also link `parent` to itself.
    """
    descriptors: list[RelationshipDescriptor] = []

    for f in record_type.fields:
        if not f.ref:
            continue

        related = registry.get(f.ref)
        if related is None:
            logger.warning(
                "%s.%s references unregistered type '%s'; no relationship derived",
                record_type.name,
                f.name,
                f.ref,
            )
            continue

        back_refs = [g for g in related.fields if g.ref == record_type.name]
        if related.name == record_type.name and len(back_refs) > 1:
            back_refs = [g for g in back_refs if g.name != f.name]

        for g in back_refs:
            descriptors.append(
                RelationshipDescriptor(
                    owning_type=record_type.name,
                    owning_field=f.name,
                    owning_array=f.array,
                    related_type=related.name,
                    related_field=g.name,
                    related_array=g.array,
                )
            )
            logger.debug(
                "Relationship %s.%s -> %s.%s",
                record_type.name,
                f.name,
                related.name,
                g.name,
            )

    return descriptors
