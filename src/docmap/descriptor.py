"""Descriptor model: immutable metadata extracted from a record declaration."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from docmap.fields import Order

IDENTITY_KEY = "_id"


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    wire_name: str
    annotation: Any = Any

    @property
    def is_identity(self) -> bool:
        return self.wire_name == IDENTITY_KEY


@dataclass(frozen=True)
class ProjectionDescriptor:
    """A named, fixed subset of a record's fields."""

    name: str
    fields: tuple[str, ...]
    includes_identity: bool


@dataclass(frozen=True)
class IndexDescriptor:
    """A declared index. ``name`` is None for anonymous indexes."""

    name: str | None
    keys: tuple[tuple[str, Order], ...]
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class EntityDescriptor:
    """Everything the runtime knows about one record type.

    ``fields`` holds the non-identity fields in declaration order.
    """

    record_name: str
    collection_name: str
    identity: FieldDescriptor
    fields: tuple[FieldDescriptor, ...]
    projections: tuple[ProjectionDescriptor, ...] = ()
    indexes: tuple[IndexDescriptor, ...] = ()

    def all_fields(self) -> Iterator[FieldDescriptor]:
        """Yield every field in declaration order, identity included."""
        yield self.identity
        yield from self.fields

    def field(self, name: str) -> FieldDescriptor:
        for f in self.all_fields():
            if f.name == name:
                return f
        raise KeyError(name)

    def has_field(self, name: str) -> bool:
        return any(f.name == name for f in self.all_fields())

    def wire_name(self, name: str) -> str:
        return self.field(name).wire_name

    def projection(self, name: str) -> ProjectionDescriptor:
        for p in self.projections:
            if p.name == name:
                return p
        raise KeyError(name)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data rendering used by the CLI."""
        return {
            "record_name": self.record_name,
            "collection_name": self.collection_name,
            "identity": self.identity.name,
            "fields": {
                f.name: {"wire_name": f.wire_name, "type": _type_name(f.annotation)}
                for f in self.all_fields()
            },
            "projections": {
                p.name: {"fields": list(p.fields), "includes_identity": p.includes_identity}
                for p in self.projections
            },
            "indexes": [
                {
                    "name": idx.name,
                    "keys": [[name, order.value] for name, order in idx.keys],
                    "options": dict(idx.options),
                }
                for idx in self.indexes
            ],
        }


def _type_name(annotation: Any) -> str:
    if isinstance(annotation, type):
        return annotation.__name__
    return str(annotation).replace("typing.", "")
