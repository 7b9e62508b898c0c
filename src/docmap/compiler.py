"""Schema compiler: validates a record declaration and emits its typed artifacts.

For every record type the compiler produces:

- an ``EntityDescriptor`` (fail-fast validation happens here),
- ``Fields``, a str enum of wire names,
- ``TypedFilter`` and ``TypedUpdate`` dataclasses with one ``OMIT``-defaulted
  member per field,
- one class per declared projection.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, make_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from docmap.descriptor import (
    IDENTITY_KEY,
    EntityDescriptor,
    FieldDescriptor,
    IndexDescriptor,
    ProjectionDescriptor,
)
from docmap.errors import DescriptorError
from docmap.fields import OMIT, Order
from docmap.filters import TypedFilter, TypedUpdate
from docmap.types import Column

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

ANONYMOUS_INDEX = "_"


@dataclass(frozen=True)
class Index:
    """An index declaration: ordered ``{field: direction}`` keys plus engine options."""

    keys: Mapping[str, Any] | Iterable[tuple[str, Any]]
    options: Mapping[str, Any] = field(default_factory=dict)


class FieldName(str, Enum):
    """Base of every generated ``Fields`` enum; members render to their wire name."""

    def __str__(self) -> str:
        return str(self.value)

    def __format__(self, format_spec: str) -> str:
        return format(str(self.value), format_spec)


def snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", name).lower()


def default_collection_name(record_name: str) -> str:
    """``UserEntity`` -> ``user``, ``OrderLine`` -> ``order_line``."""
    snake = snake_case(record_name)
    return snake.removesuffix("_entity") or snake


def build_descriptor(
    record_name: str,
    columns: Mapping[str, Column[Any]],
    *,
    collection: str | None = None,
    projections: Mapping[str, Iterable[str]] | None = None,
    indexes: Mapping[str, Index | Mapping[str, Any]] | None = None,
    reserved: Iterable[str] = (),
) -> EntityDescriptor:
    """Validate a record declaration and build its descriptor.

    Raises DescriptorError on the first structural problem found.
    """

    def fail(message: str) -> DescriptorError:
        return DescriptorError(record_name, message)

    reserved = set(reserved)
    identity: FieldDescriptor | None = None
    others: list[FieldDescriptor] = []
    seen_wire_names: dict[str, str] = {}

    for name, column in columns.items():
        if name.startswith("_"):
            raise fail(f"field '{name}' must not start with an underscore")
        if name in reserved:
            raise fail(f"field '{name}' shadows a record operation")
        wire_name = column.wire_name
        if wire_name in seen_wire_names:
            raise fail(
                f"fields '{seen_wire_names[wire_name]}' and '{name}' share the wire name "
                f"'{wire_name}'"
            )
        seen_wire_names[wire_name] = name

        descriptor = FieldDescriptor(name=name, wire_name=wire_name, annotation=column.annotation)
        is_identity = column.identity or (name == "id" and not _declares_identity(columns))
        if is_identity:
            if identity is not None:
                raise fail(f"fields '{identity.name}' and '{name}' are both marked as identity")
            if wire_name != IDENTITY_KEY:
                raise fail(
                    f"identity field '{name}' must be declared with "
                    f"Column(rename=\"{IDENTITY_KEY}\")"
                )
            identity = descriptor
        elif wire_name == IDENTITY_KEY:
            raise fail(
                f"field '{name}' uses the reserved wire name '{IDENTITY_KEY}' but is not the "
                "identity field"
            )
        else:
            others.append(descriptor)

    if identity is None:
        raise fail(
            f"a record must declare an identity field (`id: Column[...] = "
            f"Column(rename=\"{IDENTITY_KEY}\")`)"
        )

    known = set(columns)

    projection_descriptors: list[ProjectionDescriptor] = []
    for projection_name, projected in (projections or {}).items():
        if not projection_name.isidentifier():
            raise fail(f"projection name '{projection_name}' is not a valid identifier")
        if isinstance(projected, str):
            raise fail(f"projection '{projection_name}' must list field names, got a string")
        projected = tuple(projected)
        if not projected:
            raise fail(f"projection '{projection_name}' lists no fields")
        for name in projected:
            if name not in known:
                raise fail(f"projection '{projection_name}' references unknown field '{name}'")
        if len(set(projected)) != len(projected):
            raise fail(f"projection '{projection_name}' lists a field twice")
        projection_descriptors.append(
            ProjectionDescriptor(
                name=projection_name,
                fields=projected,
                includes_identity=identity.name in projected,
            )
        )

    index_descriptors: list[IndexDescriptor] = []
    for index_name, declaration in (indexes or {}).items():
        if isinstance(declaration, Mapping):
            declaration = Index(
                keys=declaration.get("keys", {}), options=declaration.get("options", {})
            )
        key_items = (
            declaration.keys.items() if isinstance(declaration.keys, Mapping) else declaration.keys
        )
        keys: list[tuple[str, Order]] = []
        for key, direction in key_items:
            if key not in known:
                raise fail(f"index '{index_name}' references unknown field '{key}'")
            try:
                keys.append((key, Order.coerce(direction)))
            except ValueError as e:
                raise fail(f"index '{index_name}': {e}") from e
        if not keys:
            raise fail(f"index '{index_name}' has no keys")
        index_descriptors.append(
            IndexDescriptor(
                name=None if index_name == ANONYMOUS_INDEX else index_name,
                keys=tuple(keys),
                options=MappingProxyType(dict(declaration.options)),
            )
        )

    return EntityDescriptor(
        record_name=record_name,
        collection_name=collection or default_collection_name(record_name),
        identity=identity,
        fields=tuple(others),
        projections=tuple(projection_descriptors),
        indexes=tuple(index_descriptors),
    )


def _declares_identity(columns: Mapping[str, Column[Any]]) -> bool:
    return any(c.identity for c in columns.values())


def emit_fields_enum(record: type, descriptor: EntityDescriptor) -> type[FieldName]:
    members = [(f.name.upper(), f.wire_name) for f in descriptor.all_fields()]
    fields_enum = FieldName(  # type: ignore[call-overload]
        "Fields",
        members,
        module=record.__module__,
        qualname=f"{record.__qualname__}.Fields",
    )
    return fields_enum


def _emit_dataclass(
    record: type, descriptor: EntityDescriptor, name: str, base: type
) -> type:
    cls = make_dataclass(
        name,
        [(f.name, Any, field(default=OMIT)) for f in descriptor.all_fields()],
        bases=(base,),
        namespace={"__record__": record},
        kw_only=True,
    )
    cls.__module__ = record.__module__
    cls.__qualname__ = f"{record.__qualname__}.{name}"
    return cls


def emit_typed_filter(record: type, descriptor: EntityDescriptor) -> type[TypedFilter]:
    return _emit_dataclass(record, descriptor, "TypedFilter", TypedFilter)


def emit_typed_update(record: type, descriptor: EntityDescriptor) -> type[TypedUpdate]:
    return _emit_dataclass(record, descriptor, "TypedUpdate", TypedUpdate)


def emit_projection(
    record: type,
    columns: Mapping[str, Column[Any]],
    projection: ProjectionDescriptor,
    base: type,
) -> type:
    """Create the class for one declared projection, holding copies of the parent's columns."""
    namespace: dict[str, Any] = {name: columns[name].copy() for name in projection.fields}
    namespace["__annotations__"] = {
        name: Column[columns[name].annotation] for name in projection.fields  # type: ignore[misc]
    }
    namespace["__module__"] = record.__module__
    namespace["__qualname__"] = f"{record.__qualname__}.{projection.name}"
    namespace["__doc__"] = f"Projection of {record.__name__} onto {', '.join(projection.fields)}."
    return type(base)(projection.name, (base,), namespace, entity=record)


def validate_projection_shape(
    projection_name: str,
    entity_descriptor: EntityDescriptor,
    columns: Mapping[str, Column[Any]],
) -> ProjectionDescriptor:
    """Check a hand-written projection against its entity and describe it."""

    def fail(message: str) -> DescriptorError:
        return DescriptorError(projection_name, message)

    if not columns:
        raise fail("a projection must declare at least one field")
    for name, column in columns.items():
        if not entity_descriptor.has_field(name):
            raise fail(f"field '{name}' does not exist on {entity_descriptor.record_name}")
        expected = entity_descriptor.wire_name(name)
        if column.wire_name != expected:
            raise fail(
                f"field '{name}' must use the wire name '{expected}' of "
                f"{entity_descriptor.record_name}, got '{column.wire_name}'"
            )
    return ProjectionDescriptor(
        name=projection_name,
        fields=tuple(columns),
        includes_identity=entity_descriptor.identity.name in columns,
    )
