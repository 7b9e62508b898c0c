"""Column declarations and value codecs for docmap records."""

from __future__ import annotations

import inspect
import sys
from collections.abc import Mapping
from enum import Enum
from typing import Any, Generic, TypeVar, get_args

from pydantic import BaseModel, ConfigDict, PydanticUserError, TypeAdapter, create_model
from pydantic import Field as PydanticField

T = TypeVar("T")

_SENTINEL = object()

_MODEL_CONFIG = ConfigDict(arbitrary_types_allowed=True, extra="forbid")
_ADAPTER_CONFIG = ConfigDict(arbitrary_types_allowed=True)


class Column(Generic[T]):
    """Declares one field of a record.

    ``rename`` sets the wire name (the key stored in the database); the
    identity column must be renamed to ``_id``.
    """

    def __init__(
        self,
        default: Any = _SENTINEL,
        *,
        default_factory: Any | None = None,
        rename: str | None = None,
        identity: bool = False,
    ) -> None:
        self.default = default
        self.default_factory = default_factory
        self.rename = rename
        self.identity = identity
        self.name: str = ""
        self.annotation: Any = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        try:
            return obj.__dict__[self.name]
        except KeyError:
            raise AttributeError(self.name) from None

    def __set__(self, obj: Any, value: Any) -> None:
        obj.__dict__[self.name] = value

    @property
    def wire_name(self) -> str:
        return self.rename if self.rename is not None else self.name

    def copy(self) -> Column[T]:
        """A detached copy, used when a projection re-declares a parent column."""
        c: Column[T] = Column(
            self.default,
            default_factory=self.default_factory,
            rename=self.rename,
            identity=self.identity,
        )
        c.name = self.name
        c.annotation = self.annotation
        return c

    def has_default(self) -> bool:
        return self.default is not _SENTINEL or self.default_factory is not None

    def get_default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        if self.default is not _SENTINEL:
            return self.default
        raise ValueError(f"Column '{self.name}' has no default")

    def __repr__(self) -> str:
        return f"Column(name={self.name!r}, wire_name={self.wire_name!r})"


def _resolve_annotation(ann: Any, module_name: str) -> Any:
    """Resolve string annotations and extract the inner type from Column[T]."""
    if isinstance(ann, str):
        module = sys.modules.get(module_name, None)
        ns = vars(module) if module else {}
        try:
            ann = eval(ann, ns)  # noqa: S307
        except Exception:
            return Any

    origin = getattr(ann, "__origin__", None)
    if origin is Column:
        args = get_args(ann)
        return args[0] if args else Any
    return ann


def collect_columns(cls: type) -> dict[str, Column[Any]]:
    """Collect Column descriptors from the class's own annotations, in declaration order."""
    columns: dict[str, Column[Any]] = {}

    annotations = inspect.get_annotations(cls)

    for name, ann in annotations.items():
        origin = getattr(ann, "__origin__", None)
        is_column_ann = origin is Column
        if isinstance(ann, str) and ann.startswith(("Column", "docmap.Column")):
            is_column_ann = True
        if not is_column_ann:
            continue

        val = cls.__dict__.get(name, _SENTINEL)
        column: Column[Any]
        if isinstance(val, Column):
            column = val
        elif val is _SENTINEL:
            column = Column()
        else:
            # `name: Column[str] = "x"` shorthand for a default
            column = Column(default=val)

        column.name = name
        column.annotation = _resolve_annotation(ann, cls.__module__)
        columns[name] = column

        if not isinstance(cls.__dict__.get(name), Column):
            setattr(cls, name, column)

    return columns


def build_model(model_name: str, columns: Mapping[str, Column[Any]]) -> type[BaseModel]:
    """Build the pydantic model that validates a record's (or projection's) fields by name."""
    pydantic_fields: dict[str, Any] = {}
    for name, c in columns.items():
        ann = c.annotation if c.annotation is not None else Any
        if c.default_factory is not None:
            pydantic_fields[name] = (ann, PydanticField(default_factory=c.default_factory))
        elif c.default is not _SENTINEL:
            pydantic_fields[name] = (ann, c.default)
        else:
            pydantic_fields[name] = (ann, ...)

    return create_model(  # type: ignore[call-overload]
        model_name, __config__=_MODEL_CONFIG, **pydantic_fields
    )


def type_adapter(annotation: Any) -> TypeAdapter[Any]:
    """A TypeAdapter that tolerates driver types such as ``bson.ObjectId``."""
    try:
        return TypeAdapter(annotation, config=_ADAPTER_CONFIG)
    except PydanticUserError as e:
        # Models, dataclasses and TypedDicts carry their own config.
        if e.code != "type-adapter-config-unused":
            raise
        return TypeAdapter(annotation)


def to_wire(value: Any) -> Any:
    """Turn pydantic's python-mode output into something the BSON encoder accepts."""
    if isinstance(value, Enum):
        return to_wire(value.value)
    if isinstance(value, Mapping):
        return {str(k): to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_wire(v) for v in value]
    return value


class FieldCodec:
    """Serializes values of one field for filters, updates and inserts."""

    def __init__(self, annotation: Any) -> None:
        self.annotation = annotation
        self._adapter = type_adapter(annotation)

    def dump(self, value: Any) -> Any:
        return to_wire(
            self._adapter.dump_python(value, mode="python", by_alias=True, warnings=False)
        )

    def load(self, value: Any) -> Any:
        """Validate ``value`` into the in-memory form a constructed record holds."""
        return self._adapter.validate_python(value)
