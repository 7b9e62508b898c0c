"""Filter and update contracts, plus the typed and raw implementations the runtime accepts."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import fields as dataclass_fields
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Protocol, TypeVar, runtime_checkable

from docmap.descriptor import IDENTITY_KEY
from docmap.fields import OMIT, Eq, FilterOperator, Set

if TYPE_CHECKING:
    from docmap.records import Document

P = TypeVar("P")


def render_keys(document: Mapping[Any, Any]) -> dict[str, Any]:
    """Render ``Fields`` members (or any str enum) used as keys into their wire names."""
    rendered: dict[str, Any] = {}
    for key, value in document.items():
        if isinstance(key, Enum):
            key = str(key.value)
        if isinstance(value, Mapping):
            value = render_keys(value)
        rendered[key] = value
    return rendered


class Filter:
    """Anything that renders to a filter document."""

    def to_document(self) -> dict[str, Any]:
        raise NotImplementedError


class Update:
    """Anything that renders to an update.

    ``to_document`` is the right-hand side of a ``$set`` operator;
    ``to_update_document`` is the complete update document sent to the engine.
    """

    def to_document(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_update_document(self) -> dict[str, Any]:
        return {"$set": self.to_document()}


@runtime_checkable
class UpdateApply(Protocol[P]):
    """Mirror an update onto an in-memory value, touching only the fields it set."""

    def apply(self, target: P) -> None: ...


class IdFilter(Filter):
    """Matches exactly one identity value."""

    def __init__(self, value: Any, record: type[Document] | None = None) -> None:
        self.value = value
        self.record = record

    def to_document(self) -> dict[str, Any]:
        value = self.value
        if self.record is not None:
            value = self.record._dump_field(self.record.__descriptor__.identity.name, value)
        return {IDENTITY_KEY: value}

    def __repr__(self) -> str:
        return f"by_id({self.value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IdFilter):
            return NotImplemented
        return self.value == other.value and self.record is other.record


def by_id(value: Any, record: type[Document] | None = None) -> IdFilter:
    """Filter matching the document whose identity is ``value``."""
    return IdFilter(value, record)


class RawFilter(Filter):
    """Escape hatch: an arbitrary filter document, e.g. for ``$regex`` or ``$elemMatch``."""

    def __init__(self, document: Mapping[Any, Any]) -> None:
        self.document = render_keys(document)

    def to_document(self) -> dict[str, Any]:
        return dict(self.document)

    def __repr__(self) -> str:
        return f"RawFilter({self.document!r})"


class RawUpdate(Update):
    """Escape hatch: a complete update document, sent as is (``$push``, ``$inc``, ...).

    Cannot be used with ``patch``: the runtime has no way to mirror an opaque
    document in memory. Use ``RawUpdateApply`` for that.
    """

    def __init__(self, document: Mapping[Any, Any]) -> None:
        self.document = render_keys(document)

    def to_document(self) -> dict[str, Any]:
        return dict(self.document)

    def to_update_document(self) -> dict[str, Any]:
        return dict(self.document)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.document!r})"


class RawUpdateApply(RawUpdate, Generic[P]):
    """A raw update paired with the in-memory mutation that mirrors it."""

    def __init__(self, document: Mapping[Any, Any], apply: Callable[[P], None]) -> None:
        super().__init__(document)
        self._apply = apply

    def apply(self, target: P) -> None:
        self._apply(target)


class TypedFilter(Filter):
    """Base for generated per-record filters.

    Subclasses are dataclasses with one member per record field, each holding
    ``OMIT`` or ``Set(FilterOperator)``.
    """

    __record__: ClassVar[type[Document]]

    def __post_init__(self) -> None:
        for f in dataclass_fields(self):
            value = getattr(self, f.name)
            if value is OMIT:
                continue
            if isinstance(value, Set):
                value = value.value
            if not isinstance(value, FilterOperator):
                value = Eq(value)
            object.__setattr__(self, f.name, Set(value))

    def to_document(self) -> dict[str, Any]:
        record = self.__record__
        document: dict[str, Any] = {}
        for f in dataclass_fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, Set):
                continue
            wire_name = record.__descriptor__.wire_name(f.name)
            document[wire_name] = value.value.to_document(
                lambda v, name=f.name: record._dump_field(name, v)
            )
        return document


class TypedUpdate(Update):
    """Base for generated per-record updates.

    Subclasses are dataclasses with one member per record field, each holding
    ``OMIT`` or ``Set(value)``.
    """

    __record__: ClassVar[type[Document]]

    def __post_init__(self) -> None:
        for f in dataclass_fields(self):
            value = getattr(self, f.name)
            if value is OMIT or isinstance(value, Set):
                continue
            object.__setattr__(self, f.name, Set(value))

    def set_fields(self) -> dict[str, Any]:
        """Field name -> value for every member that is set."""
        return {
            f.name: getattr(self, f.name).value
            for f in dataclass_fields(self)
            if isinstance(getattr(self, f.name), Set)
        }

    def to_document(self) -> dict[str, Any]:
        record = self.__record__
        return {
            record.__descriptor__.wire_name(name): record._dump_field(
                name, record._load_field(name, value)
            )
            for name, value in self.set_fields().items()
        }

    def apply(self, target: Document) -> None:
        record = self.__record__
        if getattr(type(target), "__entity__", None) is not record:
            raise TypeError(
                f"{type(self).__qualname__} cannot be applied to {type(target).__name__}"
            )
        # All values validate before any is assigned
        values = {
            name: record._load_field(name, value)
            for name, value in self.set_fields().items()
            if name in type(target).__record_fields__
        }
        for name, value in values.items():
            setattr(target, name, value)
