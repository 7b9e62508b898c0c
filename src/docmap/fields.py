"""Value wrappers used by typed filters and updates: Set/OMIT, comparison operators, Order."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar, Union

T = TypeVar("T")


class _Omit:
    """The "not mentioned" state of a Field. Use the OMIT singleton."""

    _instance: ClassVar[_Omit | None] = None

    def __new__(cls) -> _Omit:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "OMIT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "OMIT"


OMIT = _Omit()


@dataclass(frozen=True)
class Set(Generic[T]):
    """The "participates with this value" state of a Field.

    ``Set(None)`` is a legitimate value, distinct from ``OMIT``.
    """

    value: T


Field = Union[Set[T], _Omit]


def is_set(field: Any) -> bool:
    return isinstance(field, Set)


def from_optional(value: T | None) -> Field[T]:
    """Map ``None`` to OMIT and anything else to ``Set(value)``."""
    if value is None:
        return OMIT
    return Set(value)


_DIRECTION_ERROR = "invalid direction {value!r}: expected 1, -1, Order.ASC or Order.DESC"


class Order(Enum):
    """Sort and index direction."""

    ASC = 1
    DESC = -1

    @classmethod
    def coerce(cls, value: Any) -> Order:
        if isinstance(value, Order):
            return value
        if isinstance(value, bool):
            raise ValueError(_DIRECTION_ERROR.format(value=value))
        if value in (1, -1):
            return cls(value)
        raise ValueError(_DIRECTION_ERROR.format(value=value))


@dataclass(frozen=True)
class FilterOperator(Generic[T]):
    """A comparison applied to one field of a typed filter."""

    operator: ClassVar[str]
    operand: Any

    def to_document(self, serialize: Callable[[Any], Any] = lambda v: v) -> dict[str, Any]:
        return {self.operator: serialize(self.operand)}


class Eq(FilterOperator[T]):
    operator = "$eq"


class Ne(FilterOperator[T]):
    operator = "$ne"


class Gt(FilterOperator[T]):
    operator = "$gt"


class Gte(FilterOperator[T]):
    operator = "$gte"


class Lt(FilterOperator[T]):
    operator = "$lt"


class Lte(FilterOperator[T]):
    operator = "$lte"


class _MembershipOperator(FilterOperator[T]):
    def __init__(self, operand: Iterable[Any]) -> None:
        if isinstance(operand, (str, bytes)):
            raise TypeError(
                f"{type(self).__name__} expects a collection of values, got {operand!r}"
            )
        object.__setattr__(self, "operand", list(operand))

    def to_document(self, serialize: Callable[[Any], Any] = lambda v: v) -> dict[str, Any]:
        return {self.operator: [serialize(v) for v in self.operand]}


class In(_MembershipOperator[T]):
    operator = "$in"


class Nin(_MembershipOperator[T]):
    operator = "$nin"
