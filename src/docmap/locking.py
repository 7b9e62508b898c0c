"""Lock: proof that a value was write-touched inside the active transaction.

Once a document has received any write inside a transaction, the engine's
conflict detection guarantees that no other transaction can modify it
without one of the two aborting at commit. A ``Lock`` carries that
guarantee between steps of a read-modify-write sequence: functions that
need it take a ``Lock`` and call ``require_lock`` on it.

Locks are created only by the locking operations of the runtime. They are
meaningless outside the transaction that produced them and must not be
persisted or returned from it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from bson import ObjectId

from docmap.errors import LockError

if TYPE_CHECKING:
    from docmap.context import Transaction

T = TypeVar("T")

_SEAL = object()


class Lock(Generic[T]):
    """Sealed wrapper around a locked value. Unwrap explicitly with ``value`` or ``into_inner``."""

    __slots__ = ("_value", "_session")

    def __init__(self, value: T, session: Any, *, _seal: object = None) -> None:
        if _seal is not _SEAL:
            raise LockError("Lock values are produced by locking operations only")
        self._value = value
        self._session = session

    @property
    def value(self) -> T:
        return self._value

    @property
    def session(self) -> Any:
        return self._session

    def into_inner(self) -> T:
        return self._value

    def ensure(self, trx: Transaction) -> T:
        """Return the value if this lock was taken in ``trx``'s session."""
        if trx.session is not self._session:
            raise LockError("lock was taken in a different session")
        return self._value

    def __repr__(self) -> str:
        return f"Lock({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Lock):
            return NotImplemented
        return self._value == other._value and self._session is other._session

    __hash__ = None  # type: ignore[assignment]


def seal(value: T, trx: Transaction) -> Lock[T]:
    """Wrap ``value`` after a locking write was performed in ``trx``."""
    return Lock(value, trx.session, _seal=_SEAL)


def require_lock(value: Any, trx: Transaction | None = None) -> Any:
    """Unwrap ``value``, failing unless it is a Lock (taken in ``trx`` when given)."""
    if not isinstance(value, Lock):
        raise LockError(f"expected a Lock, got unlocked {type(value).__name__}")
    if trx is not None:
        return value.ensure(trx)
    return value.value


def lock_update(lock_field: str) -> dict[str, Any]:
    """The dummy write: a fresh random seed in a field nothing else reads."""
    return {"$set": {lock_field: {"seed": ObjectId()}}}
