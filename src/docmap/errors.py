"""Structured error types for docmap."""

from __future__ import annotations


class DocmapError(Exception):
    """Base error for all docmap errors."""


class DescriptorError(DocmapError, TypeError):
    """Raised when a record declaration fails schema validation.

    Raised while the record class is being created, so a misdeclared record
    type never becomes usable.
    """

    def __init__(self, record_name: str, message: str) -> None:
        self.record_name = record_name
        self.detail = message
        super().__init__(f"Invalid declaration for '{record_name}': {message}")


class DatabaseError(DocmapError):
    """Raised when the database engine reports a failure."""

    def __init__(self, operation: str, collection: str | None, detail: str) -> None:
        self.operation = operation
        self.collection = collection
        self.detail = detail
        target = "<unknown>" if collection is None else collection
        super().__init__(f"Database error during {operation} on '{target}': {detail}")


class WriteConflictError(DatabaseError):
    """Raised when a concurrent transaction modified the same document.

    The transaction owning the session must be aborted and retried by the caller.
    """


class TransactionRequiredError(DocmapError):
    """Raised when a locking operation is called outside an active transaction."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(
            f"'{operation}' requires a Transaction bound to a session with an active transaction"
        )


class LockError(DocmapError):
    """Raised when a value is used as a lock but was not locked in the given transaction."""
