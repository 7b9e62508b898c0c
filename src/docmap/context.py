"""Execution contexts: a database handle plus an optional session binding."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from docmap.cache import ProjectionCache, default_projection_cache
from docmap.config import DocmapConfig
from docmap.errors import TransactionRequiredError
from docmap.storage import CollectionProtocol, DatabaseProtocol

DEFAULT_LOCK_FIELD = DocmapConfig.lock_field


@dataclass
class Context:
    """Where an operation runs.

    Without a session the operation runs standalone; with one, every call is
    bound to it. docmap never opens, commits or retries the session's
    transaction.
    """

    db: DatabaseProtocol
    session: Any = None
    cache: ProjectionCache = field(default_factory=default_projection_cache)
    lock_field: str = DEFAULT_LOCK_FIELD

    @classmethod
    def from_config(
        cls, db: DatabaseProtocol, config: DocmapConfig, session: Any = None
    ) -> Context:
        return cls(db, session, lock_field=config.lock_field)

    def collection(self, name: str) -> CollectionProtocol:
        return self.db.collection(name)


@dataclass
class Transaction:
    """A context whose session is inside an active transaction.

    Required by every operation that returns a ``Lock``.
    """

    db: DatabaseProtocol
    session: Any
    cache: ProjectionCache = field(default_factory=default_projection_cache)
    lock_field: str = DEFAULT_LOCK_FIELD

    @classmethod
    def from_config(
        cls, db: DatabaseProtocol, config: DocmapConfig, session: Any
    ) -> Transaction:
        """A Transaction whose dummy writes use ``config.lock_field``."""
        return cls(db, session, lock_field=config.lock_field)

    def context(self) -> Context:
        return Context(self.db, self.session, cache=self.cache, lock_field=self.lock_field)


ContextLike = Union[Context, Transaction, DatabaseProtocol]


def as_context(ctx: ContextLike) -> Context:
    """Normalize a Context, Transaction or bare database handle into a Context."""
    if isinstance(ctx, Context):
        return ctx
    if isinstance(ctx, Transaction):
        return ctx.context()
    if isinstance(ctx, DatabaseProtocol):
        return Context(ctx)
    raise TypeError(f"expected a Context, Transaction or database handle, got {type(ctx).__name__}")


def require_transaction(trx: Any, operation: str) -> Transaction:
    """Check that ``trx`` is a Transaction whose session has a transaction in progress."""
    if not isinstance(trx, Transaction) or trx.session is None:
        raise TransactionRequiredError(operation)
    if not getattr(trx.session, "in_transaction", True):
        raise TransactionRequiredError(operation)
    return trx
