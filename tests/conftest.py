"""Shared test fixtures for docmap tests: record types and an in-memory database."""

from __future__ import annotations

import copy
import itertools
from collections.abc import Mapping
from typing import Any

import pytest
from bson import ObjectId

from docmap import Column, Context, Entity, Index, Order, ProjectionCache, Transaction
from docmap.descriptor import IndexDescriptor
from docmap.errors import DatabaseError

# --- Test record types ---


class User(
    Entity,
    projections={"Profile": ["id", "email"]},
    indexes={"_": Index(keys={"email": Order.ASC})},
):
    id: Column[ObjectId] = Column(rename="_id")
    name: Column[str]
    email: Column[str]


class Task(
    Entity,
    collection="tasks",
    projections={"Summary": ["status", "priority"], "Assignment": ["id", "assignee"]},
    indexes={
        "by_status": Index(keys={"status": 1, "priority": -1}, options={"sparse": True}),
    },
):
    id: Column[str] = Column(rename="_id")
    status: Column[str] = "open"
    priority: Column[int] = 0
    assignee: Column[str | None] = Column(None, rename="assignedTo")
    tags: Column[list[str]] = Column(default_factory=list)


# --- In-memory database ---

_MISSING = object()


def _compare(value: Any, operator: str, operand: Any) -> bool:
    if operator == "$eq":
        return value == operand
    if operator == "$ne":
        return value != operand
    if operator == "$in":
        return value in operand
    if operator == "$nin":
        return value not in operand
    if value is _MISSING or value is None:
        return False
    if operator == "$gt":
        return value > operand
    if operator == "$gte":
        return value >= operand
    if operator == "$lt":
        return value < operand
    if operator == "$lte":
        return value <= operand
    raise ValueError(f"unsupported filter operator {operator}")


def matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    for key, condition in filter.items():
        value = document.get(key, _MISSING)
        if isinstance(condition, Mapping) and condition and all(
            k.startswith("$") for k in condition
        ):
            if not all(_compare(value, op, operand) for op, operand in condition.items()):
                return False
        elif value != condition:
            return False
    return True


def apply_update(document: dict[str, Any], update: Mapping[str, Any]) -> None:
    for operator, changes in update.items():
        if operator == "$set":
            for key, value in changes.items():
                document[key] = copy.deepcopy(value)
        elif operator == "$inc":
            for key, value in changes.items():
                document[key] = document.get(key, 0) + value
        elif operator == "$push":
            for key, value in changes.items():
                document.setdefault(key, []).append(value)
        else:
            raise ValueError(f"unsupported update operator {operator}")


def project(document: Mapping[str, Any], projection: Mapping[str, Any] | None) -> dict[str, Any]:
    if projection is None:
        return copy.deepcopy(dict(document))
    included = {k for k, v in projection.items() if v == 1}
    if projection.get("_id", 1) != 0:
        included.add("_id")
    return {k: copy.deepcopy(v) for k, v in document.items() if k in included}


class FakeSession:
    """Stands in for a client session; ``in_transaction`` mirrors pymongo's."""

    _ids = itertools.count(1)

    def __init__(self, in_transaction: bool = True) -> None:
        self.id = next(self._ids)
        self.in_transaction = in_transaction


class FakeCollection:
    def __init__(self, name: str, db: FakeDatabase) -> None:
        self.name = name
        self.db = db
        self.documents: list[dict[str, Any]] = []
        self.indexes: list[IndexDescriptor] = []

    def _record(self, operation: str, session: Any, **details: Any) -> None:
        self.db.calls.append(
            {"operation": operation, "collection": self.name, "session": session, **details}
        )
        error = self.db.fail_on.get(operation)
        if error is not None:
            raise error

    def _matching(self, filter: Mapping[str, Any]) -> list[dict[str, Any]]:
        return [d for d in self.documents if matches(d, filter)]

    async def count_documents(self, filter, *, session=None):
        self._record("count_documents", session, filter=filter)
        return len(self._matching(filter))

    async def insert_one(self, document, *, session=None):
        self._record("insert_one", session, document=document)
        self._insert(document)

    async def insert_many(self, documents, *, session=None):
        self._record("insert_many", session, documents=documents)
        for document in documents:
            self._insert(document)

    def _insert(self, document: Mapping[str, Any]) -> None:
        if any(d["_id"] == document["_id"] for d in self.documents):
            raise DatabaseError("insert", self.name, f"duplicate key {document['_id']!r}")
        self.documents.append(copy.deepcopy(dict(document)))

    async def update_one(self, filter, update, *, session=None):
        self._record("update_one", session, filter=filter, update=update)
        found = self._matching(filter)[:1]
        for document in found:
            apply_update(document, update)
        return len(found)

    async def update_many(self, filter, update, *, session=None):
        self._record("update_many", session, filter=filter, update=update)
        found = self._matching(filter)
        for document in found:
            apply_update(document, update)
        return len(found)

    async def delete_one(self, filter, *, session=None):
        self._record("delete_one", session, filter=filter)
        found = self._matching(filter)[:1]
        for document in found:
            self.documents.remove(document)
        return len(found)

    async def delete_many(self, filter, *, session=None):
        self._record("delete_many", session, filter=filter)
        found = self._matching(filter)
        for document in found:
            self.documents.remove(document)
        return len(found)

    async def find(
        self, filter, *, projection=None, skip=None, limit=None, sort=None, session=None
    ):
        self._record(
            "find", session, filter=filter, projection=projection, skip=skip, limit=limit, sort=sort
        )
        found = list(self._matching(filter))
        for key, direction in reversed(list(sort or [])):
            found.sort(key=lambda d: d.get(key), reverse=direction == -1)
        if skip:
            found = found[skip:]
        if limit:
            found = found[:limit]
        return [project(d, projection) for d in found]

    async def find_one(self, filter, *, projection=None, session=None):
        self._record("find_one", session, filter=filter, projection=projection)
        found = self._matching(filter)
        return project(found[0], projection) if found else None

    async def find_one_and_update(
        self, filter, update, *, projection=None, return_updated=False, session=None
    ):
        self._record(
            "find_one_and_update",
            session,
            filter=filter,
            update=update,
            projection=projection,
            return_updated=return_updated,
        )
        found = self._matching(filter)
        if not found:
            return None
        before = project(found[0], projection)
        apply_update(found[0], update)
        return project(found[0], projection) if return_updated else before

    async def create_indexes(self, indexes, *, session=None):
        self._record("create_indexes", session, indexes=list(indexes))
        self.indexes.extend(indexes)
        return [
            index.name or "_".join(f"{key}_{order.value}" for key, order in index.keys)
            for index in indexes
        ]


class FakeDatabase:
    """In-memory database implementing DatabaseProtocol.

    Every call is recorded in ``calls``; ``fail_on[operation] = exc`` makes
    that operation raise ``exc``.
    """

    def __init__(self) -> None:
        self.collections: dict[str, FakeCollection] = {}
        self.calls: list[dict[str, Any]] = []
        self.fail_on: dict[str, Exception] = {}
        self.closed = False

    def collection(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name, self)
        return self.collections[name]

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["operation"] == operation]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def cache():
    return ProjectionCache()


@pytest.fixture
def ctx(db, cache):
    return Context(db, cache=cache)


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def trx(db, session, cache):
    return Transaction(db, session, cache=cache)


@pytest.fixture
def kit():
    return User(id=ObjectId(), name="Kit", email="kit@example.com")
