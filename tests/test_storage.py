"""Tests for the pymongo adapter, using mocked driver objects."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from docmap import DatabaseError, DocmapConfig, MongoDatabase, WriteConflictError, connect
from docmap.storage import CollectionProtocol, DatabaseProtocol, MongoCollection
from tests.conftest import FakeDatabase, Task, User


@pytest.fixture
def raw_collection():
    collection = MagicMock()
    collection.name = "user"
    return collection


@pytest.fixture
def collection(raw_collection):
    return MongoCollection(raw_collection)


class TestProtocols:
    def test_fake_database_satisfies_protocol(self):
        assert isinstance(FakeDatabase(), DatabaseProtocol)

    def test_mongo_database_satisfies_protocol(self, raw_collection):
        database = MagicMock()
        database.name = "app"
        database.get_collection.return_value = raw_collection
        db = MongoDatabase(database)
        assert isinstance(db, DatabaseProtocol)
        assert isinstance(db.collection("user"), CollectionProtocol)
        database.get_collection.assert_called_once_with("user")


class TestMongoCollection:
    @pytest.mark.asyncio
    async def test_update_one_returns_matched(self, raw_collection, collection):
        raw_collection.update_one = AsyncMock(return_value=SimpleNamespace(matched_count=1))
        session = object()
        assert await collection.update_one({"_id": 1}, {"$set": {"a": 1}}, session=session) == 1
        raw_collection.update_one.assert_awaited_once_with(
            {"_id": 1}, {"$set": {"a": 1}}, session=session
        )

    @pytest.mark.asyncio
    async def test_delete_many_returns_deleted(self, raw_collection, collection):
        raw_collection.delete_many = AsyncMock(return_value=SimpleNamespace(deleted_count=3))
        assert await collection.delete_many({}) == 3

    @pytest.mark.asyncio
    async def test_find_passes_options(self, raw_collection, collection):
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[{"_id": 1}])
        raw_collection.find.return_value = cursor
        documents = await collection.find(
            {"a": 1}, projection={"a": 1}, skip=5, limit=10, sort=[("a", -1)]
        )
        assert documents == [{"_id": 1}]
        raw_collection.find.assert_called_once_with(
            {"a": 1}, projection={"a": 1}, skip=5, limit=10, sort=[("a", -1)], session=None
        )

    @pytest.mark.asyncio
    async def test_find_one_and_update_return_document(self, raw_collection, collection):
        raw_collection.find_one_and_update = AsyncMock(return_value=None)
        await collection.find_one_and_update({}, {"$set": {"a": 1}})
        assert (
            raw_collection.find_one_and_update.await_args.kwargs["return_document"]
            is ReturnDocument.BEFORE
        )
        await collection.find_one_and_update({}, {"$set": {"a": 1}}, return_updated=True)
        assert (
            raw_collection.find_one_and_update.await_args.kwargs["return_document"]
            is ReturnDocument.AFTER
        )

    @pytest.mark.asyncio
    async def test_create_indexes_names_only_named_indexes(self, raw_collection, collection):
        raw_collection.create_indexes = AsyncMock(return_value=["email_1", "by_status"])
        indexes = [*User.__descriptor__.indexes, *Task.__descriptor__.indexes]
        assert await collection.create_indexes(indexes) == ["email_1", "by_status"]
        models = raw_collection.create_indexes.await_args.args[0]
        assert models[0].document["key"] == {"email": 1}
        assert models[1].document["name"] == "by_status"
        assert models[1].document["sparse"] is True

    @pytest.mark.asyncio
    async def test_engine_error_translated(self, raw_collection, collection):
        original = PyMongoError("connection refused")
        raw_collection.insert_one = AsyncMock(side_effect=original)
        with pytest.raises(DatabaseError) as exc_info:
            await collection.insert_one({"_id": 1})
        assert exc_info.value.operation == "insert_one"
        assert exc_info.value.collection == "user"
        assert exc_info.value.__cause__ is original
        assert not isinstance(exc_info.value, WriteConflictError)

    @pytest.mark.asyncio
    async def test_transient_error_is_write_conflict(self, raw_collection, collection):
        raw_collection.update_one = AsyncMock(
            side_effect=PyMongoError("write conflict", error_labels=["TransientTransactionError"])
        )
        with pytest.raises(WriteConflictError):
            await collection.update_one({}, {"$set": {"a": 1}})


class TestMongoDatabase:
    def test_start_session_requires_client(self):
        database = MagicMock()
        database.name = "app"
        with pytest.raises(DatabaseError):
            MongoDatabase(database).start_session()

    @pytest.mark.asyncio
    async def test_close(self):
        client = MagicMock()
        client.close = AsyncMock()
        database = MagicMock()
        database.name = "app"
        await MongoDatabase(database, client).close()
        client.close.assert_awaited_once()


def test_connect(monkeypatch):
    client_cls = MagicMock()
    monkeypatch.setattr("docmap.storage.AsyncMongoClient", client_cls)
    config = DocmapConfig(uri="mongodb://db:27017", database="app", app_name="svc")
    db = connect(config)
    client_cls.assert_called_once_with(
        "mongodb://db:27017", appname="svc", serverSelectionTimeoutMS=30000
    )
    client_cls.return_value.get_database.assert_called_once_with("app")
    assert db.client is client_cls.return_value


def test_connect_without_config_reads_env(monkeypatch):
    client_cls = MagicMock()
    monkeypatch.setattr("docmap.storage.AsyncMongoClient", client_cls)
    monkeypatch.setenv("DOCMAP_URI", "mongodb://env:27017")
    monkeypatch.setenv("DOCMAP_DATABASE", "envdb")
    connect()
    assert client_cls.call_args.args == ("mongodb://env:27017",)
    client_cls.return_value.get_database.assert_called_once_with("envdb")
