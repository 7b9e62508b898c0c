"""Database boundary: the protocol the runtime calls through, and its pymongo implementation."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

from pymongo import AsyncMongoClient, IndexModel, ReturnDocument
from pymongo.errors import PyMongoError

from docmap.config import DocmapConfig
from docmap.descriptor import IndexDescriptor
from docmap.errors import DatabaseError, WriteConflictError

logger = logging.getLogger(__name__)

Document = dict[str, Any]


@runtime_checkable
class CollectionProtocol(Protocol):
    """One collection. Every method takes an optional session to bind the call to."""

    name: str

    async def count_documents(self, filter: Mapping[str, Any], *, session: Any = None) -> int: ...

    async def insert_one(self, document: Mapping[str, Any], *, session: Any = None) -> None: ...

    async def insert_many(
        self, documents: Sequence[Mapping[str, Any]], *, session: Any = None
    ) -> None: ...

    async def update_one(
        self, filter: Mapping[str, Any], update: Mapping[str, Any], *, session: Any = None
    ) -> int: ...

    async def update_many(
        self, filter: Mapping[str, Any], update: Mapping[str, Any], *, session: Any = None
    ) -> int: ...

    async def delete_one(self, filter: Mapping[str, Any], *, session: Any = None) -> int: ...

    async def delete_many(self, filter: Mapping[str, Any], *, session: Any = None) -> int: ...

    async def find(
        self,
        filter: Mapping[str, Any],
        *,
        projection: Mapping[str, Any] | None = None,
        skip: int | None = None,
        limit: int | None = None,
        sort: Sequence[tuple[str, int]] | None = None,
        session: Any = None,
    ) -> list[Document]: ...

    async def find_one(
        self,
        filter: Mapping[str, Any],
        *,
        projection: Mapping[str, Any] | None = None,
        session: Any = None,
    ) -> Document | None: ...

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        projection: Mapping[str, Any] | None = None,
        return_updated: bool = False,
        session: Any = None,
    ) -> Document | None: ...

    async def create_indexes(
        self, indexes: Sequence[IndexDescriptor], *, session: Any = None
    ) -> list[str]: ...


@runtime_checkable
class DatabaseProtocol(Protocol):
    """A database handle: hands out collections by name."""

    def collection(self, name: str) -> CollectionProtocol: ...


@contextmanager
def _translate_errors(operation: str, collection: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        if e.has_error_label("TransientTransactionError"):
            raise WriteConflictError(operation, collection, str(e)) from e
        raise DatabaseError(operation, collection, str(e)) from e


def _index_model(index: IndexDescriptor) -> IndexModel:
    options = dict(index.options)
    if index.name is not None:
        options["name"] = index.name
    return IndexModel([(key, order.value) for key, order in index.keys], **options)


class MongoCollection:
    """CollectionProtocol over a pymongo ``AsyncCollection``."""

    def __init__(self, collection: Any) -> None:
        self._collection = collection
        self.name: str = collection.name

    async def count_documents(self, filter: Mapping[str, Any], *, session: Any = None) -> int:
        logger.debug("count_documents on %s: %s", self.name, filter)
        with _translate_errors("count_documents", self.name):
            return await self._collection.count_documents(filter, session=session)

    async def insert_one(self, document: Mapping[str, Any], *, session: Any = None) -> None:
        logger.debug("insert_one on %s", self.name)
        with _translate_errors("insert_one", self.name):
            await self._collection.insert_one(document, session=session)

    async def insert_many(
        self, documents: Sequence[Mapping[str, Any]], *, session: Any = None
    ) -> None:
        logger.debug("insert_many on %s: %d documents", self.name, len(documents))
        with _translate_errors("insert_many", self.name):
            await self._collection.insert_many(documents, session=session)

    async def update_one(
        self, filter: Mapping[str, Any], update: Mapping[str, Any], *, session: Any = None
    ) -> int:
        logger.debug("update_one on %s: %s %s", self.name, filter, update)
        with _translate_errors("update_one", self.name):
            result = await self._collection.update_one(filter, update, session=session)
        return result.matched_count

    async def update_many(
        self, filter: Mapping[str, Any], update: Mapping[str, Any], *, session: Any = None
    ) -> int:
        logger.debug("update_many on %s: %s %s", self.name, filter, update)
        with _translate_errors("update_many", self.name):
            result = await self._collection.update_many(filter, update, session=session)
        return result.matched_count

    async def delete_one(self, filter: Mapping[str, Any], *, session: Any = None) -> int:
        logger.debug("delete_one on %s: %s", self.name, filter)
        with _translate_errors("delete_one", self.name):
            result = await self._collection.delete_one(filter, session=session)
        return result.deleted_count

    async def delete_many(self, filter: Mapping[str, Any], *, session: Any = None) -> int:
        logger.debug("delete_many on %s: %s", self.name, filter)
        with _translate_errors("delete_many", self.name):
            result = await self._collection.delete_many(filter, session=session)
        return result.deleted_count

    async def find(
        self,
        filter: Mapping[str, Any],
        *,
        projection: Mapping[str, Any] | None = None,
        skip: int | None = None,
        limit: int | None = None,
        sort: Sequence[tuple[str, int]] | None = None,
        session: Any = None,
    ) -> list[Document]:
        logger.debug(
            "find on %s: %s (projection=%s skip=%s limit=%s sort=%s)",
            self.name,
            filter,
            projection,
            skip,
            limit,
            sort,
        )
        with _translate_errors("find", self.name):
            cursor = self._collection.find(
                filter,
                projection=projection,
                skip=skip or 0,
                limit=limit or 0,
                sort=list(sort) if sort else None,
                session=session,
            )
            return await cursor.to_list(None)

    async def find_one(
        self,
        filter: Mapping[str, Any],
        *,
        projection: Mapping[str, Any] | None = None,
        session: Any = None,
    ) -> Document | None:
        logger.debug("find_one on %s: %s (projection=%s)", self.name, filter, projection)
        with _translate_errors("find_one", self.name):
            return await self._collection.find_one(filter, projection=projection, session=session)

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        projection: Mapping[str, Any] | None = None,
        return_updated: bool = False,
        session: Any = None,
    ) -> Document | None:
        logger.debug("find_one_and_update on %s: %s %s", self.name, filter, update)
        with _translate_errors("find_one_and_update", self.name):
            return await self._collection.find_one_and_update(
                filter,
                update,
                projection=projection,
                return_document=ReturnDocument.AFTER if return_updated else ReturnDocument.BEFORE,
                session=session,
            )

    async def create_indexes(
        self, indexes: Sequence[IndexDescriptor], *, session: Any = None
    ) -> list[str]:
        logger.debug("create_indexes on %s: %d indexes", self.name, len(indexes))
        with _translate_errors("create_indexes", self.name):
            return await self._collection.create_indexes(
                [_index_model(index) for index in indexes], session=session
            )


class MongoDatabase:
    """DatabaseProtocol over a pymongo ``AsyncDatabase``."""

    def __init__(self, database: Any, client: AsyncMongoClient | None = None) -> None:
        self._database = database
        self._client = client
        self.name: str = database.name

    @property
    def client(self) -> AsyncMongoClient | None:
        return self._client

    @property
    def raw(self) -> Any:
        """The underlying pymongo database, for operations docmap does not cover."""
        return self._database

    def collection(self, name: str) -> MongoCollection:
        return MongoCollection(self._database.get_collection(name))

    def start_session(self, **kwargs: Any) -> Any:
        """Open a pymongo client session; use it with ``async with`` and ``start_transaction``."""
        if self._client is None:
            raise DatabaseError("start_session", None, "database was not opened with connect()")
        return self._client.start_session(**kwargs)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


def connect(config: DocmapConfig | None = None) -> MongoDatabase:
    """Open a client for ``config`` (or ``DocmapConfig.from_env()``) and return its database."""
    if config is None:
        config = DocmapConfig.from_env()
    client: AsyncMongoClient = AsyncMongoClient(
        config.uri,
        appname=config.app_name,
        serverSelectionTimeoutMS=config.server_selection_timeout_ms,
    )
    logger.info("Opened MongoDB client for database %s", config.database)
    return MongoDatabase(client.get_database(config.database), client)
