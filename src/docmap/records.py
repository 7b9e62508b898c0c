"""Records and projections: declaration surface plus the CRUD, projection and locking runtime.

Capabilities are layered:

- ``Selectable``: read shapes (an entity or any of its projections):
  ``find``, ``find_with_options``, ``find_one``, ``find_one_and_update`` and
  their locking variants.
- ``SelectableWithId``: read shapes that carry the identity field:
  ``patch``, ``patch_locked``, ``remove``.
- ``Entity``: the full record, mapped one-to-one to a collection, with the
  record-level operations (``count``, ``insert``, ``update``, ``delete``, ...).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel

from docmap import compiler
from docmap.cache import ProjectionCache, default_projection_cache
from docmap.context import Context, ContextLike, Transaction, as_context, require_transaction
from docmap.descriptor import EntityDescriptor, ProjectionDescriptor
from docmap.errors import DescriptorError, LockError
from docmap.fields import Order
from docmap.filters import (
    Filter,
    IdFilter,
    RawUpdate,
    TypedFilter,
    TypedUpdate,
    Update,
    UpdateApply,
    by_id,
)
from docmap.locking import Lock, lock_update, seal
from docmap.registry import Registry, default_registry
from docmap.types import Column, FieldCodec, build_model, collect_columns

logger = logging.getLogger(__name__)

S = TypeVar("S", bound="Selectable")
E = TypeVar("E", bound="Entity")

SortSpec = Mapping[Any, Order | int]


class Document:
    """Shared record behavior: validation on construction, wire (de)serialization."""

    __descriptor__: ClassVar[EntityDescriptor]
    __entity__: ClassVar[type[Entity]]
    __record_fields__: ClassVar[tuple[str, ...]] = ()
    _columns: ClassVar[dict[str, Column[Any]]]
    _pydantic_model: ClassVar[type[BaseModel]]

    def __init__(self, **data: Any) -> None:
        validated = self._pydantic_model(**data)
        for name in self.__record_fields__:
            setattr(self, name, getattr(validated, name))

    @classmethod
    def _from_validated(cls: type[S], validated: BaseModel) -> S:
        obj = cls.__new__(cls)
        for name in cls.__record_fields__:
            setattr(obj, name, getattr(validated, name))
        return obj

    @classmethod
    def from_document(cls: type[S], document: Mapping[str, Any]) -> S:
        """Build an instance from a stored document (keys are wire names)."""
        descriptor = cls.__descriptor__
        data = {}
        for name in cls.__record_fields__:
            wire_name = descriptor.wire_name(name)
            if wire_name in document:
                data[name] = document[wire_name]
        return cls._from_validated(cls._pydantic_model.model_validate(data))

    def to_document(self) -> dict[str, Any]:
        descriptor = self.__descriptor__
        return {
            descriptor.wire_name(name): self._dump_field(name, getattr(self, name))
            for name in self.__record_fields__
        }

    @classmethod
    def _dump_field(cls, name: str, value: Any) -> Any:
        return cls.__entity__._codecs[name].dump(value)

    @classmethod
    def _load_field(cls, name: str, value: Any) -> Any:
        return cls.__entity__._codecs[name].load(value)

    def model_dump(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__record_fields__}

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={getattr(self, k, None)!r}" for k in self.__record_fields__)
        return f"{self.__class__.__name__}({fields})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return NotImplemented
        return self.model_dump() == other.model_dump()

    __hash__ = None  # type: ignore[assignment]


def _filter_document(record: type[Document], filter: Filter | None) -> dict[str, Any]:
    if filter is None:
        return {}
    if not isinstance(filter, Filter):
        raise TypeError(
            f"expected a Filter, got {type(filter).__name__}; wrap raw documents in RawFilter"
        )
    if isinstance(filter, TypedFilter) and filter.__record__ is not record.__entity__:
        raise TypeError(
            f"{type(filter).__qualname__} cannot filter {record.__entity__.__name__} records"
        )
    return filter.to_document()


def _update_document(record: type[Document], update: Update) -> dict[str, Any]:
    if not isinstance(update, Update):
        raise TypeError(
            f"expected an Update, got {type(update).__name__}; wrap raw documents in RawUpdate"
        )
    if isinstance(update, TypedUpdate) and update.__record__ is not record.__entity__:
        raise TypeError(
            f"{type(update).__qualname__} cannot update {record.__entity__.__name__} records"
        )
    return update.to_update_document()


def _with_lock_seed(update_document: dict[str, Any], lock_field: str) -> dict[str, Any]:
    """Add the dummy write to an update so it always modifies the document."""
    seeded = dict(update_document)
    seeded["$set"] = {**seeded.get("$set", {}), **lock_update(lock_field)["$set"]}
    return seeded


def _sort_document(record: type[Document], sort: SortSpec) -> list[tuple[str, int]]:
    fields_enum = record.__entity__.Fields
    wire_names = {member.value for member in fields_enum}
    keys: list[tuple[str, int]] = []
    for key, direction in sort.items():
        if isinstance(key, fields_enum):
            wire_name = key.value
        elif isinstance(key, str) and not isinstance(key, compiler.FieldName) and (
            key in wire_names
        ):
            wire_name = key
        else:
            raise TypeError(f"{key!r} is not a field of {record.__entity__.__name__}")
        keys.append((wire_name, Order.coerce(direction).value))
    return keys


class Selectable(Document):
    """A read shape: the full record or one of its projections.

    ``FIELDS`` lists the wire names fetched; None means the whole document.
    """

    FIELDS: ClassVar[tuple[str, ...] | None] = None

    @classmethod
    def projection_document(cls, cache: ProjectionCache | None = None) -> dict[str, Any] | None:
        if cache is None:
            cache = default_projection_cache()
        return cache.get(cls.FIELDS)

    @classmethod
    async def find(cls: type[S], ctx: ContextLike, filter: Filter | None = None) -> list[S]:
        return await cls.find_with_options(ctx, filter)

    @classmethod
    async def find_with_options(
        cls: type[S],
        ctx: ContextLike,
        filter: Filter | None = None,
        *,
        skip: int | None = None,
        limit: int | None = None,
        sort: SortSpec | None = None,
    ) -> list[S]:
        context = as_context(ctx)
        documents = await context.collection(cls.__descriptor__.collection_name).find(
            _filter_document(cls, filter),
            projection=context.cache.get(cls.FIELDS),
            skip=skip,
            limit=limit,
            sort=_sort_document(cls, sort) if sort else None,
            session=context.session,
        )
        return [cls.from_document(document) for document in documents]

    @classmethod
    async def find_one(cls: type[S], ctx: ContextLike, filter: Filter | None = None) -> S | None:
        context = as_context(ctx)
        document = await context.collection(cls.__descriptor__.collection_name).find_one(
            _filter_document(cls, filter),
            projection=context.cache.get(cls.FIELDS),
            session=context.session,
        )
        if document is None:
            return None
        return cls.from_document(document)

    @classmethod
    async def find_one_and_update(
        cls: type[S],
        ctx: ContextLike,
        filter: Filter | None,
        update: Update,
        *,
        return_updated: bool = False,
    ) -> S | None:
        """Update the first match and return it (as it was before the update by default)."""
        return await cls._find_one_and_update(
            as_context(ctx), filter, _update_document(cls, update), return_updated=return_updated
        )

    @classmethod
    async def _find_one_and_update(
        cls: type[S],
        context: Context,
        filter: Filter | None,
        update_document: dict[str, Any],
        *,
        return_updated: bool,
    ) -> S | None:
        document = await context.collection(cls.__descriptor__.collection_name).find_one_and_update(
            _filter_document(cls, filter),
            update_document,
            projection=context.cache.get(cls.FIELDS),
            return_updated=return_updated,
            session=context.session,
        )
        if document is None:
            return None
        return cls.from_document(document)

    @classmethod
    async def find_one_and_update_locked(
        cls: type[S],
        trx: Transaction,
        filter: Filter | None,
        update: Update,
        *,
        return_updated: bool = False,
    ) -> Lock[S] | None:
        require_transaction(trx, "find_one_and_update_locked")
        found = await cls._find_one_and_update(
            trx.context(),
            filter,
            _with_lock_seed(_update_document(cls, update), trx.lock_field),
            return_updated=return_updated,
        )
        return None if found is None else seal(found, trx)

    @classmethod
    async def find_one_and_lock(
        cls: type[S], trx: Transaction, filter: Filter | None = None
    ) -> Lock[S] | None:
        """Lock the first match with a dummy write and return it."""
        require_transaction(trx, "find_one_and_lock")
        found = await cls._find_one_and_update(
            trx.context(), filter, lock_update(trx.lock_field), return_updated=False
        )
        return None if found is None else seal(found, trx)


class SelectableWithId(Selectable):
    """A read shape that includes the identity field, so it can write itself back."""

    @property
    def identity(self) -> Any:
        return getattr(self, self.__descriptor__.identity.name)

    def _identity_filter(self) -> IdFilter:
        return by_id(self.identity, self.__entity__)

    async def patch(self, ctx: ContextLike, update: Update) -> int:
        """Apply ``update`` to the stored document, then to this instance.

        Returns the matched count. The instance is left untouched when the
        database call raises or no stored document matched.
        """
        return await self._patch(as_context(ctx), update, lock_field=None)

    async def _patch(self, context: Context, update: Update, *, lock_field: str | None) -> int:
        if not isinstance(update, UpdateApply):
            raise TypeError(
                f"{type(update).__name__} cannot be mirrored in memory; "
                "use a TypedUpdate or RawUpdateApply with patch()"
            )
        update_document = _update_document(type(self), update)
        if lock_field is not None:
            update_document = _with_lock_seed(update_document, lock_field)
        matched = await context.collection(self.__descriptor__.collection_name).update_one(
            self._identity_filter().to_document(), update_document, session=context.session
        )
        if lock_field is not None and matched == 0:
            raise LockError(
                f"{self.__entity__.__name__} {self.identity!r} no longer exists; nothing was locked"
            )
        if matched:
            update.apply(self)
        return matched

    async def patch_locked(self: S, trx: Transaction, update: Update) -> Lock[S]:
        require_transaction(trx, "patch_locked")
        await self._patch(trx.context(), update, lock_field=trx.lock_field)
        return seal(self, trx)

    async def remove(self, ctx: ContextLike) -> int:
        """Delete the stored document with this instance's identity."""
        context = as_context(ctx)
        return await context.collection(self.__descriptor__.collection_name).delete_one(
            self._identity_filter().to_document(), session=context.session
        )


def _prepare_shape(
    cls: type[Document], entity: type[Entity], columns: dict[str, Column[Any]]
) -> None:
    cls.__entity__ = entity
    cls.__descriptor__ = entity.__descriptor__
    cls.__record_fields__ = tuple(columns)
    cls._columns = columns
    cls._pydantic_model = build_model(f"_{cls.__name__}Model", columns)


class Projection(Selectable):
    """A fixed subset of an entity's fields, read independently of the full record.

    Declared projections are generated by the compiler; hand-written ones are
    validated against their entity::

        class Contact(Projection, entity=User):
            email: Column[str]
    """

    __projection__: ClassVar[ProjectionDescriptor]

    def __init_subclass__(cls, entity: type[Entity] | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if entity is None:
            # Intermediate base such as ProjectionWithId
            return
        if not (isinstance(entity, type) and issubclass(entity, Entity)):
            raise DescriptorError(
                cls.__name__, f"entity must be an Entity subclass, got {entity!r}"
            )

        columns = collect_columns(cls)
        projection = compiler.validate_projection_shape(
            cls.__name__, entity.__descriptor__, columns
        )
        if issubclass(cls, SelectableWithId) and not projection.includes_identity:
            raise DescriptorError(
                cls.__name__,
                f"a projection with write-back must include the identity field "
                f"'{entity.__descriptor__.identity.name}'",
            )
        cls.__projection__ = projection
        _prepare_shape(cls, entity, columns)
        cls.FIELDS = tuple(columns[name].wire_name for name in projection.fields)

    @classmethod
    def from_entity(cls: type[S], entity: Entity) -> S:
        """Narrow a full record to this projection."""
        if not isinstance(entity, cls.__entity__):
            raise TypeError(
                f"{cls.__name__} projects {cls.__entity__.__name__}, not {type(entity).__name__}"
            )
        obj = cls.__new__(cls)
        for name in cls.__record_fields__:
            setattr(obj, name, getattr(entity, name))
        return obj


class ProjectionWithId(Projection, SelectableWithId):
    """A projection that includes the identity field and supports ``patch``/``remove``."""


_RESERVED_NAMES = (
    "Fields",
    "TypedFilter",
    "TypedUpdate",
    "FIELDS",
    "projections",
    "indexes",
    "register",
    "registry",
)


class Entity(SelectableWithId):
    """Base class for records mapped to a collection.

    Declaring a subclass compiles it; any declaration error is raised right
    here as DescriptorError::

        class User(Entity, projections={"Profile": ["id", "email"]},
                   indexes={"_": Index(keys={"email": Order.ASC})}):
            id: Column[ObjectId] = Column(rename="_id")
            name: Column[str]
            email: Column[str]

    Generated members: ``User.Fields``, ``User.TypedFilter``,
    ``User.TypedUpdate`` and one class per projection (``User.Profile``).
    """

    Fields: ClassVar[type[compiler.FieldName]]
    TypedFilter: ClassVar[type[TypedFilter]]
    TypedUpdate: ClassVar[type[TypedUpdate]]
    _codecs: ClassVar[dict[str, FieldCodec]]

    def __init_subclass__(
        cls,
        collection: str | None = None,
        projections: Mapping[str, Sequence[str]] | None = None,
        indexes: Mapping[str, compiler.Index | Mapping[str, Any]] | None = None,
        register: bool = True,
        registry: Registry | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)

        columns = collect_columns(cls)
        descriptor = compiler.build_descriptor(
            cls.__name__,
            columns,
            collection=collection,
            projections=projections,
            indexes=indexes,
            reserved=_reserved_names(),
        )
        cls.__descriptor__ = descriptor
        _prepare_shape(cls, cls, columns)
        cls.FIELDS = None
        cls._codecs = {name: FieldCodec(column.annotation) for name, column in columns.items()}

        cls.Fields = compiler.emit_fields_enum(cls, descriptor)
        cls.TypedFilter = compiler.emit_typed_filter(cls, descriptor)
        cls.TypedUpdate = compiler.emit_typed_update(cls, descriptor)
        for projection in descriptor.projections:
            if hasattr(cls, projection.name):
                raise DescriptorError(
                    cls.__name__, f"projection '{projection.name}' shadows an existing attribute"
                )
            base = ProjectionWithId if projection.includes_identity else Projection
            setattr(cls, projection.name, compiler.emit_projection(cls, columns, projection, base))

        if register:
            (registry if registry is not None else default_registry()).register(cls)
        logger.debug(
            "Compiled %s -> collection %s (%d projections, %d indexes)",
            cls.__name__,
            descriptor.collection_name,
            len(descriptor.projections),
            len(descriptor.indexes),
        )

    @classmethod
    def by_id(cls, value: Any) -> IdFilter:
        return by_id(value, cls)

    @classmethod
    def collection(cls, ctx: ContextLike) -> Any:
        return as_context(ctx).collection(cls.__descriptor__.collection_name)

    @classmethod
    async def count(cls, ctx: ContextLike, filter: Filter | None = None) -> int:
        context = as_context(ctx)
        return await cls.collection(context).count_documents(
            _filter_document(cls, filter), session=context.session
        )

    @classmethod
    async def exists(cls, ctx: ContextLike, filter: Filter | None = None) -> bool:
        return await cls.count(ctx, filter) > 0

    async def insert(self, ctx: ContextLike) -> None:
        context = as_context(ctx)
        await self.collection(context).insert_one(self.to_document(), session=context.session)

    async def insert_locked(self: E, trx: Transaction) -> Lock[E]:
        """Insert; the new document is visible only to ``trx`` until it commits."""
        require_transaction(trx, "insert_locked")
        await self.insert(trx)
        return seal(self, trx)

    @classmethod
    async def insert_many(cls: type[E], ctx: ContextLike, records: Sequence[E]) -> None:
        for record in records:
            if not isinstance(record, cls):
                raise TypeError(f"insert_many on {cls.__name__} got {type(record).__name__}")
        if not records:
            return
        context = as_context(ctx)
        await cls.collection(context).insert_many(
            [record.to_document() for record in records], session=context.session
        )

    @classmethod
    async def insert_many_locked(
        cls: type[E], trx: Transaction, records: Sequence[E]
    ) -> list[Lock[E]]:
        require_transaction(trx, "insert_many_locked")
        await cls.insert_many(trx, records)
        return [seal(record, trx) for record in records]

    @classmethod
    async def update(cls, ctx: ContextLike, filter: Filter | None, update: Update) -> int:
        """Update every match; returns the matched count."""
        context = as_context(ctx)
        return await cls.collection(context).update_many(
            _filter_document(cls, filter), _update_document(cls, update), session=context.session
        )

    @classmethod
    async def update_one(cls, ctx: ContextLike, filter: Filter | None, update: Update) -> int:
        """Update the first match; returns the matched count (0 or 1)."""
        context = as_context(ctx)
        return await cls.collection(context).update_one(
            _filter_document(cls, filter), _update_document(cls, update), session=context.session
        )

    @classmethod
    async def update_by_id_locked(
        cls, trx: Transaction, id: Any, update: Update
    ) -> Lock[Any] | None:
        """Update by identity inside ``trx``; the write itself is the lock.

        Returns None when no document has that identity.
        """
        require_transaction(trx, "update_by_id_locked")
        matched = await cls.collection(trx).update_one(
            cls.by_id(id).to_document(),
            _with_lock_seed(_update_document(cls, update), trx.lock_field),
            session=trx.session,
        )
        return seal(id, trx) if matched else None

    @classmethod
    async def lock_by_id(cls, trx: Transaction, id: Any) -> Lock[Any] | None:
        """Lock a document by identity with a dummy write."""
        require_transaction(trx, "lock_by_id")
        return await cls.update_by_id_locked(trx, id, RawUpdate(lock_update(trx.lock_field)))

    @classmethod
    async def delete(cls, ctx: ContextLike, filter: Filter | None) -> int:
        """Delete every match; returns the deleted count."""
        context = as_context(ctx)
        return await cls.collection(context).delete_many(
            _filter_document(cls, filter), session=context.session
        )

    @classmethod
    async def delete_one(cls, ctx: ContextLike, filter: Filter | None) -> int:
        context = as_context(ctx)
        return await cls.collection(context).delete_one(
            _filter_document(cls, filter), session=context.session
        )


def _reserved_names() -> set[str]:
    names = {name for name in dir(Entity) if not name.startswith("_")}
    return names | set(_RESERVED_NAMES)


def construct_filter(record: type[Entity], **fields: Any) -> TypedFilter:
    """``construct_filter(User, name="Kit", age=Gt(30))``: bare values mean ``Eq``."""
    return record.TypedFilter(**fields)


def construct_update(record: type[Entity], **fields: Any) -> TypedUpdate:
    """``construct_update(User, email="new@example.com")``: unmentioned fields stay OMIT."""
    return record.TypedUpdate(**fields)
