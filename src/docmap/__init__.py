"""docmap: schema-driven typed mapping between Python records and document collections."""

__version__ = "0.1.0"

from docmap.cache import ProjectionCache, default_projection_cache
from docmap.compiler import Index
from docmap.config import DocmapConfig
from docmap.context import Context, Transaction
from docmap.descriptor import (
    EntityDescriptor,
    FieldDescriptor,
    IndexDescriptor,
    ProjectionDescriptor,
)
from docmap.errors import (
    DatabaseError,
    DescriptorError,
    DocmapError,
    LockError,
    TransactionRequiredError,
    WriteConflictError,
)
from docmap.fields import OMIT, Eq, Field, Gt, Gte, In, Lt, Lte, Ne, Nin, Order, Set, from_optional
from docmap.filters import (
    Filter,
    IdFilter,
    RawFilter,
    RawUpdate,
    RawUpdateApply,
    TypedFilter,
    TypedUpdate,
    Update,
    UpdateApply,
    by_id,
)
from docmap.indexes import enforce_indexes, planned_indexes
from docmap.locking import Lock, require_lock
from docmap.records import (
    Entity,
    Projection,
    ProjectionWithId,
    construct_filter,
    construct_update,
)
from docmap.registry import Registry, default_registry
from docmap.storage import CollectionProtocol, DatabaseProtocol, MongoDatabase, connect
from docmap.types import Column

__all__ = [
    "__version__",
    "Entity",
    "Projection",
    "ProjectionWithId",
    "Column",
    "Index",
    "Order",
    "Field",
    "Set",
    "OMIT",
    "from_optional",
    "Eq",
    "Ne",
    "Gt",
    "Gte",
    "Lt",
    "Lte",
    "In",
    "Nin",
    "Filter",
    "Update",
    "UpdateApply",
    "TypedFilter",
    "TypedUpdate",
    "IdFilter",
    "RawFilter",
    "RawUpdate",
    "RawUpdateApply",
    "by_id",
    "construct_filter",
    "construct_update",
    "Context",
    "Transaction",
    "Lock",
    "require_lock",
    "ProjectionCache",
    "default_projection_cache",
    "Registry",
    "default_registry",
    "enforce_indexes",
    "planned_indexes",
    "EntityDescriptor",
    "FieldDescriptor",
    "ProjectionDescriptor",
    "IndexDescriptor",
    "CollectionProtocol",
    "DatabaseProtocol",
    "MongoDatabase",
    "connect",
    "DocmapConfig",
    "DocmapError",
    "DescriptorError",
    "DatabaseError",
    "WriteConflictError",
    "TransactionRequiredError",
    "LockError",
]
