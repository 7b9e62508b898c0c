"""Index enforcement: create every declared index on its collection."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from docmap.context import ContextLike, as_context
from docmap.descriptor import IndexDescriptor
from docmap.registry import Registry, default_registry

if TYPE_CHECKING:
    from docmap.records import Entity

logger = logging.getLogger(__name__)


def wire_indexes(entity: type[Entity]) -> list[IndexDescriptor]:
    """The entity's indexes with keys translated from field names to wire names."""
    descriptor = entity.__descriptor__
    return [
        dataclasses.replace(
            index,
            keys=tuple((descriptor.wire_name(name), order) for name, order in index.keys),
        )
        for index in descriptor.indexes
    ]


def planned_indexes(registry: Registry | None = None) -> dict[str, list[IndexDescriptor]]:
    """Collection name -> indexes to create, for every registered entity that declares any."""
    registry = registry if registry is not None else default_registry()
    plan: dict[str, list[IndexDescriptor]] = {}
    for entity in registry:
        indexes = wire_indexes(entity)
        if indexes:
            plan[entity.__descriptor__.collection_name] = indexes
    return plan


async def enforce_indexes(
    ctx: ContextLike, registry: Registry | None = None
) -> dict[str, list[str]]:
    """Create the declared indexes of every registered entity.

    One ``create_indexes`` call per collection. Returns the index names the
    engine reports, per collection.
    """
    context = as_context(ctx)
    created: dict[str, list[str]] = {}
    for collection_name, indexes in planned_indexes(registry).items():
        names = await context.collection(collection_name).create_indexes(
            indexes, session=context.session
        )
        created[collection_name] = list(names)
        logger.info("Enforced %d indexes on %s: %s", len(names), collection_name, ", ".join(names))
    return created
