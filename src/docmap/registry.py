"""Registry of compiled entity types."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from docmap.errors import DescriptorError

if TYPE_CHECKING:
    from docmap.records import Entity


class Registry:
    """Entity types keyed by collection name, in registration order."""

    def __init__(self) -> None:
        self._entities: dict[str, type[Entity]] = {}

    def register(self, entity: type[Entity]) -> None:
        collection = entity.__descriptor__.collection_name
        existing = self._entities.get(collection)
        if existing is not None and existing.__qualname__ != entity.__qualname__:
            raise DescriptorError(
                entity.__name__,
                f"collection '{collection}' is already mapped by {existing.__qualname__}",
            )
        # Re-registration under the same name (module reload) replaces the old class
        self._entities[collection] = entity

    def get(self, collection: str) -> type[Entity] | None:
        return self._entities.get(collection)

    def entities(self) -> list[type[Entity]]:
        return list(self._entities.values())

    def clear(self) -> None:
        self._entities.clear()

    def __iter__(self) -> Iterator[type[Entity]]:
        return iter(list(self._entities.values()))

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity: object) -> bool:
        return any(entity is e for e in self._entities.values())


_default_registry = Registry()


def default_registry() -> Registry:
    return _default_registry
