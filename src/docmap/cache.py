"""Projection-document cache shared by every read of a projection."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from docmap.descriptor import IDENTITY_KEY

logger = logging.getLogger(__name__)


def build_projection_document(fields: Sequence[str]) -> dict[str, Any]:
    """Minimal read projection for ``fields`` (wire names).

    ``_id`` is returned by the engine unless excluded, so it is only listed
    (as an exclusion) when it was not requested.
    """
    document: dict[str, Any] = {}
    has_identity = False
    for wire_name in fields:
        if wire_name == IDENTITY_KEY:
            has_identity = True
        else:
            document[wire_name] = 1
    if not has_identity:
        document[IDENTITY_KEY] = 0
    return document


class ProjectionCache:
    """Append-only map from a projection's field list to its projection document.

    Entries are never evicted; the value is a pure function of the key, so two
    tasks racing on the first lookup store equal documents. Returned documents
    are shared and must not be mutated.
    """

    def __init__(self) -> None:
        self._documents: dict[tuple[str, ...], dict[str, Any]] = {}

    def get(self, fields: Sequence[str] | None) -> dict[str, Any] | None:
        """Projection document for ``fields``; None (fetch everything) when ``fields`` is None."""
        if fields is None:
            return None
        key = tuple(fields)
        document = self._documents.get(key)
        if document is None:
            document = build_projection_document(key)
            self._documents[key] = document
            logger.debug("Cached projection document for fields %s", key)
        return document

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, fields: object) -> bool:
        return isinstance(fields, (tuple, list)) and tuple(fields) in self._documents


_default_cache = ProjectionCache()


def default_projection_cache() -> ProjectionCache:
    """The process-lifetime cache used when a Context is not given its own."""
    return _default_cache
