# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Entity metadata registry.

A :class:`Registry` is an immutable snapshot: built in one go by
:func:`compile_registry`, then only read. Replacing it on reload means
building a new one and swapping the reference, never editing in place.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from manifold.errors import NotFoundError
from manifold.manifest.types import SchemaDocument
from manifold.registry.compiled import CompiledEntity
from manifold.registry.resolver import resolve_relationships

logger = logging.getLogger(__name__)


class Registry:
    """Compiled entities of one manifest, in declaration order."""

    def __init__(self, document: SchemaDocument, entities: tuple[CompiledEntity, ...], version: int) -> None:
        self.document = document
        self.version = version
        self._entities = entities
        self._by_name = {e.name.lower(): e for e in entities}
        self._by_slug = {e.slug: e for e in entities}

    def __iter__(self) -> Iterator[CompiledEntity]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def all(self) -> tuple[CompiledEntity, ...]:
        return self._entities

    def lookup(self, name: str) -> CompiledEntity:
        """Find an entity by name, case-insensitively."""
        try:
            return self._by_name[name.lower()]
        except KeyError:
            raise NotFoundError(f"Unknown entity '{name}'") from None

    def by_slug(self, slug: str) -> CompiledEntity:
        try:
            return self._by_slug[slug]
        except KeyError:
            raise NotFoundError(f"Unknown resource '{slug}'") from None


def compile_registry(document: SchemaDocument, *, version: int = 1) -> Registry:
    """Build a sealed registry from a validated document."""
    entities = {definition.name.lower(): CompiledEntity(definition) for definition in document.entities}
    resolve_relationships(document, entities)
    for entity in entities.values():
        entity.seal()
    ordered = tuple(entities[d.name.lower()] for d in document.entities)
    logger.info("Compiled registry v%d with %d entities", version, len(ordered))
    return Registry(document, ordered, version)
