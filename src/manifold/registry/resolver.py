# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Relationship resolution.

Each relationship is resolved on its own against entities that already
exist, so self references and cycles (A has-many B, B belongs-to A) need no
graph walk. Targets become direct references to :class:`CompiledEntity`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from manifold.manifest import naming
from manifold.manifest.loader import find_belongs_to, inferred_inverses
from manifold.manifest.types import RelationshipDefinition, RelationshipKind, SchemaDocument
from manifold.registry.compiled import CompiledEntity, ForeignKeySpec, RelationPlan, ThroughSpec

logger = logging.getLogger(__name__)


def resolve_relationships(document: SchemaDocument, entities: Mapping[str, CompiledEntity]) -> None:
    """Bind relation plans and foreign keys onto ``entities`` (keyed by lowercase name)."""
    for definition in document.entities:
        owner = entities[definition.name.lower()]
        for rel in definition.relationships:
            target = entities[rel.target.lower()]
            if rel.kind is RelationshipKind.BELONGS_TO:
                _resolve_belongs_to(owner, target, rel)
            elif rel.kind is RelationshipKind.HAS_MANY:
                _resolve_has_many(owner, target, rel)
            else:
                _resolve_many_to_many(owner, target, rel)

    for inverse in inferred_inverses(document):
        parent = entities[inverse.target.name.lower()]
        child = entities[inverse.owner.name.lower()]
        key = inverse.relationship.foreign_key_name(child.name)
        parent.bind_relation(
            RelationPlan(
                name=inverse.name,
                kind=RelationshipKind.HAS_MANY,
                source=parent,
                target=child,
                foreign_key=key,
                fk_column=naming.to_snake_case(key),
                cascade=inverse.relationship.cascade,
                inferred=True,
            )
        )
        logger.debug("Inferred %s.%s from %s.%s", parent.name, inverse.name, child.name, key)


def _resolve_belongs_to(owner: CompiledEntity, target: CompiledEntity, rel: RelationshipDefinition) -> None:
    key = rel.foreign_key_name(owner.name)
    column = naming.to_snake_case(key)
    owner.bind_foreign_key(
        ForeignKeySpec(key=key, column=column, target=target, required=rel.required, relation=rel.relation_name)
    )
    owner.bind_relation(
        RelationPlan(
            name=rel.relation_name,
            kind=RelationshipKind.BELONGS_TO,
            source=owner,
            target=target,
            foreign_key=key,
            fk_column=column,
        )
    )


def _resolve_has_many(owner: CompiledEntity, target: CompiledEntity, rel: RelationshipDefinition) -> None:
    key = rel.foreign_key_name(owner.name)
    column = naming.to_snake_case(key)
    back = find_belongs_to(target.definition, key)
    cascade = rel.cascade or (back is not None and back.cascade)
    if back is None:
        # Nothing on the target declares the key; the has-many implies it.
        target.bind_foreign_key(ForeignKeySpec(key=key, column=column, target=owner))
    owner.bind_relation(
        RelationPlan(
            name=rel.relation_name,
            kind=RelationshipKind.HAS_MANY,
            source=owner,
            target=target,
            foreign_key=key,
            fk_column=column,
            cascade=cascade,
        )
    )


def _resolve_many_to_many(owner: CompiledEntity, target: CompiledEntity, rel: RelationshipDefinition) -> None:
    relation_column = naming.to_snake_case(rel.relation_name)
    source_column = f"{owner.table_name}_id"
    target_column = f"{target.table_name}_id"
    if target_column == source_column:
        target_column = f"related_{target.table_name}_id"
    plan = RelationPlan(
        name=rel.relation_name,
        kind=RelationshipKind.MANY_TO_MANY,
        source=owner,
        target=target,
        through=ThroughSpec(
            table=rel.through or f"{owner.table_name}_{relation_column}",
            source_column=source_column,
            target_column=target_column,
        ),
        link_key=naming.link_key_for(rel.relation_name),
        cascade=rel.cascade,
    )
    owner.bind_relation(plan)
    target.bind_incoming_link(plan)
