# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Compiled, resolved form of entity definitions.

A :class:`CompiledEntity` is built empty, filled in by the relationship
resolver, then sealed. After sealing it is never mutated, so request
pipelines share it without locking.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from manifold.errors import NotFoundError
from manifold.manifest.types import EntityDefinition, PropertyDefinition, RelationshipKind
from manifold.policies.engine import PolicyTable


@dataclass(frozen=True)
class ThroughSpec:
    """Link table of a many-to-many relation."""

    table: str
    source_column: str
    target_column: str


@dataclass(frozen=True, eq=False)
class RelationPlan:
    """How to travel from ``source`` rows to related ``target`` rows.

    belongs-to: ``source.fk_column`` holds the target id.
    has-many: ``target.fk_column`` holds the source id.
    many-to-many: rows of ``through`` pair source and target ids.
    """

    name: str
    kind: RelationshipKind
    source: CompiledEntity
    target: CompiledEntity
    foreign_key: str | None = None
    fk_column: str | None = None
    through: ThroughSpec | None = None
    link_key: str | None = None
    cascade: bool = False
    inferred: bool = False

    @property
    def is_collection(self) -> bool:
        return self.kind is not RelationshipKind.BELONGS_TO

    def link_spec(self) -> ThroughSpec:
        if self.through is None:
            raise ValueError(f"{self.source.name}.{self.name} has no link table")
        return self.through

    def describe(self) -> dict[str, Any]:
        shape: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "target": self.target.name,
            "cascade": self.cascade,
        }
        if self.foreign_key is not None:
            shape["foreignKey"] = self.foreign_key
        if self.through is not None:
            shape["through"] = self.through.table
        if self.inferred:
            shape["inferred"] = True
        return shape


@dataclass(frozen=True, eq=False)
class ForeignKeySpec:
    """A foreign key column held by an entity."""

    key: str
    column: str
    target: CompiledEntity
    required: bool = False
    relation: str | None = None


class CompiledEntity:
    """Registry entry for one entity. Identity-compared."""

    def __init__(self, definition: EntityDefinition) -> None:
        self.definition = definition
        self.name = definition.name
        self.slug = definition.resolved_slug
        self.table_name = definition.table_name
        self.display_property = definition.resolved_display_property
        self.policy_table = PolicyTable(definition.policies)
        self._relations: dict[str, RelationPlan] = {}
        self._foreign_keys: dict[str, ForeignKeySpec] = {}
        self._incoming_links: list[RelationPlan] = []
        self._sealed = False

    def __repr__(self) -> str:
        return f"<CompiledEntity {self.name}>"

    @property
    def properties(self) -> tuple[PropertyDefinition, ...]:
        return self.definition.properties

    @property
    def relations(self) -> MappingProxyType[str, RelationPlan]:
        return MappingProxyType(self._relations)

    @property
    def foreign_keys(self) -> tuple[ForeignKeySpec, ...]:
        return tuple(self._foreign_keys.values())

    @property
    def incoming_links(self) -> tuple[RelationPlan, ...]:
        """Many-to-many relations declared elsewhere that target this entity."""
        return tuple(self._incoming_links)

    @property
    def dependents(self) -> tuple[RelationPlan, ...]:
        """Relations whose rows depend on a row of this entity existing."""
        return tuple(p for p in self._relations.values() if p.kind is not RelationshipKind.BELONGS_TO)

    def relation(self, name: str) -> RelationPlan:
        try:
            return self._relations[name]
        except KeyError:
            raise NotFoundError(f"{self.name} has no relation '{name}'") from None

    def get_property(self, name: str) -> PropertyDefinition | None:
        return self.definition.get_property(name)

    def bind_relation(self, plan: RelationPlan) -> None:
        self._check_open()
        if plan.name in self._relations:
            raise RuntimeError(f"relation {self.name}.{plan.name} bound twice")
        self._relations[plan.name] = plan

    def bind_foreign_key(self, spec: ForeignKeySpec) -> ForeignKeySpec:
        self._check_open()
        existing = self._foreign_keys.get(spec.key)
        if existing is not None:
            if existing.target is not spec.target:
                raise RuntimeError(f"foreign key {self.name}.{spec.key} bound to two targets")
            return existing
        self._foreign_keys[spec.key] = spec
        return spec

    def bind_incoming_link(self, plan: RelationPlan) -> None:
        self._check_open()
        self._incoming_links.append(plan)

    def seal(self) -> None:
        self._sealed = True

    def _check_open(self) -> None:
        if self._sealed:
            raise RuntimeError(f"{self.name} is sealed")
