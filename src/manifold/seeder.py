# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Dummy data for a registered manifest.

Seeding is a system operation: it goes through the repositories and the
synthesized create models, but not through policies.
"""

from __future__ import annotations

import logging
import math
import random
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from manifold.engine import RegistryHandle
from manifold.manifest.types import PropertyDefinition, PropertyKind
from manifold.registry.compiled import CompiledEntity

logger = logging.getLogger(__name__)

_WORDS = (
    "lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua"
).split()


def seed_order(entities: tuple[CompiledEntity, ...]) -> list[CompiledEntity]:
    """Entities ordered so that required foreign key targets come first.

    Cycles fall back to declaration order.
    """
    ordered: list[CompiledEntity] = []
    pending = list(entities)
    while pending:
        for entity in pending:
            blockers = [
                fk.target for fk in entity.foreign_keys if fk.required and fk.target is not entity and fk.target in pending
            ]
            if not blockers:
                break
        else:
            entity = pending[0]
        ordered.append(entity)
        pending.remove(entity)
    return ordered


def dummy_value(prop: PropertyDefinition, index: int, rng: random.Random) -> Any:
    rules = prop.validation
    kind = prop.kind
    if kind is PropertyKind.ENUM:
        return prop.values[index % len(prop.values)]
    if kind is PropertyKind.BOOLEAN:
        return rng.random() < 0.5
    if kind in (PropertyKind.NUMBER, PropertyKind.MONEY, PropertyKind.INTEGER):
        low = rules.minimum if rules.minimum is not None else 0
        high = rules.maximum if rules.maximum is not None else low + 1000
        if prop.unique:
            return math.ceil(low) + index
        if kind is PropertyKind.INTEGER:
            return rng.randint(math.ceil(low), math.floor(high))
        return round(rng.uniform(low, high), 2)
    if kind is PropertyKind.DATE:
        return date.today() - timedelta(days=rng.randint(0, 3650))
    if kind is PropertyKind.TIMESTAMP:
        return datetime.now(timezone.utc) - timedelta(minutes=rng.randint(0, 525600))
    if kind is PropertyKind.EMAIL:
        return f"{prop.name.lower()}{index + 1}@example.com"
    if kind is PropertyKind.LINK:
        return f"https://example.com/{prop.name.lower()}/{index + 1}"
    if kind is PropertyKind.PASSWORD:
        return "manifold-seed"
    if kind is PropertyKind.LOCATION:
        return {"lat": round(rng.uniform(-90, 90), 6), "lng": round(rng.uniform(-180, 180), 6)}

    if kind is PropertyKind.STRING:
        value = f"{prop.name} {index + 1}"
    else:
        value = " ".join(rng.choice(_WORDS) for _ in range(12)).capitalize() + f" ({index + 1})"
    if rules.min_length is not None and len(value) < rules.min_length:
        value = value.ljust(rules.min_length, "x")
    if rules.max_length is not None:
        value = value[-rules.max_length :]
    return value


async def seed(handle: RegistryHandle, count: int, *, seed_value: int | None = None) -> dict[str, int]:
    """Insert ``count`` records per entity. Returns how many were created per entity."""
    rng = random.Random(seed_value)
    created: dict[str, list[UUID]] = {}
    async with handle.store.transaction() as conn:
        for entity in seed_order(handle.registry.all()):
            model = handle.operations.models[entity.name].create
            repository = handle.store.repository(conn, entity)
            ids: list[UUID] = []
            for index in range(count):
                body: dict[str, Any] = {
                    prop.name: dummy_value(prop, index, rng)
                    for prop in entity.properties
                    if not prop.nullable or rng.random() < 0.8
                }
                for fk in entity.foreign_keys:
                    parents = created.get(fk.target.name) or []
                    if parents:
                        body[fk.key] = rng.choice(parents)
                for plan in entity.relations.values():
                    targets = created.get(plan.target.name) or []
                    if plan.link_key is not None and targets:
                        body[plan.link_key] = rng.sample(targets, k=min(len(targets), rng.randint(0, 3)))
                try:
                    payload = model.model_validate(body).model_dump()
                except PydanticValidationError as exc:
                    logger.warning("Skipping %s: generated data does not validate (%s)", entity.name, exc.errors()[0]["msg"])
                    break
                record = await repository.create(payload)
                ids.append(record["id"])
            created[entity.name] = ids
            logger.info("Seeded %d %s record(s)", len(ids), entity.name)
    return {name: len(ids) for name, ids in created.items()}
