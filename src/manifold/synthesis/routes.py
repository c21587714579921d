# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Route synthesis: one descriptor per CRUD operation and relation, per entity."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable, Iterator, Sequence
from functools import partial
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection

from manifold.config import ApiOptions
from manifold.errors import NotFoundError
from manifold.manifest.types import PolicyOperation
from manifold.policies.context import RequestContext
from manifold.registry.compiled import CompiledEntity
from manifold.registry.registry import Registry
from manifold.repositories import EntityStore, Record
from manifold.synthesis.descriptors import (
    ExpandPath,
    Operation,
    OperationDescriptor,
    OperationResult,
    Requirement,
    ValidatedCall,
)
from manifold.synthesis.models import EntityModels, build_entity_models
from manifold.synthesis.parameters import ParameterSet, list_parameters, page_envelope, relations_parameter

logger = logging.getLogger(__name__)


class OperationSet:
    """Every descriptor of one registry snapshot, in synthesis order."""

    def __init__(self, descriptors: Iterable[OperationDescriptor], models: dict[str, EntityModels]) -> None:
        self._descriptors = tuple(descriptors)
        self.models = models
        self._index = {
            (d.entity.slug, d.operation, d.relation.name if d.relation else None): d for d in self._descriptors
        }
        self._slugs = {d.entity.slug for d in self._descriptors}

    def __iter__(self) -> Iterator[OperationDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def find(self, slug: str, operation: Operation, relation: str | None = None) -> OperationDescriptor:
        descriptor = self._index.get((slug, operation, relation))
        if descriptor is not None:
            return descriptor
        if slug not in self._slugs:
            raise NotFoundError(f"Unknown resource '{slug}'")
        raise NotFoundError(f"Resource '{slug}' has no relation '{relation}'")

    def for_entity(self, entity: CompiledEntity) -> tuple[OperationDescriptor, ...]:
        return tuple(d for d in self._descriptors if d.entity is entity)

    def signatures(self) -> list[str]:
        return [d.signature() for d in self._descriptors]

    def fingerprint(self) -> str:
        digest = hashlib.sha256()
        for signature in self.signatures():
            digest.update(signature.encode())
        return digest.hexdigest()


def synthesize_operations(registry: Registry, store: EntityStore, options: ApiOptions) -> OperationSet:
    """Build the operation set of ``registry``. Deterministic, no I/O."""
    models = {entity.name: build_entity_models(entity) for entity in registry}
    descriptors: list[OperationDescriptor] = []
    for entity in registry:
        descriptors.extend(_entity_operations(entity, models, store, options))
    logger.info("Synthesized %d operations for %d entities", len(descriptors), len(registry))
    return OperationSet(descriptors, models)


def _entity_operations(
    entity: CompiledEntity, models: dict[str, EntityModels], store: EntityStore, options: ApiOptions
) -> list[OperationDescriptor]:
    own = models[entity.name]
    collection = f"/api/{entity.slug}"
    item = f"{collection}/{{id}}"
    read = Requirement(entity, PolicyOperation.READ)
    common = {"entity": entity, "options": options}

    descriptors = [
        OperationDescriptor(
            operation=Operation.LIST,
            method="GET",
            path=collection,
            status_code=200,
            summary=f"List {entity.name} records",
            requirements=(read,),
            parameters=list_parameters(entity, options),
            request_model=None,
            response_model=own.page,
            executor=partial(_list, store),
            **common,
        ),
        OperationDescriptor(
            operation=Operation.GET,
            method="GET",
            path=item,
            status_code=200,
            summary=f"Get one {entity.name}",
            requirements=(read,),
            parameters=ParameterSet.of(relations_parameter(options)),
            request_model=None,
            response_model=own.record,
            executor=partial(_get, store),
            **common,
        ),
        OperationDescriptor(
            operation=Operation.CREATE,
            method="POST",
            path=collection,
            status_code=201,
            summary=f"Create a {entity.name}",
            requirements=(Requirement(entity, PolicyOperation.CREATE),),
            parameters=ParameterSet.of(),
            request_model=own.create,
            response_model=own.record,
            executor=partial(_create, store),
            **common,
        ),
        OperationDescriptor(
            operation=Operation.UPDATE,
            method="PATCH",
            path=item,
            status_code=200,
            summary=f"Update a {entity.name}",
            requirements=(Requirement(entity, PolicyOperation.UPDATE),),
            parameters=ParameterSet.of(),
            request_model=own.update,
            response_model=own.record,
            executor=partial(_update, store),
            **common,
        ),
        OperationDescriptor(
            operation=Operation.DELETE,
            method="DELETE",
            path=item,
            status_code=204,
            summary=f"Delete a {entity.name}",
            requirements=(Requirement(entity, PolicyOperation.DELETE),),
            parameters=ParameterSet.of(),
            request_model=None,
            response_model=None,
            executor=partial(_delete, store),
            **common,
        ),
    ]

    for plan in entity.relations.values():
        target = models[plan.target.name]
        if plan.is_collection:
            parameters = list_parameters(plan.target, options)
            response = target.page
            summary = f"List the {plan.name} of a {entity.name}"
        else:
            parameters = ParameterSet.of(relations_parameter(options))
            response = target.record
            summary = f"Get the {plan.name} of a {entity.name}"
        descriptors.append(
            OperationDescriptor(
                operation=Operation.RELATION,
                method="GET",
                path=f"{item}/{plan.name}",
                status_code=200,
                summary=summary,
                requirements=(read, Requirement(plan.target, PolicyOperation.READ)),
                parameters=parameters,
                request_model=None,
                response_model=response,
                executor=partial(_relation, store),
                relation=plan,
                **common,
            )
        )
    return descriptors


async def expand_records(
    conn: AsyncConnection,
    store: EntityStore,
    entity: CompiledEntity,
    records: Sequence[Record],
    paths: Sequence[ExpandPath],
    context: RequestContext,
) -> None:
    """Attach related records in place, one batched query per relation and level."""
    grouped: dict[str, list[ExpandPath]] = {}
    for path in paths:
        grouped.setdefault(path[0], []).append(path[1:])
    # Denial does not depend on whether any related rows exist.
    for name in grouped:
        Requirement(entity.relation(name).target, PolicyOperation.READ).enforce(context)
    if not records:
        return

    repository = store.repository(conn, entity)
    for name, rest in grouped.items():
        plan = entity.relation(name)
        related = await repository.load_related(plan, list(records))
        children = [child for items in related.values() for child in items]
        await expand_records(conn, store, plan.target, children, [p for p in rest if p], context)
        for record in records:
            items = related[record["id"]]
            record[name] = items if plan.is_collection else (items[0] if items else None)


def _not_found(descriptor: OperationDescriptor, call: ValidatedCall) -> NotFoundError:
    return NotFoundError(f"{descriptor.entity.name} {call.record_id} not found")


async def _list(store: EntityStore, descriptor: OperationDescriptor, call: ValidatedCall) -> OperationResult:
    query = call.require_query()
    async with store.transaction() as conn:
        records, total = await store.repository(conn, descriptor.entity).list_page(query)
        await expand_records(conn, store, descriptor.entity, records, call.expand, call.context)
    return OperationResult(200, descriptor.shape(page_envelope(records, total, query)))


async def _get(store: EntityStore, descriptor: OperationDescriptor, call: ValidatedCall) -> OperationResult:
    async with store.transaction() as conn:
        record = await store.repository(conn, descriptor.entity).get_by_id(call.record_id)
        if record is None:
            raise _not_found(descriptor, call)
        await expand_records(conn, store, descriptor.entity, [record], call.expand, call.context)
    return OperationResult(200, descriptor.shape(record))


async def _create(store: EntityStore, descriptor: OperationDescriptor, call: ValidatedCall) -> OperationResult:
    payload = call.require_payload()
    async with store.transaction() as conn:
        repository = store.repository(conn, descriptor.entity)
        errors = await repository.check_references(payload)
        if errors:
            raise descriptor.rejection(errors)
        record = await repository.create(payload)
    logger.info("Created %s %s", descriptor.entity.name, record["id"])
    return OperationResult(201, descriptor.shape(record))


async def _update(store: EntityStore, descriptor: OperationDescriptor, call: ValidatedCall) -> OperationResult:
    payload = call.require_payload()
    async with store.transaction() as conn:
        repository = store.repository(conn, descriptor.entity)
        if await repository.get_by_id(call.record_id) is None:
            raise _not_found(descriptor, call)
        errors = await repository.check_references(payload)
        if errors:
            raise descriptor.rejection(errors)
        record = await repository.update(call.record_id, payload)
        if record is None:
            raise _not_found(descriptor, call)
    return OperationResult(200, descriptor.shape(record))


async def _delete(store: EntityStore, descriptor: OperationDescriptor, call: ValidatedCall) -> OperationResult:
    async with store.transaction() as conn:
        if not await store.repository(conn, descriptor.entity).delete(call.record_id):
            raise _not_found(descriptor, call)
    logger.info("Deleted %s %s", descriptor.entity.name, call.record_id)
    return OperationResult(204)


async def _relation(store: EntityStore, descriptor: OperationDescriptor, call: ValidatedCall) -> OperationResult:
    plan = descriptor.relation
    if plan is None:
        raise ValueError(f"{descriptor.operation_id} has no relation")
    async with store.transaction() as conn:
        parent = await store.repository(conn, descriptor.entity).get_by_id(call.record_id)
        if parent is None:
            raise _not_found(descriptor, call)
        target = store.repository(conn, plan.target)

        if not plan.is_collection:
            key = parent[plan.foreign_key]
            record = await target.get_by_id(key) if key is not None else None
            if record is not None:
                await expand_records(conn, store, plan.target, [record], call.expand, call.context)
            return OperationResult(200, descriptor.shape(record))

        query = call.require_query()
        scope = store.repository(conn, descriptor.entity).scope(plan, parent["id"])
        records, total = await target.list_page(query, scope)
        await expand_records(conn, store, plan.target, records, call.expand, call.context)
    body: Any = page_envelope(records, total, query)
    return OperationResult(200, descriptor.shape(body))
