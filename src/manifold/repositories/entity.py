# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import ColumnElement, Select, delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from manifold.db.mapper import EntityTable, SchemaMapping, utcnow
from manifold.errors import ConflictError, FieldError
from manifold.manifest.types import RelationshipKind
from manifold.registry.compiled import CompiledEntity, RelationPlan
from manifold.repositories.query import ListQuery

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def lock_statement(table: EntityTable, ids: list[UUID], *, shared: bool) -> Select[tuple[UUID]]:
    """``SELECT id ... FOR KEY SHARE`` for referenced rows, ``FOR UPDATE`` for rows being deleted.

    The two modes conflict, so a reference check and a delete of the same
    parent serialize. SQLite drops the clause and serializes writers anyway.
    """
    t = table.table
    stmt = select(t.c.id).where(t.c.id.in_(ids))
    if shared:
        return stmt.with_for_update(read=True, key_share=True)
    return stmt.with_for_update()


class EntityRepository:
    """Record access for one entity inside one transaction."""

    def __init__(self, conn: AsyncConnection, mapping: SchemaMapping, entity: CompiledEntity) -> None:
        self.conn = conn
        self.mapping = mapping
        self.entity = entity
        self.table: EntityTable = mapping.table_for(entity)

    def _for(self, entity: CompiledEntity) -> EntityRepository:
        return EntityRepository(self.conn, self.mapping, entity)

    async def get_by_id(self, record_id: UUID) -> Record | None:
        t = self.table.table
        result = await self.conn.execute(select(t).where(t.c.id == record_id))
        row = result.mappings().first()
        return self.table.to_record(row) if row is not None else None

    async def get_many(self, ids: Iterable[UUID]) -> dict[UUID, Record]:
        wanted = list(set(ids))
        if not wanted:
            return {}
        t = self.table.table
        result = await self.conn.execute(select(t).where(t.c.id.in_(wanted)))
        return {row["id"]: self.table.to_record(row) for row in result.mappings()}

    async def lock(self, ids: Iterable[UUID], *, shared: bool = False) -> set[UUID]:
        """Lock the rows of ``ids`` until the transaction ends; return the ids that exist."""
        wanted = list(set(ids))
        if not wanted:
            return set()
        result = await self.conn.execute(lock_statement(self.table, wanted, shared=shared))
        return set(result.scalars())

    async def list_page(self, query: ListQuery, scope: ColumnElement[bool] | None = None) -> tuple[list[Record], int]:
        """One page of records matching ``query`` plus the total match count."""
        t = self.table.table
        conditions = [f.operator.apply(self.table.column(f.key), f.value) for f in query.filters]
        if scope is not None:
            conditions.append(scope)

        total = (await self.conn.execute(select(func.count()).select_from(t).where(*conditions))).scalar_one()

        order_column = self.table.column(query.order_by)
        ordering = order_column.desc() if query.descending else order_column.asc()
        stmt = select(t).where(*conditions).order_by(ordering, t.c.id).limit(query.per_page).offset(query.offset)
        result = await self.conn.execute(stmt)
        return [self.table.to_record(row) for row in result.mappings()], total

    async def create(self, payload: Mapping[str, Any]) -> Record:
        values, links = self._split(payload)
        record_id = uuid4()
        now = utcnow()
        row = self.table.to_values(values) | {"id": record_id, "created_at": now, "updated_at": now}
        await self.conn.execute(insert(self.table.table).values(**row))
        for plan, ids in links.items():
            await self._replace_links(plan, record_id, ids)
        created = await self.get_by_id(record_id)
        if created is None:
            raise RuntimeError(f"{self.entity.name} {record_id} missing right after insert")
        return created

    async def update(self, record_id: UUID, payload: Mapping[str, Any]) -> Record | None:
        """Apply a partial update. Returns None if the record does not exist."""
        values, links = self._split(payload)
        t = self.table.table
        row = self.table.to_values(values) | {"updated_at": utcnow()}
        result = await self.conn.execute(update(t).where(t.c.id == record_id).values(**row))
        if result.rowcount == 0:
            return None
        for plan, ids in links.items():
            await self._replace_links(plan, record_id, ids)
        return await self.get_by_id(record_id)

    async def delete(self, record_id: UUID) -> bool:
        """Delete one record and everything its relations cascade to.

        A non-cascading dependent relation with rows pointing at a deleted
        record raises ConflictError; the caller's transaction then rolls
        back every delete made so far.
        """
        if not await self.lock([record_id]):
            return False
        await self._delete_rows([record_id], set())
        return True

    async def _delete_rows(self, ids: list[UUID], visited: set[tuple[str, UUID]]) -> None:
        name = self.table.table.name
        ids = [i for i in ids if (name, i) not in visited]
        if not ids:
            return
        visited.update((name, i) for i in ids)
        await self.lock(ids)

        for plan in self.entity.dependents:
            target = self._for(plan.target)
            if plan.kind is RelationshipKind.HAS_MANY:
                column = target.table.column(plan.foreign_key)
                result = await self.conn.execute(select(target.table.table.c.id).where(column.in_(ids)))
                child_ids = [i for i in result.scalars() if (target.table.table.name, i) not in visited]
                if not child_ids:
                    continue
                if not plan.cascade:
                    raise ConflictError(
                        f"Cannot delete {self.entity.name}: {len(child_ids)} {plan.target.name} record(s) "
                        f"still reference it through '{plan.name}'"
                    )
                await target._delete_rows(child_ids, visited)
            else:
                link = self.mapping.link_table(plan)
                through = plan.link_spec()
                source = link.c[through.source_column]
                linked: list[UUID] = []
                if plan.cascade:
                    result = await self.conn.execute(select(link.c[through.target_column]).where(source.in_(ids)))
                    linked = list(result.scalars())
                await self.conn.execute(delete(link).where(source.in_(ids)))
                if linked:
                    await target._delete_rows(linked, visited)

        for plan in self.entity.incoming_links:
            link = self.mapping.link_table(plan)
            await self.conn.execute(delete(link).where(link.c[plan.link_spec().target_column].in_(ids)))

        t = self.table.table
        await self.conn.execute(delete(t).where(t.c.id.in_(ids)))
        logger.debug("Deleted %d %s record(s)", len(ids), self.entity.name)

    async def check_references(self, payload: Mapping[str, Any]) -> list[FieldError]:
        """Field errors for foreign keys and link ids that point at nothing."""
        errors: list[FieldError] = []
        for fk in self.entity.foreign_keys:
            value = payload.get(fk.key)
            if value is None:
                continue
            if not await self._for(fk.target).lock([value], shared=True):
                errors.append(FieldError(fk.key, f"{fk.target.name} {value} does not exist"))
        for plan in self.entity.relations.values():
            if plan.link_key is None or not payload.get(plan.link_key):
                continue
            wanted = set(payload[plan.link_key])
            found = await self._for(plan.target).lock(wanted, shared=True)
            missing = sorted(str(i) for i in wanted - found)
            if missing:
                errors.append(FieldError(plan.link_key, f"{plan.target.name} does not exist: {', '.join(missing)}"))
        return errors

    def scope(self, plan: RelationPlan, parent_id: UUID) -> ColumnElement[bool]:
        """Condition selecting ``plan.target`` rows related to one source record."""
        target = self.mapping.table_for(plan.target)
        if plan.kind is RelationshipKind.HAS_MANY:
            return target.column(plan.foreign_key) == parent_id
        if plan.kind is RelationshipKind.MANY_TO_MANY:
            link = self.mapping.link_table(plan)
            through = plan.link_spec()
            linked = select(link.c[through.target_column]).where(link.c[through.source_column] == parent_id)
            return target.table.c.id.in_(linked)
        raise ValueError(f"{plan.name} is not a collection relation")

    async def load_related(self, plan: RelationPlan, records: list[Record]) -> dict[UUID, list[Record]]:
        """Related records of many source records in one query, keyed by source id."""
        related: dict[UUID, list[Record]] = {r["id"]: [] for r in records}
        if not records:
            return related
        target = self.mapping.table_for(plan.target)
        t = target.table

        if plan.kind is RelationshipKind.BELONGS_TO:
            found = await self._for(plan.target).get_many(r[plan.foreign_key] for r in records if r[plan.foreign_key])
            for record in records:
                parent = found.get(record[plan.foreign_key])
                if parent is not None:
                    related[record["id"]].append(parent)
            return related

        if plan.kind is RelationshipKind.HAS_MANY:
            column = target.column(plan.foreign_key)
            stmt = select(t, column.label("_source_id")).where(column.in_(list(related)))
        else:
            link = self.mapping.link_table(plan)
            through = plan.link_spec()
            source = link.c[through.source_column]
            stmt = (
                select(t, source.label("_source_id"))
                .join(link, link.c[through.target_column] == t.c.id)
                .where(source.in_(list(related)))
            )
        result = await self.conn.execute(stmt.order_by(t.c.created_at, t.c.id))
        for row in result.mappings():
            related[row["_source_id"]].append(target.to_record(row))
        return related

    def _split(self, payload: Mapping[str, Any]) -> tuple[dict[str, Any], dict[RelationPlan, list[UUID]]]:
        links: dict[RelationPlan, list[UUID]] = {}
        values = dict(payload)
        for plan in self.entity.relations.values():
            if plan.link_key is not None and plan.link_key in values:
                ids = values.pop(plan.link_key)
                if ids is not None:
                    links[plan] = list(dict.fromkeys(ids))
        return values, links

    async def _replace_links(self, plan: RelationPlan, record_id: UUID, ids: list[UUID]) -> None:
        link = self.mapping.link_table(plan)
        through = plan.link_spec()
        await self.conn.execute(delete(link).where(link.c[through.source_column] == record_id))
        if ids:
            await self.conn.execute(
                insert(link),
                [{through.source_column: record_id, through.target_column: i} for i in ids],
            )
