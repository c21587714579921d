# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from contextlib import AbstractAsyncContextManager

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from manifold.db.mapper import SchemaMapping
from manifold.db.session import unit_of_work
from manifold.registry.compiled import CompiledEntity
from manifold.repositories.entity import EntityRepository


class EntityStore:
    """Binds one schema mapping to the database engine."""

    def __init__(self, db: AsyncEngine, mapping: SchemaMapping) -> None:
        self.db = db
        self.mapping = mapping

    def transaction(self) -> AbstractAsyncContextManager[AsyncConnection]:
        return unit_of_work(self.db)

    def repository(self, conn: AsyncConnection, entity: CompiledEntity) -> EntityRepository:
        return EntityRepository(conn, self.mapping, entity)
