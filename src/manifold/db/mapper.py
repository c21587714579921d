# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Persistence mapper.

Turns a compiled registry into SQLAlchemy Core tables: one table per entity,
one link table per many-to-many relation. Records cross this boundary as
plain dicts keyed by API names (``createdAt``, ``authorId``); rows are keyed
by column names (``created_at``, ``author_id``).

Referential integrity (existence checks, cascades, conflicts) is enforced by
the repository layer under row locks, so foreign key columns carry indexes
but no database constraints. This keeps table creation order independent of
cycles.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Connection,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    inspect,
    text,
)
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.types import TypeEngine

from manifold.auth.passwords import hash_password
from manifold.manifest.types import PropertyDefinition, PropertyKind
from manifold.registry.compiled import CompiledEntity, RelationPlan
from manifold.registry.registry import Registry

logger = logging.getLogger(__name__)

SYSTEM_COLUMNS = {"id": "id", "createdAt": "created_at", "updatedAt": "updated_at"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def column_type(prop: PropertyDefinition) -> TypeEngine[Any]:
    kind = prop.kind
    if kind is PropertyKind.STRING:
        return String(max(prop.validation.max_length or 255, 255))
    if kind in (PropertyKind.TEXT, PropertyKind.RICH_TEXT):
        return Text()
    if kind is PropertyKind.EMAIL:
        return String(320)
    if kind is PropertyKind.LINK:
        return String(2048)
    if kind is PropertyKind.PASSWORD:
        return String(255)
    if kind is PropertyKind.ENUM:
        return String(max((len(v) for v in prop.values), default=1))
    if kind is PropertyKind.INTEGER:
        return Integer()
    if kind is PropertyKind.NUMBER:
        return Float()
    if kind is PropertyKind.MONEY:
        return Numeric(14, 2, asdecimal=False)
    if kind is PropertyKind.BOOLEAN:
        return Boolean()
    if kind is PropertyKind.DATE:
        return Date()
    if kind is PropertyKind.TIMESTAMP:
        return DateTime(timezone=True)
    if kind is PropertyKind.LOCATION:
        return JSON()
    raise ValueError(f"no column type for kind {kind}")


@dataclass(frozen=True, eq=False)
class EntityTable:
    """Table of one entity plus the key <-> column translation for it."""

    entity: CompiledEntity
    table: Table
    columns: Mapping[str, str]
    readable: tuple[str, ...]

    def column(self, key: str) -> Column[Any]:
        return self.table.c[self.columns[key]]

    def to_record(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Row mapping -> API record. Password columns never leave here."""
        return {key: row[self.columns[key]] for key in self.readable}

    def to_values(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """API payload -> column values, hashing passwords on the way."""
        values: dict[str, Any] = {}
        for key, value in payload.items():
            column = self.columns.get(key)
            if column is None or key in SYSTEM_COLUMNS:
                continue
            prop = self.entity.get_property(key)
            if prop is not None and prop.kind is PropertyKind.PASSWORD and value is not None:
                value = hash_password(value)
            values[column] = value
        return values


class SchemaMapping:
    """All tables of one registry snapshot, on a private ``MetaData``."""

    def __init__(self, registry: Registry) -> None:
        self.metadata = MetaData()
        self._tables: dict[str, EntityTable] = {}
        self._links: dict[str, Table] = {}
        for entity in registry:
            self._tables[entity.name.lower()] = self._build_entity_table(entity)
        for entity in registry:
            for plan in entity.relations.values():
                if plan.through is not None and plan.through.table not in self._links:
                    self._links[plan.through.table] = self._build_link_table(plan)

    def table_for(self, entity: CompiledEntity) -> EntityTable:
        return self._tables[entity.name.lower()]

    def link_table(self, plan: RelationPlan) -> Table:
        if plan.through is None:
            raise ValueError(f"{plan.source.name}.{plan.name} has no link table")
        return self._links[plan.through.table]

    def signature(self) -> list[Any]:
        """Structural description of every table, used in fingerprints."""
        return [
            [table.name, sorted((c.name, str(c.type), c.nullable) for c in table.columns)]
            for table in sorted(self.metadata.tables.values(), key=lambda t: t.name)
        ]

    def _build_entity_table(self, entity: CompiledEntity) -> EntityTable:
        name = entity.table_name
        columns: list[Column[Any]] = [
            Column("id", Uuid, primary_key=True, default=uuid.uuid4),
            Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow, index=True),
            Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
        ]
        indexes: list[Index] = []
        keys = dict(SYSTEM_COLUMNS)
        readable = list(SYSTEM_COLUMNS)

        for prop in entity.properties:
            columns.append(Column(prop.column_name, column_type(prop), nullable=prop.nullable))
            keys[prop.name] = prop.column_name
            if prop.is_readable:
                readable.append(prop.name)
            if prop.unique:
                indexes.append(Index(f"uq_{name}_{prop.column_name}", prop.column_name, unique=True))

        for fk in entity.foreign_keys:
            columns.append(Column(fk.column, Uuid, nullable=not fk.required))
            keys[fk.key] = fk.column
            readable.append(fk.key)
            indexes.append(Index(f"ix_{name}_{fk.column}", fk.column))

        table = Table(name, self.metadata, *columns, *indexes)
        return EntityTable(entity=entity, table=table, columns=keys, readable=tuple(readable))

    def _build_link_table(self, plan: RelationPlan) -> Table:
        through = plan.link_spec()
        return Table(
            through.table,
            self.metadata,
            Column(through.source_column, Uuid, primary_key=True),
            Column(through.target_column, Uuid, primary_key=True),
            Index(f"ix_{through.table}_{through.target_column}", through.target_column),
        )

    async def sync(self, conn: AsyncConnection) -> list[str]:
        """Create missing tables and add missing columns. Never drops anything."""
        return await conn.run_sync(self._sync)

    def _sync(self, conn: Connection) -> list[str]:
        inspector = inspect(conn)
        existing = set(inspector.get_table_names())
        self.metadata.create_all(conn, checkfirst=True)
        changes = [f"created table {t}" for t in self.metadata.tables if t not in existing]

        preparer = conn.dialect.identifier_preparer
        for table in self.metadata.sorted_tables:
            if table.name not in existing:
                continue
            present = {c["name"] for c in inspector.get_columns(table.name)}
            added = []
            for column in table.columns:
                if column.name in present:
                    continue
                ddl = column.type.compile(dialect=conn.dialect)
                # Added columns are always nullable; existing rows have no value.
                conn.execute(
                    text(f"ALTER TABLE {preparer.quote(table.name)} ADD COLUMN {preparer.quote(column.name)} {ddl}")
                )
                added.append(column.name)
                changes.append(f"added column {table.name}.{column.name}")
            for index in table.indexes:
                if any(c.name in added for c in index.columns):
                    index.create(conn, checkfirst=True)

        for change in changes:
            logger.info("Schema sync: %s", change)
        return changes
