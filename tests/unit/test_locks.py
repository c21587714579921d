# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from uuid import uuid4

from sqlalchemy.dialects import postgresql, sqlite

from manifold.db.mapper import EntityTable, SchemaMapping
from manifold.manifest import load_manifest
from manifold.registry import compile_registry
from manifold.repositories.entity import lock_statement
from tests.conftest import library_manifest


def _author_table() -> EntityTable:
    registry = compile_registry(load_manifest(library_manifest()))
    return SchemaMapping(registry).table_for(registry.lookup("Author"))


class TestLockStatements:
    def test_reference_check_takes_key_share(self) -> None:
        stmt = lock_statement(_author_table(), [uuid4()], shared=True)
        assert str(stmt.compile(dialect=postgresql.dialect())).endswith("FOR KEY SHARE")

    def test_delete_takes_update_lock(self) -> None:
        stmt = lock_statement(_author_table(), [uuid4()], shared=False)
        assert str(stmt.compile(dialect=postgresql.dialect())).endswith("FOR UPDATE")

    def test_sqlite_has_no_lock_clause(self) -> None:
        stmt = lock_statement(_author_table(), [uuid4()], shared=False)
        sql = str(stmt.compile(dialect=sqlite.dialect()))
        assert "FOR UPDATE" not in sql
        assert sql.startswith("SELECT author.id")
