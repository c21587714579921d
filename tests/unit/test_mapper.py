# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from typing import Any

import bcrypt
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from manifold.db.mapper import SchemaMapping
from manifold.manifest import load_manifest
from manifold.registry import compile_registry
from tests.conftest import library_manifest, make_entity, make_property


def _mapping(raw: dict[str, Any]) -> SchemaMapping:
    return SchemaMapping(compile_registry(load_manifest(raw)))


def _reader_manifest(*extra_properties: Any) -> dict[str, Any]:
    properties = [make_property("email", "email", unique=True), make_property("secret", "password"), *extra_properties]
    return {"entities": {"Reader": make_entity(properties=properties)}}


class TestTables:
    def test_one_table_per_entity_plus_links(self) -> None:
        mapping = _mapping(library_manifest())
        assert set(mapping.metadata.tables) == {"author", "book", "tag", "note", "book_tags"}

    def test_entity_columns(self) -> None:
        mapping = _mapping(library_manifest())
        book = mapping.table_for(compile_registry(load_manifest(library_manifest())).lookup("Book"))
        columns = {c.name: c for c in book.table.columns}
        assert set(columns) == {"id", "created_at", "updated_at", "title", "pages", "genre", "author_id"}
        assert columns["pages"].nullable
        assert not columns["title"].nullable
        assert columns["author_id"].nullable
        assert book.columns["authorId"] == "author_id"

    def test_required_foreign_key_is_not_nullable(self) -> None:
        raw = {
            "entities": {
                "Author": make_entity(),
                "Book": make_entity(properties=["title"], belongsTo=[{"target": "Author", "required": True}]),
            }
        }
        registry = compile_registry(load_manifest(raw))
        table = SchemaMapping(registry).table_for(registry.lookup("Book")).table
        assert not table.c.author_id.nullable

    def test_link_table(self) -> None:
        registry = compile_registry(load_manifest(library_manifest()))
        mapping = SchemaMapping(registry)
        link = mapping.link_table(registry.lookup("Book").relation("tags"))
        assert [c.name for c in link.primary_key.columns] == ["book_id", "tag_id"]

    def test_unique_property_gets_unique_index(self) -> None:
        registry = compile_registry(load_manifest(library_manifest()))
        table = SchemaMapping(registry).table_for(registry.lookup("Tag")).table
        unique = [index for index in table.indexes if index.unique]
        assert [[c.name for c in index.columns] for index in unique] == [["label"]]

    def test_signature_is_stable(self) -> None:
        assert _mapping(library_manifest()).signature() == _mapping(library_manifest()).signature()
        assert _mapping(library_manifest()).signature() != _mapping(_reader_manifest()).signature()


class TestRecordTranslation:
    def test_password_is_hashed_and_never_read(self) -> None:
        registry = compile_registry(load_manifest(_reader_manifest()))
        table = SchemaMapping(registry).table_for(registry.lookup("Reader"))
        values = table.to_values({"email": "a@example.com", "secret": "hunter22", "id": "ignored"})
        assert "id" not in values
        assert values["secret"] != "hunter22"
        assert bcrypt.checkpw(b"hunter22", values["secret"].encode())
        assert "secret" not in table.readable

    def test_to_record_uses_api_keys(self) -> None:
        registry = compile_registry(load_manifest(library_manifest()))
        table = SchemaMapping(registry).table_for(registry.lookup("Note"))
        row = {"id": 1, "created_at": 2, "updated_at": 3, "body": "x", "book_id": None}
        assert table.to_record(row) == {"id": 1, "createdAt": 2, "updatedAt": 3, "body": "x", "bookId": None}


class TestSync:
    async def test_creates_tables_then_adds_columns(self, db_engine: AsyncEngine) -> None:
        async with db_engine.begin() as conn:
            created = await _mapping(_reader_manifest()).sync(conn)
        assert created == ["created table reader"]

        widened = _mapping(_reader_manifest(make_property("nickname", nullable=True)))
        async with db_engine.begin() as conn:
            changes = await widened.sync(conn)
            columns = await conn.run_sync(lambda c: [col["name"] for col in inspect(c).get_columns("reader")])
        assert changes == ["added column reader.nickname"]
        assert "nickname" in columns

    async def test_sync_twice_changes_nothing(self, db_engine: AsyncEngine) -> None:
        async with db_engine.begin() as conn:
            await _mapping(library_manifest()).sync(conn)
        async with db_engine.begin() as conn:
            assert await _mapping(library_manifest()).sync(conn) == []
