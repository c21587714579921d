# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from typing import Any

import pytest

from manifold.errors import NotFoundError
from manifold.manifest import RelationshipKind, load_manifest
from manifold.registry import ForeignKeySpec, Registry, compile_registry
from tests.conftest import library_manifest, make_entity


def _compile(raw: dict[str, Any]) -> Registry:
    return compile_registry(load_manifest(raw))


class TestLookup:
    def test_declaration_order(self) -> None:
        registry = _compile(library_manifest())
        assert [e.name for e in registry] == ["Author", "Book", "Tag", "Note"]
        assert len(registry) == 4

    def test_lookup_is_case_insensitive(self) -> None:
        registry = _compile(library_manifest())
        assert registry.lookup("book") is registry.lookup("BOOK")
        assert registry.lookup("Book").slug == "books"

    def test_unknown_name(self) -> None:
        with pytest.raises(NotFoundError):
            _compile(library_manifest()).lookup("Publisher")

    def test_by_slug(self) -> None:
        registry = _compile(library_manifest())
        assert registry.by_slug("tags").name == "Tag"
        with pytest.raises(NotFoundError):
            registry.by_slug("Tags")


class TestRelationResolution:
    def test_belongs_to(self) -> None:
        book = _compile(library_manifest()).lookup("Book")
        plan = book.relation("author")
        assert plan.kind is RelationshipKind.BELONGS_TO
        assert plan.target.name == "Author"
        assert plan.foreign_key == "authorId"
        assert plan.fk_column == "author_id"
        assert not plan.is_collection
        assert [fk.key for fk in book.foreign_keys] == ["authorId"]

    def test_inverse_is_inferred(self) -> None:
        registry = _compile(library_manifest(cascade=True))
        books = registry.lookup("Author").relation("books")
        assert books.kind is RelationshipKind.HAS_MANY
        assert books.target is registry.lookup("Book")
        assert books.foreign_key == "authorId"
        assert books.inferred
        assert books.cascade

    def test_many_to_many(self) -> None:
        registry = _compile(library_manifest())
        tags = registry.lookup("Book").relation("tags")
        assert tags.kind is RelationshipKind.MANY_TO_MANY
        assert tags.link_key == "tagIds"
        assert tags.through is not None
        assert tags.through.table == "book_tags"
        assert (tags.through.source_column, tags.through.target_column) == ("book_id", "tag_id")
        assert registry.lookup("Tag").incoming_links == (tags,)

    def test_targets_are_shared_references(self) -> None:
        registry = _compile(library_manifest())
        assert registry.lookup("Note").relation("book").target is registry.lookup("Book")

    def test_unknown_relation(self) -> None:
        with pytest.raises(NotFoundError):
            _compile(library_manifest()).lookup("Book").relation("publisher")

    def test_dependents_exclude_belongs_to(self) -> None:
        book = _compile(library_manifest()).lookup("Book")
        assert {p.name for p in book.dependents} == {"tags", "notes"}

    def test_self_reference(self) -> None:
        raw = {
            "entities": {
                "Employee": make_entity(belongsTo=[{"target": "Employee", "name": "manager", "inverse": "reports"}]),
            }
        }
        employee = _compile(raw).lookup("Employee")
        assert employee.relation("manager").target is employee
        assert employee.relation("reports").foreign_key == "managerId"

    def test_has_many_without_belongs_to_adds_foreign_key(self) -> None:
        raw = {
            "entities": {
                "Shelf": make_entity(hasMany=["Box"]),
                "Box": make_entity(),
            }
        }
        registry = _compile(raw)
        plan = registry.lookup("Shelf").relation("boxes")
        assert plan.foreign_key == "shelfId"
        assert [fk.key for fk in registry.lookup("Box").foreign_keys] == ["shelfId"]
        assert not registry.lookup("Box").relations


class TestSealing:
    def test_sealed_entities_reject_changes(self) -> None:
        registry = _compile(library_manifest())
        author = registry.lookup("Author")
        with pytest.raises(RuntimeError):
            author.bind_foreign_key(ForeignKeySpec(key="xId", column="x_id", target=author))

    def test_relations_view_is_read_only(self) -> None:
        relations = _compile(library_manifest()).lookup("Book").relations
        with pytest.raises(TypeError):
            relations["other"] = relations["author"]  # type: ignore[index]
