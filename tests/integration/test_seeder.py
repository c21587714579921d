# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

import random

from httpx import AsyncClient

from manifold.engine import ManifestEngine
from manifold.manifest import load_manifest
from manifold.registry import compile_registry
from manifold.seeder import dummy_value, seed, seed_order
from tests.conftest import auth_header, make_entity, make_property


class TestSeedOrder:
    def test_required_targets_first(self) -> None:
        raw = {
            "entities": {
                "Book": make_entity(properties=["title"], belongsTo=[{"target": "Author", "required": True}]),
                "Author": make_entity(),
            }
        }
        registry = compile_registry(load_manifest(raw))
        assert [e.name for e in seed_order(registry.all())] == ["Author", "Book"]

    def test_cycle_keeps_declaration_order(self) -> None:
        raw = {
            "entities": {
                "Egg": make_entity(belongsTo=[{"target": "Hen", "required": True}]),
                "Hen": make_entity(belongsTo=[{"target": "Egg", "required": True, "inverse": "hens"}]),
            }
        }
        registry = compile_registry(load_manifest(raw))
        assert [e.name for e in seed_order(registry.all())] == ["Egg", "Hen"]


class TestDummyValues:
    def test_values_satisfy_rules(self) -> None:
        rng = random.Random(1)
        document = load_manifest(
            {
                "entities": {
                    "Thing": make_entity(
                        properties=[
                            make_property("code", validation={"minLength": 8, "maxLength": 10}),
                            make_property("score", "integer", validation={"min": 1, "max": 5}),
                            make_property("mood", "enum", values=["calm", "loud"]),
                            make_property("contact", "email"),
                        ]
                    )
                }
            }
        )
        code, score, mood, contact = document.entities[0].properties
        for index in range(20):
            assert 8 <= len(dummy_value(code, index, rng)) <= 10
            assert 1 <= dummy_value(score, index, rng) <= 5
            assert dummy_value(mood, index, rng) in ("calm", "loud")
            assert dummy_value(contact, index, rng).endswith("@example.com")

    def test_fractional_integer_bounds(self) -> None:
        rng = random.Random(2)
        document = load_manifest(
            {"entities": {"Thing": make_entity(properties=[make_property("score", "integer", validation={"min": 1.5, "max": 3.5})])}}
        )
        (score,) = document.entities[0].properties
        assert {dummy_value(score, index, rng) for index in range(50)} <= {2, 3}


class TestSeed:
    async def test_seed_through_repositories(self, manifest_engine: ManifestEngine, client: AsyncClient) -> None:
        counts = await seed(manifest_engine.current, 4, seed_value=3)
        assert counts == {"Author": 4, "Book": 4, "Tag": 4, "Note": 4}

        books = (await client.get("/api/books", params={"relations": "author"})).json()
        assert books["total"] == 4
        assert all(book["author"] is not None for book in books["data"])
        notes = (await client.get("/api/notes", headers=auth_header("admin"))).json()
        assert notes["total"] == 4

    async def test_seed_is_repeatable(self, manifest_engine: ManifestEngine, client: AsyncClient) -> None:
        await seed(manifest_engine.current, 2, seed_value=11)
        first = [a["name"] for a in (await client.get("/api/authors", params={"orderBy": "name", "order": "asc"})).json()["data"]]
        assert first == ["name 1", "name 2"]

    async def test_unique_values_do_not_collide(self, manifest_engine: ManifestEngine) -> None:
        handle = await manifest_engine.register(
            {"entities": {"Ticket": make_entity(properties=[make_property("number", "integer", unique=True)])}}
        )
        assert await seed(handle, 5) == {"Ticket": 5}
