# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors
"""Re-registration of a manifest while the engine keeps serving."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml
from httpx import ASGITransport, AsyncClient
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from manifold.config import Settings
from manifold.engine import ManifestEngine
from manifold.errors import ManifestValidationError, NotFoundError
from manifold.main import create_app
from manifold.policies import RequestContext
from manifold.synthesis import Operation, OperationCall
from tests.conftest import library_manifest, make_property


def _with_country() -> dict[str, Any]:
    raw = library_manifest()
    raw["entities"]["Author"]["properties"].append(make_property("country", nullable=True))
    return raw


def _write(path: str, raw: dict[str, Any]) -> None:
    Path(path).write_text(yaml.safe_dump(raw, sort_keys=False), encoding="utf-8")


class TestRegister:
    async def test_unchanged_manifest_keeps_handle(self, manifest_engine: ManifestEngine) -> None:
        before = manifest_engine.current
        assert await manifest_engine.register(library_manifest()) is before
        assert manifest_engine.current.version == 1

    async def test_changed_manifest_publishes_new_version(self, manifest_engine: ManifestEngine) -> None:
        handle = await manifest_engine.register(_with_country())
        assert handle.version == 2
        assert manifest_engine.current is handle
        async with manifest_engine.db.connect() as conn:
            columns = await conn.run_sync(lambda c: [col["name"] for col in inspect(c).get_columns("author")])
        assert "country" in columns

    async def test_invalid_manifest_keeps_serving(self, manifest_engine: ManifestEngine) -> None:
        before = manifest_engine.current
        broken = library_manifest()
        broken["entities"]["Book"]["belongsTo"] = ["Publisher"]
        with pytest.raises(ManifestValidationError):
            await manifest_engine.register(broken)
        assert manifest_engine.current is before

    async def test_old_handle_finishes_requests(self, manifest_engine: ManifestEngine) -> None:
        old = manifest_engine.current
        await manifest_engine.register(_with_country())
        descriptor = old.operations.find("authors", Operation.CREATE)
        result = await descriptor.execute(OperationCall(RequestContext.anonymous(), body={"name": "Still here"}))
        assert result.status_code == 201
        assert "country" not in result.body

    async def test_nothing_registered(self, db_engine: AsyncEngine) -> None:
        engine = ManifestEngine(db_engine)
        assert not engine.is_ready
        with pytest.raises(NotFoundError):
            engine.current
        with pytest.raises(NotFoundError):
            await engine.reload()


class TestReloadEndpoint:
    async def test_reload_in_development(self, client: AsyncClient, settings: Settings) -> None:
        _write(settings.manifest_path, _with_country())
        resp = await client.post("/api/_reload")
        assert resp.status_code == 200
        body = resp.json()
        assert body["version"] == 2
        assert body["entities"] == ["Author", "Book", "Tag", "Note"]

        resp = await client.post("/api/authors", json={"name": "Borges", "country": "Argentina"})
        assert resp.status_code == 201
        assert resp.json()["country"] == "Argentina"
        document = (await client.get("/api/openapi.json")).json()
        assert "country" in document["components"]["schemas"]["AuthorCreate"]["properties"]

    async def test_reload_with_invalid_file(self, client: AsyncClient, settings: Settings) -> None:
        Path(settings.manifest_path).write_text("entities: {}\n", encoding="utf-8")
        resp = await client.post("/api/_reload")
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "entities"
        assert (await client.get("/ready")).json()["registryVersion"] == 1

    async def test_reload_hidden_in_production(self, settings: Settings, manifest_engine: ManifestEngine) -> None:
        production = settings.model_copy(update={"environment": "production"})
        app = create_app(production, engine=manifest_engine)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            assert (await ac.post("/api/_reload")).status_code == 404
            assert (await ac.get("/api/docs")).status_code == 404
            assert (await ac.get("/api/openapi.json")).status_code == 200
