# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from typing import Any

import jwt
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from manifold.config import ApiOptions, Settings
from manifold.engine import ManifestEngine, RegistryHandle, build_handle
from manifold.main import create_app
from manifold.manifest import load_manifest

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


# ---------------------------------------------------------------------------
# Factory helpers for raw manifest fragments
# ---------------------------------------------------------------------------


def make_property(name: str, kind: str = "string", **extra: Any) -> dict[str, Any]:
    """Return a raw property mapping as it would appear in a manifest."""
    return {"name": name, "type": kind, **extra}


def make_entity(
    *,
    properties: list[Any] | None = None,
    policies: dict[str, Any] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Return a raw entity body. Everything is public unless ``policies`` says otherwise."""
    return {
        "properties": properties if properties is not None else ["name"],
        "policies": policies if policies is not None else {"*": "public"},
        **extra,
    }


def library_manifest(*, cascade: bool = False) -> dict[str, Any]:
    """Authors, books, tags and private notes on books."""
    return {
        "name": "Library",
        "version": "1.0.0",
        "entities": {
            "Author": make_entity(
                properties=["name", make_property("bio", "text", nullable=True)],
            ),
            "Book": make_entity(
                properties=[
                    make_property("title", validation={"minLength": 1}),
                    make_property("pages", "integer", nullable=True, validation={"min": 1}),
                    make_property("genre", "enum", values=["fiction", "poetry"], default="fiction"),
                ],
                belongsTo=[{"target": "Author", "cascade": cascade}],
                belongsToMany=["Tag"],
            ),
            "Tag": make_entity(
                properties=[make_property("label", unique=True)],
                policies={"read": "public", "create": "public", "delete": "public", "update": ["admin"]},
            ),
            "Note": make_entity(
                properties=[make_property("body", "text")],
                belongsTo=["Book"],
                policies={"read": ["admin"], "create": "authenticated"},
            ),
        },
    }


def event_manifest() -> dict[str, Any]:
    """One entity whose defaults are written as plain YAML scalars and mappings."""
    return {
        "name": "Calendar",
        "entities": {
            "Event": make_entity(
                properties=[
                    "name",
                    make_property("day", "date", default="2020-01-01"),
                    make_property("startsAt", "timestamp", default="2020-01-01T09:30:00+00:00"),
                    make_property("venue", "location", default={"lat": 51.5, "lng": -0.1}),
                    make_property("seats", "integer", default=40, validation={"min": 1}),
                ]
            ),
        },
    }


def make_token(subject: str = "user-1", roles: Iterable[str] = (), **claims: Any) -> str:
    """Sign a bearer token the way the external identity provider would."""
    payload = {"sub": subject, "roles": list(roles), **claims}
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


def auth_header(*roles: str, subject: str = "user-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(subject, roles)}"}


def offline_handle(raw: dict[str, Any], options: ApiOptions | None = None) -> RegistryHandle:
    """Compile ``raw`` against an engine that is never connected."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    return build_handle(load_manifest(raw), engine, options or ApiOptions())


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'manifold-test.db'}"


@pytest.fixture
def settings(tmp_path: Path, database_url: str) -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret_key=TEST_SECRET,
        database_url=database_url,
        manifest_path=str(tmp_path / "manifest.yml"),
        environment="development",
        log_format="plain",
        log_level="warning",
    )


@pytest.fixture
async def db_engine(database_url: str) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(database_url, echo=False)
    yield engine
    await engine.dispose()


@pytest.fixture
def manifest() -> dict[str, Any]:
    """Manifest registered by ``manifest_engine``. Override in a module to change it."""
    return library_manifest()


@pytest.fixture
async def manifest_engine(
    db_engine: AsyncEngine, settings: Settings, manifest: dict[str, Any]
) -> ManifestEngine:
    engine = ManifestEngine(db_engine, ApiOptions.from_settings(settings), manifest_path=settings.manifest_path)
    await engine.register(manifest)
    return engine


@pytest.fixture
def app(settings: Settings, manifest_engine: ManifestEngine) -> FastAPI:
    return create_app(settings, engine=manifest_engine)


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
