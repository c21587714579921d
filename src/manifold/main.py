# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Application factory.

Run with ``uvicorn --factory manifold.main:create_app``.
"""

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy import text

from manifold import __version__
from manifold.api.admin import build_admin_router
from manifold.api.dynamic import router as dynamic_router
from manifold.api.errors import install_exception_handlers
from manifold.config import Settings, get_settings
from manifold.engine import ManifestEngine
from manifold.log import configure_logging
from manifold.manifest import read_manifest_file


def create_app(
    settings: Settings | None = None,
    *,
    manifest: Mapping[str, Any] | None = None,
    engine: ManifestEngine | None = None,
) -> FastAPI:
    """Build the application. ``manifest`` overrides reading ``settings.manifest_path``."""
    settings = settings or get_settings()
    configure_logging(settings)
    manifest_engine = engine or ManifestEngine.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: register the manifest, dispose the database on shutdown."""
        raw = manifest if manifest is not None else read_manifest_file(settings.manifest_path)
        await manifest_engine.register(raw)
        yield
        await manifest_engine.dispose()

    app = FastAPI(
        title="Manifold",
        version=__version__,
        lifespan=lifespan,
        # The synthesized description replaces FastAPI's own.
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.manifest_engine = manifest_engine

    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    install_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe. Returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> dict[str, Any]:
        """Readiness probe. Checks database connectivity and a registered manifest."""
        engine = request.app.state.manifest_engine
        async with engine.db.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ready", "registryVersion": engine.current.version}

    # Admin routes first: /api/openapi.json must not resolve as a resource slug.
    app.include_router(build_admin_router(settings, limiter))
    app.include_router(dynamic_router)
    return app
