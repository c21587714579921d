# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Description document, docs UI and manifest reload."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse
from slowapi import Limiter

from manifold.api.dependencies import get_app_settings, get_manifest_engine
from manifold.config import Settings
from manifold.engine import ManifestEngine
from manifold.errors import NotFoundError

logger = logging.getLogger(__name__)


def build_admin_router(settings: Settings, limiter: Limiter) -> APIRouter:
    """Routes under ``/api`` that must win over the dynamic ``/api/{slug}`` ones."""
    router = APIRouter(prefix="/api", include_in_schema=False)

    @router.get("/openapi.json")
    async def openapi_document(engine: ManifestEngine = Depends(get_manifest_engine)) -> dict[str, Any]:
        return engine.current.description

    @router.get("/docs", response_class=HTMLResponse)
    async def swagger_ui(
        engine: ManifestEngine = Depends(get_manifest_engine),
        app_settings: Settings = Depends(get_app_settings),
    ) -> HTMLResponse:
        if app_settings.is_production:
            raise NotFoundError("Not found")
        title = engine.current.description["info"]["title"]
        return get_swagger_ui_html(openapi_url="/api/openapi.json", title=f"{title} API")

    @router.post("/_reload")
    @limiter.limit(settings.reload_rate_limit)
    async def reload_manifest(
        request: Request,
        engine: ManifestEngine = Depends(get_manifest_engine),
        app_settings: Settings = Depends(get_app_settings),
    ) -> dict[str, Any]:
        """Re-read the manifest file. Development only."""
        if not app_settings.is_development:
            raise NotFoundError("Not found")
        handle = await engine.reload()
        logger.info("Manifest reloaded on request from %s", request.client.host if request.client else "unknown")
        return {
            "version": handle.version,
            "fingerprint": handle.fingerprint,
            "entities": [entity.name for entity in handle.registry],
        }

    return router
