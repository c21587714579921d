# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from manifold.errors import ManifoldError, PersistenceUnavailableError, ValidationError

logger = logging.getLogger(__name__)


async def handle_manifold_error(request: Request, exc: ManifoldError) -> JSONResponse:
    body: dict[str, object] = {"detail": exc.message}
    if isinstance(exc, ValidationError):
        body["errors"] = [e.as_dict() for e in exc.errors]
    headers = {}
    if isinstance(exc, PersistenceUnavailableError):
        headers["Retry-After"] = str(exc.retry_after)
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(body, status_code=exc.status_code, headers=headers)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ManifoldError, handle_manifold_error)  # type: ignore[arg-type]
