# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from manifold.auth.tokens import decode_access_token
from manifold.config import Settings
from manifold.engine import ManifestEngine
from manifold.policies.context import RequestContext

_bearer_scheme_optional = HTTPBearer(auto_error=False)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_manifest_engine(request: Request) -> ManifestEngine:
    return request.app.state.manifest_engine


async def get_request_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme_optional),
    settings: Settings = Depends(get_app_settings),
) -> RequestContext:
    """Anonymous without a token; a token that is present must be valid."""
    if credentials is None:
        return RequestContext.anonymous()

    try:
        return decode_access_token(credentials.credentials, settings)
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
