# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from typing import Any

import jwt

from manifold.config import Settings
from manifold.policies.context import RequestContext


def decode_access_token(token: str, settings: Settings) -> RequestContext:
    """Decode a JWT access token into the caller's request context.

    The ``sub`` claim becomes the identity and ``roles`` (a list or a
    space-separated string) the role set. Tokens are issued elsewhere.

    Raises jwt.InvalidTokenError on any validation failure.
    """
    payload = jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub"]},
    )
    return RequestContext.for_identity(str(payload["sub"]), _roles(payload.get("roles")))


def _roles(claim: Any) -> frozenset[str]:
    if claim is None:
        return frozenset()
    if isinstance(claim, str):
        return frozenset(claim.split())
    if isinstance(claim, list):
        return frozenset(str(role) for role in claim)
    raise jwt.InvalidTokenError("roles claim must be a list or a string")
