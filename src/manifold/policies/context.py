# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RequestContext:
    """Identity claims of the caller, supplied by the authentication layer."""

    authenticated: bool = False
    roles: frozenset[str] = field(default_factory=frozenset)
    identity: str | None = None

    @classmethod
    def anonymous(cls) -> RequestContext:
        return cls()

    @classmethod
    def for_identity(cls, identity: str, roles: set[str] | frozenset[str] = frozenset()) -> RequestContext:
        return cls(authenticated=True, roles=frozenset(roles), identity=identity)
