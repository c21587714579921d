# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from manifold.registry.compiled import CompiledEntity, ForeignKeySpec, RelationPlan, ThroughSpec
from manifold.registry.registry import Registry, compile_registry

__all__ = [
    "CompiledEntity",
    "ForeignKeySpec",
    "Registry",
    "RelationPlan",
    "ThroughSpec",
    "compile_registry",
]
