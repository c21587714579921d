# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from manifold.manifest.loader import load_manifest, read_manifest_file
from manifold.manifest.types import (
    EntityDefinition,
    PolicyAccess,
    PolicyOperation,
    PolicyRule,
    PropertyDefinition,
    PropertyKind,
    RelationshipDefinition,
    RelationshipKind,
    SchemaDocument,
)

__all__ = [
    "EntityDefinition",
    "PolicyAccess",
    "PolicyOperation",
    "PolicyRule",
    "PropertyDefinition",
    "PropertyKind",
    "RelationshipDefinition",
    "RelationshipKind",
    "SchemaDocument",
    "load_manifest",
    "read_manifest_file",
]
