# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Manifest engine: owns the database engine and the active registry snapshot.

Registration builds a complete :class:`RegistryHandle` off to the side and
publishes it with a single reference assignment. Requests grab the current
handle once and use it throughout, so a reload never mixes two manifests in
one request.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from manifold.config import ApiOptions, Settings
from manifold.db.mapper import SchemaMapping
from manifold.db.session import build_engine, unit_of_work
from manifold.errors import NotFoundError
from manifold.manifest import load_manifest, read_manifest_file
from manifold.manifest.types import SchemaDocument
from manifold.registry import Registry, compile_registry
from manifold.repositories import EntityStore
from manifold.synthesis import OperationSet, synthesize_description, synthesize_operations

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RegistryHandle:
    """Everything derived from one manifest. Never mutated after publication."""

    registry: Registry
    mapping: SchemaMapping
    store: EntityStore
    operations: OperationSet
    description: dict[str, Any]
    fingerprint: str

    @property
    def version(self) -> int:
        return self.registry.version


def build_handle(document: SchemaDocument, db: AsyncEngine, options: ApiOptions, *, version: int = 1) -> RegistryHandle:
    """Compile ``document`` into a handle. Pure apart from logging; touches no tables."""
    registry = compile_registry(document, version=version)
    mapping = SchemaMapping(registry)
    store = EntityStore(db, mapping)
    operations = synthesize_operations(registry, store, options)
    description = synthesize_description(operations, document)
    fingerprint = hashlib.sha256(
        json.dumps(
            {"operations": operations.fingerprint(), "storage": mapping.signature(), "info": description["info"]},
            sort_keys=True,
        ).encode()
    ).hexdigest()
    return RegistryHandle(registry, mapping, store, operations, description, fingerprint)


class ManifestEngine:
    def __init__(self, db: AsyncEngine, options: ApiOptions | None = None, *, manifest_path: str | None = None) -> None:
        self.db = db
        self.options = options or ApiOptions()
        self.manifest_path = manifest_path
        self._handle: RegistryHandle | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> ManifestEngine:
        return cls(build_engine(settings), ApiOptions.from_settings(settings), manifest_path=settings.manifest_path)

    @property
    def current(self) -> RegistryHandle:
        handle = self._handle
        if handle is None:
            raise NotFoundError("No manifest is registered")
        return handle

    @property
    def is_ready(self) -> bool:
        return self._handle is not None

    async def register(self, raw: Mapping[str, Any]) -> RegistryHandle:
        """Load, compile and publish ``raw``.

        Raises ManifestValidationError (or a storage error during schema sync)
        and leaves the active handle serving in that case. An unchanged
        manifest keeps the active handle.
        """
        async with self._lock:
            document = load_manifest(raw)
            previous = self._handle
            version = previous.version + 1 if previous is not None else 1
            handle = build_handle(document, self.db, self.options, version=version)
            if previous is not None and previous.fingerprint == handle.fingerprint:
                logger.info("Manifest unchanged, keeping registry v%d", previous.version)
                return previous

            async with unit_of_work(self.db) as conn:
                await handle.mapping.sync(conn)
            self._handle = handle
            logger.info(
                "Published registry v%d (%d entities, %d operations, fingerprint %s)",
                handle.version,
                len(handle.registry),
                len(handle.operations),
                handle.fingerprint[:12],
            )
            return handle

    async def reload(self) -> RegistryHandle:
        """Re-read the manifest file and register it."""
        if self.manifest_path is None:
            raise NotFoundError("No manifest file is configured")
        return await self.register(read_manifest_file(self.manifest_path))

    async def dispose(self) -> None:
        await self.db.dispose()
