# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Pydantic models synthesized per entity.

The same model objects validate requests, shape responses and feed the
description document, so the three cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, create_model

from manifold.manifest.kinds import value_adapter, value_type
from manifold.manifest.types import PropertyDefinition, PropertyKind
from manifold.registry.compiled import CompiledEntity

_REQUEST_CONFIG = ConfigDict(extra="forbid", protected_namespaces=())
_RESPONSE_CONFIG = ConfigDict(extra="ignore", protected_namespaces=())


@dataclass(frozen=True, eq=False)
class EntityModels:
    create: type[BaseModel]
    update: type[BaseModel]
    record: type[BaseModel]
    page: type[BaseModel]


def _optional(annotation: Any, nullable: bool) -> Any:
    return annotation | None if nullable else annotation


def _response_type(prop: PropertyDefinition) -> Any:
    # Stored rows may predate a tightened constraint; responses are never rejected for it.
    if prop.kind is PropertyKind.ENUM:
        return Annotated[str, Field(json_schema_extra={"enum": list(prop.values)})]
    return value_type(prop, constrained=False)


def _create_default(prop: PropertyDefinition) -> Any:
    """The manifest default as a value of the property type (dates arrive as strings)."""
    if not prop.has_default or prop.default is None:
        return None
    return value_adapter(prop).validate_python(prop.default)


def build_entity_models(entity: CompiledEntity) -> EntityModels:
    create_fields: dict[str, Any] = {}
    update_fields: dict[str, Any] = {}
    record_fields: dict[str, Any] = {
        "id": (UUID, ...),
        "createdAt": (datetime, ...),
        "updatedAt": (datetime, ...),
    }

    for prop in entity.properties:
        annotation = _optional(value_type(prop), prop.nullable)
        if prop.required:
            create_fields[prop.name] = (annotation, Field(..., description=prop.description))
        else:
            create_fields[prop.name] = (annotation, Field(_create_default(prop), description=prop.description))
        # Update defaults are never validated, so an explicit null on a
        # non-nullable property still fails while an omitted key is unset.
        update_fields[prop.name] = (annotation, Field(None, description=prop.description))
        if prop.is_readable:
            record_fields[prop.name] = (_optional(_response_type(prop), prop.nullable), Field(..., description=prop.description))

    for fk in entity.foreign_keys:
        description = f"Id of the related {fk.target.name}"
        if fk.required:
            create_fields[fk.key] = (UUID, Field(..., description=description))
        else:
            create_fields[fk.key] = (UUID | None, Field(None, description=description))
        update_fields[fk.key] = (_optional(UUID, not fk.required), Field(None, description=description))
        record_fields[fk.key] = (UUID | None, Field(None, description=description))

    for plan in entity.relations.values():
        if plan.link_key is not None:
            description = f"Ids of the linked {plan.target.name} records"
            create_fields[plan.link_key] = (list[UUID], Field(default_factory=list, description=description))
            update_fields[plan.link_key] = (list[UUID], Field(None, description=description))
        shape = list[dict[str, Any]] if plan.is_collection else dict[str, Any]
        record_fields[plan.name] = (
            shape | None,
            Field(None, description=f"{plan.target.name} record(s), present when expanded"),
        )

    record = create_model(entity.name, __config__=_RESPONSE_CONFIG, **record_fields)
    return EntityModels(
        create=create_model(f"{entity.name}Create", __config__=_REQUEST_CONFIG, **create_fields),
        update=create_model(f"{entity.name}Update", __config__=_REQUEST_CONFIG, **update_fields),
        record=record,
        page=create_model(
            f"{entity.name}Page",
            __config__=_RESPONSE_CONFIG,
            data=(list[record], ...),
            total=(int, ...),
            currentPage=(int, ...),
            lastPage=(int, ...),
            perPage=(int, ...),
        ),
    )


class ErrorDetail(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Body of every error response."""

    detail: str
    errors: list[ErrorDetail] = []
