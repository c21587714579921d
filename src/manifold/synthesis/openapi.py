# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Description synthesis.

A pure function of an operation set: paths, parameters, request and response
schemas and authorization requirements are all read from the descriptors the
dispatcher executes, and schemas come from the very pydantic models that
validate and shape requests.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic.json_schema import JsonSchemaMode, models_json_schema

from manifold.manifest.types import SchemaDocument
from manifold.synthesis.descriptors import OperationDescriptor
from manifold.synthesis.models import ErrorResponse
from manifold.synthesis.routes import OperationSet

REF_TEMPLATE = "#/components/schemas/{model}"
POLICY_EXTENSION = "x-policy"

_ERROR_DESCRIPTIONS = {
    "400": "Invalid request",
    "401": "Invalid or expired bearer token",
    "403": "Policy denied",
    "404": "Not found",
    "409": "Conflict with existing data",
    "503": "Storage unavailable, retry later",
}


def _collect_models(operations: OperationSet) -> list[tuple[type[BaseModel], JsonSchemaMode]]:
    seen: list[tuple[type[BaseModel], JsonSchemaMode]] = [(ErrorResponse, "serialization")]
    for descriptor in operations:
        if descriptor.request_model is not None and (descriptor.request_model, "validation") not in seen:
            seen.append((descriptor.request_model, "validation"))
        if descriptor.response_model is not None and (descriptor.response_model, "serialization") not in seen:
            seen.append((descriptor.response_model, "serialization"))
    return seen


def synthesize_description(operations: OperationSet, document: SchemaDocument) -> dict[str, Any]:
    """Build the OpenAPI 3.1 document describing ``operations``."""
    refs, top_level = models_json_schema(_collect_models(operations), ref_template=REF_TEMPLATE)
    error_ref = refs[(ErrorResponse, "serialization")]

    paths: dict[str, dict[str, Any]] = {}
    for descriptor in operations:
        paths.setdefault(descriptor.path, {})[descriptor.method.lower()] = _operation(descriptor, refs, error_ref)

    info: dict[str, Any] = {"title": document.name, "version": document.version}
    if document.description:
        info["description"] = document.description

    return {
        "openapi": "3.1.0",
        "info": info,
        "tags": [{"name": e.name, "description": e.description or f"{e.name} records"} for e in document.entities],
        "paths": paths,
        "components": {
            "schemas": top_level.get("$defs", {}),
            "securitySchemes": {"bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        },
    }


def _operation(
    descriptor: OperationDescriptor,
    refs: dict[tuple[type[BaseModel], JsonSchemaMode], dict[str, Any]],
    error_ref: dict[str, Any],
) -> dict[str, Any]:
    parameters = descriptor.parameters.describe()
    if descriptor.has_record_id:
        parameters.insert(
            0, {"name": "id", "in": "path", "required": True, "schema": {"type": "string", "format": "uuid"}}
        )

    operation: dict[str, Any] = {
        "operationId": descriptor.operation_id,
        "summary": descriptor.summary,
        "tags": [descriptor.entity.name],
        "parameters": parameters,
        "security": _security(descriptor),
        POLICY_EXTENSION: descriptor.authorization(),
    }

    if descriptor.request_model is not None:
        operation["requestBody"] = {
            "required": True,
            "content": {"application/json": {"schema": refs[(descriptor.request_model, "validation")]}},
        }

    responses: dict[str, Any] = {}
    status = str(descriptor.status_code)
    if descriptor.response_model is None:
        responses[status] = {"description": "No content"}
    else:
        schema = refs[(descriptor.response_model, "serialization")]
        if descriptor.response_nullable:
            schema = {"anyOf": [schema, {"type": "null"}]}
        responses[status] = {"description": descriptor.summary, "content": {"application/json": {"schema": schema}}}

    codes = ["400", "401", "403"]
    if descriptor.has_record_id:
        codes.append("404")
    if descriptor.request_model is not None or descriptor.method == "DELETE":
        codes.append("409")
    codes.append("503")
    for code in codes:
        responses[code] = {
            "description": _ERROR_DESCRIPTIONS[code],
            "content": {"application/json": {"schema": error_ref}},
        }
    operation["responses"] = responses
    return operation


def _security(descriptor: OperationDescriptor) -> list[dict[str, list[str]]]:
    """Anonymous access is documented only when every requirement admits it."""
    requirements = descriptor.authorization()
    anonymous = all(any(p["access"] == "public" for p in r["anyOf"]) for r in requirements)
    if anonymous:
        return [{}, {"bearerAuth": []}]
    return [{"bearerAuth": []}]
