# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Generic routes dispatching into the active registry's operations.

Routes are fixed; what they serve is looked up per request in the registry
handle published by the manifest engine, so a reload swaps the whole API
surface at once without touching the router.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from manifold.api.dependencies import get_manifest_engine, get_request_context
from manifold.engine import ManifestEngine
from manifold.errors import FieldError, RequestValidationError
from manifold.policies.context import RequestContext
from manifold.synthesis import Operation, OperationCall

router = APIRouter(prefix="/api", include_in_schema=False)


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise RequestValidationError([FieldError("body", "malformed JSON")]) from None


async def _dispatch(
    request: Request,
    engine: ManifestEngine,
    context: RequestContext,
    slug: str,
    operation: Operation,
    record_id: str | None = None,
    relation: str | None = None,
    with_body: bool = False,
) -> Response:
    # One snapshot for the whole request, even if a reload lands meanwhile.
    handle = engine.current
    descriptor = handle.operations.find(slug, operation, relation)
    call = OperationCall(
        context=context,
        record_id=record_id,
        query=dict(request.query_params),
        body=await _read_json(request) if with_body else None,
    )
    result = await descriptor.execute(call)
    if result.status_code == 204:
        return Response(status_code=204)
    return JSONResponse(result.body, status_code=result.status_code)


@router.get("/{slug}")
async def list_records(
    slug: str,
    request: Request,
    engine: ManifestEngine = Depends(get_manifest_engine),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    return await _dispatch(request, engine, context, slug, Operation.LIST)


@router.post("/{slug}")
async def create_record(
    slug: str,
    request: Request,
    engine: ManifestEngine = Depends(get_manifest_engine),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    return await _dispatch(request, engine, context, slug, Operation.CREATE, with_body=True)


@router.get("/{slug}/{record_id}")
async def get_record(
    slug: str,
    record_id: str,
    request: Request,
    engine: ManifestEngine = Depends(get_manifest_engine),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    return await _dispatch(request, engine, context, slug, Operation.GET, record_id)


@router.patch("/{slug}/{record_id}")
async def update_record(
    slug: str,
    record_id: str,
    request: Request,
    engine: ManifestEngine = Depends(get_manifest_engine),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    return await _dispatch(request, engine, context, slug, Operation.UPDATE, record_id, with_body=True)


@router.delete("/{slug}/{record_id}")
async def delete_record(
    slug: str,
    record_id: str,
    request: Request,
    engine: ManifestEngine = Depends(get_manifest_engine),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    return await _dispatch(request, engine, context, slug, Operation.DELETE, record_id)


@router.get("/{slug}/{record_id}/{relation}")
async def get_related(
    slug: str,
    record_id: str,
    relation: str,
    request: Request,
    engine: ManifestEngine = Depends(get_manifest_engine),
    context: RequestContext = Depends(get_request_context),
) -> Response:
    return await _dispatch(request, engine, context, slug, Operation.RELATION, record_id, relation)
