# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Operation descriptors and their fixed execution pipeline.

Every synthesized operation runs the same five steps, in order:

1. validate the record id, query string and body;
2. authorize every requirement (short-circuits with PolicyDeniedError);
3. call the repository;
4. expand requested relations, up to a bounded depth;
5. shape the result through the response model.

Steps 1 and 2 live here. Steps 3 to 5 are the operation's executor.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from manifold.config import ApiOptions
from manifold.errors import FieldError, PolicyDeniedError, RequestValidationError
from manifold.manifest.types import PolicyOperation
from manifold.policies.context import RequestContext
from manifold.policies.engine import authorize
from manifold.registry.compiled import CompiledEntity, RelationPlan
from manifold.repositories.query import ListQuery
from manifold.synthesis.parameters import ParameterSet, build_list_query

logger = logging.getLogger(__name__)

ExpandPath = tuple[str, ...]


class Operation(StrEnum):
    LIST = "list"
    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    RELATION = "relation"


@dataclass(frozen=True)
class Requirement:
    """One policy check: ``operation`` must be allowed on ``entity``."""

    entity: CompiledEntity
    operation: PolicyOperation

    def enforce(self, context: RequestContext) -> None:
        decision = authorize(self.entity, self.operation, context)
        if not decision:
            raise PolicyDeniedError(f"Not allowed to {self.operation.value} {self.entity.name}: {decision.reason}")

    def describe(self) -> dict[str, Any]:
        return {
            "entity": self.entity.name,
            "operation": self.operation.value,
            "anyOf": self.entity.policy_table.describe(self.operation),
        }


@dataclass(frozen=True)
class OperationCall:
    """Transport-independent input of one invocation."""

    context: RequestContext
    record_id: str | None = None
    query: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class ValidatedCall:
    context: RequestContext
    record_id: UUID | None = None
    payload: dict[str, Any] | None = None
    query: ListQuery | None = None
    expand: tuple[ExpandPath, ...] = ()

    def require_payload(self) -> dict[str, Any]:
        if self.payload is None:
            raise RuntimeError("call carries no validated payload")
        return self.payload

    def require_query(self) -> ListQuery:
        if self.query is None:
            raise RuntimeError("call carries no validated list query")
        return self.query


@dataclass(frozen=True)
class OperationResult:
    status_code: int
    body: Any = None


Executor = Callable[["OperationDescriptor", ValidatedCall], Awaitable[OperationResult]]


@dataclass(frozen=True, eq=False)
class OperationDescriptor:
    entity: CompiledEntity
    operation: Operation
    method: str
    path: str
    status_code: int
    summary: str
    requirements: tuple[Requirement, ...]
    parameters: ParameterSet
    request_model: type[BaseModel] | None
    response_model: type[BaseModel] | None
    executor: Executor = field(repr=False)
    options: ApiOptions = field(default_factory=ApiOptions, repr=False)
    relation: RelationPlan | None = None

    @property
    def operation_id(self) -> str:
        suffix = self.relation.name[:1].upper() + self.relation.name[1:] if self.relation else ""
        return f"{self.operation.value}{self.entity.name}{suffix}"

    @property
    def has_record_id(self) -> bool:
        return "{id}" in self.path

    @property
    def returns_page(self) -> bool:
        if self.operation is Operation.LIST:
            return True
        return self.relation is not None and self.relation.is_collection

    @property
    def response_nullable(self) -> bool:
        """A belongs-to sub-resource answers ``null`` when the key is unset."""
        return self.relation is not None and not self.relation.is_collection

    @property
    def expansion_root(self) -> CompiledEntity:
        return self.relation.target if self.relation is not None else self.entity

    def authorization(self) -> list[dict[str, Any]]:
        return [r.describe() for r in self.requirements]

    def signature(self) -> str:
        """Structural identity. Equal across syntheses of an unchanged manifest."""
        return json.dumps(
            {
                "method": self.method,
                "path": self.path,
                "operation": self.operation.value,
                "entity": self.entity.name,
                "relation": self.relation.describe() if self.relation else None,
                "status": self.status_code,
                "parameters": self.parameters.describe(),
                "request": self.request_model.model_json_schema() if self.request_model else None,
                "response": self.response_model.model_json_schema(mode="serialization") if self.response_model else None,
                "authorization": self.authorization(),
            },
            sort_keys=True,
            default=str,
        )

    async def execute(self, call: OperationCall) -> OperationResult:
        validated = self.validate(call)
        for requirement in self.requirements:
            requirement.enforce(call.context)
        logger.debug("%s %s for %s", self.method, self.path, call.context.identity or "anonymous")
        return await self.executor(self, validated)

    def validate(self, call: OperationCall) -> ValidatedCall:
        errors: list[FieldError] = []

        record_id = None
        if self.has_record_id:
            try:
                record_id = UUID(str(call.record_id))
            except ValueError:
                errors.append(FieldError("id", "must be a UUID"))

        values, query_errors = self.parameters.parse(call.query)
        errors.extend(query_errors)

        expand: tuple[ExpandPath, ...] = ()
        if "relations" in values:
            expand, expand_errors = parse_expansions(self.expansion_root, values.pop("relations"), self.options)
            errors.extend(expand_errors)

        payload = None
        if self.request_model is not None:
            payload, body_errors = validate_body(
                self.request_model, call.body, partial=self.operation is Operation.UPDATE
            )
            errors.extend(body_errors)

        if errors:
            raise self.rejection(errors)

        query = build_list_query(values, self.parameters, self.options) if self.returns_page else None
        return ValidatedCall(call.context, record_id, payload, query, expand)

    def rejection(self, errors: list[FieldError]) -> RequestValidationError:
        if self.options.validation_mode == "first":
            errors = errors[:1]
        return RequestValidationError(errors)

    def shape(self, result: Any) -> Any:
        if result is None or self.response_model is None:
            return None
        return self.response_model.model_validate(result).model_dump(mode="json", exclude_unset=True)


def validate_body(
    model: type[BaseModel], body: Any, *, partial: bool
) -> tuple[dict[str, Any] | None, list[FieldError]]:
    if not isinstance(body, dict):
        return None, [FieldError("body", "expected a JSON object")]
    try:
        instance = model.model_validate(body)
    except PydanticValidationError as exc:
        return None, [
            FieldError(".".join(str(part) for part in error["loc"]) or "body", error["msg"]) for error in exc.errors()
        ]
    return instance.model_dump(exclude_unset=partial), []


def parse_expansions(
    entity: CompiledEntity, raw: str, options: ApiOptions
) -> tuple[tuple[ExpandPath, ...], list[FieldError]]:
    """Parse ``relations=author,tags.posts`` into checked relation paths."""
    paths: list[ExpandPath] = []
    errors: list[FieldError] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        path = tuple(item.split("."))
        if len(path) > options.max_expand_depth:
            errors.append(FieldError("relations", f"'{item}' is deeper than {options.max_expand_depth}"))
            continue
        current = entity
        for name in path:
            plan = current.relations.get(name)
            if plan is None:
                errors.append(FieldError("relations", f"{current.name} has no relation '{name}'"))
                break
            current = plan.target
        else:
            if path not in paths:
                paths.append(path)
    return tuple(paths), errors
