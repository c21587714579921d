# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Query parameters of synthesized operations.

Each parameter carries both its documentation schema and the coercion used
at request time, so what is documented is exactly what is accepted.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from manifold.config import ApiOptions
from manifold.errors import FieldError
from manifold.manifest.kinds import value_type
from manifold.manifest.types import PropertyKind
from manifold.registry.compiled import CompiledEntity
from manifold.repositories.query import Filter, FilterOperator, ListQuery

_EQUALITY = (FilterOperator.EQ, FilterOperator.NEQ, FilterOperator.IN)
_RANGE = (FilterOperator.GT, FilterOperator.GTE, FilterOperator.LT, FilterOperator.LTE)
_UNFILTERABLE = (PropertyKind.LOCATION, PropertyKind.PASSWORD)


@dataclass(frozen=True, eq=False)
class QueryParameter:
    name: str
    adapter: TypeAdapter[Any]
    description: str
    key: str | None = None
    operator: FilterOperator | None = None

    def schema(self) -> dict[str, Any]:
        if self.operator is FilterOperator.IN:
            return {"type": "string", "description": "Comma-separated values"}
        return self.adapter.json_schema()

    def describe(self) -> dict[str, Any]:
        return {"name": self.name, "in": "query", "required": False, "description": self.description, "schema": self.schema()}

    def coerce(self, raw: str) -> Any:
        if self.operator is FilterOperator.IN:
            return [self.adapter.validate_strings(part.strip()) for part in raw.split(",") if part.strip()]
        return self.adapter.validate_strings(raw)


@dataclass(frozen=True, eq=False)
class ParameterSet:
    """Accepted query parameters of one operation, in documentation order."""

    parameters: tuple[QueryParameter, ...] = ()
    by_name: Mapping[str, QueryParameter] = field(default_factory=dict)

    @classmethod
    def of(cls, *parameters: QueryParameter) -> ParameterSet:
        return cls(parameters, {p.name: p for p in parameters})

    def __iter__(self):
        return iter(self.parameters)

    def describe(self) -> list[dict[str, Any]]:
        return [p.describe() for p in self.parameters]

    def parse(self, raw: Mapping[str, str]) -> tuple[dict[str, Any], list[FieldError]]:
        values: dict[str, Any] = {}
        errors: list[FieldError] = []
        for name, text in raw.items():
            parameter = self.by_name.get(name)
            if parameter is None:
                errors.append(FieldError(name, "unknown query parameter"))
                continue
            try:
                values[name] = parameter.coerce(text)
            except PydanticValidationError as exc:
                errors.append(FieldError(name, exc.errors()[0]["msg"]))
        return values, errors


def _sortable_keys(entity: CompiledEntity) -> list[str]:
    keys = ["createdAt", "updatedAt", "id"]
    keys += [p.name for p in entity.properties if p.kind not in _UNFILTERABLE]
    return keys


def _filter_parameters(entity: CompiledEntity) -> list[QueryParameter]:
    targets: list[tuple[str, Any, tuple[FilterOperator, ...]]] = [
        ("id", UUID, _EQUALITY),
        ("createdAt", datetime, _EQUALITY + _RANGE),
        ("updatedAt", datetime, _EQUALITY + _RANGE),
    ]
    for prop in entity.properties:
        if prop.kind in _UNFILTERABLE:
            continue
        operators = _EQUALITY
        if prop.kind.is_ordered:
            operators += _RANGE
        if prop.kind.is_string_like:
            operators += (FilterOperator.LIKE,)
        if prop.kind is PropertyKind.BOOLEAN:
            operators = (FilterOperator.EQ, FilterOperator.NEQ)
        targets.append((prop.name, value_type(prop, constrained=False), operators))
    for fk in entity.foreign_keys:
        targets.append((fk.key, UUID, _EQUALITY))

    parameters = []
    for key, annotation, operators in targets:
        adapter = TypeAdapter(annotation)
        for operator in operators:
            parameters.append(
                QueryParameter(
                    name=f"{key}_{operator.value}",
                    adapter=adapter,
                    description=f"Filter: {key} {operator.value}",
                    key=key,
                    operator=operator,
                )
            )
    return parameters


def relations_parameter(options: ApiOptions) -> QueryParameter:
    return QueryParameter(
        name="relations",
        adapter=TypeAdapter(str),
        description=f"Comma-separated relations to embed; dotted paths up to depth {options.max_expand_depth}",
    )


def list_parameters(entity: CompiledEntity, options: ApiOptions) -> ParameterSet:
    sortable = tuple(_sortable_keys(entity))
    return ParameterSet.of(
        QueryParameter("page", TypeAdapter(Annotated[int, Field(ge=1)]), "Page number, starting at 1"),
        QueryParameter(
            "perPage",
            TypeAdapter(Annotated[int, Field(ge=1, le=options.max_page_size)]),
            f"Records per page (default {options.default_page_size})",
        ),
        QueryParameter("orderBy", TypeAdapter(Literal[sortable]), "Sort key (default createdAt)"),  # type: ignore[valid-type]
        QueryParameter("order", TypeAdapter(Literal["asc", "desc"]), "Sort direction (default desc)"),
        relations_parameter(options),
        *_filter_parameters(entity),
    )


def build_list_query(values: Mapping[str, Any], parameters: ParameterSet, options: ApiOptions) -> ListQuery:
    filters = []
    for name, value in values.items():
        parameter = parameters.by_name[name]
        if parameter.operator is not None and parameter.key is not None:
            filters.append(Filter(parameter.key, parameter.operator, value))
    return ListQuery(
        page=values.get("page", 1),
        per_page=values.get("perPage", options.default_page_size),
        order_by=values.get("orderBy", "createdAt"),
        descending=values.get("order", "desc") == "desc",
        filters=tuple(filters),
    )


def page_envelope(records: list[dict[str, Any]], total: int, query: ListQuery) -> dict[str, Any]:
    return {
        "data": records,
        "total": total,
        "currentPage": query.page,
        "lastPage": max(1, math.ceil(total / query.per_page)),
        "perPage": query.per_page,
    }
