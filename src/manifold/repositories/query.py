# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Validated list queries, as handed to repositories."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from sqlalchemy import ColumnElement


class FilterOperator(StrEnum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    IN = "in"

    def apply(self, column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
        if self is FilterOperator.EQ:
            return column == value
        if self is FilterOperator.NEQ:
            return column != value
        if self is FilterOperator.GT:
            return column > value
        if self is FilterOperator.GTE:
            return column >= value
        if self is FilterOperator.LT:
            return column < value
        if self is FilterOperator.LTE:
            return column <= value
        if self is FilterOperator.LIKE:
            pattern = value if "%" in value else f"%{value}%"
            return column.ilike(pattern)
        return column.in_(value)


@dataclass(frozen=True)
class Filter:
    key: str
    operator: FilterOperator
    value: Any


@dataclass(frozen=True)
class ListQuery:
    page: int = 1
    per_page: int = 20
    order_by: str = "createdAt"
    descending: bool = True
    filters: tuple[Filter, ...] = field(default_factory=tuple)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page
