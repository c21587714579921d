# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Mapping from the closed set of property kinds to Python value types.

The loader checks defaults with these types, the synthesizer builds request
and response models from them, and filter values are coerced through them.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from manifold.manifest.types import PropertyDefinition, PropertyKind

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
LINK_PATTERN = r"^https?://\S+$"


class Location(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


_BASE_TYPES: dict[PropertyKind, Any] = {
    PropertyKind.STRING: str,
    PropertyKind.TEXT: str,
    PropertyKind.RICH_TEXT: str,
    PropertyKind.NUMBER: float,
    PropertyKind.INTEGER: int,
    PropertyKind.MONEY: float,
    PropertyKind.BOOLEAN: bool,
    PropertyKind.DATE: date,
    PropertyKind.TIMESTAMP: datetime,
    PropertyKind.EMAIL: str,
    PropertyKind.LINK: str,
    PropertyKind.PASSWORD: str,
    PropertyKind.LOCATION: Location,
}

_KIND_PATTERNS = {
    PropertyKind.EMAIL: EMAIL_PATTERN,
    PropertyKind.LINK: LINK_PATTERN,
}


def value_type(prop: PropertyDefinition, *, constrained: bool = True) -> Any:
    """Return the annotation a value of ``prop`` must satisfy (nullability excluded)."""
    if prop.kind is PropertyKind.ENUM:
        return Literal[tuple(prop.values)]  # type: ignore[valid-type]

    base = _BASE_TYPES[prop.kind]
    if not constrained:
        return base

    rules = prop.validation
    constraints: dict[str, Any] = {}
    if rules.min_length is not None:
        constraints["min_length"] = rules.min_length
    if rules.max_length is not None:
        constraints["max_length"] = rules.max_length
    pattern = rules.pattern or _KIND_PATTERNS.get(prop.kind)
    if pattern is not None:
        constraints["pattern"] = pattern
    if rules.minimum is not None:
        constraints["ge"] = math.ceil(rules.minimum) if prop.kind is PropertyKind.INTEGER else rules.minimum
    if rules.maximum is not None:
        constraints["le"] = math.floor(rules.maximum) if prop.kind is PropertyKind.INTEGER else rules.maximum

    if constraints:
        return Annotated[base, Field(**constraints)]
    return base


def value_adapter(prop: PropertyDefinition, *, constrained: bool = True) -> TypeAdapter[Any]:
    return TypeAdapter(value_type(prop, constrained=constrained))
