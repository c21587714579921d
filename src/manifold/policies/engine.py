# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Access-control evaluation.

Rules are folded into a :class:`PolicyTable` once, at compile time. For each
concrete operation the table keeps the rules declared for exactly that
operation, or, when there are none, the wildcard rules. An operation with no
rule at all is denied for every caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from manifold.manifest.types import PolicyAccess, PolicyOperation, PolicyRule
from manifold.policies.context import RequestContext

if TYPE_CHECKING:
    from manifold.registry.compiled import CompiledEntity

audit_log = logging.getLogger("manifold.audit")

CONCRETE_OPERATIONS = (
    PolicyOperation.CREATE,
    PolicyOperation.READ,
    PolicyOperation.UPDATE,
    PolicyOperation.DELETE,
)


@dataclass(frozen=True)
class AccessPredicate:
    access: PolicyAccess
    roles: frozenset[str] = field(default_factory=frozenset)

    def matches(self, context: RequestContext) -> bool:
        if self.access is PolicyAccess.PUBLIC:
            return True
        if self.access is PolicyAccess.AUTHENTICATED:
            return context.authenticated
        if self.access is PolicyAccess.RESTRICTED:
            return context.authenticated and not self.roles.isdisjoint(context.roles)
        return False

    def describe(self) -> dict[str, Any]:
        if self.access is PolicyAccess.RESTRICTED:
            return {"access": self.access.value, "roles": sorted(self.roles)}
        return {"access": self.access.value}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


class PolicyTable:
    """Read-only lookup of access predicates keyed by operation."""

    def __init__(self, rules: Iterable[PolicyRule]) -> None:
        exact: dict[PolicyOperation, list[AccessPredicate]] = {}
        wildcard: list[AccessPredicate] = []
        for rule in rules:
            predicate = AccessPredicate(rule.access, frozenset(rule.roles))
            if rule.operation is PolicyOperation.ANY:
                wildcard.append(predicate)
            else:
                exact.setdefault(rule.operation, []).append(predicate)

        self._table: dict[PolicyOperation, tuple[AccessPredicate, ...]] = {}
        for operation in CONCRETE_OPERATIONS:
            chosen = exact.get(operation) or wildcard
            self._table[operation] = tuple(_dedupe(chosen))

    def predicates(self, operation: PolicyOperation) -> tuple[AccessPredicate, ...]:
        return self._table.get(operation, ())

    def describe(self, operation: PolicyOperation) -> list[dict[str, Any]]:
        """Authorization requirement of ``operation``. Empty means always denied."""
        predicates = self.predicates(operation)
        if any(p.access is PolicyAccess.FORBIDDEN for p in predicates):
            return []
        return [p.describe() for p in predicates]


def _dedupe(predicates: list[AccessPredicate]) -> list[AccessPredicate]:
    seen: list[AccessPredicate] = []
    for predicate in predicates:
        if predicate not in seen:
            seen.append(predicate)
    return seen


def authorize(entity: CompiledEntity, operation: PolicyOperation, context: RequestContext) -> Decision:
    """Decide whether ``context`` may perform ``operation`` on ``entity``. No side effects besides audit logging."""
    decision = _evaluate(entity.policy_table.predicates(operation), operation, context)
    audit_log.info(
        "%s %s: access %s for roles %s",
        operation.value,
        entity.name,
        "granted" if decision.allowed else "denied",
        sorted(context.roles),
    )
    return decision


def _evaluate(
    predicates: tuple[AccessPredicate, ...], operation: PolicyOperation, context: RequestContext
) -> Decision:
    if not predicates:
        return Decision(False, f"no policy grants {operation.value}")
    if any(p.access is PolicyAccess.FORBIDDEN for p in predicates):
        return Decision(False, f"{operation.value} is forbidden")
    for predicate in predicates:
        if predicate.matches(context):
            return ALLOW
    if not context.authenticated:
        return Decision(False, f"{operation.value} requires authentication")
    return Decision(False, f"{operation.value} requires one of the allowed roles")
