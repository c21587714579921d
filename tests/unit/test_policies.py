# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from __future__ import annotations

from typing import Any

from manifold.manifest import PolicyAccess, PolicyOperation, PolicyRule, load_manifest
from manifold.policies import RequestContext, authorize
from manifold.policies.engine import PolicyTable
from manifold.registry import CompiledEntity, compile_registry
from tests.conftest import make_entity

ANONYMOUS = RequestContext.anonymous()
USER = RequestContext.for_identity("user-1")
EDITOR = RequestContext.for_identity("user-2", {"editor"})
ADMIN = RequestContext.for_identity("user-3", {"admin"})


def _entity(policies: dict[str, Any]) -> CompiledEntity:
    registry = compile_registry(load_manifest({"entities": {"Post": make_entity(policies=policies)}}))
    return registry.lookup("Post")


class TestAuthorize:
    def test_public_allows_anonymous(self) -> None:
        entity = _entity({"read": "public"})
        assert authorize(entity, PolicyOperation.READ, ANONYMOUS)

    def test_authenticated_requires_identity(self) -> None:
        entity = _entity({"read": "authenticated"})
        assert not authorize(entity, PolicyOperation.READ, ANONYMOUS)
        assert authorize(entity, PolicyOperation.READ, USER)

    def test_restricted_requires_a_listed_role(self) -> None:
        entity = _entity({"update": ["editor"]})
        assert not authorize(entity, PolicyOperation.UPDATE, USER)
        assert authorize(entity, PolicyOperation.UPDATE, EDITOR)
        assert not authorize(entity, PolicyOperation.UPDATE, ADMIN)

    def test_missing_rule_denies_everyone(self) -> None:
        entity = _entity({"read": "public"})
        decision = authorize(entity, PolicyOperation.DELETE, ADMIN)
        assert not decision
        assert decision.reason == "no policy grants delete"

    def test_forbidden_denies_everyone(self) -> None:
        entity = _entity({"delete": "forbidden", "*": "public"})
        assert not authorize(entity, PolicyOperation.DELETE, ADMIN)
        assert authorize(entity, PolicyOperation.READ, ANONYMOUS)

    def test_exact_rule_beats_wildcard(self) -> None:
        entity = _entity({"*": "public", "create": ["admin"]})
        assert not authorize(entity, PolicyOperation.CREATE, USER)
        assert authorize(entity, PolicyOperation.CREATE, ADMIN)
        assert authorize(entity, PolicyOperation.UPDATE, ANONYMOUS)

    def test_rules_for_one_operation_are_alternatives(self) -> None:
        entity = _entity({"update": [{"access": "restricted", "allow": ["editor"]}, {"access": "restricted", "allow": ["admin"]}]})
        assert authorize(entity, PolicyOperation.UPDATE, EDITOR)
        assert authorize(entity, PolicyOperation.UPDATE, ADMIN)
        assert not authorize(entity, PolicyOperation.UPDATE, USER)

    def test_denial_reason_for_anonymous(self) -> None:
        entity = _entity({"read": "authenticated"})
        assert authorize(entity, PolicyOperation.READ, ANONYMOUS).reason == "read requires authentication"


class TestPolicyTable:
    def test_describe(self) -> None:
        table = PolicyTable(
            [
                PolicyRule(operation=PolicyOperation.READ, access=PolicyAccess.PUBLIC),
                PolicyRule(operation=PolicyOperation.ANY, access=PolicyAccess.RESTRICTED, roles=frozenset({"b", "a"})),
            ]
        )
        assert table.describe(PolicyOperation.READ) == [{"access": "public"}]
        assert table.describe(PolicyOperation.UPDATE) == [{"access": "restricted", "roles": ["a", "b"]}]

    def test_forbidden_describes_as_empty(self) -> None:
        table = PolicyTable([PolicyRule(operation=PolicyOperation.DELETE, access=PolicyAccess.FORBIDDEN)])
        assert table.describe(PolicyOperation.DELETE) == []
        assert table.describe(PolicyOperation.READ) == []

    def test_duplicate_rules_collapse(self) -> None:
        rule = PolicyRule(operation=PolicyOperation.READ, access=PolicyAccess.AUTHENTICATED)
        assert len(PolicyTable([rule, rule]).predicates(PolicyOperation.READ)) == 1
