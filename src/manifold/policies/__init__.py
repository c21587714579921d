# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from manifold.policies.context import RequestContext
from manifold.policies.engine import ALLOW, AccessPredicate, Decision, PolicyTable, authorize

__all__ = ["ALLOW", "AccessPredicate", "Decision", "PolicyTable", "RequestContext", "authorize"]
