# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

from manifold.repositories.entity import EntityRepository, Record
from manifold.repositories.query import Filter, FilterOperator, ListQuery
from manifold.repositories.store import EntityStore

__all__ = ["EntityRepository", "EntityStore", "Filter", "FilterOperator", "ListQuery", "Record"]
