# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Naming rules shared by the loader, the resolver and the persistence mapper.

Every derived name (slug, table, column, relation, foreign key) is computed
here so that the URL, the storage layout and the documentation agree.
"""

from __future__ import annotations

import re

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_SEPARATORS = re.compile(r"[\s\-]+")


def to_snake_case(name: str) -> str:
    """``BlogPost`` -> ``blog_post``, ``authorId`` -> ``author_id``."""
    name = _SEPARATORS.sub("_", name.strip())
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def to_kebab_case(name: str) -> str:
    return to_snake_case(name).replace("_", "-")


def to_lower_camel(name: str) -> str:
    """``BlogPost`` -> ``blogPost``, ``blog_post`` -> ``blogPost``."""
    parts = [p for p in to_snake_case(name).split("_") if p]
    if not parts:
        return ""
    return parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def pluralize(word: str) -> str:
    """Naive English plural, enough for entity names. Explicit slugs override it."""
    lower = word.lower()
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if lower.endswith("y") and len(word) > 1 and lower[-2] not in "aeiou":
        return word[:-1] + "ies"
    return word + "s"


def singularize(word: str) -> str:
    lower = word.lower()
    if lower.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if lower.endswith(("ses", "xes", "zes", "ches", "shes")):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return word[:-1]
    return word


def entity_slug(entity_name: str) -> str:
    """``BlogPost`` -> ``blog-posts``."""
    return pluralize(to_kebab_case(entity_name))


def table_name(entity_name: str) -> str:
    return to_snake_case(entity_name)


def foreign_key_for(relation_name: str) -> str:
    """API key holding the id of a belongs-to target (``author`` -> ``authorId``)."""
    return f"{relation_name}Id"


def link_key_for(relation_name: str) -> str:
    """API key holding the ids of many-to-many targets (``tags`` -> ``tagIds``)."""
    return f"{singularize(relation_name)}Ids"
