# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Manifest loading and validation.

``load_manifest`` turns a deserialized manifest (plain mappings and lists)
into a :class:`SchemaDocument`, or raises :class:`ManifestValidationError`
with every problem found. A partial document is never returned.

Checks run in stages and stop at the first stage that reports errors, since
later stages assume the earlier ones passed:

    a. shape: required fields, recognized kinds, constraint applicability
    b. uniqueness: entity names (case-insensitive), slugs, tables,
       property/relation/key names per entity
    c. references: relationship targets, display properties, inferred
       inverse relations, foreign keys implied by has-many, through tables
    d. policies: restricted rules need roles, forbidden cannot be combined
       with an allowing rule for the same operation
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, TypeAdapter
from pydantic_core import SchemaError

from manifold.errors import FieldError, ManifestValidationError
from manifold.manifest import kinds, naming
from manifold.manifest.types import (
    EntityDefinition,
    PolicyAccess,
    PolicyOperation,
    PropertyDefinition,
    PropertyKind,
    RelationshipDefinition,
    RelationshipKind,
    SchemaDocument,
)

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_SLUG = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")

SYSTEM_KEYS = frozenset({"id", "createdAt", "updatedAt"})
RESERVED_SLUGS = frozenset({"docs"})
# Names that would shadow attributes of the synthesized pydantic models.
_RESERVED_NAMES = SYSTEM_KEYS | frozenset(name for name in dir(BaseModel) if not name.startswith("_"))
_RESERVED_COLUMNS = frozenset({"id", "created_at", "updated_at"})

_DOCUMENT_KEYS = frozenset({"name", "version", "description", "entities"})
_RELATIONSHIP_SHORTHANDS = {
    "belongsTo": RelationshipKind.BELONGS_TO,
    "hasMany": RelationshipKind.HAS_MANY,
    "belongsToMany": RelationshipKind.MANY_TO_MANY,
}
_ACCESS_VALUES = frozenset(a.value for a in PolicyAccess)


@dataclass(frozen=True)
class InferredInverse:
    """A has-many implied on ``target`` by ``owner``'s belongs-to ``relationship``."""

    owner: EntityDefinition
    relationship: RelationshipDefinition
    target: EntityDefinition
    name: str


def read_manifest_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML (or JSON) manifest file into plain data."""
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except OSError as exc:
        raise ManifestValidationError([FieldError("$file", f"cannot read {path}: {exc.strerror}")])
    except yaml.YAMLError as exc:
        raise ManifestValidationError([FieldError("$file", f"invalid YAML in {path}: {exc}")])
    if not isinstance(raw, dict):
        raise ManifestValidationError([FieldError("$", "manifest must be a mapping")])
    return raw


def load_manifest(raw: Mapping[str, Any]) -> SchemaDocument:
    """Validate ``raw`` and return the schema document it describes."""
    if not isinstance(raw, Mapping):
        raise ManifestValidationError([FieldError("$", "manifest must be a mapping")])

    errors: list[FieldError] = []
    document = _parse_shape(raw, errors)
    for stage in (_check_uniqueness, _check_references, _check_policies):
        if errors or document is None:
            break
        stage(document, errors)

    if errors or document is None:
        logger.warning("Manifest rejected with %d error(s)", len(errors))
        raise ManifestValidationError(errors)

    _warn_uncovered_operations(document)
    return document


# ---------------------------------------------------------------------------
# (a) shape
# ---------------------------------------------------------------------------


def _parse_shape(raw: Mapping[str, Any], errors: list[FieldError]) -> SchemaDocument | None:
    for key in raw:
        if key not in _DOCUMENT_KEYS:
            errors.append(FieldError(str(key), "unknown top-level key"))

    entities: list[EntityDefinition] = []
    for path, body in _iter_entities(raw.get("entities"), errors):
        normalized = _normalize_entity(path, body, errors)
        if normalized is None:
            continue
        try:
            entity = EntityDefinition.model_validate(normalized)
        except pydantic.ValidationError as exc:
            errors.extend(_from_pydantic(path, exc))
            continue
        _check_entity_shape(path, entity, errors)
        entities.append(entity)

    header = {k: raw[k] for k in ("name", "version", "description") if k in raw}
    try:
        document = SchemaDocument.model_validate({**header, "entities": entities})
    except pydantic.ValidationError as exc:
        errors.extend(_from_pydantic("", exc))
        return None
    if not document.entities and not errors:
        errors.append(FieldError("entities", "at least one entity is required"))
    return document


def _iter_entities(value: Any, errors: list[FieldError]) -> Iterator[tuple[str, dict[str, Any]]]:
    if value is None:
        errors.append(FieldError("entities", "field required"))
        return
    if isinstance(value, Mapping):
        for name, body in value.items():
            path = f"entities.{name}"
            if body is None:
                body = {}
            if not isinstance(body, Mapping):
                errors.append(FieldError(path, "entity must be a mapping"))
                continue
            if "name" in body and body["name"] != name:
                errors.append(FieldError(f"{path}.name", "does not match the entity key"))
                continue
            yield path, {**body, "name": name}
    elif isinstance(value, list):
        for index, body in enumerate(value):
            path = f"entities.{index}"
            if not isinstance(body, Mapping):
                errors.append(FieldError(path, "entity must be a mapping"))
                continue
            yield path, dict(body)
    else:
        errors.append(FieldError("entities", "must be a mapping or a list"))


def _normalize_entity(path: str, body: dict[str, Any], errors: list[FieldError]) -> dict[str, Any] | None:
    """Expand shorthand forms into the long form the models accept."""
    body = dict(body)
    ok = True

    properties = body.get("properties", [])
    if isinstance(properties, list):
        body["properties"] = [{"name": p} if isinstance(p, str) else p for p in properties]

    relationships = list(body.get("relationships") or [])
    for key, kind in _RELATIONSHIP_SHORTHANDS.items():
        if key not in body:
            continue
        entries = body.pop(key) or []
        if not isinstance(entries, list):
            errors.append(FieldError(f"{path}.{key}", "must be a list"))
            ok = False
            continue
        for entry in entries:
            if isinstance(entry, str):
                relationships.append({"kind": kind, "target": entry})
            elif isinstance(entry, Mapping):
                relationships.append({**entry, "kind": kind})
            else:
                errors.append(FieldError(f"{path}.{key}", "entries must be names or mappings"))
                ok = False
    body["relationships"] = relationships

    policies = body.get("policies")
    if isinstance(policies, Mapping):
        rules: list[Any] = []
        for operation, entry in policies.items():
            rule_path = f"{path}.policies.{operation}"
            for rule in _expand_policy(str(operation), entry):
                if rule is None:
                    errors.append(FieldError(rule_path, "expected an access name, a role list or a rule mapping"))
                    ok = False
                else:
                    rules.append(rule)
        body["policies"] = rules
    elif policies is None:
        body["policies"] = []

    return body if ok else None


def _expand_policy(operation: str, entry: Any) -> Iterator[dict[str, Any] | None]:
    if isinstance(entry, str):
        if entry in _ACCESS_VALUES:
            yield {"operation": operation, "access": entry}
        else:
            yield {"operation": operation, "access": PolicyAccess.RESTRICTED, "allow": [entry]}
    elif isinstance(entry, Mapping):
        yield {"operation": operation, **entry}
    elif isinstance(entry, list):
        if all(isinstance(item, str) and item not in _ACCESS_VALUES for item in entry):
            yield {"operation": operation, "access": PolicyAccess.RESTRICTED, "allow": entry}
            return
        for item in entry:
            yield from _expand_policy(operation, item)
    else:
        yield None


def _check_entity_shape(path: str, entity: EntityDefinition, errors: list[FieldError]) -> None:
    if not _IDENTIFIER.match(entity.name):
        errors.append(FieldError(f"{path}.name", "must start with a letter and contain only letters, digits or _"))
    slug = entity.resolved_slug
    if not _SLUG.match(slug):
        errors.append(FieldError(f"{path}.slug", f"'{slug}' is not a lowercase kebab-case slug"))
    elif slug in RESERVED_SLUGS:
        errors.append(FieldError(f"{path}.slug", f"'{slug}' is reserved"))

    for index, prop in enumerate(entity.properties):
        prop_path = f"{path}.properties.{prop.name or index}"
        reported = len(errors)
        if not _IDENTIFIER.match(prop.name):
            errors.append(FieldError(prop_path, "property names must be identifiers"))
        elif prop.name in _RESERVED_NAMES:
            errors.append(FieldError(prop_path, f"'{prop.name}' is reserved"))

        if prop.kind is PropertyKind.ENUM:
            if not prop.values:
                errors.append(FieldError(f"{prop_path}.values", "enum properties need at least one value"))
            elif len(set(prop.values)) != len(prop.values):
                errors.append(FieldError(f"{prop_path}.values", "enum values must be unique"))
        elif prop.values:
            errors.append(FieldError(f"{prop_path}.values", "only enum properties take values"))

        rules = prop.validation
        if (rules.min_length is not None or rules.max_length is not None or rules.pattern) and not prop.kind.is_string_like:
            errors.append(FieldError(f"{prop_path}.validation", f"length and pattern rules do not apply to {prop.kind}"))
        if (rules.minimum is not None or rules.maximum is not None) and not prop.kind.is_numeric:
            errors.append(FieldError(f"{prop_path}.validation", f"min/max rules do not apply to {prop.kind}"))
        if rules.minimum is not None and rules.maximum is not None and rules.minimum > rules.maximum:
            errors.append(FieldError(f"{prop_path}.validation", "min is greater than max"))
        elif (
            prop.kind is PropertyKind.INTEGER
            and rules.minimum is not None
            and rules.maximum is not None
            and math.ceil(rules.minimum) > math.floor(rules.maximum)
        ):
            errors.append(FieldError(f"{prop_path}.validation", "no integer lies between min and max"))
        if rules.min_length is not None and rules.max_length is not None and rules.min_length > rules.max_length:
            errors.append(FieldError(f"{prop_path}.validation", "minLength is greater than maxLength"))
        if rules.pattern:
            try:
                re.compile(rules.pattern)
            except re.error as exc:
                errors.append(FieldError(f"{prop_path}.validation.pattern", f"invalid pattern: {exc}"))
        if len(errors) > reported:
            continue
        try:
            adapter = kinds.value_adapter(prop)
        except (SchemaError, TypeError, ValueError) as exc:
            errors.append(FieldError(f"{prop_path}.validation", f"unsupported constraint: {exc}"))
            continue

        if prop.kind is PropertyKind.PASSWORD and (prop.has_default or prop.unique):
            errors.append(FieldError(prop_path, "password properties take no default and cannot be unique"))
        elif prop.has_default:
            _check_default(prop_path, prop, adapter, errors)

    for index, rel in enumerate(entity.relationships):
        rel_path = f"{path}.relationships.{rel.name or index}"
        if not _IDENTIFIER.match(rel.relation_name):
            errors.append(FieldError(rel_path, f"relation name '{rel.relation_name}' is not an identifier"))
        if rel.kind is RelationshipKind.MANY_TO_MANY:
            if rel.foreign_key:
                errors.append(FieldError(rel_path, "many-to-many relations use a through table, not a foreign key"))
        elif rel.through:
            errors.append(FieldError(rel_path, "only many-to-many relations take a through table"))
        if rel.kind is not RelationshipKind.BELONGS_TO and (rel.required or rel.inverse):
            errors.append(FieldError(rel_path, "required and inverse only apply to belongs-to"))
        if rel.foreign_key and not _IDENTIFIER.match(rel.foreign_key):
            errors.append(FieldError(rel_path, "foreignKey must be an identifier"))


def _check_default(
    path: str, prop: PropertyDefinition, adapter: TypeAdapter[Any], errors: list[FieldError]
) -> None:
    if prop.default is None:
        if not prop.nullable:
            errors.append(FieldError(f"{path}.default", "null default on a non-nullable property"))
        return
    try:
        adapter.validate_python(prop.default)
    except pydantic.ValidationError as exc:
        errors.append(FieldError(f"{path}.default", exc.errors()[0]["msg"]))


def _from_pydantic(prefix: str, exc: pydantic.ValidationError) -> list[FieldError]:
    result = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        field = ".".join(part for part in (prefix, loc) if part)
        result.append(FieldError(field or "$", err["msg"]))
    return result


# ---------------------------------------------------------------------------
# (b) uniqueness
# ---------------------------------------------------------------------------


def _own_columns(entity: EntityDefinition) -> list[tuple[str, str]]:
    """Columns an entity declares itself, with the manifest path that declares each."""
    owned = [(p.column_name, f"properties.{p.name}") for p in entity.properties]
    owned += [
        (naming.to_snake_case(rel.foreign_key_name(entity.name)), f"relationships.{rel.relation_name}")
        for rel in entity.relationships
        if rel.kind is RelationshipKind.BELONGS_TO
    ]
    return owned


def _check_uniqueness(document: SchemaDocument, errors: list[FieldError]) -> None:
    names: dict[str, str] = {}
    slugs: dict[str, str] = {}
    tables: dict[str, str] = {}
    for entity in document.entities:
        path = f"entities.{entity.name}"
        for seen, key, what in (
            (names, entity.name.lower(), "entity name"),
            (slugs, entity.resolved_slug, "slug"),
            (tables, entity.table_name, "table name"),
        ):
            if key in seen:
                errors.append(FieldError(path, f"{what} '{key}' already used by {seen[key]}"))
            else:
                seen[key] = entity.name

        keys: dict[str, str] = {}

        def claim(key: str, owner: str) -> None:
            if key in keys:
                errors.append(FieldError(f"{path}.{owner}", f"'{key}' clashes with {keys[key]}"))
            else:
                keys[key] = owner

        for prop in entity.properties:
            claim(prop.name, f"properties.{prop.name}")
        columns: dict[str, str] = {}
        for column, owner in _own_columns(entity):
            if column in _RESERVED_COLUMNS:
                errors.append(FieldError(f"{path}.{owner}", f"column '{column}' is reserved"))
            elif column in columns:
                errors.append(FieldError(f"{path}.{owner}", f"column '{column}' clashes with {columns[column]}"))
            else:
                columns[column] = owner
        for rel in entity.relationships:
            claim(rel.relation_name, f"relationships.{rel.relation_name}")
            if rel.kind is RelationshipKind.BELONGS_TO:
                claim(rel.foreign_key_name(entity.name), f"relationships.{rel.relation_name}")
            elif rel.kind is RelationshipKind.MANY_TO_MANY:
                claim(naming.link_key_for(rel.relation_name), f"relationships.{rel.relation_name}")


# ---------------------------------------------------------------------------
# (c) references
# ---------------------------------------------------------------------------


def inferred_inverses(document: SchemaDocument) -> list[InferredInverse]:
    """Has-many relations implied by belongs-to declarations.

    A belongs-to is skipped when its target already declares a has-many back
    to the owner through the same foreign key.
    """
    result = []
    for owner in document.entities:
        for rel in owner.relationships:
            if rel.kind is not RelationshipKind.BELONGS_TO:
                continue
            target = document.get_entity(rel.target)
            if target is None:
                continue
            if find_explicit_has_many(target, owner, rel.foreign_key_name(owner.name)) is not None:
                continue
            result.append(InferredInverse(owner, rel, target, rel.inverse_name(owner.name)))
    return result


def find_explicit_has_many(
    entity: EntityDefinition, target: EntityDefinition, foreign_key: str
) -> RelationshipDefinition | None:
    for rel in entity.relationships:
        if (
            rel.kind is RelationshipKind.HAS_MANY
            and rel.target.lower() == target.name.lower()
            and rel.foreign_key_name(entity.name) == foreign_key
        ):
            return rel
    return None


def find_belongs_to(entity: EntityDefinition, foreign_key: str) -> RelationshipDefinition | None:
    for rel in entity.relationships:
        if rel.kind is RelationshipKind.BELONGS_TO and rel.foreign_key_name(entity.name) == foreign_key:
            return rel
    return None


def _check_implied_key(
    rel_path: str,
    owner: EntityDefinition,
    target: EntityDefinition,
    key: str,
    implied: dict[str, dict[str, tuple[str, str]]],
    errors: list[FieldError],
) -> None:
    """A has-many with no matching belongs-to adds ``key`` as a column of ``target``.

    ``implied`` maps each target to the columns added so far, as
    column -> (key, owner name).
    """
    column = naming.to_snake_case(key)
    if column in _RESERVED_COLUMNS:
        errors.append(FieldError(rel_path, f"foreign key column '{target.name}.{column}' is reserved"))
        return
    for existing, declared_by in _own_columns(target):
        if existing == column:
            errors.append(FieldError(rel_path, f"column '{column}' clashes with {target.name}.{declared_by}"))
            return
    names = {rel.relation_name for rel in target.relationships}
    names.update(
        naming.link_key_for(rel.relation_name)
        for rel in target.relationships
        if rel.kind is RelationshipKind.MANY_TO_MANY
    )
    if key in names:
        errors.append(FieldError(rel_path, f"'{key}' clashes with a relationship of {target.name}"))
        return

    added = implied.setdefault(target.name.lower(), {})
    previous = added.get(column)
    if previous is None:
        added[column] = (key, owner.name)
    elif previous[1].lower() != owner.name.lower():
        errors.append(FieldError(rel_path, f"'{target.name}.{key}' already holds the id of {previous[1]}"))
    elif previous[0] != key:
        errors.append(FieldError(rel_path, f"foreign key column '{column}' clashes with '{target.name}.{previous[0]}'"))


def _check_references(document: SchemaDocument, errors: list[FieldError]) -> None:
    through_tables = {entity.table_name for entity in document.entities}
    implied: dict[str, dict[str, tuple[str, str]]] = {}
    for entity in document.entities:
        path = f"entities.{entity.name}"
        display = entity.display_property
        if display is not None and entity.get_property(display) is None:
            errors.append(FieldError(f"{path}.displayProperty", f"unknown property '{display}'"))

        for rel in entity.relationships:
            rel_path = f"{path}.relationships.{rel.relation_name}"
            target = document.get_entity(rel.target)
            if target is None:
                errors.append(FieldError(f"{rel_path}.target", f"unknown entity '{rel.target}'"))
                continue
            if rel.kind is RelationshipKind.HAS_MANY:
                key = rel.foreign_key_name(entity.name)
                back = find_belongs_to(target, key)
                if back is not None:
                    if back.target.lower() != entity.name.lower():
                        errors.append(FieldError(rel_path, f"'{target.name}.{key}' already points at {back.target}"))
                elif target.get_property(key) is not None:
                    errors.append(FieldError(rel_path, f"'{key}' clashes with property {target.name}.{key}"))
                else:
                    _check_implied_key(rel_path, entity, target, key, implied, errors)
            elif rel.kind is RelationshipKind.MANY_TO_MANY:
                table = rel.through or f"{entity.table_name}_{naming.to_snake_case(rel.relation_name)}"
                if table in through_tables:
                    errors.append(FieldError(rel_path, f"through table '{table}' is already in use"))
                through_tables.add(table)

    taken: dict[str, set[str]] = {}
    for entity in document.entities:
        names = taken.setdefault(entity.name.lower(), set())
        names.update(p.name for p in entity.properties)
        for rel in entity.relationships:
            names.add(rel.relation_name)
            if rel.kind is RelationshipKind.BELONGS_TO:
                names.add(rel.foreign_key_name(entity.name))
        names.update(key for key, _ in implied.get(entity.name.lower(), {}).values())
    for inverse in inferred_inverses(document):
        names = taken[inverse.target.name.lower()]
        if inverse.name in names:
            errors.append(
                FieldError(
                    f"entities.{inverse.owner.name}.relationships.{inverse.relationship.relation_name}.inverse",
                    f"inverse relation '{inverse.name}' clashes on {inverse.target.name}; set 'inverse'",
                )
            )
        names.add(inverse.name)


# ---------------------------------------------------------------------------
# (d) policies
# ---------------------------------------------------------------------------


def _check_policies(document: SchemaDocument, errors: list[FieldError]) -> None:
    for entity in document.entities:
        by_operation: dict[PolicyOperation, set[PolicyAccess]] = {}
        for rule in entity.policies:
            rule_path = f"entities.{entity.name}.policies.{rule.operation.value}"
            if rule.access is PolicyAccess.RESTRICTED and not rule.roles:
                errors.append(FieldError(rule_path, "restricted access needs at least one role in 'allow'"))
            if rule.access is not PolicyAccess.RESTRICTED and rule.roles:
                errors.append(FieldError(rule_path, f"'allow' has no meaning with {rule.access.value} access"))
            by_operation.setdefault(rule.operation, set()).add(rule.access)
        for operation, accesses in by_operation.items():
            if PolicyAccess.FORBIDDEN in accesses and len(accesses) > 1:
                errors.append(
                    FieldError(
                        f"entities.{entity.name}.policies.{operation.value}",
                        "forbidden cannot be combined with an allowing rule",
                    )
                )


def _warn_uncovered_operations(document: SchemaDocument) -> None:
    concrete = [op for op in PolicyOperation if op is not PolicyOperation.ANY]
    for entity in document.entities:
        covered = {rule.operation for rule in entity.policies}
        if PolicyOperation.ANY in covered:
            continue
        missing = [op.value for op in concrete if op not in covered]
        if missing:
            logger.warning(
                "Entity %s has no policy for %s; these operations are denied",
                entity.name,
                ", ".join(missing),
            )
