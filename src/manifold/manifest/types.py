# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Typed, immutable representation of a manifest document.

These models carry data and shape checks only. Cross-entity invariants
(uniqueness, references, policy completeness) are enforced by the loader.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from manifold.manifest import naming

_FROZEN = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class PropertyKind(StrEnum):
    STRING = "string"
    TEXT = "text"
    RICH_TEXT = "rich-text"
    NUMBER = "number"
    INTEGER = "integer"
    MONEY = "money"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"
    EMAIL = "email"
    LINK = "link"
    ENUM = "enum"
    PASSWORD = "password"
    LOCATION = "location"

    @property
    def is_string_like(self) -> bool:
        return self in _STRING_KINDS

    @property
    def is_numeric(self) -> bool:
        return self in _NUMERIC_KINDS

    @property
    def is_ordered(self) -> bool:
        """Kinds that support range filters (``gt``, ``lte`` ...)."""
        return self in _NUMERIC_KINDS or self in (PropertyKind.DATE, PropertyKind.TIMESTAMP)


_STRING_KINDS = frozenset(
    {
        PropertyKind.STRING,
        PropertyKind.TEXT,
        PropertyKind.RICH_TEXT,
        PropertyKind.EMAIL,
        PropertyKind.LINK,
        PropertyKind.PASSWORD,
    }
)
_NUMERIC_KINDS = frozenset({PropertyKind.NUMBER, PropertyKind.INTEGER, PropertyKind.MONEY})

KIND_ALIASES = {
    "richText": PropertyKind.RICH_TEXT,
    "choice": PropertyKind.ENUM,
    "int": PropertyKind.INTEGER,
    "float": PropertyKind.NUMBER,
    "bool": PropertyKind.BOOLEAN,
    "datetime": PropertyKind.TIMESTAMP,
    "url": PropertyKind.LINK,
}


class PropertyConstraints(BaseModel):
    model_config = _FROZEN

    min_length: int | None = Field(None, alias="minLength", ge=0)
    max_length: int | None = Field(None, alias="maxLength", ge=1)
    pattern: str | None = None
    minimum: float | None = Field(None, alias="min")
    maximum: float | None = Field(None, alias="max")

    def is_empty(self) -> bool:
        return not self.model_fields_set


class PropertyDefinition(BaseModel):
    model_config = _FROZEN

    name: str = Field(min_length=1)
    kind: PropertyKind = Field(PropertyKind.STRING, alias="type")
    nullable: bool = False
    default: Any = None
    unique: bool = False
    values: tuple[str, ...] = ()
    validation: PropertyConstraints = PropertyConstraints()
    description: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _resolve_kind_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            return KIND_ALIASES.get(value, value)
        return value

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    @property
    def required(self) -> bool:
        """Must be supplied on create."""
        return not self.nullable and not self.has_default

    @property
    def column_name(self) -> str:
        return naming.to_snake_case(self.name)

    @property
    def is_readable(self) -> bool:
        """Whether the value appears in responses."""
        return self.kind is not PropertyKind.PASSWORD


class RelationshipKind(StrEnum):
    BELONGS_TO = "belongs-to"
    HAS_MANY = "has-many"
    MANY_TO_MANY = "many-to-many"


_RELATIONSHIP_ALIASES = {
    "belongsTo": RelationshipKind.BELONGS_TO,
    "hasMany": RelationshipKind.HAS_MANY,
    "belongsToMany": RelationshipKind.MANY_TO_MANY,
    "manyToMany": RelationshipKind.MANY_TO_MANY,
}


class RelationshipDefinition(BaseModel):
    model_config = _FROZEN

    kind: RelationshipKind
    target: str = Field(min_length=1)
    name: str | None = None
    foreign_key: str | None = Field(None, alias="foreignKey")
    through: str | None = None
    required: bool = False
    cascade: bool = Field(False, validation_alias=AliasChoices("cascade", "cascadeOnDelete"))
    inverse: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _resolve_kind_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _RELATIONSHIP_ALIASES.get(value, value)
        return value

    @property
    def relation_name(self) -> str:
        if self.name:
            return self.name
        if self.kind is RelationshipKind.BELONGS_TO:
            return naming.to_lower_camel(self.target)
        return naming.to_lower_camel(naming.pluralize(self.target))

    def foreign_key_name(self, owner: str) -> str:
        """API key of the foreign key column this relationship travels through.

        For belongs-to the key lives on the owner; for has-many on the target.
        Many-to-many has no foreign key, only link rows.
        """
        if self.foreign_key:
            return self.foreign_key
        if self.kind is RelationshipKind.BELONGS_TO:
            return naming.foreign_key_for(self.relation_name)
        return naming.foreign_key_for(naming.to_lower_camel(owner))

    def inverse_name(self, owner: str) -> str:
        """Name of the has-many inferred on the target of a belongs-to."""
        return self.inverse or naming.to_lower_camel(naming.pluralize(owner))


class PolicyOperation(StrEnum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ANY = "*"


class PolicyAccess(StrEnum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    RESTRICTED = "restricted"
    FORBIDDEN = "forbidden"


class PolicyRule(BaseModel):
    model_config = _FROZEN

    operation: PolicyOperation
    access: PolicyAccess
    roles: frozenset[str] = Field(frozenset(), alias="allow")


class EntityDefinition(BaseModel):
    model_config = _FROZEN

    name: str = Field(min_length=1)
    slug: str | None = None
    display_property: str | None = Field(None, alias="displayProperty")
    description: str | None = None
    properties: tuple[PropertyDefinition, ...] = ()
    relationships: tuple[RelationshipDefinition, ...] = ()
    policies: tuple[PolicyRule, ...] = ()

    @property
    def resolved_slug(self) -> str:
        return self.slug or naming.entity_slug(self.name)

    @property
    def table_name(self) -> str:
        return naming.table_name(self.name)

    @property
    def resolved_display_property(self) -> str | None:
        if self.display_property:
            return self.display_property
        for prop in self.properties:
            if prop.kind in (PropertyKind.STRING, PropertyKind.EMAIL):
                return prop.name
        return None

    def get_property(self, name: str) -> PropertyDefinition | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None


class SchemaDocument(BaseModel):
    """Root of a loaded manifest. Entity order is declaration order."""

    model_config = _FROZEN

    name: str = "Manifold"
    version: str = "0.1.0"
    description: str | None = None
    entities: tuple[EntityDefinition, ...] = ()

    def get_entity(self, name: str) -> EntityDefinition | None:
        wanted = name.lower()
        for entity in self.entities:
            if entity.name.lower() == wanted:
                return entity
        return None
