# fieldguide/models.py
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

__all__ = [
    "ArtifactKind",
    "Card",
    "CardSection",
    "Condition",
    "ConditionSet",
    "GlossaryEntry",
    "Logic",
    "Operator",
    "Presentation",
    "PropertyDefinition",
    "PropertyOption",
    "PropertyType",
    "PropertyValue",
    "Rule",
    "TriggerIndex",
    "DEFAULT_SETTINGS",
    "OBJECT_TYPE_SINGULAR",
    "plural_object_type",
    "singular_object_type",
]

DEFAULT_SETTINGS: dict[str, Any] = {
    "enabled": True,
    "showBanners": True,
    "showBattleCards": True,
    "showWiki": True,
    "bannerPosition": "top",
    "theme": "light",
}

# CRM object types are written both ways by authors, the page detector and the API
OBJECT_TYPE_SINGULAR = {
    "contacts": "contact",
    "companies": "company",
    "deals": "deal",
    "tickets": "ticket",
}
_OBJECT_TYPE_PLURAL = {v: k for k, v in OBJECT_TYPE_SINGULAR.items()}


def singular_object_type(object_type: str) -> str:
    normalized = object_type.strip().lower()
    return OBJECT_TYPE_SINGULAR.get(normalized, normalized)


def plural_object_type(object_type: str) -> str:
    """Plural form of a standard object type; custom types pass through unchanged."""
    normalized = object_type.strip().lower()
    if normalized in OBJECT_TYPE_SINGULAR:
        return normalized
    return _OBJECT_TYPE_PLURAL.get(normalized, object_type)


# Provider type names that do not map onto a PropertyType of the same name
_PROPERTY_TYPE_ALIASES = {
    "datetime": "date",
    "boolean": "bool",
    "booleancheckbox": "bool",
    "enum": "enumeration",
}


class FieldGuideModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PropertyType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    ENUMERATION = "enumeration"
    DATE = "date"
    BOOL = "bool"


class PropertyOption(FieldGuideModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    value: str
    label: str = ""
    description: str | None = None

    @field_validator("value", "label", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class PropertyDefinition(FieldGuideModel):
    """CRM property metadata for one object type. Immutable once fetched."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    label: str = ""
    type: PropertyType = PropertyType.STRING
    options: tuple[PropertyOption, ...] = ()
    group_name: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _map_type(cls, value: Any) -> Any:
        if value is None:
            return PropertyType.STRING
        if isinstance(value, PropertyType):
            return value
        name = _PROPERTY_TYPE_ALIASES.get(str(value).lower(), str(value).lower())
        if name not in PropertyType._value2member_map_:
            return PropertyType.STRING
        return name

    @field_validator("options", mode="before")
    @classmethod
    def _enumeration_options(cls, value: Any, info: ValidationInfo) -> Any:
        # Options only carry meaning for enumeration properties
        if value is None or info.data.get("type") is not PropertyType.ENUMERATION:
            return ()
        return value


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"
    IN_LIST = "in_list"
    NOT_IN_LIST = "not_in_list"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"

    @property
    def takes_value(self) -> bool:
        return self not in (Operator.IS_EMPTY, Operator.IS_NOT_EMPTY)


class Logic(str, Enum):
    """Combinator applied across a ConditionSet."""

    ALL = "ALL"
    ANY = "ANY"

    @classmethod
    def _missing_(cls, value: object) -> Logic | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip().upper()
        if normalized in ("ALL", "AND"):
            return cls.ALL
        if normalized in ("ANY", "OR"):
            return cls.ANY
        return None


class Condition(FieldGuideModel):
    model_config = ConfigDict(extra="ignore")

    property: str = ""
    operator: Operator = Operator.EQUALS
    value: str | None = None

    @field_validator("property", mode="before")
    @classmethod
    def _property_str(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("value", mode="before")
    @classmethod
    def _value_str(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_serializer("value")
    def _serialize_value(self, value: str | None) -> str | None:
        return value if self.operator.takes_value else None

    # A plain method: the ``property`` field shadows the builtin in this body
    def is_complete(self) -> bool:
        if not self.property:
            return False
        return not self.operator.takes_value or bool(self.value)


class ConditionSet(FieldGuideModel):
    """Ordered conditions plus the combinator that joins them."""

    conditions: list[Condition] = Field(default_factory=list)
    logic: Logic = Logic.ALL
    display_on_all: bool = False

    @field_validator("conditions", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("logic", mode="before")
    @classmethod
    def _default_logic(cls, value: Any) -> Any:
        if value in (None, ""):
            return Logic.ALL
        return Logic(value) if isinstance(value, str) else value

    @field_serializer("conditions")
    def _serialize_conditions(self, conditions: list[Condition]) -> list[dict[str, Any]]:
        # Rows without a property are authoring leftovers, never persisted
        return [c.to_payload() for c in conditions if c.property]


class ArtifactKind(str, Enum):
    RULE = "rule"
    CARD = "card"
    PRESENTATION = "presentation"
    GLOSSARY = "glossary"

    @property
    def id_prefix(self) -> str:
        return {
            ArtifactKind.RULE: "rule",
            ArtifactKind.CARD: "card",
            ArtifactKind.PRESENTATION: "pres",
            ArtifactKind.GLOSSARY: "glossary",
        }[self]


class Artifact(ConditionSet):
    """A targetable unit: its own ConditionSet plus a display payload."""

    id: str = ""
    name: str = ""
    object_type: str | None = None
    object_types: list[str] = Field(default_factory=list)
    enabled: bool = True
    priority: int = 0
    created_at: int | None = None
    updated_at: int | None = None

    @property
    def condition_set(self) -> ConditionSet:
        return ConditionSet(
            conditions=self.conditions,
            logic=self.logic,
            display_on_all=self.display_on_all,
        )


class Rule(Artifact):
    title: str = ""
    message: str = ""
    type: str = "info"
    priority: int = 10


class CardSection(FieldGuideModel):
    title: str = ""
    content: str = ""


class Card(Artifact):
    card_type: str = "tip"
    subtitle: str = ""
    link: str = ""
    sections: list[CardSection] = Field(default_factory=list)


class Presentation(Artifact):
    description: str = ""
    url: str = ""
    embed_url: str = ""


class PropertyValue(FieldGuideModel):
    """Value-level glossary sub-entry for an enumeration property."""

    value: str = ""
    label: str = ""
    description: str = ""
    definition: str = ""


class GlossaryEntry(FieldGuideModel):
    id: str = ""
    term: str = ""
    aliases: list[str] = Field(default_factory=list)
    definition: str = ""
    category: str = "general"
    link: str = ""
    enabled: bool = True
    object_type: str | None = None
    property_group: str | None = None
    property_values: list[PropertyValue] | None = None
    created_at: int | None = None
    updated_at: int | None = None

    @field_validator("aliases", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class TriggerIndex(FieldGuideModel):
    """Derived term lookup; always rebuildable from the glossary."""

    term_map: dict[str, str] = Field(default_factory=dict)
    entries_by_id: dict[str, GlossaryEntry] = Field(default_factory=dict)
    version: int = 0
