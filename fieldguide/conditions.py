"""Authoring operations on a ConditionSet.

Authoring does not depend on the property catalog: conditions that reference
properties which are not loaded yet are accepted as-is, keep their property
name on save, and resolve to an empty label until the catalog knows them.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger

from .models import Condition, ConditionSet, Logic, Operator, PropertyDefinition

__all__ = [
    "ResolvedCondition",
    "add_condition",
    "parse_logic",
    "remove_condition",
    "resolve_conditions",
    "serialize_conditions",
]


@dataclass(frozen=True)
class ResolvedCondition:
    """A condition paired with what the editor needs to render it."""

    condition: Condition
    label: str
    definition: PropertyDefinition | None

    @property
    def value_required(self) -> bool:
        return self.condition.operator.takes_value


def add_condition(
    condition_set: ConditionSet,
    property: str,
    operator: Operator | str,
    value: Any = None,
) -> Condition:
    """Append a condition. Value-less operators never keep a value."""
    condition = Condition(property=property, operator=operator, value=value)
    if not condition.operator.takes_value:
        condition.value = None
    condition_set.conditions.append(condition)
    return condition


def remove_condition(condition_set: ConditionSet, index: int) -> Condition:
    """Remove the condition at ``index``; raises IndexError when out of range."""
    if not 0 <= index < len(condition_set.conditions):
        raise IndexError(f"No condition at position {index}")
    return condition_set.conditions.pop(index)


def serialize_conditions(condition_set: ConditionSet) -> list[dict[str, Any]]:
    """Persistable conditions; rows without a property are dropped silently."""
    return condition_set.to_payload()["conditions"]


def resolve_conditions(
    condition_set: ConditionSet, properties: Sequence[PropertyDefinition]
) -> list[ResolvedCondition]:
    """Match each condition to the currently loaded catalog."""
    by_name = {p.name: p for p in properties}
    resolved = []
    for condition in condition_set.conditions:
        definition = by_name.get(condition.property)
        if definition is None and condition.property:
            logger.debug(f"Property '{condition.property}' not in loaded catalog")
        resolved.append(
            ResolvedCondition(
                condition=condition,
                label=definition.label if definition else "",
                definition=definition,
            )
        )
    return resolved


def parse_logic(value: Any) -> Logic:
    """Map ALL/ANY (or the legacy AND/OR) to Logic; anything else is ALL."""
    try:
        return Logic(value)
    except ValueError:
        return Logic.ALL
