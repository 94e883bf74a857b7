"""Condition evaluation against a CRM record snapshot.

A record is a mapping from property name to a scalar value. Properties that
are missing from the mapping (or hold ``None``) are *absent*. Evaluation never
raises: absent properties and non-numeric comparisons degrade to the
per-operator defaults below, so one record missing a custom property cannot
break targeting for unrelated artifacts.

    operator            absent record value
    equals              False
    not_equals          True
    contains            False
    not_contains        True
    starts_with         False
    ends_with           False
    greater_*/less_*    False (also when either side is not numeric)
    in_list             False
    not_in_list         True
    is_empty            True
    is_not_empty        False
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, TypeAlias, TypeVar

from loguru import logger

from .models import (
    Artifact,
    Condition,
    ConditionSet,
    Logic,
    Operator,
    singular_object_type,
)

__all__ = [
    "Record",
    "coerce_numeric",
    "evaluate",
    "evaluate_condition",
    "select_artifacts",
]

Record: TypeAlias = Mapping[str, Any]

A = TypeVar("A", bound=Artifact)

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def coerce_numeric(value: Any) -> float | None:
    """Coerce a record or condition value to a number.

    Currency symbols, thousands separators and units are stripped before
    parsing (``"$5,000"`` -> ``5000.0``). Returns ``None`` when nothing
    numeric is left; comparisons treat ``None`` as a failed match.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        try:
            number = float(cleaned)
        except ValueError:
            return None
    return None if math.isnan(number) else number


def _string_form(value: Any) -> str:
    """Lowercase, trimmed text form used by every string operator."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip().lower()


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _list_items(value: str | None) -> list[str]:
    return [item.strip().lower() for item in (value or "").split(",")]


def _compare(record_value: Any, condition_value: Any, operator: Operator) -> bool:
    left = coerce_numeric(record_value)
    right = coerce_numeric(condition_value)
    if left is None or right is None:
        return False
    match operator:
        case Operator.GREATER_THAN:
            return left > right
        case Operator.LESS_THAN:
            return left < right
        case Operator.GREATER_EQUAL:
            return left >= right
        case Operator.LESS_EQUAL:
            return left <= right
    return False


def evaluate_condition(condition: Condition, record: Record) -> bool:
    """Evaluate one condition; absent properties follow the module table."""
    record_value = record.get(condition.property)
    absent = record_value is None
    operator = condition.operator
    expected = _string_form(condition.value or "")

    match operator:
        case Operator.IS_EMPTY:
            result = _is_blank(record_value)
        case Operator.IS_NOT_EMPTY:
            result = not _is_blank(record_value)
        case Operator.EQUALS:
            result = not absent and _string_form(record_value) == expected
        case Operator.NOT_EQUALS:
            result = absent or _string_form(record_value) != expected
        case Operator.CONTAINS:
            result = not absent and expected in _string_form(record_value)
        case Operator.NOT_CONTAINS:
            result = absent or expected not in _string_form(record_value)
        case Operator.STARTS_WITH:
            result = not absent and _string_form(record_value).startswith(expected)
        case Operator.ENDS_WITH:
            result = not absent and _string_form(record_value).endswith(expected)
        case (
            Operator.GREATER_THAN
            | Operator.LESS_THAN
            | Operator.GREATER_EQUAL
            | Operator.LESS_EQUAL
        ):
            result = _compare(record_value, condition.value, operator)
        case Operator.IN_LIST:
            result = not absent and _string_form(record_value) in _list_items(
                condition.value
            )
        case Operator.NOT_IN_LIST:
            result = absent or _string_form(record_value) not in _list_items(
                condition.value
            )
        case _:
            logger.warning(f"Unknown operator: {operator}")
            result = False

    logger.debug(
        f"Condition: {condition.property} {operator.value} {condition.value!r} "
        f"| record value: {record_value!r} | result: {result}"
    )
    return result


def evaluate(condition_set: ConditionSet, record: Record) -> bool:
    """Decide whether a ConditionSet applies to a record.

    ``display_on_all`` wins before any condition is read. With no conditions,
    ALL is vacuously true while ANY is false.
    """
    if condition_set.display_on_all:
        return True

    checks = (evaluate_condition(c, record) for c in condition_set.conditions)
    match condition_set.logic:
        case Logic.ALL:
            return all(checks)
        case Logic.ANY:
            return any(checks)
    return False


def _targets_object_type(artifact: Artifact, object_type: str | None) -> bool:
    wanted: Iterable[str] = artifact.object_types or (
        [artifact.object_type] if artifact.object_type else []
    )
    targets = {singular_object_type(t) for t in wanted if t}
    if not targets:
        return True
    return object_type is not None and singular_object_type(object_type) in targets


def select_artifacts(
    artifacts: Sequence[A], record: Record, object_type: str | None = None
) -> list[A]:
    """Return the enabled artifacts whose targeting matches, highest priority first."""
    matching = []
    for artifact in artifacts:
        if not artifact.enabled:
            logger.debug(f"Artifact {artifact.id} skipped - disabled")
            continue
        if not _targets_object_type(artifact, object_type):
            logger.debug(
                f"Artifact {artifact.id} skipped - object type mismatch: "
                f"{artifact.object_types or artifact.object_type} vs {object_type}"
            )
            continue
        if evaluate(artifact, record):
            matching.append(artifact)

    logger.debug(f"Total matching artifacts: {len(matching)}")
    return sorted(matching, key=lambda a: a.priority, reverse=True)
