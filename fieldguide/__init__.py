"""fieldguide - targeting and glossary back end for a CRM sales-enablement overlay.

Admins author rules, cards, presentations and glossary entries; a page-overlay
engine later shows them on CRM record pages. This package provides:

- Condition-based targeting: ConditionSets evaluated against a CRM record
- A trigger index compiled from the glossary for page-text annotation
- A per-object-type cache of CRM property metadata
- An artifact store persisted through a key/value backend (Qdrant or memory)
- An MCP server exposing evaluation, term matching and import/export

Key Components:
    ArtifactStore: Canonical owner of artifacts, persists whole collections
    PropertyCatalog: Property metadata cache in front of a provider
    evaluate: ConditionSet x record -> bool
    build_trigger_index: Glossary entries -> TriggerIndex

Example:
    >>> from fieldguide import ConditionSet, evaluate
    >>> rules = ConditionSet.model_validate(
    ...     {"conditions": [{"property": "stage", "operator": "equals", "value": "Closed Won"}]}
    ... )
    >>> evaluate(rules, {"stage": "closed won"})
    True

Architecture:
    Author edits -> ConditionSet -> ArtifactStore (+ TriggerIndex) -> KeyValueStore
    -> overlay engine: evaluate per artifact, find_triggers on page text
"""

from __future__ import annotations

from .catalog import PropertyCatalog
from .config import FieldGuideConfig
from .errors import FieldGuideError, PersistenceError, ProviderError, ValidationError
from .evaluator import coerce_numeric, evaluate, evaluate_condition, select_artifacts
from .models import (
    ArtifactKind,
    Card,
    Condition,
    ConditionSet,
    GlossaryEntry,
    Logic,
    Operator,
    Presentation,
    PropertyDefinition,
    Rule,
    TriggerIndex,
)
from .store import ArtifactStore
from .triggers import build_trigger_index, find_triggers

__version__ = "1.0.0"
__all__ = [
    "ArtifactKind",
    "ArtifactStore",
    "Card",
    "Condition",
    "ConditionSet",
    "FieldGuideConfig",
    "FieldGuideError",
    "GlossaryEntry",
    "Logic",
    "Operator",
    "PersistenceError",
    "Presentation",
    "PropertyCatalog",
    "PropertyDefinition",
    "ProviderError",
    "Rule",
    "TriggerIndex",
    "ValidationError",
    "build_trigger_index",
    "coerce_numeric",
    "evaluate",
    "evaluate_condition",
    "find_triggers",
    "select_artifacts",
]
