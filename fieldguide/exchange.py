"""Export and import of the admin state as a single JSON document.

Document shape::

    {
      "rules": [...],
      "battleCards": [...],
      "presentations": [...],
      "glossaryEntries": [...],
      "settings": {...},
      "exportedAt": "2024-01-01T00:00:00+00:00"
    }

Every key is optional on import. Provided collections replace the current ones
wholesale; ``settings`` is merged over the current settings.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import fastjsonschema
from loguru import logger

from .errors import ValidationError
from .models import ArtifactKind, Operator

if TYPE_CHECKING:
    from .store import ArtifactStore

__all__ = [
    "EXPORT_KEYS",
    "IMPORT_SCHEMA",
    "export_document",
    "export_json",
    "import_document",
    "import_json",
]

EXPORT_KEYS: dict[str, ArtifactKind] = {
    "rules": ArtifactKind.RULE,
    "battleCards": ArtifactKind.CARD,
    "presentations": ArtifactKind.PRESENTATION,
    "glossaryEntries": ArtifactKind.GLOSSARY,
}

_CONDITION_SCHEMA = {
    "type": "object",
    "properties": {
        "property": {"type": ["string", "null"]},
        "operator": {"enum": [op.value for op in Operator]},
        "value": {"type": ["string", "number", "boolean", "null"]},
    },
    "required": ["property", "operator"],
}

_ARTIFACT_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "conditions": {"type": ["array", "null"], "items": _CONDITION_SCHEMA},
        "logic": {"type": ["string", "null"], "enum": ["ALL", "ANY", "AND", "OR", None]},
        "displayOnAll": {"type": "boolean"},
        "enabled": {"type": "boolean"},
    },
    "required": ["id"],
}

_GLOSSARY_ENTRY_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "term": {"type": "string"},
        "aliases": {"type": ["array", "null"], "items": {"type": "string"}},
        "definition": {"type": "string"},
        "enabled": {"type": "boolean"},
    },
    "required": ["id"],
}

IMPORT_SCHEMA = {
    "type": "object",
    "properties": {
        "rules": {"type": "array", "items": _ARTIFACT_SCHEMA},
        "battleCards": {"type": "array", "items": _ARTIFACT_SCHEMA},
        "presentations": {"type": "array", "items": _ARTIFACT_SCHEMA},
        "glossaryEntries": {"type": "array", "items": _GLOSSARY_ENTRY_SCHEMA},
        "settings": {"type": "object"},
        "exportedAt": {"type": "string"},
    },
}

_validate_import: Callable[[Any], Any] = fastjsonschema.compile(IMPORT_SCHEMA)


def export_document(store: ArtifactStore) -> dict[str, Any]:
    """Snapshot the targetable artifacts and settings."""
    document: dict[str, Any] = {
        key: [item.to_payload() for item in store.list_items(kind)]
        for key, kind in EXPORT_KEYS.items()
    }
    document["settings"] = dict(store.settings)
    document["exportedAt"] = datetime.now(UTC).isoformat()
    return document


def export_json(store: ArtifactStore) -> str:
    return json.dumps(export_document(store), indent=2)


async def import_document(store: ArtifactStore, document: Any) -> dict[str, int]:
    """Overlay a (possibly partial) export document onto the store.

    Returns the number of items imported per collection key.

    Raises:
        ValidationError: the document does not match the export format.
    """
    try:
        _validate_import(document)
    except fastjsonschema.JsonSchemaException as e:
        message = e.message.replace("data.", "").replace("data ", "")
        raise ValidationError(f"Invalid import document: {message}") from e

    collections = {
        kind: document[key] for key, kind in EXPORT_KEYS.items() if key in document
    }
    settings = document.get("settings")
    if not collections and settings is None:
        logger.info("Import document carried nothing to import")
        return {}

    await store.replace(collections, settings)
    counts = {key: len(document[key]) for key in EXPORT_KEYS if key in document}
    logger.info(f"Imported {counts or 'settings only'}")
    return counts


async def import_json(store: ArtifactStore, text: str) -> dict[str, int]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Import is not valid JSON: {e}") from e
    return await import_document(store, document)
