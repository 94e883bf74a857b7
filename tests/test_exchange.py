"""
Tests for JSON export and import of the admin state.
"""
import json

import pytest
import pytest_asyncio

from fieldguide.errors import ValidationError
from fieldguide.exchange import export_document, export_json, import_document, import_json
from fieldguide.ids import SequenceIdGenerator
from fieldguide.models import ArtifactKind, Logic
from fieldguide.storage import MemoryKeyValueStore
from fieldguide.store import ArtifactStore


def new_store(kv=None):
    return ArtifactStore(kv or MemoryKeyValueStore(), id_generator=SequenceIdGenerator())


@pytest_asyncio.fixture
async def populated():
    store = new_store()
    await store.create(
        ArtifactKind.RULE,
        {
            "name": "Stale deal",
            "objectType": "deal",
            "conditions": [
                {"property": "notes_last_updated", "operator": "is_empty"},
                {"property": "amount", "operator": "greater_equal", "value": "5000"},
            ],
            "logic": "ALL",
        },
    )
    await store.create(
        ArtifactKind.CARD,
        {"name": "Pricing objection", "cardType": "objection",
         "sections": [{"title": "Reframe", "content": "Talk value."}]},
    )
    await store.create(
        ArtifactKind.PRESENTATION,
        {"name": "Onboarding", "url": "https://www.loom.com/share/abc123"},
    )
    await store.create(
        ArtifactKind.GLOSSARY,
        {"term": "SQL", "aliases": ["sales qualified lead"], "definition": "Accepted by sales."},
    )
    await store.save_settings({"theme": "dark"})
    return store


@pytest.mark.asyncio
async def test_export_document_shape(populated):
    document = export_document(populated)

    assert set(document) == {
        "rules", "battleCards", "presentations", "glossaryEntries", "settings", "exportedAt"
    }
    assert document["battleCards"][0]["cardType"] == "objection"
    assert document["settings"]["theme"] == "dark"
    assert json.loads(export_json(populated))["rules"] == document["rules"]


@pytest.mark.asyncio
async def test_round_trip_preserves_artifacts(populated):
    document = export_document(populated)
    target = new_store()

    counts = await import_document(target, json.loads(json.dumps(document)))

    assert counts == {"rules": 1, "battleCards": 1, "presentations": 1, "glossaryEntries": 1}
    reexported = export_document(target)
    for key in ("rules", "battleCards", "presentations", "glossaryEntries"):
        assert reexported[key] == document[key]
    assert target.settings["theme"] == "dark"

    entry_id = document["glossaryEntries"][0]["id"]
    assert target.trigger_index.term_map == {"sql": entry_id, "sales qualified lead": entry_id}
    assert target.trigger_index.version > 0


@pytest.mark.asyncio
async def test_partial_import_replaces_only_present_collections(populated):
    counts = await import_document(populated, {"rules": []})

    assert counts == {"rules": 0}
    assert populated.rules == []
    assert len(populated.cards) == 1
    assert len(populated.glossary) == 1
    assert populated.settings["theme"] == "dark"


@pytest.mark.asyncio
async def test_settings_are_merged(populated):
    await import_document(populated, {"settings": {"showWiki": False}})
    assert populated.settings["showWiki"] is False
    assert populated.settings["theme"] == "dark"


@pytest.mark.asyncio
async def test_legacy_logic_names_are_accepted():
    store = new_store()
    await import_document(
        store,
        {"rules": [{"id": "rule_1", "name": "Legacy", "logic": "OR", "conditions": []}]},
    )
    assert store.rules[0].logic is Logic.ANY


@pytest.mark.asyncio
async def test_empty_document_writes_nothing():
    kv = MemoryKeyValueStore()
    assert await import_document(new_store(kv), {}) == {}
    assert kv.snapshot() == {}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "document",
    [
        {"rules": [{"name": "missing id"}]},
        {"rules": [{"id": "r", "conditions": [{"property": "a", "operator": "matches"}]}]},
        {"battleCards": "not a list"},
        {"glossaryEntries": [{"term": "no id"}]},
        ["rules"],
    ],
)
async def test_invalid_documents_are_rejected(populated, document):
    with pytest.raises(ValidationError, match="Invalid import document"):
        await import_document(populated, document)
    assert len(populated.rules) == 1


@pytest.mark.asyncio
async def test_import_json_rejects_malformed_text():
    with pytest.raises(ValidationError, match="not valid JSON"):
        await import_json(new_store(), "{rules: ")
