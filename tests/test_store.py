"""
Tests for ArtifactStore CRUD, validation, index persistence and rollback.
"""
import pytest
from unittest.mock import MagicMock

from fieldguide.errors import PersistenceError, ValidationError
from fieldguide.events import REFRESH_UI, ChangeNotifier
from fieldguide.ids import SequenceIdGenerator, TimestampIdGenerator
from fieldguide.models import ArtifactKind, Logic
from fieldguide.storage import MemoryKeyValueStore
from fieldguide.store import (
    ArtifactStore,
    ENTRIES_BY_ID_KEY,
    INDEX_KEY,
    INDEX_VERSION_KEY,
)

NOW = 1_700_000_000_000


class FailingKeyValueStore(MemoryKeyValueStore):
    async def set(self, values):
        raise RuntimeError("quota exceeded")


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def events():
    return []


@pytest.fixture
def store(kv, events):
    notifier = ChangeNotifier()
    notifier.subscribe(events.append)
    return ArtifactStore(
        kv, id_generator=SequenceIdGenerator(), clock=lambda: NOW, notifier=notifier
    )


def big_deal_rule(**overrides):
    data = {
        "name": "Big deal",
        "objectType": "deals",
        "message": "Loop in the deal desk.",
        "conditions": [{"property": "amount", "operator": "greater_than", "value": 1000}],
        "logic": "OR",
    }
    data.update(overrides)
    return data


# --- CREATE ---

@pytest.mark.asyncio
async def test_create_rule_assigns_identity_and_defaults(store, kv, events):
    rule = await store.create(ArtifactKind.RULE, big_deal_rule())

    assert rule.id == "rule_1"
    assert rule.created_at == NOW
    assert rule.enabled is True
    assert rule.object_types == ["deal"]
    assert rule.title == "Big deal"
    assert rule.logic is Logic.ANY
    assert rule.conditions[0].value == "1000"

    saved = kv.snapshot()["rules"]
    assert saved[0]["id"] == "rule_1"
    assert saved[0]["objectTypes"] == ["deal"]
    assert events == [REFRESH_UI]


@pytest.mark.asyncio
async def test_create_ignores_caller_supplied_identity(store):
    rule = await store.create(
        ArtifactKind.RULE, big_deal_rule(id="mine", createdAt=1, enabled=False)
    )
    assert rule.id == "rule_1"
    assert rule.created_at == NOW
    assert rule.enabled is True


@pytest.mark.asyncio
async def test_create_accepts_python_field_names(store):
    rule = await store.create(
        ArtifactKind.RULE,
        {"name": "Everywhere", "object_type": "contact", "display_on_all": True},
    )
    assert rule.display_on_all is True
    assert rule.object_types == ["contact"]


@pytest.mark.asyncio
async def test_rule_requires_name_and_object_type(store, kv, events):
    with pytest.raises(ValidationError) as exc_info:
        await store.create(ArtifactKind.RULE, big_deal_rule(name="  "))
    assert exc_info.value.field == "name"

    with pytest.raises(ValidationError) as exc_info:
        await store.create(ArtifactKind.RULE, big_deal_rule(objectType=None))
    assert exc_info.value.field == "objectType"

    assert store.rules == []
    assert "rules" not in kv.snapshot()
    assert events == []


@pytest.mark.asyncio
async def test_card_link_gets_scheme(store):
    card = await store.create(
        ArtifactKind.CARD,
        {"name": "Competitor X", "link": "wiki.example.com/x",
         "sections": [{"title": "Strengths", "content": "Price"}]},
    )
    assert card.id == "card_1"
    assert card.link == "https://wiki.example.com/x"
    assert card.sections[0].title == "Strengths"


@pytest.mark.asyncio
async def test_presentation_embed_url(store):
    presentation = await store.create(
        ArtifactKind.PRESENTATION,
        {"name": "Demo", "url": "youtu.be/dQw4w9WgXcQ"},
    )
    assert presentation.id == "pres_1"
    assert presentation.url == "https://youtu.be/dQw4w9WgXcQ"
    assert presentation.embed_url == "https://www.youtube.com/embed/dQw4w9WgXcQ"


@pytest.mark.asyncio
async def test_presentation_rejects_unembeddable_url(store):
    with pytest.raises(ValidationError, match="valid embed URL"):
        await store.create(
            ArtifactKind.PRESENTATION, {"name": "Deck", "url": "http://intranet/deck"}
        )


# --- UPDATE / DELETE / TOGGLE ---

@pytest.mark.asyncio
async def test_update_preserves_identity(store):
    rule = await store.create(ArtifactKind.RULE, big_deal_rule())
    await store.toggle(ArtifactKind.RULE, rule.id)

    updated = await store.update(
        ArtifactKind.RULE,
        rule.id,
        {"message": "Escalate.", "id": "other", "createdAt": 5, "enabled": True},
    )

    assert updated.id == rule.id
    assert updated.created_at == NOW
    assert updated.updated_at == NOW
    assert updated.enabled is False
    assert updated.message == "Escalate."
    assert store.get(ArtifactKind.RULE, rule.id) == updated


@pytest.mark.asyncio
async def test_update_object_type_rederives_object_types(store):
    rule = await store.create(ArtifactKind.RULE, big_deal_rule())
    updated = await store.update(ArtifactKind.RULE, rule.id, {"objectType": "contacts"})
    assert updated.object_types == ["contact"]


@pytest.mark.asyncio
async def test_update_unknown_id(store):
    with pytest.raises(KeyError):
        await store.update(ArtifactKind.RULE, "rule_404", {"name": "x"})


@pytest.mark.asyncio
async def test_delete(store):
    rule = await store.create(ArtifactKind.RULE, big_deal_rule())
    assert await store.delete(ArtifactKind.RULE, rule.id) is True
    assert await store.delete(ArtifactKind.RULE, rule.id) is False
    assert store.rules == []


@pytest.mark.asyncio
async def test_toggle_only_rules_and_glossary(store):
    card = await store.create(ArtifactKind.CARD, {"name": "Objection handling"})
    with pytest.raises(ValueError):
        await store.toggle(ArtifactKind.CARD, card.id)

    with pytest.raises(KeyError):
        await store.toggle(ArtifactKind.RULE, "rule_404")


# --- GLOSSARY AND TRIGGER INDEX ---

@pytest.mark.asyncio
async def test_glossary_save_persists_index_with_entries(store, kv):
    entry = await store.create(
        ArtifactKind.GLOSSARY,
        {
            "term": " ARR ",
            "definition": "Annual recurring revenue.",
            "aliases": ["annual recurring revenue", "  "],
            "link": "example.com/arr",
            "propertyValues": [{"value": "", "label": ""}],
        },
    )

    assert entry.term == "ARR"
    assert entry.aliases == ["annual recurring revenue"]
    assert entry.link == "https://example.com/arr"
    assert entry.property_values is None

    snapshot = kv.snapshot()
    assert snapshot[INDEX_KEY] == {"arr": entry.id, "annual recurring revenue": entry.id}
    assert list(snapshot[ENTRIES_BY_ID_KEY]) == [entry.id]
    assert snapshot[INDEX_VERSION_KEY] == NOW
    assert store.trigger_index.term_map["arr"] == entry.id


@pytest.mark.asyncio
async def test_index_version_is_monotonic_under_a_stalled_clock(store, kv):
    entry = await store.create(
        ArtifactKind.GLOSSARY, {"term": "MRR", "definition": "Monthly revenue."}
    )
    await store.toggle(ArtifactKind.GLOSSARY, entry.id)

    assert store.trigger_index.version == NOW + 1
    assert kv.snapshot()[INDEX_VERSION_KEY] == NOW + 1
    assert store.trigger_index.term_map == {}


@pytest.mark.asyncio
async def test_glossary_requires_term_and_definition(store):
    with pytest.raises(ValidationError) as exc_info:
        await store.create(ArtifactKind.GLOSSARY, {"term": "", "definition": "x"})
    assert exc_info.value.field == "term"

    with pytest.raises(ValidationError) as exc_info:
        await store.create(ArtifactKind.GLOSSARY, {"term": "x", "definition": " "})
    assert exc_info.value.field == "definition"


# --- PERSISTENCE FAILURE ---

@pytest.mark.asyncio
async def test_failed_write_leaves_memory_unchanged(events):
    notifier = ChangeNotifier()
    notifier.subscribe(events.append)
    store = ArtifactStore(
        FailingKeyValueStore(), id_generator=SequenceIdGenerator(), notifier=notifier
    )

    with pytest.raises(PersistenceError, match="quota exceeded") as exc_info:
        await store.create(
            ArtifactKind.GLOSSARY, {"term": "NRR", "definition": "Net revenue retention."}
        )

    assert exc_info.value.keys == sorted(
        ["glossaryEntries", INDEX_KEY, ENTRIES_BY_ID_KEY, INDEX_VERSION_KEY]
    )
    assert store.glossary == []
    assert store.trigger_index.term_map == {}
    assert events == []


# --- LOAD AND SETTINGS ---

@pytest.mark.asyncio
async def test_load_rebuilds_index_from_stored_glossary():
    kv = MemoryKeyValueStore(
        {
            "rules": [big_deal_rule(id="rule_9", objectTypes=["deal"])],
            "glossaryEntries": [
                {"id": "g1", "term": "SQL", "definition": "Sales qualified lead."}
            ],
            INDEX_VERSION_KEY: 42,
            "settings": {"theme": "dark"},
        }
    )
    store = ArtifactStore(kv)
    await store.load()

    assert [r.id for r in store.rules] == ["rule_9"]
    assert store.cards == []
    assert store.trigger_index.term_map == {"sql": "g1"}
    assert store.trigger_index.version == 42
    assert store.settings["theme"] == "dark"
    assert store.settings["showBanners"] is True


@pytest.mark.asyncio
async def test_load_rejects_corrupt_collection():
    store = ArtifactStore(MemoryKeyValueStore({"rules": [{"conditions": "nope"}]}))
    with pytest.raises(ValidationError) as exc_info:
        await store.load()
    assert exc_info.value.field == "rules"


@pytest.mark.asyncio
async def test_changed_crm_token_clears_catalog(kv):
    catalog = MagicMock()
    store = ArtifactStore(kv, catalog=catalog)

    await store.save_settings({"theme": "dark"})
    catalog.clear.assert_not_called()

    settings = await store.save_settings({"crmApiToken": "pat-new"})
    catalog.clear.assert_called_once_with()
    assert settings["crmApiToken"] == "pat-new"
    assert kv.snapshot()["settings"]["theme"] == "dark"


def test_timestamp_ids_never_repeat():
    generate = TimestampIdGenerator(clock=lambda: NOW)
    assert generate(ArtifactKind.RULE) == f"rule_{NOW}"
    assert generate(ArtifactKind.PRESENTATION) == f"pres_{NOW + 1}"
