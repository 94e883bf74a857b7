"""The artifact store: canonical owner of rules, cards, presentations and glossary.

All state lives on an ``ArtifactStore`` instance passed to whoever needs it;
``load()`` and the save path behind every mutation are its only I/O. A save
always writes the entire collection rather than a delta, so two processes
editing the same store clobber each other. The store assumes a single writer
and does not lock.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from .embeds import convert_to_embed_url, ensure_scheme
from .errors import PersistenceError, ValidationError
from .events import REFRESH_UI, ChangeNotifier
from .ids import Clock, IdGenerator, TimestampIdGenerator, now_ms
from .models import (
    DEFAULT_SETTINGS,
    ArtifactKind,
    Card,
    FieldGuideModel,
    GlossaryEntry,
    Presentation,
    Rule,
    TriggerIndex,
    singular_object_type,
)
from .triggers import build_trigger_index

if TYPE_CHECKING:
    from .catalog import PropertyCatalog
    from .storage import KeyValueStore

__all__ = [
    "ArtifactStore",
    "COLLECTION_KEYS",
    "CRM_TOKEN_SETTING",
    "ENTRIES_BY_ID_KEY",
    "INDEX_KEY",
    "INDEX_VERSION_KEY",
    "SETTINGS_KEY",
]

COLLECTION_KEYS: dict[ArtifactKind, str] = {
    ArtifactKind.RULE: "rules",
    ArtifactKind.CARD: "cards",
    ArtifactKind.PRESENTATION: "presentations",
    ArtifactKind.GLOSSARY: "glossaryEntries",
}
INDEX_KEY = "termTriggerIndex"
ENTRIES_BY_ID_KEY = "entriesById"
INDEX_VERSION_KEY = "termTriggerIndexVersion"
SETTINGS_KEY = "settings"
CRM_TOKEN_SETTING = "crmApiToken"

MODEL_TYPES: dict[ArtifactKind, type[FieldGuideModel]] = {
    ArtifactKind.RULE: Rule,
    ArtifactKind.CARD: Card,
    ArtifactKind.PRESENTATION: Presentation,
    ArtifactKind.GLOSSARY: GlossaryEntry,
}

TOGGLEABLE = (ArtifactKind.RULE, ArtifactKind.GLOSSARY)

# Identity and lifecycle fields the store owns; callers cannot overwrite them
_MANAGED_FIELDS = ("id", "createdAt", "updatedAt", "enabled")

def _aliased(model_type: type[FieldGuideModel], data: Mapping[str, Any]) -> dict[str, Any]:
    """Rewrite snake_case field names to their storage aliases."""
    fields = model_type.model_fields
    return {
        (fields[k].alias or k) if k in fields else k: v for k, v in data.items()
    }


def _payload(model_type: type[FieldGuideModel], data: Any) -> dict[str, Any]:
    if isinstance(data, FieldGuideModel):
        return data.to_payload()
    if isinstance(data, Mapping):
        return _aliased(model_type, data)
    raise TypeError(f"Expected a mapping or model, got {type(data).__name__}")


def _require(value: str, field: str, message: str) -> None:
    if not value or not value.strip():
        raise ValidationError(message, field)


class ArtifactStore:
    """In-memory artifact collections backed by a key/value store."""

    def __init__(
        self,
        kv: KeyValueStore,
        id_generator: IdGenerator | None = None,
        clock: Clock = now_ms,
        notifier: ChangeNotifier | None = None,
        catalog: PropertyCatalog | None = None,
    ) -> None:
        self.kv = kv
        self.clock = clock
        self.id_generator = id_generator or TimestampIdGenerator(clock)
        self.notifier = notifier or ChangeNotifier()
        self.catalog = catalog
        self.settings: dict[str, Any] = dict(DEFAULT_SETTINGS)
        self.trigger_index = TriggerIndex()
        self._collections: dict[ArtifactKind, list[Any]] = {
            kind: [] for kind in ArtifactKind
        }

    # --- Loading ---

    async def load(self) -> None:
        """Read every collection; missing keys resolve to empty defaults."""
        defaults: dict[str, Any] = {key: [] for key in COLLECTION_KEYS.values()}
        defaults[SETTINGS_KEY] = {}
        defaults[INDEX_VERSION_KEY] = 0
        data = await self.kv.get(defaults)

        for kind, key in COLLECTION_KEYS.items():
            self._collections[kind] = self.parse_collection(kind, data[key] or [])
        self.settings = {**DEFAULT_SETTINGS, **(data[SETTINGS_KEY] or {})}
        self.trigger_index = build_trigger_index(
            self._collections[ArtifactKind.GLOSSARY],
            version=data[INDEX_VERSION_KEY] or 0,
        )
        logger.info(
            "Loaded store: "
            + ", ".join(
                f"{len(items)} {COLLECTION_KEYS[kind]}"
                for kind, items in self._collections.items()
            )
        )

    def parse_collection(self, kind: ArtifactKind, raw_items: list[Any]) -> list[Any]:
        model_type = MODEL_TYPES[kind]
        try:
            return [model_type.model_validate(item) for item in raw_items]
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {kind.value} data: {e}", COLLECTION_KEYS[kind]
            ) from e

    # --- Queries ---

    def list_items(self, kind: ArtifactKind) -> list[Any]:
        return list(self._collections[kind])

    def get(self, kind: ArtifactKind, artifact_id: str) -> Any | None:
        for item in self._collections[kind]:
            if item.id == artifact_id:
                return item
        return None

    @property
    def rules(self) -> list[Rule]:
        return self.list_items(ArtifactKind.RULE)

    @property
    def cards(self) -> list[Card]:
        return self.list_items(ArtifactKind.CARD)

    @property
    def presentations(self) -> list[Presentation]:
        return self.list_items(ArtifactKind.PRESENTATION)

    @property
    def glossary(self) -> list[GlossaryEntry]:
        return self.list_items(ArtifactKind.GLOSSARY)

    # --- Mutations ---

    async def create(self, kind: ArtifactKind, data: Any) -> Any:
        """Validate and append a new artifact with a fresh id and timestamp."""
        payload = _payload(MODEL_TYPES[kind], data)
        for field in _MANAGED_FIELDS:
            payload.pop(field, None)
        payload["id"] = self.id_generator(kind)
        payload["createdAt"] = self.clock()
        payload["enabled"] = True

        item = self._prepare(kind, payload)
        await self._commit(kind, [*self._collections[kind], item])
        logger.info(f"Created {kind.value} '{item.id}'")
        return item

    async def update(self, kind: ArtifactKind, artifact_id: str, data: Any) -> Any:
        """Apply changes; id, creation time and enabled state are preserved."""
        existing = self.get(kind, artifact_id)
        if existing is None:
            raise KeyError(f"No {kind.value} with id '{artifact_id}'")

        changes = _payload(MODEL_TYPES[kind], data)
        for field in _MANAGED_FIELDS:
            changes.pop(field, None)
        payload = {**existing.to_payload(), **changes}
        if "objectType" in changes and "objectTypes" not in changes:
            payload.pop("objectTypes", None)
        payload["updatedAt"] = self.clock()

        item = self._prepare(kind, payload)
        items = [item if i.id == artifact_id else i for i in self._collections[kind]]
        await self._commit(kind, items)
        logger.info(f"Updated {kind.value} '{artifact_id}'")
        return item

    async def delete(self, kind: ArtifactKind, artifact_id: str) -> bool:
        """Hard-remove an artifact. Returns False when the id is unknown."""
        items = [i for i in self._collections[kind] if i.id != artifact_id]
        if len(items) == len(self._collections[kind]):
            logger.warning(f"Delete of unknown {kind.value} '{artifact_id}' ignored")
            return False
        await self._commit(kind, items)
        logger.info(f"Deleted {kind.value} '{artifact_id}'")
        return True

    async def toggle(self, kind: ArtifactKind, artifact_id: str) -> Any:
        """Flip ``enabled`` without touching id or timestamps."""
        if kind not in TOGGLEABLE:
            raise ValueError(f"{kind.value} artifacts cannot be toggled")
        existing = self.get(kind, artifact_id)
        if existing is None:
            raise KeyError(f"No {kind.value} with id '{artifact_id}'")

        toggled = existing.model_copy(update={"enabled": not existing.enabled})
        items = [toggled if i.id == artifact_id else i for i in self._collections[kind]]
        await self._commit(kind, items)
        logger.info(f"{kind.value} '{artifact_id}' enabled={toggled.enabled}")
        return toggled

    async def save_settings(self, updates: Mapping[str, Any]) -> dict[str, Any]:
        """Merge settings; a changed CRM credential invalidates the catalog."""
        merged = {**self.settings, **updates}
        await self._write({SETTINGS_KEY: merged})
        token_changed = merged.get(CRM_TOKEN_SETTING) != self.settings.get(
            CRM_TOKEN_SETTING
        )
        self.settings = merged
        if token_changed and self.catalog is not None:
            self.catalog.clear()
        self.notifier.broadcast(REFRESH_UI)
        return dict(merged)

    async def replace(
        self,
        collections: Mapping[ArtifactKind, list[Any]],
        settings: Mapping[str, Any] | None = None,
    ) -> None:
        """Swap whole collections and merge settings in one write."""
        values: dict[str, Any] = {}
        pending: dict[ArtifactKind, list[Any]] = {}
        index = None
        for kind, raw_items in collections.items():
            items = self.parse_collection(kind, raw_items)
            pending[kind] = items
            values.update(self._collection_values(kind, items))
            if kind is ArtifactKind.GLOSSARY:
                index = self._build_index(items)
                values.update(self._index_values(index))
        merged_settings = None
        if settings is not None:
            merged_settings = {**self.settings, **settings}
            values[SETTINGS_KEY] = merged_settings

        await self._write(values)
        self._collections.update(pending)
        if index is not None:
            self.trigger_index = index
        if merged_settings is not None:
            self.settings = merged_settings
        self.notifier.broadcast(REFRESH_UI)

    # --- Internals ---

    def _prepare(self, kind: ArtifactKind, payload: dict[str, Any]) -> Any:
        match kind:
            case ArtifactKind.RULE:
                _require(payload.get("name", ""), "name", "Please enter a rule name")
                object_types = payload.get("objectTypes") or []
                object_type = payload.get("objectType")
                if not object_types and not object_type:
                    raise ValidationError("Please select an object type", "objectType")
                if not object_types:
                    payload["objectTypes"] = [singular_object_type(object_type)]
                payload["name"] = payload["name"].strip()
                payload["title"] = (payload.get("title") or "").strip() or payload["name"]
            case ArtifactKind.CARD:
                _require(payload.get("name", ""), "name", "Please enter a card name")
                payload["name"] = payload["name"].strip()
                payload["link"] = ensure_scheme(payload.get("link") or "")
            case ArtifactKind.PRESENTATION:
                _require(payload.get("name", ""), "name", "Please enter a name")
                _require(payload.get("url", ""), "url", "Please enter a URL")
                payload["name"] = payload["name"].strip()
                payload["url"] = ensure_scheme(payload["url"])
                embed_url = convert_to_embed_url(payload["url"])
                if not embed_url:
                    raise ValidationError("Please enter a valid embed URL", "url")
                payload["embedUrl"] = embed_url
            case ArtifactKind.GLOSSARY:
                _require(
                    payload.get("term", ""), "term", "Please enter a term or phrase"
                )
                _require(
                    payload.get("definition", ""),
                    "definition",
                    "Please enter a definition",
                )
                payload["term"] = payload["term"].strip()
                payload["aliases"] = [
                    a.strip() for a in payload.get("aliases") or [] if a and a.strip()
                ]
                values = [
                    v
                    for v in payload.get("propertyValues") or []
                    if v.get("value") or v.get("label")
                ]
                payload["propertyValues"] = values or None
                payload["link"] = ensure_scheme(payload.get("link") or "")

        try:
            return MODEL_TYPES[kind].model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {kind.value}: {e}") from e

    def _collection_values(self, kind: ArtifactKind, items: list[Any]) -> dict[str, Any]:
        return {COLLECTION_KEYS[kind]: [i.to_payload() for i in items]}

    def _build_index(self, entries: list[GlossaryEntry]) -> TriggerIndex:
        version = max(self.clock(), self.trigger_index.version + 1)
        return build_trigger_index(entries, version=version)

    def _index_values(self, index: TriggerIndex) -> dict[str, Any]:
        payload = index.to_payload()
        return {
            INDEX_KEY: payload["termMap"],
            ENTRIES_BY_ID_KEY: payload["entriesById"],
            INDEX_VERSION_KEY: payload["version"],
        }

    async def _commit(self, kind: ArtifactKind, items: list[Any]) -> None:
        """Persist a whole collection, then make it current and notify.

        Glossary saves carry the rebuilt trigger index in the same write, so
        readers never see entries without their matching index.
        """
        values = self._collection_values(kind, items)
        index = None
        if kind is ArtifactKind.GLOSSARY:
            index = self._build_index(items)
            values.update(self._index_values(index))

        await self._write(values)
        self._collections[kind] = items
        if index is not None:
            self.trigger_index = index
        self.notifier.broadcast(REFRESH_UI)

    async def _write(self, values: dict[str, Any]) -> None:
        try:
            await self.kv.set(values)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Save of {sorted(values)} failed: {e}")
            raise PersistenceError(f"Save failed: {e}", values.keys()) from e
