"""Compile glossary entries into the trigger index used by the page overlay.

The index is a pure derived view: it is rebuilt from scratch on every glossary
save and never patched incrementally.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from .models import GlossaryEntry, TriggerIndex

__all__ = [
    "MIN_TRIGGER_LENGTH",
    "TriggerMatch",
    "build_trigger_index",
    "find_triggers",
    "normalize_trigger",
]

# Shorter triggers produce too many false hits in page text
MIN_TRIGGER_LENGTH = 2


@dataclass(frozen=True)
class TriggerMatch:
    start: int
    end: int
    trigger: str
    entry_id: str


def normalize_trigger(text: str) -> str:
    """Trim and lowercase. No stemming, no punctuation stripping."""
    return text.strip().lower()


def build_trigger_index(
    entries: Iterable[GlossaryEntry], version: int = 0
) -> TriggerIndex:
    """Build ``term_map`` and ``entries_by_id`` from the enabled entries.

    Processing follows input order, so when two entries share a normalized
    trigger the later one owns it.
    """
    term_map: dict[str, str] = {}
    entries_by_id: dict[str, GlossaryEntry] = {}

    for entry in entries:
        if entry.enabled is False:
            continue
        entries_by_id[entry.id] = entry

        if not entry.term:
            continue

        for trigger in [entry.term, *entry.aliases]:
            if not trigger or not trigger.strip():
                continue
            key = normalize_trigger(trigger)
            previous = term_map.get(key)
            if previous is not None and previous != entry.id:
                logger.debug(f"Trigger '{key}' moved from {previous} to {entry.id}")
            term_map[key] = entry.id

    logger.info(
        f"Built trigger index: {len(term_map)} triggers, {len(entries_by_id)} entries"
    )
    return TriggerIndex(term_map=term_map, entries_by_id=entries_by_id, version=version)


def find_triggers(index: TriggerIndex, text: str) -> list[TriggerMatch]:
    """Locate indexed triggers in page text.

    Longest triggers are tried first, matches sit on word boundaries and never
    overlap, and each entry is reported once (its first occurrence).
    """
    taken: list[tuple[int, int]] = []
    seen_entries: set[str] = set()
    matches: list[TriggerMatch] = []

    for trigger in sorted(index.term_map, key=len, reverse=True):
        if len(trigger) < MIN_TRIGGER_LENGTH:
            continue
        entry_id = index.term_map[trigger]
        if entry_id in seen_entries:
            continue

        pattern = re.compile(rf"(?<!\w){re.escape(trigger)}(?!\w)", re.IGNORECASE)
        for found in pattern.finditer(text):
            start, end = found.span()
            if any(start < e and s < end for s, e in taken):
                continue
            taken.append((start, end))
            seen_entries.add(entry_id)
            matches.append(
                TriggerMatch(
                    start=start, end=end, trigger=text[start:end], entry_id=entry_id
                )
            )
            break

    return sorted(matches, key=lambda m: m.start)
