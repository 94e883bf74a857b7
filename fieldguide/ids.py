"""Artifact id generation and timestamps."""

from __future__ import annotations

import itertools
import time
from collections.abc import Callable
from typing import TypeAlias

from .models import ArtifactKind

__all__ = [
    "Clock",
    "IdGenerator",
    "SequenceIdGenerator",
    "TimestampIdGenerator",
    "now_ms",
]

Clock: TypeAlias = Callable[[], int]
IdGenerator: TypeAlias = Callable[[ArtifactKind], str]


def now_ms() -> int:
    """Epoch time in milliseconds."""
    return time.time_ns() // 1_000_000


class TimestampIdGenerator:
    """``<prefix>_<millis>`` ids, bumped forward so two ids never collide."""

    def __init__(self, clock: Clock = now_ms) -> None:
        self.clock = clock
        self._last = 0

    def __call__(self, kind: ArtifactKind) -> str:
        token = max(self.clock(), self._last + 1)
        self._last = token
        return f"{kind.id_prefix}_{token}"


class SequenceIdGenerator:
    """``<prefix>_1``, ``<prefix>_2``... shared across kinds. Deterministic."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def __call__(self, kind: ArtifactKind) -> str:
        return f"{kind.id_prefix}_{next(self._counter)}"
