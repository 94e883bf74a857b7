"""Fire-and-forget change broadcast for the page-overlay engine."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeAlias

from loguru import logger

__all__ = ["REFRESH_UI", "ChangeNotifier", "Listener"]

REFRESH_UI = "refreshUI"

Listener: TypeAlias = Callable[[str], None]


class ChangeNotifier:
    """Delivers each event at most once to the listeners present at send time.

    No acknowledgement and no retry: a failing listener is logged and skipped,
    and an event sent with no listeners is dropped.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def broadcast(self, action: str = REFRESH_UI) -> int:
        """Send ``action``; returns how many listeners received it."""
        delivered = 0
        for listener in list(self._listeners):
            try:
                listener(action)
                delivered += 1
            except Exception as e:
                logger.warning(f"Listener {listener!r} failed on '{action}': {e}")
        logger.debug(f"Broadcast '{action}' to {delivered} listener(s)")
        return delivered
