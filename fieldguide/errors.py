"""Error taxonomy for the authoring back end.

Three failure families reach callers:

- ProviderError: the property provider could not deliver a catalog. Retryable,
  never fatal to an admin session.
- ValidationError: an artifact or import document is missing required data.
  Nothing is saved.
- PersistenceError: the key/value store rejected a write. The in-memory state
  is rolled back and the save is reported as failed.

Condition evaluation never raises; see ``fieldguide.evaluator``.
"""

from __future__ import annotations

from collections.abc import Iterable

__all__ = [
    "FieldGuideError",
    "ProviderError",
    "ValidationError",
    "PersistenceError",
]


class FieldGuideError(Exception):
    """Base class for all fieldguide errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ProviderError(FieldGuideError):
    """Raised when property metadata cannot be fetched."""

    def __init__(self, message: str, object_type: str | None = None) -> None:
        self.object_type = object_type
        super().__init__(message)


class ValidationError(FieldGuideError):
    """Raised when required data is missing or malformed on save or import."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class PersistenceError(FieldGuideError):
    """Raised when a write to the key/value store fails."""

    def __init__(self, message: str, keys: Iterable[str] = ()) -> None:
        self.keys = sorted(keys)
        super().__init__(message)
