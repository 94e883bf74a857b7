"""Per-object-type cache of CRM property metadata."""

from __future__ import annotations

import anyio
from loguru import logger

from .errors import ProviderError
from .models import PropertyDefinition
from .providers import PropertyProvider

__all__ = ["PropertyCatalog"]


class PropertyCatalog:
    """Caches provider results for the lifetime of the catalog.

    Entries never expire on their own; they are dropped only through
    ``clear()``, which the store calls when the CRM credential changes.
    Concurrent first requests for one object type share a single provider call.
    """

    def __init__(self, provider: PropertyProvider, timeout: float = 10.0) -> None:
        self.provider = provider
        self.timeout = timeout
        self._cache: dict[str, list[PropertyDefinition]] = {}
        self._locks: dict[str, anyio.Lock] = {}

    async def fetch(self, object_type: str) -> list[PropertyDefinition]:
        """Return the property definitions for ``object_type``.

        Each call gets its own list; the cached definitions themselves are frozen.

        Raises:
            ProviderError: the provider failed, timed out, or has no credentials.
        """
        cached = self._cache.get(object_type)
        if cached is not None:
            return list(cached)

        lock = self._locks.setdefault(object_type, anyio.Lock())
        async with lock:
            cached = self._cache.get(object_type)
            if cached is not None:
                return list(cached)

            try:
                with anyio.fail_after(self.timeout):
                    properties = await self.provider.fetch_properties(object_type)
            except TimeoutError as e:
                logger.error(f"Property fetch for '{object_type}' timed out")
                raise ProviderError(
                    f"Property provider timed out after {self.timeout}s",
                    object_type,
                ) from e
            except ProviderError:
                raise
            except Exception as e:
                logger.error(f"Property fetch for '{object_type}' failed: {e}")
                raise ProviderError(str(e), object_type) from e

            self._cache[object_type] = list(properties)
            logger.info(f"Cached {len(properties)} properties for '{object_type}'")
            return list(self._cache[object_type])

    def lookup(self, object_type: str, name: str) -> PropertyDefinition | None:
        """Find a cached property by name without calling the provider."""
        for definition in self._cache.get(object_type, []):
            if definition.name == name:
                return definition
        return None

    def is_cached(self, object_type: str) -> bool:
        return object_type in self._cache

    def clear(self, object_type: str | None = None) -> None:
        """Drop one object type, or everything when ``object_type`` is None."""
        if object_type is None:
            self._cache.clear()
            logger.info("Property catalog cleared")
        else:
            self._cache.pop(object_type, None)
            logger.info(f"Property catalog cleared for '{object_type}'")

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, object_type: str) -> bool:
        return object_type in self._cache
