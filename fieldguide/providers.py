"""Property metadata providers consumed by the PropertyCatalog."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import httpx
import yaml
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from .errors import ProviderError
from .models import PropertyDefinition, plural_object_type

__all__ = [
    "HttpPropertyProvider",
    "PropertyProvider",
    "YamlPropertyProvider",
    "api_object_type",
]

MAX_PAGES = 50
PAGE_SIZE = 100


class PropertyProvider(Protocol):
    async def fetch_properties(self, object_type: str) -> list[PropertyDefinition]:
        ...


def api_object_type(object_type: str) -> str:
    """CRM API path segment for an object type; custom types pass through."""
    return plural_object_type(object_type)


def _to_definitions(
    raw_properties: list[dict[str, Any]], object_type: str
) -> list[PropertyDefinition]:
    try:
        definitions = [PropertyDefinition.model_validate(p) for p in raw_properties]
    except PydanticValidationError as e:
        raise ProviderError(
            f"Malformed property metadata for '{object_type}': {e}", object_type
        ) from e
    return sorted(definitions, key=lambda p: p.label.lower())


class HttpPropertyProvider:
    """Fetches property metadata from the CRM properties endpoint."""

    def __init__(
        self,
        base_url: str,
        api_token: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self._transport = transport

    async def fetch_properties(self, object_type: str) -> list[PropertyDefinition]:
        if not self.api_token:
            raise ProviderError(
                "CRM API token not configured. Add it in settings.", object_type
            )

        api_type = api_object_type(object_type)
        logger.info(f"Fetching properties for: {api_type}")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                raw_properties = await self._fetch_pages(client, api_type)
        except httpx.TimeoutException as e:
            logger.error(f"Property provider timeout for {api_type}")
            raise ProviderError(
                f"Property provider timed out for '{object_type}'", object_type
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Property provider request error: {e}")
            raise ProviderError(
                f"Property provider unavailable: {e}", object_type
            ) from e

        logger.info(f"Fetched {len(raw_properties)} properties for {api_type}")
        return _to_definitions(raw_properties, object_type)

    async def _fetch_pages(
        self, client: httpx.AsyncClient, api_type: str
    ) -> list[dict[str, Any]]:
        properties: list[dict[str, Any]] = []
        after = None
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

        for _ in range(MAX_PAGES):
            params: dict[str, Any] = {"limit": PAGE_SIZE}
            if after:
                params["after"] = after

            response = await client.get(
                f"{self.base_url}/crm/v3/properties/{api_type}",
                params=params,
                headers=headers,
            )
            if response.status_code != 200:
                raise ProviderError(
                    f"CRM API error: {response.status_code} - {response.text}",
                    api_type,
                )

            try:
                data = response.json()
            except ValueError as e:
                raise ProviderError(f"CRM API returned invalid JSON: {e}", api_type) from e
            if isinstance(data.get("results"), list):
                properties.extend(data["results"])

            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break

        return properties


class YamlPropertyProvider:
    """Serves property metadata from a YAML file keyed by object type."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def fetch_properties(self, object_type: str) -> list[PropertyDefinition]:
        logger.info(f"Loading property catalog from: {self.path}")
        if not self.path.exists():
            raise ProviderError(
                f"Property catalog file not found: {self.path}", object_type
            )

        try:
            with open(self.path, encoding="utf-8") as f:
                catalog = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ProviderError(f"Invalid property catalog: {e}", object_type) from e

        raw_properties = catalog.get(object_type)
        if raw_properties is None:
            raw_properties = catalog.get(api_object_type(object_type))
        if raw_properties is None:
            raise ProviderError(
                f"No properties defined for '{object_type}'", object_type
            )
        return _to_definitions(raw_properties, object_type)
