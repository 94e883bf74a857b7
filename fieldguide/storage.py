"""Key/value persistence backends for the artifact store."""

from __future__ import annotations

import copy
import uuid
from typing import TYPE_CHECKING, Any, Protocol

import anyio
from loguru import logger
from qdrant_client import AsyncQdrantClient, models

from .errors import PersistenceError

if TYPE_CHECKING:
    from .config import FieldGuideConfig

__all__ = ["KeyValueStore", "MemoryKeyValueStore", "QdrantKeyValueStore"]

# Fixed namespace so a key always maps to the same point id
_KEY_NAMESPACE = uuid.UUID("6f1d2c1e-5b7a-4c57-9a3e-2f0f8f1b6c44")


class KeyValueStore(Protocol):
    """Scoped key/value store: missing keys resolve to the supplied defaults."""

    async def get(self, defaults: dict[str, Any]) -> dict[str, Any]:
        ...

    async def set(self, values: dict[str, Any]) -> None:
        ...


class MemoryKeyValueStore:
    """In-process store. Values are deep-copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    async def get(self, defaults: dict[str, Any]) -> dict[str, Any]:
        return {
            key: copy.deepcopy(self._data.get(key, default))
            for key, default in defaults.items()
        }

    async def set(self, values: dict[str, Any]) -> None:
        self._data.update(copy.deepcopy(values))

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)


def point_id(key: str) -> str:
    return str(uuid.uuid5(_KEY_NAMESPACE, key))


class QdrantKeyValueStore:
    """Stores each key as one vector-less Qdrant point with a JSON payload."""

    def __init__(
        self, config: FieldGuideConfig, client: AsyncQdrantClient | None = None
    ) -> None:
        self.config = config
        self.collection_name = config.collection_name
        self.timeout = config.persistence_timeout
        self.client = client or AsyncQdrantClient(
            url=config.qdrant_url,
            api_key=config.qdrant_api_key,
            prefer_grpc=config.prefer_grpc,
            grpc_port=config.grpc_port,
        )

    async def initialize(self) -> None:
        """Ensure the backing collection exists."""
        try:
            exists = await self.client.collection_exists(self.collection_name)
            if exists:
                logger.info(f"Collection '{self.collection_name}' already exists.")
            else:
                logger.info(f"Creating collection '{self.collection_name}'.")
                await self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config={},
                )
        except Exception as e:
            logger.error(f"Error checking/creating collection: {e}")
            raise

    async def get(self, defaults: dict[str, Any]) -> dict[str, Any]:
        keys = list(defaults)
        points = await self.client.retrieve(
            collection_name=self.collection_name,
            ids=[point_id(k) for k in keys],
            with_payload=True,
            with_vectors=False,
        )
        stored = {
            p.payload["key"]: p.payload.get("value")
            for p in points
            if p.payload and "key" in p.payload
        }
        return {
            key: copy.deepcopy(stored[key]) if key in stored else copy.deepcopy(default)
            for key, default in defaults.items()
        }

    async def set(self, values: dict[str, Any]) -> None:
        points = [
            models.PointStruct(
                id=point_id(key), vector={}, payload={"key": key, "value": value}
            )
            for key, value in values.items()
        ]
        try:
            with anyio.fail_after(self.timeout):
                await self.client.upsert(
                    collection_name=self.collection_name, points=points, wait=True
                )
        except Exception as e:
            logger.error(f"Failed to write keys {sorted(values)}: {e}")
            raise PersistenceError(f"Store write failed: {e}", values.keys()) from e
        logger.info(f"Stored keys {sorted(values)} in '{self.collection_name}'")

    async def close(self) -> None:
        """Closes the connection to Qdrant."""
        await self.client.close()
