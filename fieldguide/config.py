"""Configuration management with environment variable support and type safety.

This module provides the FieldGuideConfig dataclass for managing server
configuration loaded from environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from typing_extensions import TypedDict

__all__ = [
    "FieldGuideConfig",
    "StorageBackend",
    "ToolSchema",
    "TransportType",
]


class TransportType(str, Enum):
    """Supported MCP transport types."""

    STDIO = "stdio"


class StorageBackend(str, Enum):
    QDRANT = "qdrant"
    MEMORY = "memory"


class ToolSchema(TypedDict):
    """Type definition for one MCP tool entry in tool_schemas.json."""

    name: str
    description: str
    inputSchema: dict[str, Any]


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got '{raw}'") from e


@dataclass
class FieldGuideConfig:
    """Configuration for the fieldguide server loaded from environment variables."""

    storage_backend: str = StorageBackend.QDRANT.value
    qdrant_url: str = "http://localhost:6333"
    collection_name: str = "fieldguide_store"
    qdrant_api_key: str | None = None
    prefer_grpc: bool = True
    grpc_port: int = 6334
    crm_api_url: str = "https://api.hubapi.com"
    crm_api_token: str | None = None
    property_catalog_path: str | None = None
    provider_timeout: float = 10.0
    persistence_timeout: float = 10.0
    transport: str = TransportType.STDIO.value
    server_name: str = "fieldguide"
    version: str = "1.0.0"
    debug: bool = False
    tool_schemas: list[ToolSchema] = field(default_factory=list)

    def __post_init__(self):
        """Load the MCP tool schemas from the JSON file after initialization."""
        schema_path = Path(__file__).parent / "tool_schemas.json"
        try:
            with open(schema_path, encoding="utf-8") as f:
                self.tool_schemas = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError) as e:
            raise RuntimeError(f"Failed to load tool schemas: {e}") from e

        if self.storage_backend not in StorageBackend._value2member_map_:
            raise ValueError(
                f"STORAGE_BACKEND must be one of "
                f"{sorted(StorageBackend._value2member_map_)}, got '{self.storage_backend}'"
            )

    @classmethod
    def from_env(cls) -> FieldGuideConfig:
        """Load configuration from environment variables."""
        grpc_port = os.getenv("GRPC_PORT", "6334")
        if not grpc_port.isdigit():
            raise ValueError(f"GRPC_PORT must be an integer, got '{grpc_port}'")

        return cls(
            storage_backend=os.getenv("STORAGE_BACKEND", "qdrant").lower(),
            qdrant_url=os.getenv("QDRANT_URL", "http://localhost:6333"),
            collection_name=os.getenv("COLLECTION_NAME", "fieldguide_store"),
            qdrant_api_key=os.getenv("QDRANT_API_KEY"),
            prefer_grpc=os.getenv("PREFER_GRPC", "true").lower() == "true",
            grpc_port=int(grpc_port),
            crm_api_url=os.getenv("CRM_API_URL", "https://api.hubapi.com"),
            crm_api_token=os.getenv("CRM_API_TOKEN"),
            property_catalog_path=os.getenv("PROPERTY_CATALOG_PATH"),
            provider_timeout=_env_float("PROVIDER_TIMEOUT", "10"),
            persistence_timeout=_env_float("PERSISTENCE_TIMEOUT", "10"),
            transport=os.getenv("TRANSPORT", "stdio"),
            debug=os.getenv("DEBUG", "false").lower() == "true",
        )
