"""
Tests for environment-driven configuration.
"""
import pytest

from fieldguide.config import FieldGuideConfig

ENV_VARS = [
    "STORAGE_BACKEND",
    "QDRANT_URL",
    "QDRANT_API_KEY",
    "COLLECTION_NAME",
    "PREFER_GRPC",
    "GRPC_PORT",
    "CRM_API_URL",
    "CRM_API_TOKEN",
    "PROPERTY_CATALOG_PATH",
    "PROVIDER_TIMEOUT",
    "PERSISTENCE_TIMEOUT",
    "TRANSPORT",
    "DEBUG",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = FieldGuideConfig.from_env()

    assert config.storage_backend == "qdrant"
    assert config.qdrant_url == "http://localhost:6333"
    assert config.collection_name == "fieldguide_store"
    assert config.prefer_grpc is True
    assert config.crm_api_url == "https://api.hubapi.com"
    assert config.crm_api_token is None
    assert config.provider_timeout == 10.0
    assert config.debug is False
    assert [t["name"] for t in config.tool_schemas] == [
        "EvaluateRecord",
        "MatchTerms",
        "ListProperties",
        "ExportData",
        "ImportData",
    ]


def test_overrides(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "MEMORY")
    monkeypatch.setenv("GRPC_PORT", "7000")
    monkeypatch.setenv("PREFER_GRPC", "false")
    monkeypatch.setenv("CRM_API_TOKEN", "pat-abc")
    monkeypatch.setenv("PROPERTY_CATALOG_PATH", "/etc/fieldguide/catalog.yaml")
    monkeypatch.setenv("PERSISTENCE_TIMEOUT", "2.5")
    monkeypatch.setenv("DEBUG", "True")

    config = FieldGuideConfig.from_env()

    assert config.storage_backend == "memory"
    assert config.grpc_port == 7000
    assert config.prefer_grpc is False
    assert config.crm_api_token == "pat-abc"
    assert config.property_catalog_path == "/etc/fieldguide/catalog.yaml"
    assert config.persistence_timeout == 2.5
    assert config.debug is True


@pytest.mark.parametrize(
    "name,value,message",
    [
        ("GRPC_PORT", "grpc", "GRPC_PORT must be an integer"),
        ("PROVIDER_TIMEOUT", "soon", "PROVIDER_TIMEOUT must be a number"),
        ("STORAGE_BACKEND", "sqlite", "STORAGE_BACKEND must be one of"),
    ],
)
def test_invalid_values(monkeypatch, name, value, message):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=message):
        FieldGuideConfig.from_env()
