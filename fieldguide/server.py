"""fieldguide MCP Server"""

import json
import sys
from typing import Any, TypeAlias

import anyio
import fastjsonschema
import mcp.server.stdio
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.models import InitializationOptions, ServerCapabilities

from .catalog import PropertyCatalog
from .config import FieldGuideConfig, StorageBackend, ToolSchema
from .errors import FieldGuideError
from .evaluator import select_artifacts
from .exchange import export_document, import_document
from .logger import configure_logging
from .models import ArtifactKind
from .providers import HttpPropertyProvider, PropertyProvider, YamlPropertyProvider
from .storage import KeyValueStore, MemoryKeyValueStore, QdrantKeyValueStore
from .store import ArtifactStore
from .triggers import find_triggers

__all__ = ["main"]

ToolValidators: TypeAlias = dict[str, Any]

TARGETED_KINDS = (ArtifactKind.RULE, ArtifactKind.CARD, ArtifactKind.PRESENTATION)


def initialize_storage(config: FieldGuideConfig) -> KeyValueStore:
    """Initialize and return the configured key/value store."""
    try:
        if config.storage_backend == StorageBackend.MEMORY.value:
            kv: KeyValueStore = MemoryKeyValueStore()
        else:
            kv = QdrantKeyValueStore(config)
        print(f"[OK] Storage setup complete ({config.storage_backend})", file=sys.stderr)
        return kv
    except Exception as e:
        print(f"[ERROR] Storage setup error: {e}", file=sys.stderr)
        sys.exit(1)


def create_provider(config: FieldGuideConfig) -> PropertyProvider:
    """A YAML catalog, when configured, replaces the CRM API."""
    if config.property_catalog_path:
        return YamlPropertyProvider(config.property_catalog_path)
    return HttpPropertyProvider(
        config.crm_api_url, config.crm_api_token, timeout=config.provider_timeout
    )


def create_tool_validators(tool_schemas: list[ToolSchema]) -> ToolValidators:
    """Compile tool input schemas into fast validation functions."""
    return {
        schema["name"]: fastjsonschema.compile(schema["inputSchema"])
        for schema in tool_schemas
    }


def return_tool_error(error_msg: str) -> str:
    """Strip validator prefixes from schema error messages."""
    return error_msg.replace("data.", "").replace("data ", "")


def _summarize(kind: ArtifactKind, artifact: Any) -> dict[str, Any]:
    summary = {
        "kind": kind.value,
        "id": artifact.id,
        "name": artifact.name,
        "priority": artifact.priority,
    }
    if kind is ArtifactKind.RULE:
        summary["title"] = artifact.title
        summary["type"] = artifact.type
    elif kind is ArtifactKind.PRESENTATION:
        summary["embedUrl"] = artifact.embed_url
    return summary


async def handle_evaluate_record(arguments: dict, store: ArtifactStore) -> dict:
    """Run targeting for every artifact kind against one record."""
    object_type = arguments["objectType"]
    record = arguments["record"]
    result = {}
    for kind in TARGETED_KINDS:
        matches = select_artifacts(store.list_items(kind), record, object_type)
        result[f"{kind.value}s"] = [_summarize(kind, a) for a in matches]
    return result


async def handle_match_terms(arguments: dict, store: ArtifactStore) -> dict:
    index = store.trigger_index
    matches = []
    for match in find_triggers(index, arguments["text"]):
        entry = index.entries_by_id[match.entry_id]
        matches.append(
            {
                "start": match.start,
                "end": match.end,
                "text": match.trigger,
                "entryId": match.entry_id,
                "term": entry.term,
                "definition": entry.definition,
            }
        )
    return {"matches": matches, "indexVersion": index.version}


async def handle_list_properties(arguments: dict, catalog: PropertyCatalog) -> dict:
    properties = await catalog.fetch(arguments["objectType"])
    return {"properties": [p.to_payload() for p in properties]}


async def handle_tool(
    name: str,
    arguments: dict,
    tool_validators: ToolValidators,
    store: ArtifactStore,
    catalog: PropertyCatalog,
) -> dict:
    """Validate tool input, then route to the handler."""
    if name not in tool_validators:
        raise ValueError(f"Unknown tool: {name}")
    try:
        tool_validators[name](arguments)
    except fastjsonschema.JsonSchemaException as validation_error:
        error_msg = return_tool_error(validation_error.message)
        raise ValueError(
            f"Tool validation failed: {error_msg}\nPlease correct the errors and retry."
        ) from validation_error

    match name:
        case "EvaluateRecord":
            return await handle_evaluate_record(arguments, store)
        case "MatchTerms":
            return await handle_match_terms(arguments, store)
        case "ListProperties":
            return await handle_list_properties(arguments, catalog)
        case "ExportData":
            return export_document(store)
        case "ImportData":
            counts = await import_document(store, arguments["document"])
            return {"imported": counts}
    raise ValueError(f"Unknown tool: {name}")


def main() -> int:
    """Main entry point for the fieldguide MCP server."""
    try:
        config = FieldGuideConfig.from_env()
        print(f"[OK] Loaded config ({config.storage_backend} storage)", file=sys.stderr)
    except Exception as e:
        print(f"[ERROR] Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(config.debug)
    kv = initialize_storage(config)
    catalog = PropertyCatalog(create_provider(config), timeout=config.provider_timeout)
    store = ArtifactStore(kv, catalog=catalog)
    tool_validators = create_tool_validators(config.tool_schemas)

    mcp_server = Server(config.server_name)

    @mcp_server.list_tools()
    async def list_tools() -> list[types.Tool]:
        """Return all available tools."""
        return [
            types.Tool(
                name=schema["name"],
                description=schema["description"],
                inputSchema=schema["inputSchema"],
            )
            for schema in config.tool_schemas
        ]

    @mcp_server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
        """Route tool calls to handlers and return JSON responses."""
        try:
            result = await handle_tool(
                name, arguments or {}, tool_validators, store, catalog
            )
            return [types.TextContent(type="text", text=json.dumps(result, indent=2))]

        except (ValueError, TypeError, KeyError, FieldGuideError) as e:
            error_result = {"error": str(e), "type": type(e).__name__}
            return [
                types.TextContent(type="text", text=json.dumps(error_result, indent=2))
            ]
        except Exception as e:
            error_result = {
                "error": f"An unexpected error occurred: {e}",
                "type": type(e).__name__,
            }
            return [
                types.TextContent(type="text", text=json.dumps(error_result, indent=2))
            ]

    if config.transport == "stdio":

        async def run_server() -> None:
            try:
                if isinstance(kv, QdrantKeyValueStore):
                    await kv.initialize()
                await store.load()
                print("[OK] Store loaded", file=sys.stderr)
                print(
                    "[READY] fieldguide MCP server startup complete - ready for connections",
                    file=sys.stderr,
                )
            except Exception as e:
                print(f"[ERROR] Store initialization failed: {e}", file=sys.stderr)
                sys.exit(1)

            init_options = InitializationOptions(
                server_name=config.server_name,
                server_version=config.version,
                capabilities=ServerCapabilities(tools={}),
            )

            async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
                await mcp_server.run(read_stream, write_stream, init_options)

        anyio.run(run_server)
    else:
        print(f"[ERROR] Unsupported transport: {config.transport}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    main()
