"""Tests for the tool registry."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from anymark.ai.tools import (
    CacheConfig,
    SimpleTool,
    ToolRegistry,
    ToolResult,
    ToolResultCache,
    ToolSpec,
)

from tests.helpers import SEARCH_SCHEMA


def _spec(name: str = "search", *, cacheable: bool = False, parameters: dict | None = None) -> ToolSpec:
    return ToolSpec(
        name=name,
        description=f"{name} tool",
        parameters=parameters if parameters is not None else SEARCH_SCHEMA,
        cacheable=cacheable,
    )


def test_to_openai_format_follows_registration_order() -> None:
    registry = ToolRegistry()
    registry.register_function(_spec("search"), lambda params: None)
    registry.register_function(_spec("organize"), lambda params: None)

    tools = registry.to_openai_format()

    assert [tool["function"]["name"] for tool in tools] == ["search", "organize"]
    assert tools[0]["type"] == "function"
    assert tools[0]["function"]["description"] == "search tool"
    assert tools[0]["function"]["parameters"] == SEARCH_SCHEMA


def test_to_openai_format_returns_copies_of_schemas() -> None:
    registry = ToolRegistry()
    registry.register_function(_spec(), lambda params: None)

    tools = registry.to_openai_format()
    tools[0]["function"]["parameters"]["properties"]["query"]["type"] = "integer"

    assert registry.to_openai_format()[0]["function"]["parameters"]["properties"]["query"]["type"] == "string"


def test_register_overwrites_existing_tool(caplog: pytest.LogCaptureFixture) -> None:
    registry = ToolRegistry()
    registry.register_function(_spec(), lambda params: "first")
    with caplog.at_level(logging.WARNING):
        registry.register_function(_spec(), lambda params: "second")

    assert len(registry) == 1
    assert "already registered" in caplog.text


def test_register_logs_schema_problems_but_keeps_tool(caplog: pytest.LogCaptureFixture) -> None:
    registry = ToolRegistry()
    with caplog.at_level(logging.WARNING):
        registration = registry.register_function(_spec("broken", parameters={"type": "array"}), lambda params: None)

    assert "broken" in registry
    assert 'Schema type must be "object"' in registration.schema_problems
    assert 'Schema must have "properties" object' in registration.schema_problems
    assert "invalid parameter schema" in caplog.text


@pytest.mark.asyncio
async def test_tool_with_malformed_schema_still_validates_its_properties() -> None:
    seen: list[dict[str, Any]] = []
    registry = ToolRegistry()
    schema = {
        "type": "object",
        "properties": {
            "query": {"type": "string"},
            "limit": {"type": "integer", "minimum": 1, "maximum": 20},
            "sort": {"type": "no-such-type"},
        },
        "required": "query",
    }
    registration = registry.register_function(_spec("loose", parameters=schema), lambda params: seen.append(dict(params)))

    ok = await registry.execute("loose", {"query": "python", "limit": "5", "sort": "newest"})
    rejected = await registry.execute("loose", {"query": 7, "limit": 50})

    assert 'Schema "required" must be an array' in registration.schema_problems
    assert ok.success is True
    assert seen == [{"query": "python", "limit": 5, "sort": "newest"}]
    assert rejected.success is False
    assert rejected.error is not None
    assert 'Parameter "query" must be a string' in rejected.error
    assert 'Parameter "limit" must be <= 20' in rejected.error
    assert "Invalid tool schema" not in rejected.error


def test_unregister_removes_tool() -> None:
    registry = ToolRegistry()
    registry.register_function(_spec(), lambda params: None)

    assert registry.unregister("search") is True
    assert registry.unregister("search") is False
    assert registry.names() == []
    assert registry.get("search") is None


@pytest.mark.asyncio
async def test_execute_unknown_tool_returns_failure() -> None:
    registry = ToolRegistry()

    result = await registry.execute("missing", {})

    assert result.success is False
    assert result.error == 'Tool "missing" not found'


@pytest.mark.asyncio
async def test_execute_passes_sanitized_params_to_handler() -> None:
    seen: list[dict[str, Any]] = []
    registry = ToolRegistry()

    def handler(params: dict[str, Any]) -> dict[str, Any]:
        seen.append(dict(params))
        return {"results": []}

    registry.register_function(_spec(), handler)

    result = await registry.execute("search", {"query": "python", "limit": "5"})

    assert result == ToolResult(success=True, data={"results": []})
    assert seen == [{"query": "python", "limit": 5}]


@pytest.mark.asyncio
async def test_execute_rejects_invalid_params_without_running_handler() -> None:
    calls: list[Any] = []
    registry = ToolRegistry()
    registry.register_function(_spec(), lambda params: calls.append(params))

    result = await registry.execute("search", {"limit": "abc"})

    assert result.success is False
    assert result.error is not None
    assert result.error.startswith("Invalid parameters: ")
    assert "Missing required parameter: query" in result.error
    assert 'Parameter "limit" must be a number' in result.error
    assert calls == []


@pytest.mark.asyncio
async def test_execute_converts_handler_exceptions() -> None:
    registry = ToolRegistry()

    def explode(params: dict[str, Any]) -> None:
        raise RuntimeError("database offline")

    registry.register_function(_spec(), explode)

    result = await registry.execute("search", {"query": "x"})

    assert result.success is False
    assert result.error == "database offline"


@pytest.mark.asyncio
async def test_execute_uses_class_name_for_empty_exception_message() -> None:
    registry = ToolRegistry()

    def explode(params: dict[str, Any]) -> None:
        raise KeyError()

    registry.register_function(_spec(), explode)

    result = await registry.execute("search", {"query": "x"})

    assert result.error == "KeyError"


@pytest.mark.asyncio
async def test_execute_awaits_async_handlers_and_keeps_tool_results() -> None:
    registry = ToolRegistry()

    async def handler(params: dict[str, Any]) -> ToolResult:
        await asyncio.sleep(0)
        return ToolResult.fail("nothing matched")

    registry.register_function(_spec(), handler)

    result = await registry.execute("search", {"query": "x"})

    assert result == ToolResult(success=False, error="nothing matched")


@pytest.mark.asyncio
async def test_register_accepts_tool_protocol_implementations() -> None:
    registry = ToolRegistry()
    tool = SimpleTool(spec=_spec("context", parameters={"type": "object", "properties": {}}), handler=lambda p: 3)

    registry.register(tool)
    result = await registry.execute("context", None)

    assert result.data == 3
    assert registry.get("context") is tool


@pytest.mark.asyncio
async def test_cacheable_tool_results_are_reused() -> None:
    calls: list[Any] = []
    cache = ToolResultCache(CacheConfig(ttl_seconds=60, max_entries=10))
    registry = ToolRegistry(cache=cache)
    registry.register_function(_spec(cacheable=True), lambda params: calls.append(params) or {"n": len(calls)})

    first = await registry.execute("search", {"query": "x", "limit": 2})
    second = await registry.execute("search", {"limit": "2", "query": "x"})

    assert first == second
    assert len(calls) == 1
    assert cache.stats().hits == 1


@pytest.mark.asyncio
async def test_failed_and_non_cacheable_results_are_not_cached() -> None:
    cache = ToolResultCache()
    registry = ToolRegistry(cache=cache)
    registry.register_function(_spec("search"), lambda params: {"ok": True})
    registry.register_function(_spec("flaky", cacheable=True), lambda params: ToolResult.fail("nope"))

    await registry.execute("search", {"query": "x"})
    await registry.execute("flaky", {"query": "x"})

    assert len(cache) == 0


@pytest.mark.asyncio
async def test_reregistering_clears_cached_results_for_that_tool() -> None:
    cache = ToolResultCache()
    registry = ToolRegistry(cache=cache)
    registry.register_function(_spec(cacheable=True), lambda params: "old")
    await registry.execute("search", {"query": "x"})

    registry.register_function(_spec(cacheable=True), lambda params: "new")
    result = await registry.execute("search", {"query": "x"})

    assert result.data == "new"
