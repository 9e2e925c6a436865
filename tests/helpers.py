"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Iterable, Sequence

from anymark.ai.agent.types import ChatRequest, ChatResponse
from anymark.ai.tools import ToolRegistry, ToolSpec
from anymark.ai.types import ToolCall

SEARCH_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {"type": "string"},
        "limit": {"type": "integer", "minimum": 1, "maximum": 50},
    },
    "required": ["query"],
}


def tool_call(name: str, arguments: Any = None, *, call_id: str | None = None) -> ToolCall:
    """Build a ToolCall whose arguments are JSON-encoded unless already a string."""

    if arguments is None:
        raw = "{}"
    elif isinstance(arguments, str):
        raw = arguments
    else:
        raw = json.dumps(arguments)
    return ToolCall(id=call_id or f"call_{name}", name=name, arguments=raw)


def reply(content: str | None = None, *calls: ToolCall) -> ChatResponse:
    return ChatResponse(content=content, tool_calls=calls)


class ScriptedTransport:
    """Model transport stub that replays a fixed list of responses.

    Entries may be :class:`ChatResponse` objects, exceptions (raised) or
    callables receiving the request. The last entry repeats once the script
    runs out.

    Example:
        transport = ScriptedTransport([reply(None, tool_call("search", {"query": "x"})), reply("done")])
    """

    def __init__(self, script: Iterable[Any], *, stream_tokens: Sequence[str] | None = None) -> None:
        self.script = list(script)
        self.requests: list[ChatRequest] = []
        self.stream_calls = 0
        self.stream_tokens = list(stream_tokens or [])
        self.closed = False

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.script) - 1)
        entry = self.script[index]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            entry = entry(request)
            if asyncio.iscoroutine(entry):
                entry = await entry
        return entry

    async def chat_stream(self, request: ChatRequest, *, on_token=None, on_tool_call=None) -> ChatResponse:
        self.stream_calls += 1
        response = await self.chat(request)
        if on_token is not None:
            tokens = self.stream_tokens or ([response.content] if response.content else [])
            for token in tokens:
                on_token(token)
        if response.tool_calls and on_tool_call is not None:
            on_tool_call(response.tool_calls)
        return response

    async def aclose(self) -> None:
        self.closed = True


def make_search_registry(
    results: Sequence[dict[str, Any]] | None = None,
    *,
    calls: list[dict[str, Any]] | None = None,
    handler: Callable[[dict[str, Any]], Any] | None = None,
) -> ToolRegistry:
    """Registry with a single ``search`` tool returning ``results``."""

    payload = list(results or [{"id": "bm-1", "title": "Python docs"}, {"id": "bm-2", "title": "Rust book"}])
    registry = ToolRegistry()

    def search(params: dict[str, Any]) -> Any:
        if calls is not None:
            calls.append(dict(params))
        if handler is not None:
            return handler(params)
        return {"results": payload, "total": len(payload)}

    registry.register_function(ToolSpec(name="search", description="Search bookmarks", parameters=SEARCH_SCHEMA), search)
    return registry
