"""Terminal demo for the bookmark agent backed by an in-memory library."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Sequence

from ..ai.agent import AgentOrchestrator, AgentResponse, ProgressCallbacks
from ..ai.client import AIClient
from ..ai.tools import ToolRegistry, ToolResult, ToolResultCache, ToolSpec
from ..services.settings import SettingsStore
from ..utils.logging import configure_from_settings

LOGGER = logging.getLogger(__name__)

DEMO_BOOKMARKS: tuple[dict[str, Any], ...] = (
    {"id": "bm-1", "title": "Python asyncio docs", "url": "https://docs.python.org/3/library/asyncio.html", "tags": ["python", "async"]},
    {"id": "bm-2", "title": "httpx", "url": "https://www.python-httpx.org/", "tags": ["python", "http"]},
    {"id": "bm-3", "title": "tenacity retry library", "url": "https://github.com/jd/tenacity", "tags": ["python", "retry"]},
    {"id": "bm-4", "title": "JSON Schema reference", "url": "https://json-schema.org/understanding-json-schema/", "tags": ["json", "schema"]},
    {"id": "bm-5", "title": "MDN Web Docs", "url": "https://developer.mozilla.org/", "tags": ["web", "reference"]},
    {"id": "bm-6", "title": "OpenAI API reference", "url": "https://platform.openai.com/docs/api-reference", "tags": ["ai", "api"]},
)

_SEARCH_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "Keywords matched against titles, URLs and tags."},
        "limit": {"type": "integer", "minimum": 1, "maximum": 20, "description": "Maximum results to return."},
    },
    "required": ["query"],
    "additionalProperties": False,
}

_GET_BOOKMARK_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "description": "Bookmark identifier returned by search."},
    },
    "required": ["id"],
    "additionalProperties": False,
}

_EXIT_COMMANDS = {"/quit", "/exit", ":q"}


def build_demo_registry(
    bookmarks: Sequence[Mapping[str, Any]] = DEMO_BOOKMARKS,
    *,
    cache: ToolResultCache | None = None,
) -> ToolRegistry:
    """Register the ``search`` and ``get_bookmark`` tools over ``bookmarks``."""

    library = [dict(bookmark) for bookmark in bookmarks]
    registry = ToolRegistry(cache=cache)

    def search(params: Mapping[str, Any]) -> dict[str, Any]:
        terms = [term for term in str(params["query"]).lower().split() if term]
        limit = int(params.get("limit") or 10)
        matches = [bookmark for bookmark in library if _matches(bookmark, terms)]
        results = [
            {"id": bookmark["id"], "title": bookmark["title"], "url": bookmark["url"]}
            for bookmark in matches[:limit]
        ]
        return {"results": results, "total": len(matches)}

    def get_bookmark(params: Mapping[str, Any]) -> ToolResult:
        for bookmark in library:
            if bookmark["id"] == params["id"]:
                return ToolResult.ok(dict(bookmark))
        return ToolResult.fail(f"Bookmark {params['id']} not found")

    registry.register_function(
        ToolSpec(
            name="search",
            description="Search saved bookmarks by keyword.",
            parameters=_SEARCH_SCHEMA,
            cacheable=True,
        ),
        search,
    )
    registry.register_function(
        ToolSpec(
            name="get_bookmark",
            description="Fetch one bookmark's full details by id.",
            parameters=_GET_BOOKMARK_SCHEMA,
        ),
        get_bookmark,
    )
    return registry


def _matches(bookmark: Mapping[str, Any], terms: Sequence[str]) -> bool:
    if not terms:
        return True
    haystack = " ".join(
        [str(bookmark.get("title", "")), str(bookmark.get("url", "")), *map(str, bookmark.get("tags", ()))]
    ).lower()
    return any(term in haystack for term in terms)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Chat with the AnyMark bookmark agent over a demo library.")
    parser.add_argument("--prompt", help="Send a single prompt and exit instead of starting a REPL.")
    parser.add_argument("--stream", action="store_true", help="Print tokens as they stream from the model.")
    parser.add_argument("--provider", help="Provider preset name (openai, deepseek, ollama, ...).")
    parser.add_argument("--model", help="Model identifier overriding the provider preset.")
    parser.add_argument("--base-url", dest="base_url", help="Endpoint overriding the provider preset.")
    parser.add_argument("--settings", type=Path, help="Path to an alternate settings.json file.")
    parser.add_argument("--log-dir", type=Path, help="Directory for the rotating log file.")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level on the console.")
    args = parser.parse_args(argv)

    overrides = {"provider": args.provider, "model": args.model, "base_url": args.base_url}
    settings = SettingsStore(args.settings).load(overrides=overrides)
    configure_from_settings(settings, log_dir=args.log_dir, console=args.verbose, verbose=args.verbose)

    orchestrator = AgentOrchestrator(
        AIClient(settings.client_settings()),
        registry=build_demo_registry(cache=ToolResultCache()),
        config=settings.agent_config(),
    )
    try:
        return asyncio.run(_run(orchestrator, prompt=args.prompt, stream=args.stream))
    except KeyboardInterrupt:
        return 130


async def _run(orchestrator: AgentOrchestrator, *, prompt: str | None, stream: bool) -> int:
    try:
        if prompt is not None:
            response = await _ask(orchestrator, prompt, stream=stream)
            return 0 if response.success else 1
        await _repl(orchestrator, stream=stream)
        return 0
    finally:
        await orchestrator.aclose()


async def _repl(orchestrator: AgentOrchestrator, *, stream: bool) -> None:
    print("AnyMark agent demo. Type /clear to reset, /quit to exit.")
    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            print()
            return
        text = line.strip()
        if not text:
            continue
        if text in _EXIT_COMMANDS:
            return
        if text == "/clear":
            orchestrator.clear_conversation()
            print("Conversation cleared.")
            continue
        await _ask(orchestrator, text, stream=stream)


async def _ask(orchestrator: AgentOrchestrator, prompt: str, *, stream: bool) -> AgentResponse:
    callbacks = None
    if stream:
        callbacks = ProgressCallbacks(on_token=lambda token: print(token, end="", flush=True))
    response = await orchestrator.chat(prompt, callbacks=callbacks)
    _print_response(response, streamed=stream)
    return response


def _print_response(response: AgentResponse, *, streamed: bool) -> None:
    if streamed:
        print()
    if not streamed or not response.success:
        print(response.message)
    if response.tools_used:
        print(f"[tools: {', '.join(response.tools_used)}]")
    if not response.success and response.error:
        print(f"[error: {response.error}]", file=sys.stderr)
    for suggestion in response.suggestions:
        print(f"  - {suggestion}")


if __name__ == "__main__":
    raise SystemExit(main())
