"""Lossy compaction of a conversation timeline.

Compaction splits the timeline into ``old`` (everything but the last
``keep_recent_count`` messages) and ``recent``. From ``old`` every non-tool
message is kept verbatim so user intent and assistant replies are never lost.
Tool results survive only when their tool name is on the configured
allow-list, and then only as a one-line summary of the latest such result per
tool name; every other tool message is dropped. The raw payloads cannot be
recovered afterwards.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from typing import Any, Callable, Iterable, Mapping, Sequence

from ..types import Message

__all__ = [
    "Summarizer",
    "DEFAULT_SUMMARIZERS",
    "COMPACTED_KEY",
    "compact_messages",
    "summarize_tool_message",
]

LOGGER = logging.getLogger(__name__)

COMPACTED_KEY = "compacted"

Summarizer = Callable[[Mapping[str, Any]], str]


def _count(data: Mapping[str, Any], *keys: str) -> int:
    for key in keys:
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
        if isinstance(value, list):
            return len(value)
    return 0


def _summarize_search(data: Mapping[str, Any]) -> str:
    return f"found {_count(data, 'count', 'total', 'results')} results"


def _summarize_organize(data: Mapping[str, Any]) -> str:
    if "analyzed_count" in data or "analyzedCount" in data:
        return f"analyzed {_count(data, 'analyzed_count', 'analyzedCount')} bookmarks"
    if "success_count" in data or "successCount" in data or "moved" in data:
        return f"moved {_count(data, 'success_count', 'successCount', 'moved')} bookmarks"
    message = data.get("message")
    return str(message) if message else "operation completed"


def _summarize_context(data: Mapping[str, Any]) -> str:
    return f"fetched context for {_count(data, 'total', 'count', 'bookmarks')} bookmarks"


DEFAULT_SUMMARIZERS: Mapping[str, Summarizer] = {
    "search": _summarize_search,
    "organize": _summarize_organize,
    "context": _summarize_context,
}


def summarize_tool_message(
    message: Message,
    summarizers: Mapping[str, Summarizer] | None = None,
) -> Message:
    """Replace a tool message's payload with a compact JSON summary.

    The role, name and ``tool_call_id`` are preserved. Payloads that are not
    JSON objects collapse to a generic summary.
    """

    lookup = DEFAULT_SUMMARIZERS if summarizers is None else summarizers
    try:
        payload = json.loads(message.content or "")
    except (TypeError, ValueError):
        payload = None

    if isinstance(payload, Mapping):
        data = payload.get("data")
        if not isinstance(data, Mapping):
            data = {}
        summary: dict[str, Any] = {"success": bool(payload.get("success", True))}
        summarizer = lookup.get(message.name or "")
        if summarizer is not None:
            summary["summary"] = summarizer(data)
        else:
            summary["summary"] = str(payload.get("message") or payload.get("error") or "operation succeeded")
        results = data.get("results")
        if isinstance(results, list):
            titles = [str(item.get("title")) for item in results[:3] if isinstance(item, Mapping) and item.get("title")]
            if titles:
                summary["top_results"] = titles
        if payload.get("error"):
            summary["error"] = str(payload["error"])
    else:
        summary = {"success": True, "summary": "operation completed"}

    metadata = dict(message.metadata)
    metadata[COMPACTED_KEY] = True
    return dataclasses.replace(
        message,
        content=json.dumps(summary, ensure_ascii=False),
        metadata=metadata,
    )


def compact_messages(
    messages: Sequence[Message],
    *,
    keep_recent_count: int,
    summarized_tools: Iterable[str],
    summarizers: Mapping[str, Summarizer] | None = None,
) -> list[Message]:
    """Return the compacted timeline.

    Args:
        messages: Timeline to compact (not modified).
        keep_recent_count: Number of trailing messages kept untouched.
        summarized_tools: Tool names whose latest result survives as a summary.
        summarizers: Optional per-tool summary functions.

    Returns:
        ``retained_old + recent``; the input itself when nothing is old.
    """

    if len(messages) <= keep_recent_count:
        return list(messages)

    split = len(messages) - keep_recent_count
    old = messages[:split]
    recent = messages[split:]
    allowed = set(summarized_tools)

    latest_by_tool: dict[str, int] = {}
    for position, message in enumerate(old):
        if message.role == "tool" and message.name in allowed:
            latest_by_tool[message.name] = position  # type: ignore[index]
    keep_positions = set(latest_by_tool.values())

    retained: list[Message] = []
    dropped = 0
    for position, message in enumerate(old):
        if message.role != "tool":
            retained.append(message)
        elif position in keep_positions:
            if message.metadata.get(COMPACTED_KEY):
                retained.append(message)
            else:
                retained.append(summarize_tool_message(message, summarizers))
        else:
            dropped += 1

    LOGGER.debug(
        "Compacted timeline: %d old -> %d retained (%d tool results dropped, %d recent kept)",
        len(old),
        len(retained),
        dropped,
        len(recent),
    )
    return retained + list(recent)
