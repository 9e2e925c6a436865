"""Tests for lossy timeline compaction."""

from __future__ import annotations

import json

from anymark.ai.context import compact_messages, summarize_tool_message
from anymark.ai.tools import ToolResult
from anymark.ai.types import Message

ALLOWED = ("search", "organize", "context")


def _tool(name: str, data: object, call_id: str) -> Message:
    return Message.tool(ToolResult.ok(data).to_json(), tool_call_id=call_id, name=name)


def _scenario() -> list[Message]:
    return [
        Message.user("organize my python bookmarks"),
        _tool("context", {"total": 40}, "c1"),
        _tool("search", {"results": [{"id": "a", "title": "A"}], "count": 1}, "c2"),
        _tool("search", {"results": [{"id": "b", "title": "B"}, {"id": "c", "title": "C"}], "count": 2}, "c3"),
        _tool("discover", {"items": [1, 2, 3]}, "c4"),
        _tool("organize", {"analyzed_count": 12}, "c5"),
        Message.assistant("I analyzed your bookmarks."),
        Message.user("move them"),
        _tool("organize", {"success_count": 3}, "c6"),
        Message.assistant("Moved 3 bookmarks."),
        Message.user("thanks"),
        Message.assistant("You're welcome."),
    ]


def test_scenario_compacts_to_bounded_history() -> None:
    messages = _scenario()

    compacted = compact_messages(messages, keep_recent_count=5, summarized_tools=ALLOWED)

    assert len(compacted) <= 10
    assert compacted[-5:] == messages[-5:]
    summarized = [m for m in compacted[:-5] if m.role == "tool"]
    assert sorted(m.name for m in summarized) == ["context", "organize", "search"]
    assert all(m.metadata.get("compacted") for m in summarized)
    assert [m.tool_call_id for m in summarized] == ["c1", "c3", "c5"]


def test_user_and_assistant_messages_are_never_dropped() -> None:
    messages = _scenario()

    compacted = compact_messages(messages, keep_recent_count=2, summarized_tools=())

    kept = [m for m in compacted if m.role in ("user", "assistant")]
    assert kept == [m for m in messages if m.role in ("user", "assistant")]
    assert [m for m in compacted if m.role == "tool"] == []


def test_short_timelines_are_returned_unchanged() -> None:
    messages = _scenario()[:4]

    assert compact_messages(messages, keep_recent_count=5, summarized_tools=ALLOWED) == messages


def test_summaries_use_domain_phrasing() -> None:
    search = json.loads(summarize_tool_message(_scenario()[3]).content or "")
    analyzed = json.loads(summarize_tool_message(_tool("organize", {"analyzed_count": 12}, "x")).content or "")
    moved = json.loads(summarize_tool_message(_tool("organize", {"success_count": 3}, "x")).content or "")
    context = json.loads(summarize_tool_message(_tool("context", {"total": 40}, "x")).content or "")

    assert search == {"success": True, "summary": "found 2 results", "top_results": ["B", "C"]}
    assert analyzed["summary"] == "analyzed 12 bookmarks"
    assert moved["summary"] == "moved 3 bookmarks"
    assert context["summary"] == "fetched context for 40 bookmarks"


def test_summary_keeps_identity_and_error() -> None:
    message = Message.tool(ToolResult.fail("quota exceeded").to_json(), tool_call_id="c9", name="search")

    summarized = summarize_tool_message(message)

    assert summarized.tool_call_id == "c9"
    assert summarized.name == "search"
    payload = json.loads(summarized.content or "")
    assert payload["success"] is False
    assert payload["error"] == "quota exceeded"


def test_non_json_payload_gets_generic_summary() -> None:
    summarized = summarize_tool_message(Message.tool("raw text", tool_call_id="c1", name="search"))

    assert json.loads(summarized.content or "") == {"success": True, "summary": "operation completed"}


def test_already_compacted_messages_are_not_resummarized() -> None:
    first = compact_messages(_scenario(), keep_recent_count=5, summarized_tools=ALLOWED)
    padded = first + [Message.user("more"), Message.assistant("sure")]

    second = compact_messages(padded, keep_recent_count=2, summarized_tools=ALLOWED)

    summaries = {m.tool_call_id: m.content for m in first if m.metadata.get("compacted")}
    for message in second:
        if message.tool_call_id in summaries:
            assert message.content == summaries[message.tool_call_id]
