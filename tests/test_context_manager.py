"""Tests for the conversation context manager."""

from __future__ import annotations

import json

import pytest

from anymark.ai.context import ContextConfig, ContextManager, EntityRef, ReferenceKind
from anymark.ai.tools import ToolResult
from anymark.ai.types import Message, ToolCall


def _tool_message(name: str, data: object, *, call_id: str = "call_1") -> Message:
    return Message.tool(ToolResult.ok(data).to_json(), tool_call_id=call_id, name=name)


def test_initialize_system_only_once() -> None:
    manager = ContextManager()

    assert manager.initialize_system("first") is True
    assert manager.initialize_system("second") is False
    assert manager.system_message is not None
    assert manager.system_message.content == "first"
    assert manager.is_initialized is True


def test_requests_start_with_preamble(context_manager: ContextManager) -> None:
    context_manager.add_message(Message.user("hi"))
    context_manager.add_message(Message.assistant("hello"))

    messages = context_manager.get_messages_for_request()

    assert [message.role for message in messages] == ["system", "user", "assistant"]
    assert context_manager.message_count == 2


def test_get_history_limits_and_excludes_preamble(context_manager: ContextManager) -> None:
    for index in range(5):
        context_manager.add_message(Message.user(f"m{index}"))

    assert [message.content for message in context_manager.get_history(2)] == ["m3", "m4"]
    assert len(context_manager.get_history()) == 5
    assert context_manager.get_history(0) == []


def test_request_window_keeps_preamble_when_history_is_trimmed(context_manager: ContextManager) -> None:
    for index in range(10):
        context_manager.add_message(Message.user(f"m{index}"))

    messages = context_manager.get_messages_for_request(3)

    assert messages[0].role == "system"
    assert [message.content for message in messages[1:]] == ["m7", "m8", "m9"]


def test_clear_keeps_preamble_but_reset_drops_it(context_manager: ContextManager, sample_results) -> None:
    context_manager.add_message(Message.user("hi"))
    context_manager.set_last_search_results(sample_results)

    context_manager.clear()

    assert context_manager.message_count == 0
    assert context_manager.last_search_results == []
    assert context_manager.last_mentioned == []
    assert context_manager.is_initialized is True

    context_manager.reset()
    assert context_manager.is_initialized is False
    assert context_manager.initialize_system("again") is True


def test_search_results_are_extracted_from_tool_messages(context_manager: ContextManager, sample_results) -> None:
    context_manager.add_message(_tool_message("search", {"results": sample_results, "total": 3}))

    assert [item["id"] for item in context_manager.last_search_results] == ["bm-1", "bm-2", "bm-3"]
    assert context_manager.last_mentioned[0] == EntityRef(id="bm-1", title="Python asyncio docs")


def test_single_entity_payload_sets_last_mentioned(context_manager: ContextManager, sample_results) -> None:
    context_manager.set_last_search_results(sample_results)
    context_manager.add_message(_tool_message("get_bookmark", {"id": "bm-9", "title": "Flask"}))

    assert context_manager.last_mentioned == [EntityRef(id="bm-9", title="Flask")]
    assert len(context_manager.last_search_results) == 3


def test_non_json_tool_content_is_ignored(context_manager: ContextManager) -> None:
    context_manager.add_message(Message.tool("plain text", tool_call_id="c1", name="search"))

    assert context_manager.last_search_results == []
    assert context_manager.message_count == 1


def test_resolve_reference_uses_extracted_results(context_manager: ContextManager, sample_results) -> None:
    context_manager.add_message(_tool_message("search", {"results": sample_results}))

    reference = context_manager.resolve_reference("open the second one")

    assert reference is not None
    assert reference.kind is ReferenceKind.SEARCH_RESULT
    assert reference.id == "bm-2"
    assert reference.index == 1


def test_last_search_results_returns_a_copy(context_manager: ContextManager, sample_results) -> None:
    context_manager.set_last_search_results(sample_results)

    context_manager.last_search_results[0]["id"] = "mutated"

    assert context_manager.last_search_results[0]["id"] == "bm-1"


def test_compaction_keeps_timeline_under_threshold() -> None:
    manager = ContextManager(ContextConfig(max_messages=50, compress_threshold=10, keep_recent_count=5))
    manager.initialize_system("sys")
    manager.add_message(Message.user("find python"))
    manager.add_message(_tool_message("search", {"results": [{"id": "a", "title": "A"}]}, call_id="c1"))
    manager.add_message(_tool_message("search", {"results": [{"id": "b", "title": "B"}]}, call_id="c2"))
    manager.add_message(_tool_message("discover", {"items": []}, call_id="c3"))
    manager.add_message(_tool_message("discover", {"items": []}, call_id="c4"))
    manager.add_message(_tool_message("organize", {"moved": 2}, call_id="c5"))
    manager.add_message(Message.assistant("found two"))
    for index in range(5):
        role_message = Message.user(f"u{index}") if index % 2 == 0 else Message.assistant(f"a{index}")
        manager.add_message(role_message)

    messages = manager.get_all_messages()
    history = manager.get_history()

    assert messages[0].role == "system"
    assert len(history) <= 10
    assert [m.content for m in history[-5:]] == ["u0", "a1", "u2", "a3", "u4"]
    assert [m.content for m in history if m.role == "user"] == ["find python", "u0", "u2", "u4"]
    assert [m.tool_call_id for m in history if m.role == "tool"] == ["c2", "c5"]
    # Reference indices are unaffected by compaction.
    assert manager.last_search_results == [{"id": "b", "title": "B"}]


def test_compaction_summarizes_only_the_latest_allowed_tool_result() -> None:
    manager = ContextManager(ContextConfig(compress_threshold=7, keep_recent_count=2))
    manager.add_message(Message.user("find python"))
    manager.add_message(_tool_message("search", {"results": [{"id": "a", "title": "A"}], "total": 1}, call_id="c1"))
    manager.add_message(_tool_message("search", {"results": [{"id": "b", "title": "B"}], "total": 1}, call_id="c2"))
    manager.add_message(_tool_message("discover", {"items": [1, 2]}, call_id="c3"))
    manager.add_message(Message.assistant("found"))
    manager.add_message(Message.user("thanks"))
    manager.add_message(Message.assistant("welcome"))

    history = manager.get_history()
    tools = [message for message in history if message.role == "tool"]

    assert len(tools) == 1
    assert tools[0].tool_call_id == "c2"
    assert tools[0].metadata["compacted"] is True
    assert json.loads(tools[0].content or "") == {"success": True, "summary": "found 1 results", "top_results": ["B"]}
    assert [message.content for message in history[-2:]] == ["thanks", "welcome"]


def test_export_and_import_round_trip(context_manager: ContextManager, sample_results) -> None:
    context_manager.add_message(Message.user("find"))
    context_manager.add_message(_tool_message("search", {"results": sample_results}))
    snapshot = json.loads(json.dumps(context_manager.export_state()))

    restored = ContextManager()
    restored.import_state(snapshot)

    assert [m.role for m in restored.get_history()] == ["user", "tool"]
    assert restored.last_search_results == sample_results
    assert restored.last_mentioned[0].id == "bm-1"
    assert restored.is_initialized is False
    assert "system" not in [m["role"] for m in snapshot["messages"]]


def test_import_accepts_camel_case_indices() -> None:
    manager = ContextManager()
    manager.import_state(
        {
            "messages": [{"role": "user", "content": "hi", "timestamp": 1.0}],
            "lastSearchResults": [{"id": "x", "title": "X"}],
            "lastMentionedEntities": [{"id": "x", "title": "X"}],
        }
    )

    assert manager.last_search_results == [{"id": "x", "title": "X"}]
    assert manager.last_mentioned == [EntityRef(id="x", title="X")]


def test_import_rejects_unknown_roles() -> None:
    manager = ContextManager()

    with pytest.raises(ValueError):
        manager.import_state({"messages": [{"role": "robot", "content": "?"}]})


def test_config_validation() -> None:
    with pytest.raises(ValueError):
        ContextConfig(max_messages=0)
    assert ContextConfig(summarized_tools=["search"]).summarized_tools == ("search",)
