"""Tests for shared message types."""

from __future__ import annotations

import json

import pytest

from anymark.ai.tools import ToolResult, ToolSpec
from anymark.ai.types import Message, ToolCall


def test_tool_call_parses_arguments() -> None:
    assert ToolCall(id="1", name="search", arguments='{"query": "x"}').parse_arguments() == {"query": "x"}
    assert ToolCall(id="1", name="search", arguments="").parse_arguments() == {}


@pytest.mark.parametrize("raw", ["{oops", "[1, 2]", '"text"'])
def test_tool_call_rejects_non_object_arguments(raw: str) -> None:
    with pytest.raises(ValueError):
        ToolCall(id="1", name="search", arguments=raw).parse_arguments()


def test_tool_call_reports_deeply_nested_arguments_as_value_error() -> None:
    with pytest.raises(ValueError, match="nested too deeply"):
        ToolCall(id="1", name="search", arguments="[" * 100_000).parse_arguments()


def test_tool_call_from_dict_accepts_openai_and_flat_shapes() -> None:
    nested = ToolCall.from_dict({"id": "a", "type": "function", "function": {"name": "search", "arguments": "{}"}})
    flat = ToolCall.from_dict({"id": "b", "name": "search", "arguments": {"query": "x"}})

    assert nested == ToolCall(id="a", name="search", arguments="{}")
    assert flat.parse_arguments() == {"query": "x"}


def test_chat_params_for_each_role() -> None:
    call = ToolCall(id="c1", name="search", arguments="{}")

    assert Message.user("hi").to_chat_param() == {"role": "user", "content": "hi"}
    assert Message.assistant(None, tool_calls=[call]).to_chat_param() == {
        "role": "assistant",
        "content": None,
        "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "search", "arguments": "{}"}}],
    }
    assert Message.assistant(None).to_chat_param() == {"role": "assistant", "content": ""}
    assert Message.tool('{"success": true}', tool_call_id="c1", name="search").to_chat_param() == {
        "role": "tool",
        "content": '{"success": true}',
        "tool_call_id": "c1",
    }


def test_message_dict_round_trip_keeps_metadata() -> None:
    original = Message.tool("{}", tool_call_id="c1", name="search", compacted=True)

    restored = Message.from_dict(json.loads(json.dumps(original.to_dict())))

    assert restored == original


def test_tool_result_serialization_omits_empty_fields() -> None:
    assert json.loads(ToolResult.ok({"n": 1}).to_json()) == {"success": True, "data": {"n": 1}}
    assert ToolResult.fail("nope").to_dict() == {"success": False, "error": "nope"}


def test_tool_spec_openai_descriptor() -> None:
    spec = ToolSpec(name="search", description="Search", parameters={"type": "object", "properties": {}})

    assert spec.to_openai_tool() == {
        "type": "function",
        "function": {"name": "search", "description": "Search", "parameters": {"type": "object", "properties": {}}},
    }
