"""Tests for the terminal agent demo."""

from __future__ import annotations

from pathlib import Path

import pytest

from anymark.scripts import agent_demo

from tests.helpers import ScriptedTransport, reply, tool_call


@pytest.fixture
def scripted(monkeypatch: pytest.MonkeyPatch) -> ScriptedTransport:
    transport = ScriptedTransport(
        [reply(None, tool_call("search", {"query": "python"})), reply("You have 3 Python bookmarks")]
    )
    monkeypatch.setattr(agent_demo, "AIClient", lambda settings: transport)
    monkeypatch.setattr(agent_demo, "configure_from_settings", lambda *args, **kwargs: None)
    return transport


def test_single_prompt_runs_agent_and_prints_reply(
    scripted: ScriptedTransport, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = agent_demo.main(["--prompt", "find python", "--settings", str(tmp_path / "settings.json")])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "You have 3 Python bookmarks" in out
    assert "[tools: search]" in out
    assert scripted.closed is True


def test_stream_flag_prints_tokens(scripted: ScriptedTransport, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = agent_demo.main(["--prompt", "find python", "--stream", "--settings", str(tmp_path / "settings.json")])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert scripted.stream_calls == 2
    assert out.count("You have 3 Python bookmarks") == 1


def test_failed_turn_returns_non_zero(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    transport = ScriptedTransport([RuntimeError("boom")])
    monkeypatch.setattr(agent_demo, "AIClient", lambda settings: transport)
    monkeypatch.setattr(agent_demo, "configure_from_settings", lambda *args, **kwargs: None)

    assert agent_demo.main(["--prompt", "hi", "--settings", str(tmp_path / "settings.json")]) == 1


@pytest.mark.asyncio
async def test_demo_registry_search_and_lookup() -> None:
    registry = agent_demo.build_demo_registry()

    search = await registry.execute("search", {"query": "python", "limit": "2"})
    found = await registry.execute("get_bookmark", {"id": "bm-2"})
    missing = await registry.execute("get_bookmark", {"id": "nope"})
    rejected = await registry.execute("search", {"query": "x", "sort": "recent"})

    assert search.success is True
    assert [item["id"] for item in search.data["results"]] == ["bm-1", "bm-2"]
    assert search.data["total"] == 3
    assert found.data["title"] == "httpx"
    assert missing.error == "Bookmark nope not found"
    assert rejected.error == "Invalid parameters: Unknown parameter: sort"


@pytest.mark.asyncio
async def test_demo_search_matches_tags() -> None:
    registry = agent_demo.build_demo_registry()

    result = await registry.execute("search", {"query": "schema"})

    assert [item["id"] for item in result.data["results"]] == ["bm-4"]
