"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest

from anymark.ai.context import ContextConfig, ContextManager


@pytest.fixture
def sample_results() -> list[dict]:
    return [
        {"id": "bm-1", "title": "Python asyncio docs", "url": "https://docs.python.org/3/library/asyncio.html"},
        {"id": "bm-2", "title": "httpx", "url": "https://www.python-httpx.org/"},
        {"id": "bm-3", "title": "tenacity", "url": "https://github.com/jd/tenacity"},
    ]


@pytest.fixture
def context_manager() -> ContextManager:
    manager = ContextManager(ContextConfig())
    manager.initialize_system("You are a bookmark assistant.")
    return manager


@pytest.fixture(autouse=True)
def _isolate_anymark_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in (
        "ANYMARK_API_KEY",
        "ANYMARK_BASE_URL",
        "ANYMARK_MODEL",
        "ANYMARK_PROVIDER",
        "ANYMARK_LOG_LEVEL",
        "ANYMARK_DEBUG_LOGGING",
        "ANYMARK_PARALLEL_TOOL_CALLS",
        "ANYMARK_REQUEST_TIMEOUT",
        "ANYMARK_TEMPERATURE",
        "ANYMARK_MAX_TOOL_CALLS",
        "ANYMARK_MAX_HISTORY_LENGTH",
        "ANYMARK_MAX_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ANYMARK_LOG_DIR", str(tmp_path / "logs"))
    logging.getLogger("anymark").setLevel(logging.DEBUG)
