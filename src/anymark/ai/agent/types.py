"""Request, response and configuration types for the agent loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Literal, Mapping

from ..errors import FailureKind
from ..types import Message, ToolCall

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "AgentConfig",
    "AgentResponse",
    "ProgressStage",
    "ProgressInfo",
    "ThinkingStep",
    "ThinkingKind",
    "DEFAULT_ACTION_GUIDANCE",
    "default_system_prompt",
]


# -----------------------------------------------------------------------------
# Model Interaction Types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ChatRequest:
    """One request to the model transport.

    Attributes:
        messages: Preamble plus bounded recent history.
        tools: Function-calling descriptors for every registered tool.
        tool_choice: Tool selection mode passed to the provider.
        temperature: Optional sampling temperature override.
        max_tokens: Optional completion length limit.
    """

    messages: tuple[Message, ...]
    tools: tuple[Mapping[str, Any], ...] = ()
    tool_choice: str = "auto"
    temperature: float | None = None
    max_tokens: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, "messages", tuple(self.messages))
        if not isinstance(self.tools, tuple):
            object.__setattr__(self, "tools", tuple(self.tools))


@dataclass(slots=True, frozen=True)
class ChatResponse:
    """Final shape of a model round-trip, buffered or streamed.

    Attributes:
        content: Assistant text, if any.
        tool_calls: Tool calls requested by the model, in the order received.
        finish_reason: Provider finish reason, when reported.
        usage: Provider token usage, when reported.
    """

    content: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None
    usage: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

DEFAULT_ACTION_GUIDANCE: dict[str, str] = {
    "search": "User wants to search their saved bookmarks. Use the search tool with a query.",
    "discover": 'User wants to discover new resources on the web. Use the discover tool with action "web".',
    "trending": 'User wants to see trending GitHub projects. Use the discover tool with action "trending".',
    "organize": (
        'User wants to organize bookmarks. Use context({"action": "overview"}) first, '
        'then organize({"action": "suggest"}).'
    ),
    "chat": "User wants casual conversation. No specific tool preference.",
}


def default_system_prompt(today: date | None = None) -> str:
    """Bookmark assistant preamble stamped with today's date."""

    stamp = (today or date.today()).isoformat()
    return f"""You are AnyMark's bookmark manager - a friendly assistant helping users organize and find their bookmarks.

Today: {stamp}

## Your Role
- Help users manage their bookmark collection
- Reply in the user's language naturally
- Casual chat is fine without using tools
- Ask for confirmation before bulk or destructive operations

## Domain Knowledge
- Browser folders (folder_path) are real bookmark folders in the browser
- AI folders (ai_folder_path) are a virtual classification made by AI
- Decay status: active (7d) -> cooling (30d) -> cold (90d) -> frozen (90d+)
- Frecency is an importance score based on visit frequency and recency

## Guidelines
- search finds the user's SAVED bookmarks; discover finds NEW resources online
- context is READ-ONLY (overview, stats, folders); organize analyzes and acts (find problems, suggest, move)
- Always mention the folder path in results
- Use function calling only (no tool calls in text)
- Combine multiple tools when a task needs it
- Summarize results clearly
- If the user's intent is unclear, ask instead of guessing"""


@dataclass(slots=True)
class AgentConfig:
    """Tunable parameters for :class:`~anymark.ai.agent.orchestrator.AgentOrchestrator`.

    Attributes:
        max_history_length: Messages of recent history included in each request.
        max_tool_calls: Hard cap on model round-trips per user turn.
        system_prompt: Preamble installed once per conversation.
        temperature: Optional sampling temperature forwarded to the transport.
        parallel_tool_calls: Run the calls of one round concurrently.
        action_guidance: Quick-action name to one-off system hint.
        tool_display_names: Human-readable tool names for progress messages.
    """

    max_history_length: int = 50
    max_tool_calls: int = 10
    system_prompt: str = field(default_factory=default_system_prompt)
    temperature: float | None = None
    parallel_tool_calls: bool = False
    action_guidance: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ACTION_GUIDANCE))
    tool_display_names: dict[str, str] = field(default_factory=dict)

    def clamp(self) -> AgentConfig:
        """Clamp values into safe operating ranges and return ``self``."""

        self.max_history_length = max(2, int(self.max_history_length or 2))
        self.max_tool_calls = max(1, int(self.max_tool_calls or 1))
        return self

    def display_name(self, tool_name: str) -> str:
        return self.tool_display_names.get(tool_name, tool_name)


# -----------------------------------------------------------------------------
# Progress Types
# -----------------------------------------------------------------------------


class ProgressStage(str, Enum):
    THINKING = "thinking"
    TOOL_CALLING = "tool_calling"
    TOOL_EXECUTING = "tool_executing"
    RESPONDING = "responding"


@dataclass(slots=True, frozen=True)
class ProgressInfo:
    """Stage transition reported on the progress channel."""

    stage: ProgressStage
    message: str
    tool_name: str | None = None
    tool_index: int | None = None
    total_tools: int | None = None


ThinkingKind = Literal["thinking", "tool", "result", "error"]


@dataclass(slots=True, frozen=True)
class ThinkingStep:
    """Human-readable trace entry describing what the agent is doing."""

    id: str
    message: str
    timestamp: float
    kind: ThinkingKind = "thinking"


# -----------------------------------------------------------------------------
# Agent Response
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class AgentResponse:
    """Outcome of one user turn.

    Attributes:
        message: Final assistant text (or the fallback text on failure).
        tools_used: Distinct tool names invoked during the turn, in first-use order.
        suggestions: Follow-up prompts for the user.
        success: ``False`` when the turn was aborted by a transport failure.
        failure_kind: Classification of the failure, when ``success`` is ``False``.
        error: Raw error text of the failure.
        iterations: Model round-trips performed.
        cancelled: The turn was cancelled while waiting on the transport.
        max_iterations_reached: The iteration cap stopped the loop.
    """

    message: str
    tools_used: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    success: bool = True
    failure_kind: FailureKind | None = None
    error: str | None = None
    iterations: int = 0
    cancelled: bool = False
    max_iterations_reached: bool = False
