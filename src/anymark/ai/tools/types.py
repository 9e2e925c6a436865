"""Tool system types for the agent core.

This module defines the contracts shared between the tool registry and the
collaborators that implement bookmark capabilities (search, organize, ...).
"""

from __future__ import annotations

import inspect
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Protocol, runtime_checkable

__all__ = [
    "ToolResult",
    "ToolSpec",
    "ToolHandler",
    "Tool",
    "SimpleTool",
]


# -----------------------------------------------------------------------------
# Tool Result
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ToolResult:
    """Outcome of a single tool invocation.

    Tool failures are data, not exceptions: the registry converts every
    problem into ``success=False`` with an ``error`` message that is fed back
    to the model on its next turn.

    Attributes:
        success: Whether the tool completed successfully.
        data: Tool specific payload (any JSON serializable value).
        error: Human-readable failure description.
    """

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the payload shape sent back to the model."""
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier for the tool.
        description: Human-readable description of what the tool does.
        parameters: JSON Schema for the tool's parameters.
        cacheable: Whether successful results may be served from the result cache.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    cacheable: bool = False

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


# -----------------------------------------------------------------------------
# Tool Protocol
# -----------------------------------------------------------------------------

ToolHandler = Callable[[Mapping[str, Any]], "Any | Awaitable[Any]"]


@runtime_checkable
class Tool(Protocol):
    """Protocol for tool implementations.

    Implementations receive only validated, type-coerced parameters and may
    assume required fields are present. They are free to raise; the registry
    converts exceptions into failed :class:`ToolResult` values.
    """

    @property
    def name(self) -> str:
        ...

    @property
    def spec(self) -> ToolSpec:
        ...

    async def execute(self, params: Mapping[str, Any]) -> ToolResult:
        ...


# -----------------------------------------------------------------------------
# Simple Tool Implementation
# -----------------------------------------------------------------------------


@dataclass
class SimpleTool:
    """Tool implementation wrapping a plain callable.

    The handler may be synchronous or a coroutine function. Return values that
    are not already a :class:`ToolResult` are wrapped as successful data.

    Example:
        def search(params):
            return {"results": store.search(params["query"])}

        tool = SimpleTool(
            spec=ToolSpec(name="search", description="Search bookmarks", parameters=schema),
            handler=search,
        )
    """

    spec: ToolSpec
    handler: ToolHandler

    @property
    def name(self) -> str:
        return self.spec.name

    async def execute(self, params: Mapping[str, Any]) -> ToolResult:
        outcome = self.handler(params)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if isinstance(outcome, ToolResult):
            return outcome
        return ToolResult.ok(outcome)
