"""Contract between the orchestrator and a model transport."""

from __future__ import annotations

from typing import Callable, Protocol, Sequence, runtime_checkable

from ..types import ToolCall
from .types import ChatRequest, ChatResponse

__all__ = ["ModelTransport", "TokenCallback", "ToolCallCallback"]

TokenCallback = Callable[[str], object]
ToolCallCallback = Callable[[Sequence[ToolCall]], object]


@runtime_checkable
class ModelTransport(Protocol):
    """Sends chat and tool-calling requests to an LLM provider.

    Both methods converge on the same :class:`ChatResponse` shape. Failures
    are raised as exceptions whose type, ``status_code`` or message can be
    classified by :func:`anymark.ai.errors.classify_failure`. Timeouts are
    the transport's concern and surface as ordinary failures.
    """

    async def chat(self, request: ChatRequest) -> ChatResponse:
        ...

    async def chat_stream(
        self,
        request: ChatRequest,
        *,
        on_token: TokenCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
    ) -> ChatResponse:
        ...
