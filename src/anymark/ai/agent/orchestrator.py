"""Agent orchestrator: the bounded tool-calling loop.

One call to :meth:`AgentOrchestrator.chat` turns one user utterance into one
final assistant utterance::

    resolve references -> append user message
    loop (at most max_tool_calls model round-trips):
        build request (preamble + recent history + tool catalog)
        call the model transport (buffered or streamed)
        no tool calls -> append final assistant message, done
        otherwise execute each call in order, append one tool message per call

The orchestrator owns its registry, context manager and transport; nothing is
shared through module globals.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import inspect
import logging
import uuid
from typing import Any, Mapping, Sequence

from ..context import ContextConfig, ContextManager
from ..errors import classify_failure, fallback_for
from ..tools import ToolRegistry, ToolResult
from ..types import Message, ToolCall
from .progress import ProgressCallbacks, ProgressReporter
from .transport import ModelTransport
from .types import AgentConfig, AgentResponse, ChatRequest, ChatResponse, ProgressInfo, ProgressStage

__all__ = ["AgentOrchestrator", "repair_tool_pairing"]

LOGGER = logging.getLogger(__name__)

EMPTY_REPLY = "Sorry, I couldn't put together a reply to that request."
MAX_ITERATIONS_NOTICE = (
    "I stopped because this request needed more tool steps than allowed. "
    "Please narrow it down or ask me to continue."
)

_TOOL_SUGGESTIONS: Mapping[str, tuple[str, ...]] = {
    "search": ("Open the first one", "Show more results"),
    "bookmark": ("View the bookmark", "Add tags"),
    "organize": ("Review the changes", "Keep organizing"),
    "discover": ("Save the first one", "Search for more"),
}
_DEFAULT_SUGGESTIONS: tuple[str, ...] = ("Search bookmarks", "Organize bookmarks", "Discover resources")
MAX_SUGGESTIONS = 3


class AgentOrchestrator:
    """Drives request, tool execution and continuation for one conversation.

    Turns are processed strictly sequentially. Tool calls from one model
    response run one at a time in request order unless
    ``AgentConfig.parallel_tool_calls`` is set; either way their result
    messages are appended in the original call order.

    Example:
        orchestrator = AgentOrchestrator(AIClient(settings), registry=registry)
        response = await orchestrator.chat("find my python bookmarks")
        response = await orchestrator.chat("open the second one")
    """

    def __init__(
        self,
        transport: ModelTransport,
        *,
        registry: ToolRegistry | None = None,
        context: ContextManager | None = None,
        config: AgentConfig | None = None,
    ) -> None:
        self._transport = transport
        self._registry = registry if registry is not None else ToolRegistry()
        self._config = (config or AgentConfig()).clamp()
        self._context = context if context is not None else ContextManager(
            ContextConfig(max_messages=self._config.max_history_length)
        )
        self._active_task: asyncio.Task[AgentResponse] | None = None
        self._turn_lock = asyncio.Lock()
        self.initialize()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def transport(self) -> ModelTransport:
        return self._transport

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def context(self) -> ContextManager:
        return self._context

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        task = self._active_task
        return task is not None and not task.done()

    # ------------------------------------------------------------------
    # Conversation lifecycle
    # ------------------------------------------------------------------
    def initialize(self) -> bool:
        """Attach the system preamble; a no-op when already initialized."""
        return self._context.initialize_system(self._config.system_prompt)

    def clear_conversation(self) -> None:
        self._context.clear()

    def get_history(self, limit: int | None = None) -> list[Message]:
        return self._context.get_history(limit)

    def export_conversation(self) -> dict[str, Any]:
        return self._context.export_state()

    def import_conversation(self, snapshot: Mapping[str, Any]) -> None:
        """Restore an exported conversation and reattach the preamble."""
        self._context.import_state(snapshot)
        self.initialize()

    def available_tools(self) -> list[str]:
        return self._registry.names()

    # ------------------------------------------------------------------
    # Turn execution
    # ------------------------------------------------------------------
    async def chat(
        self,
        user_message: str,
        *,
        quick_action: str | None = None,
        callbacks: ProgressCallbacks | None = None,
    ) -> AgentResponse:
        """Run one user turn to completion.

        Args:
            user_message: The user's utterance.
            quick_action: Optional quick-action name selecting a one-off hint.
            callbacks: Optional progress channel; ``on_token`` enables streaming.

        Returns:
            The final :class:`AgentResponse`. Transport failures and
            cancellation are reported in the response rather than raised.
        """
        async with self._turn_lock:
            reporter = ProgressReporter(callbacks)
            task = asyncio.create_task(self._run_turn(user_message, quick_action, reporter))
            self._active_task = task
            try:
                return await task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                # Only swallow cancellation that came from cancel(), not from our caller.
                if not task.cancelled() or (current is not None and current.cancelling()):
                    raise
                LOGGER.info("Chat turn cancelled")
                return AgentResponse(message="", success=False, cancelled=True, error="Turn was cancelled")
            finally:
                if self._active_task is task:
                    self._active_task = None

    def cancel(self) -> None:
        """Cancel the active chat turn."""
        task = self._active_task
        if task and not task.done():
            LOGGER.info("Cancelling active chat task (caller requested cancellation)")
            task.cancel()
        else:
            LOGGER.debug("cancel() called but no active task to cancel")

    async def aclose(self) -> None:
        """Cancel any running turn and close the transport."""
        task = self._active_task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            if self._active_task is task:
                self._active_task = None

        close = getattr(self._transport, "aclose", None)
        if callable(close):
            result = close()
            if inspect.isawaitable(result):
                await result

    async def _run_turn(
        self,
        user_message: str,
        quick_action: str | None,
        reporter: ProgressReporter,
    ) -> AgentResponse:
        reporter.step("Analyzing the request...")
        text = self._resolve_references(user_message)
        self._context.add_message(Message.user(text))

        guidance = self._config.action_guidance.get(quick_action) if quick_action else None
        tools = tuple(self._registry.to_openai_format())
        tools_used: list[str] = []
        iterations = 0
        capped = False

        reporter.progress(ProgressInfo(stage=ProgressStage.THINKING, message="Thinking..."))
        try:
            while True:
                request = self._build_request(tools, guidance)
                iterations += 1
                reporter.step("Sending request to the model...")
                response = await self._call_transport(request, reporter)
                if not response.tool_calls:
                    break
                if iterations >= self._config.max_tool_calls:
                    LOGGER.warning(
                        "Max tool iterations (%d) reached; dropping %d pending tool call(s)",
                        self._config.max_tool_calls,
                        len(response.tool_calls),
                    )
                    capped = True
                    break
                await self._run_tool_calls(response, tools_used, reporter)
                reporter.step("Analyzing tool results...")
                reporter.progress(ProgressInfo(stage=ProgressStage.RESPONDING, message="Writing a reply..."))
        except Exception as exc:
            return self._fallback(exc, tools_used, iterations, reporter)

        final_text = response.content or (MAX_ITERATIONS_NOTICE if capped else EMPTY_REPLY)
        self._context.add_message(Message.assistant(final_text))
        reporter.step("Reply complete", "result")

        result = AgentResponse(
            message=final_text,
            tools_used=tuple(tools_used),
            suggestions=self._suggestions(tools_used),
            iterations=iterations,
            max_iterations_reached=capped,
        )
        reporter.complete(result)
        return result

    async def _call_transport(self, request: ChatRequest, reporter: ProgressReporter) -> ChatResponse:
        if reporter.callbacks is not None and reporter.callbacks.wants_tokens:
            announced: list[bool] = []

            def _on_tool_call(calls: Sequence[ToolCall]) -> None:
                announced.append(True)
                self._announce_tools(calls, reporter)

            response = await self._transport.chat_stream(request, on_token=reporter.token, on_tool_call=_on_tool_call)
            if response.tool_calls and not announced:
                self._announce_tools(response.tool_calls, reporter)
            return response

        response = await self._transport.chat(request)
        if response.tool_calls:
            self._announce_tools(response.tool_calls, reporter)
        return response

    def _announce_tools(self, calls: Sequence[ToolCall], reporter: ProgressReporter) -> None:
        names = ", ".join(self._config.display_name(call.name) for call in calls)
        reporter.progress(ProgressInfo(stage=ProgressStage.TOOL_CALLING, message=f"Preparing tools: {names}"))

    async def _run_tool_calls(
        self,
        response: ChatResponse,
        tools_used: list[str],
        reporter: ProgressReporter,
    ) -> None:
        calls = tuple(
            call if call.id else dataclasses.replace(call, id=f"call_{uuid.uuid4().hex[:24]}")
            for call in response.tool_calls
        )
        self._context.add_message(Message.assistant(response.content, tool_calls=calls))
        reporter.step(f"Model decided to call {len(calls)} tool(s)")

        total = len(calls)
        if self._config.parallel_tool_calls and total > 1:
            results = list(
                await asyncio.gather(
                    *(self._execute_call(call, index, total, reporter) for index, call in enumerate(calls, start=1))
                )
            )
        else:
            results = []
            for index, call in enumerate(calls, start=1):
                results.append(await self._execute_call(call, index, total, reporter))

        for call, result in zip(calls, results):
            self._context.add_message(Message.tool(result.to_json(), tool_call_id=call.id, name=call.name))
            if call.name not in tools_used:
                tools_used.append(call.name)

    async def _execute_call(
        self,
        call: ToolCall,
        index: int,
        total: int,
        reporter: ProgressReporter,
    ) -> ToolResult:
        display = self._config.display_name(call.name)
        reporter.step(f"Calling tool: {display}", "tool")
        reporter.progress(
            ProgressInfo(
                stage=ProgressStage.TOOL_EXECUTING,
                message=f"Running {display} ({index}/{total})",
                tool_name=call.name,
                tool_index=index,
                total_tools=total,
            )
        )
        try:
            params = call.parse_arguments()
        except ValueError as exc:
            LOGGER.warning("Could not parse arguments for %s: %s", call.name, exc)
            result = ToolResult.fail(f"Invalid tool arguments (expected a JSON object): {exc}")
        else:
            result = await self._registry.execute(call.name, params)

        if result.success:
            reporter.step(f"{display} succeeded", "result")
        else:
            reporter.step(f"{display} failed: {result.error}", "error")
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _resolve_references(self, text: str) -> str:
        reference = self._context.resolve_reference(text)
        if reference is None or reference.id is None or not reference.original_text:
            return text
        LOGGER.debug("Substituting reference %r -> %s", reference.original_text, reference.id)
        return text.replace(reference.original_text, f"{reference.original_text} [id: {reference.id}]", 1)

    def _build_request(self, tools: tuple[Mapping[str, Any], ...], guidance: str | None) -> ChatRequest:
        messages = repair_tool_pairing(self._context.get_messages_for_request(self._config.max_history_length))
        if guidance:
            position = 1 if messages and messages[0].role == "system" else 0
            messages.insert(position, Message.system(guidance))
        return ChatRequest(
            messages=tuple(messages),
            tools=tools,
            tool_choice="auto",
            temperature=self._config.temperature,
        )

    def _fallback(
        self,
        exc: Exception,
        tools_used: Sequence[str],
        iterations: int,
        reporter: ProgressReporter,
    ) -> AgentResponse:
        kind = classify_failure(exc)
        LOGGER.error("Chat turn failed (%s): %s", kind.value, exc, exc_info=exc)
        reporter.error(exc)
        fallback = fallback_for(kind)
        return AgentResponse(
            message=fallback.message,
            tools_used=tuple(tools_used),
            suggestions=fallback.suggestions,
            success=False,
            failure_kind=kind,
            error=str(exc),
            iterations=iterations,
        )

    @staticmethod
    def _suggestions(tools_used: Sequence[str]) -> tuple[str, ...]:
        suggestions: list[str] = []
        for name in tools_used:
            for suggestion in _TOOL_SUGGESTIONS.get(name, ()):
                if suggestion not in suggestions:
                    suggestions.append(suggestion)
        if not suggestions:
            suggestions.extend(_DEFAULT_SUGGESTIONS)
        return tuple(suggestions[:MAX_SUGGESTIONS])


def repair_tool_pairing(messages: Sequence[Message]) -> list[Message]:
    """Drop tool-call/tool-result pairs that compaction or windowing broke.

    Providers reject tool messages that do not directly follow the assistant
    message that issued their call, and assistant tool calls that never got a
    result. Only the request is repaired; history is left untouched.
    """

    repaired: list[Message] = []
    index = 0
    total = len(messages)
    while index < total:
        message = messages[index]
        if message.role == "assistant" and message.tool_calls:
            cursor = index + 1
            block: list[Message] = []
            while cursor < total and messages[cursor].role == "tool":
                block.append(messages[cursor])
                cursor += 1
            call_ids = {call.id for call in message.tool_calls}
            answered: list[Message] = []
            seen: set[str] = set()
            for result in block:
                if result.tool_call_id in call_ids and result.tool_call_id not in seen:
                    seen.add(result.tool_call_id)  # type: ignore[arg-type]
                    answered.append(result)
            kept_calls = tuple(call for call in message.tool_calls if call.id in seen)
            if kept_calls:
                if len(kept_calls) != len(message.tool_calls):
                    message = dataclasses.replace(message, tool_calls=kept_calls)
                repaired.append(message)
                repaired.extend(answered)
            elif message.content:
                repaired.append(dataclasses.replace(message, tool_calls=None))
            index = cursor
            continue
        if message.role != "tool":
            repaired.append(message)
        index += 1
    return repaired
