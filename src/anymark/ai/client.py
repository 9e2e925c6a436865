"""Async model transport built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Sequence

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from .agent.transport import TokenCallback, ToolCallCallback
from .agent.types import ChatRequest, ChatResponse
from .errors import MissingCredentialsError, TransportError
from .types import Message, ToolCall

__all__ = [
    "ClientSettings",
    "AIStreamEvent",
    "AIClient",
    "aggregate_stream_events",
    "clean_hallucinated_tool_calls",
]

LOGGER = logging.getLogger(__name__)

TOOL_CALL_STARTED = "tool_calls.function.started"

# Some models (notably DeepSeek) occasionally write pseudo tool calls into plain text.
_HALLUCINATED_TOOL_CALL_PATTERNS = (
    re.compile(r"<｜DSML｜[^>]*>.*?</｜DSML｜[^>]*>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<｜DSML｜.*$", re.DOTALL),
    re.compile(r"<function_calls>.*?</function_calls>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<function_calls>.*$", re.DOTALL),
    re.compile(r"<tool_calls>.*?</tool_calls>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<tool_calls>.*$", re.DOTALL),
    re.compile(r"<invoke.*?</invoke>", re.IGNORECASE | re.DOTALL),
    re.compile(r"```json\s*\{.*\"tool\".*?\}\s*```", re.IGNORECASE | re.DOTALL),
    re.compile(r"```json\s*\{.*\"function\".*$", re.DOTALL),
)
_DANGLING_TAG = re.compile(r"<[^>]*$")


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str | None
    model: str
    requires_api_key: bool = True
    temperature: float | None = 0.7
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True)
class AIStreamEvent:
    """Normalized representation of streaming deltas."""

    type: str
    content: str | None = None
    tool_name: str | None = None
    tool_index: int | None = None
    tool_arguments: str | None = None
    arguments_delta: str | None = None
    tool_call_id: str | None = None
    finish_reason: str | None = None


def clean_hallucinated_tool_calls(content: str | None) -> str | None:
    """Strip pseudo tool-call markup a model wrote into its text reply."""

    if not content:
        return content
    cleaned = content
    for pattern in _HALLUCINATED_TOOL_CALL_PATTERNS:
        if pattern.search(cleaned):
            LOGGER.warning("Detected hallucinated tool call in model response; cleaning")
            cleaned = pattern.sub("", cleaned).strip()
    return _DANGLING_TAG.sub("", cleaned).strip()


def aggregate_stream_events(events: Iterable[AIStreamEvent]) -> ChatResponse:
    """Fold normalized stream events into the buffered response shape."""

    text_parts: List[str] = []
    done_text: str | None = None
    finish_reason: str | None = None
    calls: Dict[int, Dict[str, Any]] = {}

    for event in events:
        if event.type == "content.delta" and event.content:
            text_parts.append(event.content)
        elif event.type == "content.done" and event.content is not None:
            done_text = event.content
        elif event.type in (
            TOOL_CALL_STARTED,
            "tool_calls.function.arguments.delta",
            "tool_calls.function.arguments.done",
        ):
            index = event.tool_index if event.tool_index is not None else len(calls)
            entry = calls.setdefault(index, {"id": None, "name": None, "deltas": [], "arguments": None})
            if event.tool_call_id:
                entry["id"] = event.tool_call_id
            if event.tool_name:
                entry["name"] = event.tool_name
            if event.type == "tool_calls.function.arguments.delta" and event.arguments_delta:
                entry["deltas"].append(event.arguments_delta)
            if event.type == "tool_calls.function.arguments.done" and event.tool_arguments is not None:
                entry["arguments"] = event.tool_arguments
        elif event.type == "finish" and event.finish_reason:
            finish_reason = event.finish_reason

    content = done_text if done_text is not None else "".join(text_parts)
    tool_calls = tuple(
        ToolCall(
            id=entry["id"] or f"call_{index}",
            name=entry["name"] or "",
            arguments=entry["arguments"] if entry["arguments"] is not None else "".join(entry["deltas"]),
        )
        for index, entry in sorted(calls.items())
    )
    return ChatResponse(
        content=clean_hallucinated_tool_calls(content) or None,
        tool_calls=tool_calls,
        finish_reason=finish_reason,
    )


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (APIConnectionError, RateLimitError, httpx.TimeoutException)):
        return True
    if isinstance(exc, APIStatusError):
        return exc.status_code >= 500
    return False


class AIClient:
    """Model transport with buffered and streaming chat plus retry semantics."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    # ------------------------------------------------------------------
    # ModelTransport
    # ------------------------------------------------------------------
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a buffered chat request.

        Raises:
            MissingCredentialsError: If no API key is configured.
            TransportError: If the provider rejects the request.
        """
        payload = self._payload_for(request)
        LOGGER.debug("Starting chat completion via %s with %s message(s)", self._settings.model, len(payload["messages"]))
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        client = self._get_client()
        try:
            async for attempt in self._retrying():
                with attempt:
                    completion = await client.chat.completions.create(**payload)
        except APIStatusError as exc:
            raise self._status_error(exc) from exc

        choices = getattr(completion, "choices", None) or []
        if not choices:
            raise TransportError("AI API returned no choices")
        choice = choices[0]
        message = choice.message
        tool_calls = tuple(
            ToolCall(
                id=getattr(call, "id", None) or f"call_{index}",
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for index, call in enumerate(getattr(message, "tool_calls", None) or ())
        )
        usage = getattr(completion, "usage", None)
        return ChatResponse(
            content=clean_hallucinated_tool_calls(getattr(message, "content", None)) or None,
            tool_calls=tool_calls,
            finish_reason=getattr(choice, "finish_reason", None),
            usage=usage.model_dump() if hasattr(usage, "model_dump") else None,
        )

    async def chat_stream(
        self,
        request: ChatRequest,
        *,
        on_token: TokenCallback | None = None,
        on_tool_call: ToolCallCallback | None = None,
    ) -> ChatResponse:
        """Stream a chat request and converge on the buffered response shape.

        Partial content only lives in this call's local buffer; if the call
        is cancelled or fails nothing partial escapes.
        """
        events: List[AIStreamEvent] = []
        async for event in self.stream_chat(
            [message.to_chat_param() for message in request.messages],
            tools=request.tools,
            tool_choice=request.tool_choice if request.tools else None,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        ):
            events.append(event)
            if on_token is not None and event.type == "content.delta" and event.content:
                try:
                    on_token(event.content)
                except Exception:
                    LOGGER.debug("on_token callback raised", exc_info=True)

        response = aggregate_stream_events(events)
        if response.tool_calls and on_tool_call is not None:
            try:
                on_tool_call(response.tool_calls)
            except Exception:
                LOGGER.debug("on_tool_call callback raised", exc_info=True)
        return response

    async def stream_chat(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        tools: Iterable[Mapping[str, Any]] | None = None,
        tool_choice: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Stream chat completions for the provided messages."""

        payload = self._build_chat_payload(
            messages=messages,
            tools=tools,
            tool_choice=tool_choice,
            temperature=temperature,
            max_tokens=max_tokens,
            extra_params=extra_params,
        )
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            self._settings.model,
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        client = self._get_client()
        emitted = False

        def _should_retry(exc: BaseException) -> bool:
            # Replaying after the first event would duplicate what the caller already consumed.
            return not emitted and _is_retryable(exc)

        try:
            async for attempt in self._retrying(_should_retry):
                with attempt:
                    async with client.chat.completions.stream(**payload) as stream:
                        async for event in stream:
                            for normalized in self._normalize_stream_event(event):
                                emitted = True
                                yield normalized
                    break
        except APIStatusError as exc:
            raise self._status_error(exc) from exc

    async def simple_chat(self, prompt: str, *, system: str | None = None) -> str:
        """One-shot completion without tools."""

        messages = [Message.system(system)] if system else []
        messages.append(Message.user(prompt))
        response = await self.chat(ChatRequest(messages=tuple(messages)))
        return response.content or ""

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        if self._client is None:
            return
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _get_client(self) -> AsyncOpenAI:
        if self._settings.requires_api_key and not self._settings.api_key:
            raise MissingCredentialsError()
        if self._client is None:
            self._client = self._build_client(self._settings)
        return self._client

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key or "not-needed",
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _retrying(self, predicate: Callable[[BaseException], bool] = _is_retryable) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception(predicate),
        )

    def _payload_for(self, request: ChatRequest) -> Dict[str, Any]:
        return self._build_chat_payload(
            messages=[message.to_chat_param() for message in request.messages],
            tools=request.tools,
            tool_choice=request.tool_choice if request.tools else None,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            extra_params={},
        )

    def _build_chat_payload(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        tools: Iterable[Mapping[str, Any]] | None,
        tool_choice: str | None,
        temperature: float | None,
        max_tokens: int | None,
        extra_params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        if not messages:
            raise ValueError("At least one message is required to start a chat")
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": [dict(message) for message in messages],
        }
        tool_list = [dict(tool) for tool in tools] if tools else []
        if tool_list:
            payload["tools"] = tool_list
            if tool_choice:
                payload["tool_choice"] = tool_choice
        if temperature is None:
            temperature = self._settings.temperature
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if extra_params:
            payload.update(extra_params)
        return payload

    @staticmethod
    def _status_error(exc: APIStatusError) -> TransportError:
        detail = getattr(exc, "message", None) or str(exc)
        return TransportError(f"AI API request failed: {exc.status_code} - {detail}", status_code=exc.status_code)

    def _normalize_stream_event(self, event: ChatCompletionStreamEvent[Any]) -> List[AIStreamEvent]:
        event_type = getattr(event, "type", None)
        if event_type is None:
            return []

        if event_type == "chunk":
            return self._chunk_events(event)
        if event_type == "content.delta":
            delta_text = getattr(event, "delta", None)
            if delta_text:
                return [AIStreamEvent(type=event_type, content=str(delta_text))]
            return []
        if event_type == "content.done":
            return [AIStreamEvent(type=event_type, content=getattr(event, "content", None))]
        if event_type == "tool_calls.function.arguments.delta":
            return [
                AIStreamEvent(
                    type=event_type,
                    tool_name=getattr(event, "name", None),
                    tool_index=getattr(event, "index", None),
                    tool_arguments=getattr(event, "arguments", None),
                    arguments_delta=getattr(event, "arguments_delta", None),
                )
            ]
        if event_type == "tool_calls.function.arguments.done":
            return [
                AIStreamEvent(
                    type=event_type,
                    tool_name=getattr(event, "name", None),
                    tool_index=getattr(event, "index", None),
                    tool_arguments=getattr(event, "arguments", None),
                )
            ]
        return []

    @staticmethod
    def _chunk_events(event: Any) -> List[AIStreamEvent]:
        # Tool call ids and finish reasons only appear on raw chunks.
        chunk = getattr(event, "chunk", None)
        choices = getattr(chunk, "choices", None) or []
        normalized: List[AIStreamEvent] = []
        for choice in choices:
            delta = getattr(choice, "delta", None)
            for call in getattr(delta, "tool_calls", None) or ():
                call_id = getattr(call, "id", None)
                if call_id:
                    function = getattr(call, "function", None)
                    normalized.append(
                        AIStreamEvent(
                            type=TOOL_CALL_STARTED,
                            tool_index=getattr(call, "index", None),
                            tool_call_id=call_id,
                            tool_name=getattr(function, "name", None),
                        )
                    )
            finish_reason = getattr(choice, "finish_reason", None)
            if finish_reason:
                normalized.append(AIStreamEvent(type="finish", finish_reason=finish_reason))
        return normalized

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)
