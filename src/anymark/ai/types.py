"""Message types shared by the context manager, orchestrator and transport.

Messages are immutable; the ordered sequence held by a
:class:`~anymark.ai.context.manager.ContextManager` is the conversation's sole
source of truth. Conversion helpers translate to and from OpenAI's chat
completion message format and to plain dictionaries for persistence.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence

__all__ = [
    "MessageRole",
    "ToolCall",
    "Message",
]

MessageRole = Literal["system", "user", "assistant", "tool"]

_ROLES: frozenset[str] = frozenset({"system", "user", "assistant", "tool"})


# -----------------------------------------------------------------------------
# Tool Call
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A model-issued request to invoke a tool.

    Attributes:
        id: Identifier correlating the call with its tool-result message.
        name: Name of the tool to invoke.
        arguments: Raw JSON argument string exactly as the model produced it.
    """

    id: str
    name: str
    arguments: str = "{}"

    def parse_arguments(self) -> dict[str, Any]:
        """Decode the JSON arguments.

        Raises:
            ValueError: If the arguments are not a JSON object.
        """
        raw = (self.arguments or "").strip()
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except RecursionError as exc:
            raise ValueError("Tool arguments are nested too deeply") from exc
        if not isinstance(parsed, dict):
            raise ValueError("Tool arguments must be a JSON object")
        return parsed

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the OpenAI ``tool_calls`` entry format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ToolCall:
        function = payload.get("function")
        if isinstance(function, Mapping):
            name = function.get("name")
            arguments = function.get("arguments")
        else:
            name = payload.get("name")
            arguments = payload.get("arguments")
        if arguments is not None and not isinstance(arguments, str):
            arguments = json.dumps(arguments, ensure_ascii=False)
        return cls(
            id=str(payload.get("id") or ""),
            name=str(name or ""),
            arguments=arguments if arguments is not None else "{}",
        )


# -----------------------------------------------------------------------------
# Message
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable chat message.

    Attributes:
        role: The role of the message sender.
        content: Text content; ``None`` for assistant messages that only carry tool calls.
        timestamp: Creation time as a POSIX timestamp.
        name: Tool name for tool-result messages.
        tool_call_id: ID linking a tool result to its call.
        tool_calls: Tool calls requested by the assistant.
        metadata: Additional metadata (never sent to the model).
    """

    role: MessageRole
    content: str | None
    timestamp: float = field(default_factory=time.time)
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def system(cls, content: str, **metadata: Any) -> Message:
        return cls(role="system", content=content, metadata=metadata)

    @classmethod
    def user(cls, content: str, **metadata: Any) -> Message:
        return cls(role="user", content=content, metadata=metadata)

    @classmethod
    def assistant(
        cls,
        content: str | None,
        tool_calls: Sequence[ToolCall] | None = None,
        **metadata: Any,
    ) -> Message:
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
            metadata=metadata,
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: str | None = None, **metadata: Any) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id, name=name, metadata=metadata)

    def to_chat_param(self) -> dict[str, Any]:
        """Convert to OpenAI's chat completion message format."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.role == "tool":
            payload["content"] = self.content or ""
            payload["tool_call_id"] = self.tool_call_id or ""
        elif self.name is not None:
            payload["name"] = self.name
        if self.tool_calls:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        elif payload["content"] is None:
            payload["content"] = ""
        return payload

    def to_dict(self) -> dict[str, Any]:
        """Serialize every field, including timestamp and metadata."""
        payload: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.name is not None:
            payload["name"] = self.name
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Message:
        """Rebuild a message from :meth:`to_dict` or chat-param output.

        Raises:
            ValueError: If the role is not recognised.
        """
        role = payload.get("role")
        if role not in _ROLES:
            raise ValueError(f"Unknown message role: {role!r}")
        raw_calls = payload.get("tool_calls")
        tool_calls = None
        if raw_calls:
            tool_calls = tuple(ToolCall.from_dict(call) for call in raw_calls if isinstance(call, Mapping))
        content = payload.get("content")
        timestamp = payload.get("timestamp")
        metadata = payload.get("metadata")
        return cls(
            role=role,  # type: ignore[arg-type]
            content=None if content is None else str(content),
            timestamp=float(timestamp) if timestamp is not None else time.time(),
            name=payload.get("name"),
            tool_call_id=payload.get("tool_call_id"),
            tool_calls=tool_calls,
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )
