"""Types used by the conversation context manager."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

__all__ = [
    "DEFAULT_SUMMARIZED_TOOLS",
    "ContextConfig",
    "EntityRef",
    "ReferenceKind",
    "ResolvedReference",
    "ReferenceContext",
]

DEFAULT_SUMMARIZED_TOOLS: tuple[str, ...] = ("search", "organize", "context")


@dataclass(slots=True, frozen=True)
class ContextConfig:
    """Sizing and compaction settings for a conversation timeline.

    Compaction fires once the timeline holds ``compress_threshold`` messages
    and always leaves the ``keep_recent_count`` most recent messages untouched.

    Attributes:
        max_messages: Default window returned by ``get_history``.
        compress_threshold: Timeline length that triggers compaction.
        keep_recent_count: Number of trailing messages never compacted.
        summarized_tools: Tool names whose results survive compaction as summaries.
    """

    max_messages: int = 100
    compress_threshold: int = 80
    keep_recent_count: int = 30
    summarized_tools: tuple[str, ...] = DEFAULT_SUMMARIZED_TOOLS

    def __post_init__(self) -> None:
        if self.max_messages < 1:
            raise ValueError("max_messages must be positive")
        if self.compress_threshold < 1:
            raise ValueError("compress_threshold must be positive")
        if self.keep_recent_count < 0:
            raise ValueError("keep_recent_count must not be negative")
        if not isinstance(self.summarized_tools, tuple):
            object.__setattr__(self, "summarized_tools", tuple(self.summarized_tools))


@dataclass(slots=True, frozen=True)
class EntityRef:
    """A bookmark (or project) recently surfaced to the user."""

    id: str
    title: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> EntityRef:
        title = payload.get("title")
        return cls(id=str(payload["id"]), title="" if title is None else str(title))


class ReferenceKind(str, Enum):
    """What a resolved reference points at."""

    ENTITY = "entity"
    SEARCH_RESULT = "search_result"
    INDEX = "index"


@dataclass(slots=True, frozen=True)
class ResolvedReference:
    """Result of mapping a deictic phrase to something concrete.

    ``kind == INDEX`` with ``id is None`` means the user named a position but
    nothing exists there.

    Attributes:
        kind: What the reference resolved to.
        original_text: The matched phrase as it appears in the input.
        id: Identifier of the referenced entity, when known.
        index: Zero-based position in the last result set, when applicable.
        title: Display title of the referenced entity, when known.
    """

    kind: ReferenceKind
    original_text: str
    id: str | None = None
    index: int | None = None
    title: str | None = None


@dataclass(slots=True, frozen=True)
class ReferenceContext:
    """Read-only view of the indices consulted by reference matchers."""

    last_search_results: Sequence[Mapping[str, Any]] = field(default_factory=tuple)
    last_mentioned: Sequence[EntityRef] = field(default_factory=tuple)
