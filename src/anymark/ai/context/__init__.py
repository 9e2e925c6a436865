"""Conversation context: timeline, compaction and reference resolution."""

from .compaction import DEFAULT_SUMMARIZERS, Summarizer, compact_messages, summarize_tool_message
from .manager import ContextManager
from .references import DEFAULT_MATCHERS, ReferenceMatcher, ReferenceResolver, parse_chinese_number
from .types import (
    DEFAULT_SUMMARIZED_TOOLS,
    ContextConfig,
    EntityRef,
    ReferenceContext,
    ReferenceKind,
    ResolvedReference,
)

__all__ = [
    "ContextManager",
    "ContextConfig",
    "DEFAULT_SUMMARIZED_TOOLS",
    "EntityRef",
    "ReferenceContext",
    "ReferenceKind",
    "ResolvedReference",
    "ReferenceMatcher",
    "ReferenceResolver",
    "DEFAULT_MATCHERS",
    "parse_chinese_number",
    "Summarizer",
    "DEFAULT_SUMMARIZERS",
    "compact_messages",
    "summarize_tool_message",
]
