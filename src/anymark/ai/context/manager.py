"""Conversation context manager.

Owns the canonical message timeline of one conversation plus two auxiliary
indices used only for reference resolution: the last result set returned by a
tool and the entities most recently mentioned to the user.

Lifecycle::

    UNINITIALIZED --initialize_system()--> INITIALIZED --add_message()--> ACTIVE
    ACTIVE --(length >= compress_threshold)--> COMPRESSING --> ACTIVE
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any, Iterable, Mapping, Sequence

from ..types import Message
from .compaction import Summarizer, compact_messages
from .references import ReferenceResolver
from .types import ContextConfig, EntityRef, ReferenceContext, ResolvedReference

__all__ = ["ContextManager"]

LOGGER = logging.getLogger(__name__)


class ContextManager:
    """Timeline, compaction and reference resolution for one conversation.

    The system preamble is set at most once per instance. It survives
    :meth:`clear` but not :meth:`reset`, and it is never part of
    :meth:`export_state`.
    """

    def __init__(
        self,
        config: ContextConfig | None = None,
        *,
        resolver: ReferenceResolver | None = None,
        summarizers: Mapping[str, Summarizer] | None = None,
    ) -> None:
        self._config = config or ContextConfig()
        self._resolver = resolver or ReferenceResolver()
        self._summarizers = summarizers
        self._system_message: Message | None = None
        self._messages: list[Message] = []
        self._last_search_results: list[dict[str, Any]] = []
        self._last_mentioned: list[EntityRef] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def config(self) -> ContextConfig:
        return self._config

    @property
    def system_message(self) -> Message | None:
        return self._system_message

    @property
    def is_initialized(self) -> bool:
        return self._system_message is not None

    @property
    def message_count(self) -> int:
        """Number of timeline messages, excluding the preamble."""
        return len(self._messages)

    @property
    def last_search_results(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._last_search_results)

    @property
    def last_mentioned(self) -> list[EntityRef]:
        return list(self._last_mentioned)

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------
    def initialize_system(self, prompt: str) -> bool:
        """Set the system preamble once.

        Returns:
            ``True`` when the preamble was set, ``False`` when it already existed.
        """
        if self._system_message is not None:
            LOGGER.debug("System preamble already set; ignoring re-initialization")
            return False
        self._system_message = Message.system(prompt)
        return True

    def add_message(self, message: Message) -> None:
        """Append a message, update reference indices and compact if needed."""
        self._messages.append(message)
        if message.role == "tool":
            self._extract_entities(message)
        if len(self._messages) >= self._config.compress_threshold:
            self.compress()

    def add_messages(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.add_message(message)

    def get_history(self, limit: int | None = None) -> list[Message]:
        """Most recent messages for display, excluding the preamble."""
        count = self._config.max_messages if limit is None else limit
        if count <= 0:
            return []
        return self._messages[-count:]

    def get_messages_for_request(self, limit: int | None = None) -> list[Message]:
        """Preamble followed by the bounded recent history."""
        history = self.get_history(limit)
        if self._system_message is not None:
            return [self._system_message, *history]
        return history

    def get_all_messages(self) -> list[Message]:
        if self._system_message is not None:
            return [self._system_message, *self._messages]
        return list(self._messages)

    def clear(self) -> None:
        """Drop messages and both indices; the preamble is kept."""
        self._messages = []
        self._last_search_results = []
        self._last_mentioned = []

    def reset(self) -> None:
        """Clear everything, including the preamble."""
        self.clear()
        self._system_message = None

    def compress(self) -> None:
        """Compact the timeline in place (lossy)."""
        before = len(self._messages)
        self._messages = compact_messages(
            self._messages,
            keep_recent_count=self._config.keep_recent_count,
            summarized_tools=self._config.summarized_tools,
            summarizers=self._summarizers,
        )
        if len(self._messages) != before:
            LOGGER.info("Compressed conversation history: %d -> %d messages", before, len(self._messages))

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------
    def reference_context(self) -> ReferenceContext:
        return ReferenceContext(
            last_search_results=tuple(self._last_search_results),
            last_mentioned=tuple(self._last_mentioned),
        )

    def resolve_reference(self, text: str) -> ResolvedReference | None:
        return self._resolver.resolve(text, self.reference_context())

    def set_last_search_results(self, results: Sequence[Mapping[str, Any]]) -> None:
        """Replace the result set and mark its entries as last mentioned."""
        cleaned = [dict(item) for item in results if isinstance(item, Mapping) and item.get("id") is not None]
        self._last_search_results = cleaned
        self._last_mentioned = [EntityRef.from_dict(item) for item in cleaned]

    def _extract_entities(self, message: Message) -> None:
        try:
            payload = json.loads(message.content or "")
        except (TypeError, ValueError):
            return
        if not isinstance(payload, Mapping):
            return
        data = payload.get("data")
        if not isinstance(data, Mapping):
            return

        results = data.get("results")
        if isinstance(results, list):
            self.set_last_search_results(results)
        if data.get("id") is not None and data.get("title"):
            self._last_mentioned = [EntityRef.from_dict(data)]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def export_state(self) -> dict[str, Any]:
        """Snapshot of messages and indices, excluding the preamble."""
        return {
            "messages": [message.to_dict() for message in self._messages],
            "last_search_results": copy.deepcopy(self._last_search_results),
            "last_mentioned_entities": [entity.to_dict() for entity in self._last_mentioned],
        }

    def import_state(self, snapshot: Mapping[str, Any]) -> None:
        """Replace messages and indices with an :meth:`export_state` snapshot.

        The preamble is left untouched. No compaction or entity extraction
        runs on the imported messages.

        Raises:
            ValueError: If a message in the snapshot is malformed.
        """
        messages = [Message.from_dict(item) for item in snapshot.get("messages") or ()]
        results = snapshot.get("last_search_results", snapshot.get("lastSearchResults")) or ()
        mentioned = snapshot.get("last_mentioned_entities", snapshot.get("lastMentionedEntities")) or ()

        self._messages = messages
        self._last_search_results = [dict(item) for item in results if isinstance(item, Mapping)]
        self._last_mentioned = [
            EntityRef.from_dict(item) for item in mentioned if isinstance(item, Mapping) and "id" in item
        ]
        LOGGER.debug("Imported %d messages into context", len(messages))

    def __len__(self) -> int:
        return len(self._messages)
