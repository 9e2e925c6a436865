"""Result cache for idempotent tools.

Read-only tools such as bookmark search are often called repeatedly with the
same arguments inside one conversation. Tools registered with
``ToolSpec(cacheable=True)`` have their successful results kept here for a
short time.
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .types import ToolResult

__all__ = [
    "CacheConfig",
    "CacheStats",
    "ToolResultCache",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Cache Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """Configuration for the tool result cache.

    Attributes:
        ttl_seconds: Time-to-live for cache entries in seconds.
        max_entries: Maximum number of cached results.
    """

    ttl_seconds: float = 60.0
    max_entries: int = 100


@dataclass(slots=True)
class CacheStats:
    """Snapshot of the cache's contents."""

    size: int
    max_entries: int
    hits: int
    misses: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "size": self.size,
            "max_entries": self.max_entries,
            "hits": self.hits,
            "misses": self.misses,
        }


@dataclass(slots=True)
class _CacheEntry:
    result: ToolResult
    stored_at: float


# -----------------------------------------------------------------------------
# Tool Result Cache
# -----------------------------------------------------------------------------


class ToolResultCache:
    """TTL and size bounded cache keyed by tool name plus arguments.

    When full, the oldest stored entry is evicted first.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CacheConfig()
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

    @property
    def config(self) -> CacheConfig:
        return self._config

    @staticmethod
    def make_key(tool_name: str, params: Mapping[str, Any]) -> str:
        """Build a cache key that ignores argument ordering."""
        encoded = json.dumps(dict(params), sort_keys=True, ensure_ascii=False, default=str)
        return f"{tool_name}:{encoded}"

    def get(self, tool_name: str, params: Mapping[str, Any]) -> ToolResult | None:
        """Return a cached result, or ``None`` when missing or expired."""
        key = self.make_key(tool_name, params)
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._is_expired(entry):
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        LOGGER.debug("Tool cache hit for %s", tool_name)
        return entry.result

    def set(self, tool_name: str, params: Mapping[str, Any], result: ToolResult) -> None:
        """Store a result, evicting the oldest entry when at capacity."""
        key = self.make_key(tool_name, params)
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self._config.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            LOGGER.debug("Evicted tool cache entry %s", evicted)
        self._entries[key] = _CacheEntry(result=result, stored_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def clear_tool(self, tool_name: str) -> int:
        """Drop every cached result for one tool.

        Returns:
            The number of entries removed.
        """
        prefix = f"{tool_name}:"
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear_expired(self) -> int:
        doomed = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def stats(self) -> CacheStats:
        return CacheStats(
            size=len(self._entries),
            max_entries=self._config.max_entries,
            hits=self._hits,
            misses=self._misses,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def _is_expired(self, entry: _CacheEntry) -> bool:
        return self._clock() - entry.stored_at > self._config.ttl_seconds
