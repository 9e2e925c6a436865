"""Optional progress side channel for UI collaborators.

Every callback is optional. The orchestrator behaves identically whether or
not any callback is wired, and exceptions raised by callbacks are logged and
ignored.
"""

from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from .types import AgentResponse, ProgressInfo, ThinkingKind, ThinkingStep

__all__ = ["ProgressCallbacks", "ProgressReporter"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ProgressCallbacks:
    """Callbacks a UI may register for one turn.

    Attributes:
        on_progress: Stage transitions.
        on_token: Raw streamed tokens; setting it switches the transport to streaming.
        on_thinking_step: Human-readable trace entries.
        on_complete: Called with the final response of a successful turn.
        on_error: Called with the exception that aborted a turn.
    """

    on_progress: Callable[[ProgressInfo], Any] | None = None
    on_token: Callable[[str], Any] | None = None
    on_thinking_step: Callable[[ThinkingStep], Any] | None = None
    on_complete: Callable[[AgentResponse], Any] | None = None
    on_error: Callable[[BaseException], Any] | None = None

    @property
    def wants_tokens(self) -> bool:
        return self.on_token is not None


@dataclass(slots=True)
class ProgressReporter:
    """Safe dispatcher over :class:`ProgressCallbacks` for a single turn."""

    callbacks: ProgressCallbacks | None = None
    _counter: Any = field(default_factory=itertools.count, init=False)
    _turn_id: str = field(default_factory=lambda: str(int(time.time() * 1000)), init=False)

    def progress(self, info: ProgressInfo) -> None:
        self._dispatch("on_progress", info)

    def token(self, text: str) -> None:
        self._dispatch("on_token", text)

    def step(self, message: str, kind: ThinkingKind = "thinking") -> None:
        if self.callbacks is None or self.callbacks.on_thinking_step is None:
            return
        step = ThinkingStep(
            id=f"step-{self._turn_id}-{next(self._counter)}",
            message=message,
            timestamp=time.time(),
            kind=kind,
        )
        self._dispatch("on_thinking_step", step)

    def complete(self, response: AgentResponse) -> None:
        self._dispatch("on_complete", response)

    def error(self, exc: BaseException) -> None:
        self._dispatch("on_error", exc)

    def _dispatch(self, name: str, payload: Any) -> None:
        if self.callbacks is None:
            return
        callback = getattr(self.callbacks, name)
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            LOGGER.debug("Progress callback %s raised", name, exc_info=True)
