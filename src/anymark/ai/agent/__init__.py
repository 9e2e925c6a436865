"""Bookmark agent: bounded tool-calling loop and its contracts."""

from .orchestrator import AgentOrchestrator, repair_tool_pairing
from .progress import ProgressCallbacks, ProgressReporter
from .transport import ModelTransport
from .types import (
    DEFAULT_ACTION_GUIDANCE,
    AgentConfig,
    AgentResponse,
    ChatRequest,
    ChatResponse,
    ProgressInfo,
    ProgressStage,
    ThinkingStep,
    default_system_prompt,
)

__all__ = [
    "AgentOrchestrator",
    "AgentConfig",
    "AgentResponse",
    "ChatRequest",
    "ChatResponse",
    "DEFAULT_ACTION_GUIDANCE",
    "ModelTransport",
    "ProgressCallbacks",
    "ProgressInfo",
    "ProgressReporter",
    "ProgressStage",
    "ThinkingStep",
    "default_system_prompt",
    "repair_tool_pairing",
]
