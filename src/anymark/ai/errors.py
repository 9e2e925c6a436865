"""Transport errors and the user-facing failure taxonomy.

When a model round-trip fails the orchestrator aborts the current turn and
maps the exception onto one of three fixed kinds, each with its own
user-visible message and follow-up suggestions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

import httpx
import openai

__all__ = [
    "AIClientError",
    "TransportError",
    "MissingCredentialsError",
    "FailureKind",
    "Fallback",
    "FALLBACKS",
    "classify_failure",
    "fallback_for",
]


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class AIClientError(RuntimeError):
    """Base class for errors raised by the model transport."""


class TransportError(AIClientError):
    """Raised when the provider rejects or fails a request.

    Attributes:
        status_code: HTTP status returned by the provider, when known.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingCredentialsError(AIClientError):
    """Raised before any network call when no API key is configured."""

    DEFAULT_MESSAGE = "API key not configured. Please set your API key in settings."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.DEFAULT_MESSAGE)


# -----------------------------------------------------------------------------
# Taxonomy
# -----------------------------------------------------------------------------


class FailureKind(str, Enum):
    """User-facing classification of a failed turn."""

    MISSING_CREDENTIALS = "missing_credentials"
    NETWORK = "network"
    GENERIC = "generic"


@dataclass(slots=True, frozen=True)
class Fallback:
    """Canned reply shown to the user when a turn fails."""

    message: str
    suggestions: tuple[str, ...]


FALLBACKS: dict[FailureKind, Fallback] = {
    FailureKind.MISSING_CREDENTIALS: Fallback(
        message="The AI service is not configured. Please add your API key in settings.",
        suggestions=("Open settings", "View help"),
    ),
    FailureKind.NETWORK: Fallback(
        message="Network connection failed. Please check your connection and try again.",
        suggestions=("Retry", "View help"),
    ),
    FailureKind.GENERIC: Fallback(
        message=(
            "Sorry, something went wrong while handling your request.\n\n"
            "You could try:\n"
            '- "Search for React tutorials"\n'
            '- "Organize my bookmarks"\n'
            '- "Find some Python learning resources"'
        ),
        suggestions=("Search bookmarks", "Organize bookmarks", "View help"),
    ),
}

_CREDENTIAL_PATTERN = re.compile(r"api[\s_-]?key.*(not configured|missing|not set|invalid)|not configured", re.IGNORECASE)
_NETWORK_PATTERN = re.compile(r"network|fetch|connection|timed out|timeout", re.IGNORECASE)
_CREDENTIAL_STATUS = frozenset({401, 403})


def classify_failure(error: BaseException) -> FailureKind:
    """Map a transport exception onto the failure taxonomy."""

    if isinstance(error, (MissingCredentialsError, openai.AuthenticationError, openai.PermissionDeniedError)):
        return FailureKind.MISSING_CREDENTIALS
    status = getattr(error, "status_code", None)
    if isinstance(status, int) and status in _CREDENTIAL_STATUS:
        return FailureKind.MISSING_CREDENTIALS
    if isinstance(error, (openai.APIConnectionError, httpx.TransportError, ConnectionError, TimeoutError)):
        return FailureKind.NETWORK

    message = str(error)
    if _CREDENTIAL_PATTERN.search(message):
        return FailureKind.MISSING_CREDENTIALS
    if _NETWORK_PATTERN.search(message):
        return FailureKind.NETWORK
    return FailureKind.GENERIC


def fallback_for(kind: FailureKind) -> Fallback:
    return FALLBACKS[kind]
