"""AI client, agent loop, context management and tool wiring."""

from .client import AIClient, ClientSettings

__all__ = ["AIClient", "ClientSettings"]
