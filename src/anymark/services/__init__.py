"""Service layer helpers (settings, chat archives)."""

from .archive import ArchivedConversation, ChatArchiveStore
from .settings import PROVIDER_PRESETS, ProviderPreset, Settings, SettingsStore, data_dir, redact_secret

__all__ = [
    "ArchivedConversation",
    "ChatArchiveStore",
    "PROVIDER_PRESETS",
    "ProviderPreset",
    "Settings",
    "SettingsStore",
    "data_dir",
    "redact_secret",
]
