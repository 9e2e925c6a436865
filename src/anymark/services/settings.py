"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..ai.agent.types import AgentConfig
from ..ai.client import ClientSettings
from ..ai.context.types import DEFAULT_SUMMARIZED_TOOLS, ContextConfig

__all__ = [
    "Settings",
    "SettingsStore",
    "ProviderPreset",
    "PROVIDER_PRESETS",
    "data_dir",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_FILENAME = "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "ANYMARK_API_KEY": "api_key",
    "ANYMARK_BASE_URL": "base_url",
    "ANYMARK_MODEL": "model",
    "ANYMARK_PROVIDER": "provider",
    "ANYMARK_LOG_LEVEL": "log_level",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "ANYMARK_DEBUG_LOGGING": "debug_logging",
    "ANYMARK_PARALLEL_TOOL_CALLS": "parallel_tool_calls",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "ANYMARK_REQUEST_TIMEOUT": "request_timeout",
    "ANYMARK_TEMPERATURE": "temperature",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "ANYMARK_MAX_TOOL_CALLS": "max_tool_calls",
    "ANYMARK_MAX_HISTORY_LENGTH": "max_history_length",
    "ANYMARK_MAX_RETRIES": "max_retries",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


def data_dir() -> Path:
    """Directory holding settings, chat archives and logs (``~/.anymark``)."""

    return Path.home() / ".anymark"


@dataclass(slots=True, frozen=True)
class ProviderPreset:
    """Default endpoint and model for an OpenAI-compatible provider."""

    base_url: str
    model: str
    requires_api_key: bool = True


PROVIDER_PRESETS: Mapping[str, ProviderPreset] = {
    "openai": ProviderPreset("https://api.openai.com/v1", "gpt-4o"),
    "anthropic": ProviderPreset("https://api.anthropic.com/v1", "claude-sonnet-4-5"),
    "groq": ProviderPreset("https://api.groq.com/openai/v1", "llama-3.3-70b-versatile"),
    "deepseek": ProviderPreset("https://api.deepseek.com/v1", "deepseek-chat"),
    "moonshot": ProviderPreset("https://api.moonshot.cn/v1", "moonshot-v1-8k"),
    "zhipu": ProviderPreset("https://open.bigmodel.cn/api/paas/v4", "glm-4-flash"),
    "openrouter": ProviderPreset("https://openrouter.ai/api/v1", "anthropic/claude-sonnet-4-5"),
    "ollama": ProviderPreset("http://localhost:11434/v1", "", requires_api_key=False),
    "custom": ProviderPreset("", ""),
}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions.

    ``base_url`` and ``model`` fall back to the provider preset when empty.
    The API key is never written to disk; supply it through
    ``ANYMARK_API_KEY`` or at runtime.
    """

    provider: str = "openai"
    base_url: str = ""
    api_key: str = ""
    model: str = ""
    temperature: float = 0.7
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    max_tool_calls: int = 10
    max_history_length: int = 50
    max_messages: int = 100
    compress_threshold: int = 80
    keep_recent_count: int = 30
    summarized_tools: list[str] = field(default_factory=lambda: list(DEFAULT_SUMMARIZED_TOOLS))
    parallel_tool_calls: bool = False
    log_level: str = "INFO"
    debug_logging: bool = False

    @property
    def preset(self) -> ProviderPreset:
        return PROVIDER_PRESETS.get(self.provider, PROVIDER_PRESETS["custom"])

    def resolved_base_url(self) -> str:
        return (self.base_url or self.preset.base_url).rstrip("/")

    def resolved_model(self) -> str:
        return self.model or self.preset.model

    def client_settings(self) -> ClientSettings:
        """Project onto :class:`~anymark.ai.client.ClientSettings`."""
        return ClientSettings(
            base_url=self.resolved_base_url(),
            api_key=self.api_key or None,
            model=self.resolved_model(),
            requires_api_key=self.preset.requires_api_key,
            temperature=self.temperature,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            retry_min_seconds=self.retry_min_seconds,
            retry_max_seconds=self.retry_max_seconds,
            debug_logging=self.debug_logging,
        )

    def context_config(self) -> ContextConfig:
        return ContextConfig(
            max_messages=self.max_messages,
            compress_threshold=self.compress_threshold,
            keep_recent_count=self.keep_recent_count,
            summarized_tools=tuple(self.summarized_tools),
        )

    def agent_config(self) -> AgentConfig:
        return AgentConfig(
            max_history_length=self.max_history_length,
            max_tool_calls=self.max_tool_calls,
            temperature=self.temperature,
            parallel_tool_calls=self.parallel_tool_calls,
        )


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or data_dir() / _SETTINGS_FILENAME

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if payload.get("version") != _SETTINGS_VERSION:
                LOGGER.debug("Settings file %s has version %s", self._path, payload.get("version"))

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        settings = self._apply_env_overrides(settings)
        LOGGER.debug(
            "Settings loaded from %s: provider=%s model=%s api_key=%s",
            self._path,
            settings.provider,
            settings.resolved_model(),
            redact_secret(settings.api_key) or "<unset>",
        )
        return settings

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = self._serialize(settings)
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        data.pop("api_key", None)
        data["version"] = _SETTINGS_VERSION
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            payload = json.loads(text)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain a JSON object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid integer",
                    env_name,
                    value,
                )
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)} - {"api_key"}
    result: Dict[str, Any] = {}
    for key, value in payload.items():
        if key not in allowed:
            continue
        result[key] = value
    return result


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
