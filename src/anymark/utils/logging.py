"""Logging setup for AnyMark: rotating log files driven by :class:`Settings`."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Iterable

from ..services.settings import Settings, data_dir, redact_secret

__all__ = ["setup_logging", "configure_from_settings", "resolve_level", "get_log_path", "SecretMaskingFilter"]

LOGGER = logging.getLogger(__name__)

_LOG_FILENAME = "anymark.log"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
# Shorter secrets are left unmasked.
_MIN_SECRET_LENGTH = 8
_CONFIGURED = False
_LOG_PATH: Path | None = None


class SecretMaskingFilter(logging.Filter):
    """Replace configured secrets in log messages with their redacted form."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self._secrets = tuple(
            {secret.strip() for secret in secrets if secret and len(secret.strip()) >= _MIN_SECRET_LENGTH}
        )

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, redact_secret(secret))
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def resolve_level(level: int | str | None, *, debug: bool = False) -> int:
    """Map a settings level name (or number) onto a logging level.

    ``debug`` wins over ``level``; unknown names fall back to ``INFO``.
    """

    if debug:
        return logging.DEBUG
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level or "INFO").strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    secrets: Iterable[str] = (),
    force: bool = False,
) -> Path:
    """Configure root logging with a rotating file and an optional console handler.

    Args:
        level: Root level, as a number or a level name.
        log_dir: Directory for ``anymark.log``; ``ANYMARK_LOG_DIR`` or
            ``~/.anymark/logs`` when omitted.
        console: Also log to stderr.
        max_bytes: Rotation size of the log file.
        backup_count: Rotated files to keep.
        secrets: Values masked in every handler's output.
        force: Reconfigure even when logging was already set up.

    Returns:
        Path of the active log file.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    root_level = resolve_level(level)
    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILENAME

    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    masking = SecretMaskingFilter(secrets)

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(root_level)
        handler.setFormatter(formatter)
        handler.addFilter(masking)

    logging.basicConfig(level=root_level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_noisy_loggers(root_level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def configure_from_settings(
    settings: Settings,
    *,
    log_dir: Path | str | None = None,
    console: bool = False,
    verbose: bool = False,
) -> Path:
    """Configure logging from user settings.

    The level comes from ``settings.log_level`` unless ``debug_logging`` (or
    ``verbose``) asks for DEBUG. The configured API key is masked in all output.
    """

    level = resolve_level(settings.log_level, debug=settings.debug_logging or verbose)
    log_path = setup_logging(
        level,
        log_dir=log_dir,
        console=console,
        secrets=(settings.api_key,),
        force=True,
    )
    LOGGER.debug("Logging configured (level=%s, file=%s)", logging.getLevelName(level), log_path)
    return log_path


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    env_override = os.environ.get("ANYMARK_LOG_DIR")
    return Path(log_dir or env_override or data_dir() / "logs").expanduser()


def _quiet_noisy_loggers(root_level: int) -> None:
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
