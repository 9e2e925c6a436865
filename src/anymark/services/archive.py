"""Persistence helpers for archived agent conversations."""

from __future__ import annotations

import copy
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .settings import data_dir

__all__ = ["ArchivedConversation", "ChatArchiveStore"]

LOGGER = logging.getLogger(__name__)
_ARCHIVE_FILENAME = "chat_archives.json"
_ARCHIVE_VERSION = 1
_TITLE_LIMIT = 30
_DEFAULT_TITLE = "New conversation"


def _default_archive_path() -> Path:
    return data_dir() / _ARCHIVE_FILENAME


@dataclass(slots=True)
class ArchivedConversation:
    """One exported conversation plus the metadata shown in history lists."""

    id: str
    title: str
    created_at: float
    updated_at: float
    snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def message_count(self) -> int:
        messages = self.snapshot.get("messages")
        return len(messages) if isinstance(messages, list) else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "snapshot": self.snapshot,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ArchivedConversation":
        snapshot = payload.get("snapshot")
        created = float(payload.get("created_at") or 0.0)
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or _DEFAULT_TITLE),
            created_at=created,
            updated_at=float(payload.get("updated_at") or created),
            snapshot=dict(snapshot) if isinstance(snapshot, Mapping) else {},
        )


class ChatArchiveStore:
    """JSON-file archive of conversation snapshots, newest first.

    Snapshots are the dictionaries produced by
    :meth:`anymark.ai.agent.AgentOrchestrator.export_conversation`.
    """

    def __init__(self, path: Path | None = None, *, max_archives: int = 100) -> None:
        if max_archives <= 0:
            raise ValueError("max_archives must be positive")
        self._path = path or _default_archive_path()
        self._max_archives = max_archives

    @property
    def path(self) -> Path:
        return self._path

    @property
    def max_archives(self) -> int:
        return self._max_archives

    def archive(
        self,
        snapshot: Mapping[str, Any],
        *,
        title: str | None = None,
        now: float | None = None,
    ) -> ArchivedConversation:
        """Store ``snapshot`` as a new archive entry and return it."""

        timestamp = time.time() if now is None else now
        entry = ArchivedConversation(
            id=uuid.uuid4().hex,
            title=title or derive_title(snapshot),
            created_at=timestamp,
            updated_at=timestamp,
            snapshot=copy.deepcopy(dict(snapshot)),
        )
        entries = [entry, *self._load_entries()]
        dropped = len(entries) - self._max_archives
        if dropped > 0:
            LOGGER.debug("Dropping %s oldest chat archive(s)", dropped)
        self._write_entries(entries[: self._max_archives])
        return entry

    def list(self) -> list[ArchivedConversation]:
        return self._load_entries()

    def get(self, archive_id: str) -> ArchivedConversation | None:
        for entry in self._load_entries():
            if entry.id == archive_id:
                return entry
        return None

    def delete(self, archive_id: str) -> bool:
        entries = self._load_entries()
        remaining = [entry for entry in entries if entry.id != archive_id]
        if len(remaining) == len(entries):
            return False
        self._write_entries(remaining)
        return True

    def clear(self) -> None:
        self._write_entries([])

    def _load_entries(self) -> list[ArchivedConversation]:
        payload = self._read_payload()
        raw_entries = payload.get("archives")
        if not isinstance(raw_entries, list):
            return []
        entries: list[ArchivedConversation] = []
        for item in raw_entries:
            if not isinstance(item, Mapping) or "id" not in item:
                continue
            try:
                entries.append(ArchivedConversation.from_dict(item))
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Skipping malformed chat archive entry: %s", exc)
        entries.sort(key=lambda entry: entry.updated_at, reverse=True)
        return entries

    def _write_entries(self, entries: list[ArchivedConversation]) -> Path:
        payload = {
            "version": _ARCHIVE_VERSION,
            "archives": [entry.to_dict() for entry in entries],
        }
        body = json.dumps(payload, indent=2, ensure_ascii=False)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        return self._path

    def _read_payload(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            data = json.loads(text)
            if isinstance(data, Mapping):
                return dict(data)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Chat archive %s is not valid JSON: %s", self._path, exc)
        return {}


def derive_title(snapshot: Mapping[str, Any]) -> str:
    """Title from the first user message, clipped to 30 characters."""

    for message in snapshot.get("messages") or ():
        if not isinstance(message, Mapping) or message.get("role") != "user":
            continue
        content = " ".join(str(message.get("content") or "").split())
        if not content:
            continue
        if len(content) > _TITLE_LIMIT:
            return content[:_TITLE_LIMIT] + "..."
        return content
    return _DEFAULT_TITLE
