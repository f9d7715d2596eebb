from __future__ import annotations

import json
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from ..config.paths import PromptForgePaths
from ..core.constants import DEFAULT_HISTORY_PAGE_SIZE, HISTORY_FIELD_LIMIT
from ..core.models import HistoryItem
from ..core.session_log import log_exception

HISTORY_RETENTION_DAYS = 30
LABEL_LIMIT = 60

REDACTION_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bsk-[A-Za-z0-9]{16,}\b", re.IGNORECASE), "[redacted-key]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[email]"),
    (re.compile(r"(https?://[^\s]+)", re.IGNORECASE), "[url]"),
    (re.compile(r"\bpk_live_[A-Za-z0-9]{16,}\b", re.IGNORECASE), "[redacted-key]"),
)


def redact_for_storage(value: str) -> str:
    """Trim, truncate and mask secrets, emails and URLs before writing to disk."""
    limited = value.strip()[:HISTORY_FIELD_LIMIT]
    for pattern, replacement in REDACTION_PATTERNS:
        limited = pattern.sub(replacement, limited)
    return limited


def label_for_task(task: str) -> str:
    first_line = task.strip().splitlines()[0] if task.strip() else ""
    if len(first_line) <= LABEL_LIMIT:
        return first_line
    return first_line[: LABEL_LIMIT - 1].rstrip() + "…"


class JsonHistoryStore:
    """Keeps generated prompts in .promptforge/history.json, newest last on disk."""

    def __init__(self, paths: PromptForgePaths) -> None:
        self.paths = paths

    async def list_history(
        self, limit: int = DEFAULT_HISTORY_PAGE_SIZE, offset: int = 0
    ) -> list[HistoryItem]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=HISTORY_RETENTION_DAYS)
        recent = [
            entry for entry in self.read_entries() if self._created_after(entry, cutoff)
        ]
        recent.reverse()
        page = recent[max(offset, 0) : max(offset, 0) + max(limit, 0)]
        return [
            HistoryItem(
                id=str(entry.get("id", "")),
                task=str(entry.get("task", "")),
                label=str(entry.get("label", "")),
                body=str(entry.get("body", "")),
                created_at=str(entry.get("created_at", "")),
            )
            for entry in page
        ]

    async def record_generation(self, task: str, prompt: str) -> Optional[str]:
        entry = {
            "id": uuid.uuid4().hex,
            "task": redact_for_storage(task),
            "label": redact_for_storage(label_for_task(task)),
            "body": redact_for_storage(prompt),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        entries = self.read_entries()
        entries.append(entry)
        try:
            self._write_entries(entries)
        except OSError as exc:
            log_exception("history", exc)
            return None
        return entry["id"]

    def read_entries(self) -> list[dict[str, Any]]:
        if not self.paths.history_file.exists():
            return []
        try:
            data = json.loads(self.paths.history_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def _write_entries(self, entries: list[dict[str, Any]]) -> None:
        self.paths.workspace_dir.mkdir(parents=True, exist_ok=True)
        self.paths.history_file.write_text(
            json.dumps(entries, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def _created_after(self, entry: dict[str, Any], cutoff: datetime) -> bool:
        raw = entry.get("created_at")
        if not isinstance(raw, str):
            return False
        try:
            created = datetime.fromisoformat(raw)
        except ValueError:
            return False
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created >= cutoff
