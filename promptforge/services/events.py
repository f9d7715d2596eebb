from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from ..config.paths import PromptForgePaths
from ..core.session_log import log_exception


class JsonlEventRecorder:
    """Appends flow events to .promptforge/events.jsonl. Never raises."""

    def __init__(self, paths: PromptForgePaths) -> None:
        self.paths = paths

    def record_event(self, event_type: str, payload: dict[str, Any]) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "payload": payload,
        }
        try:
            self.paths.workspace_dir.mkdir(parents=True, exist_ok=True)
            with self.paths.events_file.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except OSError as exc:
            log_exception("events", exc)
