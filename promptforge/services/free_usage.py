from __future__ import annotations

import json
from typing import Any, Optional

from ..config.paths import PromptForgePaths
from ..core.models import FreeUsage
from ..core.session_log import log_exception

USAGE_VERSION = 1
MAX_GUEST_PROMPTS = 1
MAX_USER_PROMPTS = 1


class JsonFreeUsageGate:
    """Counts free generations per guest and per user in .promptforge/free_usage.json."""

    def __init__(
        self,
        paths: PromptForgePaths,
        *,
        max_guest: int = MAX_GUEST_PROMPTS,
        max_user: int = MAX_USER_PROMPTS,
    ) -> None:
        self.paths = paths
        self.max_guest = max_guest
        self.max_user = max_user

    async def consume_free_prompt_allowance(self, user_id: Optional[str] = None) -> FreeUsage:
        data = self._read()
        is_guest = not user_id
        scope = "guest" if is_guest else "user"
        limit = self.max_guest if is_guest else self.max_user
        current = data["guest"] if is_guest else self._to_count(data["users"].get(user_id))
        if current >= limit:
            return FreeUsage(allowed=False, remaining=0, used=current, scope=scope)
        used = current + 1
        if is_guest:
            data["guest"] = used
        else:
            data["users"][user_id] = used
        self._write(data)
        return FreeUsage(allowed=True, remaining=max(0, limit - used), used=used, scope=scope)

    def _read(self) -> dict[str, Any]:
        empty: dict[str, Any] = {"v": USAGE_VERSION, "guest": 0, "users": {}}
        path = self.paths.free_usage_file
        if not path.exists():
            return empty
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return empty
        if not isinstance(raw, dict) or raw.get("v") != USAGE_VERSION:
            return empty
        users = raw.get("users")
        return {
            "v": USAGE_VERSION,
            "guest": self._to_count(raw.get("guest")),
            "users": dict(users) if isinstance(users, dict) else {},
        }

    def _write(self, data: dict[str, Any]) -> None:
        try:
            self.paths.workspace_dir.mkdir(parents=True, exist_ok=True)
            self.paths.free_usage_file.write_text(json.dumps(data), encoding="utf-8")
        except OSError as exc:
            # A failed write still grants this use.
            log_exception("free_usage", exc)

    def _to_count(self, value: Any) -> int:
        if isinstance(value, bool):
            return 0
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 0
