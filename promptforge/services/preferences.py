from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..config.paths import PromptForgePaths
from ..core.models import LoadedPreferences, Preferences, SaveResult
from ..core.session_log import log_exception

SCOPE_SESSION = "session"
SCOPE_USER = "user"
SOURCE_DEFAULT = "default"


class JsonPreferenceStore:
    """Loads preferences from ~/.promptforge and .promptforge, saving to one of them.

    The global file holds user-scoped preferences; the workspace file holds
    session-scoped ones and wins on load.
    """

    def __init__(self, paths: PromptForgePaths, scope: str = SCOPE_SESSION) -> None:
        self.paths = paths
        self.scope = scope if scope in (SCOPE_SESSION, SCOPE_USER) else SCOPE_SESSION

    def load_preferences(self) -> LoadedPreferences:
        user_data = self._read(self.paths.global_preferences_file)
        session_data = self._read(self.paths.preferences_file)
        if session_data is not None:
            source = SCOPE_SESSION
        elif user_data is not None:
            source = SCOPE_USER
        else:
            source = SOURCE_DEFAULT
        merged: dict[str, Any] = dict(user_data or {})
        for key, value in (session_data or {}).items():
            if value is None:
                continue
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        return LoadedPreferences(preferences=Preferences.from_dict(merged), source=source)

    def save_preferences(self, preferences: Preferences) -> SaveResult:
        target = self._target_file()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(
                json.dumps(preferences.to_dict(), indent=2, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
        except OSError as exc:
            log_exception("preferences", exc)
            return SaveResult(success=False, scope=self.scope)
        return SaveResult(success=True, scope=self.scope)

    def _target_file(self) -> Path:
        if self.scope == SCOPE_USER:
            return self.paths.global_preferences_file
        return self.paths.preferences_file

    def _read(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None
