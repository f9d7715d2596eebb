from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console

from ..core.constants import DEFAULT_HISTORY_PAGE_SIZE, GENERATION_MODES, MODE_GUIDED
from .paths import PromptForgePaths

DEFAULT_PROJECT_CONFIG: Dict[str, Any] = {
    "generation_mode": MODE_GUIDED,
    "consent_required": True,
    "ask_preferences": True,
    "history_page_size": DEFAULT_HISTORY_PAGE_SIZE,
    "generator": "offline",
    "debug": None,
    "user": None,
}
GENERATORS = ("offline", "claude")


@dataclass
class PromptForgeSettings:
    base_url: Optional[str]
    auth_token: Optional[str]
    model: Optional[str]
    api_timeout_ms: Optional[int]
    generator: str
    generation_mode: str
    consent_required: bool
    ask_preferences: bool
    history_page_size: int
    user_id: Optional[str] = None


class ConfigManager:
    """Reads workspace and global PromptForge configuration."""

    def __init__(self, paths: PromptForgePaths, console: Optional[Console] = None) -> None:
        self.paths = paths
        self.console = console or Console()

    def load_project_config(self) -> Dict[str, Any]:
        """Merge defaults, global config, then the workspace promptforge.json."""
        merged = dict(DEFAULT_PROJECT_CONFIG)
        merged = self._merge_dicts(merged, self._read_json(self.paths.global_config_file))
        merged = self._merge_dicts(merged, self._read_json(self.paths.config_file))
        return self._normalize_project_config(merged)

    def load_settings(self) -> PromptForgeSettings:
        """Resolve project config and environment variables into settings."""
        project_cfg = self.load_project_config()
        env_cfg = self._env_settings()
        anthropic_cfg = project_cfg.get("anthropic")
        if not isinstance(anthropic_cfg, dict):
            anthropic_cfg = {}
        generator = env_cfg.get("generator") or project_cfg["generator"]
        if generator not in GENERATORS:
            self.console.print(
                f"[yellow]Unknown generator '{generator}', falling back to offline.[/yellow]"
            )
            generator = "offline"
        return PromptForgeSettings(
            base_url=anthropic_cfg.get("base_url") or env_cfg.get("base_url"),
            auth_token=anthropic_cfg.get("auth_token") or env_cfg.get("auth_token"),
            model=anthropic_cfg.get("model") or env_cfg.get("model"),
            api_timeout_ms=self._to_int(anthropic_cfg.get("api_timeout_ms"))
            or env_cfg.get("api_timeout_ms"),
            generator=generator,
            generation_mode=project_cfg["generation_mode"],
            consent_required=project_cfg["consent_required"],
            ask_preferences=project_cfg["ask_preferences"],
            history_page_size=project_cfg["history_page_size"],
            user_id=project_cfg.get("user"),
        )

    def build_env(self, settings: PromptForgeSettings) -> Dict[str, str]:
        env: Dict[str, str] = {}
        if settings.base_url:
            env["ANTHROPIC_BASE_URL"] = settings.base_url
        if settings.auth_token:
            env["ANTHROPIC_AUTH_TOKEN"] = settings.auth_token
        if settings.model:
            env["ANTHROPIC_MODEL"] = settings.model
        if settings.api_timeout_ms is not None:
            env["API_TIMEOUT_MS"] = str(settings.api_timeout_ms)
        return env

    def _normalize_project_config(self, data: Dict[str, Any]) -> Dict[str, Any]:
        normalized = dict(data)
        mode = normalized.get("generation_mode")
        if not isinstance(mode, str) or mode.strip().lower() not in GENERATION_MODES:
            normalized["generation_mode"] = DEFAULT_PROJECT_CONFIG["generation_mode"]
        else:
            normalized["generation_mode"] = mode.strip().lower()
        for key in ("consent_required", "ask_preferences"):
            raw = normalized.get(key)
            if raw is None:
                normalized[key] = DEFAULT_PROJECT_CONFIG[key]
            elif isinstance(raw, str):
                normalized[key] = raw.strip().lower() in {"1", "true", "yes", "y", "on"}
            else:
                normalized[key] = bool(raw)
        page_size = normalized.get("history_page_size")
        if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
            normalized["history_page_size"] = DEFAULT_PROJECT_CONFIG["history_page_size"]
        generator = normalized.get("generator")
        if not isinstance(generator, str) or not generator.strip():
            normalized["generator"] = DEFAULT_PROJECT_CONFIG["generator"]
        else:
            normalized["generator"] = generator.strip().lower()
        user = normalized.get("user")
        normalized["user"] = user.strip() if isinstance(user, str) and user.strip() else None
        return normalized

    def _merge_dicts(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(base)
        for key, value in (override or {}).items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = self._merge_dicts(result[key], value)
            else:
                result[key] = value
        return result

    def _env_settings(self) -> Dict[str, Any]:
        return {
            "base_url": os.getenv("ANTHROPIC_BASE_URL"),
            "auth_token": os.getenv("ANTHROPIC_AUTH_TOKEN"),
            "model": os.getenv("ANTHROPIC_MODEL"),
            "api_timeout_ms": self._to_int(os.getenv("API_TIMEOUT_MS")),
            "generator": (os.getenv("PROMPTFORGE_GENERATOR") or "").strip().lower() or None,
        }

    def _read_json(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            self.console.print(
                f"[red]Failed to parse JSON config at {path}. Using defaults.[/red]"
            )
            return {}
        if not isinstance(data, dict):
            self.console.print(
                f"[yellow]Ignoring {path}: expected a JSON object.[/yellow]"
            )
            return {}
        return data

    def _to_int(self, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
