"""Configuration package."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .manager import ConfigManager, PromptForgeSettings
    from .paths import PromptForgePaths

__all__ = ["ConfigManager", "PromptForgeSettings", "PromptForgePaths"]


def __getattr__(name: str) -> Any:
    if name in {"ConfigManager", "PromptForgeSettings"}:
        from .manager import ConfigManager, PromptForgeSettings

        return {"ConfigManager": ConfigManager, "PromptForgeSettings": PromptForgeSettings}[name]
    if name == "PromptForgePaths":
        from .paths import PromptForgePaths

        return PromptForgePaths
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
