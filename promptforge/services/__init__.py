"""Default collaborators for the conversation flow."""

from __future__ import annotations

from typing import Optional

from rich.console import Console

from ..config.manager import ConfigManager, PromptForgeSettings
from ..config.paths import PromptForgePaths
from .base import (
    Collaborators,
    EventRecorder,
    FreeUsageGate,
    HistoryService,
    PreferenceStore,
    PromptGenerator,
)
from .events import JsonlEventRecorder
from .free_usage import JsonFreeUsageGate
from .generator import ClaudePromptGenerator, OfflinePromptGenerator
from .history import JsonHistoryStore
from .preferences import JsonPreferenceStore

__all__ = [
    "ClaudePromptGenerator",
    "Collaborators",
    "EventRecorder",
    "FreeUsageGate",
    "HistoryService",
    "JsonFreeUsageGate",
    "JsonHistoryStore",
    "JsonPreferenceStore",
    "JsonlEventRecorder",
    "OfflinePromptGenerator",
    "PreferenceStore",
    "PromptGenerator",
    "build_collaborators",
]


def build_collaborators(
    config: ConfigManager,
    paths: PromptForgePaths,
    settings: PromptForgeSettings,
    console: Optional[Console] = None,
) -> Collaborators:
    offline = OfflinePromptGenerator()
    generator: PromptGenerator = offline
    if settings.generator == "claude":
        generator = ClaudePromptGenerator(config, paths, console=console, fallback=offline)
    return Collaborators(
        generator=generator,
        history=JsonHistoryStore(paths),
        preferences=JsonPreferenceStore(paths),
        free_usage=JsonFreeUsageGate(paths),
        events=JsonlEventRecorder(paths),
    )
