from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from ..core.models import (
    ClarifyingAnswer,
    ClarifyingQuestion,
    FreeUsage,
    HistoryItem,
    LoadedPreferences,
    Preferences,
    SaveResult,
)


class PromptGenerator(Protocol):
    async def generate_clarifying_questions(
        self, task: str, preferences: Preferences, allow_unclear: bool = False
    ) -> list[ClarifyingQuestion]: ...

    async def generate_final_prompt(
        self,
        task: str,
        preferences: Preferences,
        answers: Sequence[ClarifyingAnswer],
        allow_unclear: bool = False,
    ) -> str: ...

    async def edit_prompt(
        self, current_prompt: str, edit_request: str, preferences: Preferences
    ) -> str: ...


class HistoryService(Protocol):
    async def list_history(self, limit: int = 20, offset: int = 0) -> list[HistoryItem]: ...

    async def record_generation(self, task: str, prompt: str) -> Optional[str]: ...


class PreferenceStore(Protocol):
    def load_preferences(self) -> LoadedPreferences: ...

    def save_preferences(self, preferences: Preferences) -> SaveResult: ...


class FreeUsageGate(Protocol):
    async def consume_free_prompt_allowance(self, user_id: Optional[str] = None) -> FreeUsage: ...


class EventRecorder(Protocol):
    def record_event(self, event_type: str, payload: dict[str, Any]) -> None: ...


@dataclass
class Collaborators:
    """External services the conversation flow calls into."""

    generator: PromptGenerator
    history: HistoryService
    preferences: PreferenceStore
    free_usage: FreeUsageGate
    events: EventRecorder
