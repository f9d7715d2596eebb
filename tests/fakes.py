"""In-memory collaborators for flow tests."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from promptforge.core.models import (
    ClarifyingOption,
    ClarifyingQuestion,
    FreeUsage,
    HistoryItem,
    LoadedPreferences,
    Preferences,
    SaveResult,
    UserIdentity,
)
from promptforge.flow import TaskFlowController
from promptforge.services.base import Collaborators

BLOG_QUESTIONS = [
    ClarifyingQuestion(
        id="goal",
        question="What is the post about?",
    ),
    ClarifyingQuestion(
        id="audience",
        question="Who is the audience?",
        options=(
            ClarifyingOption("a", "Beginners"),
            ClarifyingOption("b", "Experts"),
        ),
    ),
]

ALL_PREFERENCES_SET = {
    "tone": "neutral",
    "audience": "general",
    "domain": "product",
    "default_model": "gpt-4o",
    "temperature": 0.5,
    "output_format": "Plain text",
    "language": "English",
    "depth": "Standard depth",
    "citation_preference": "No citations",
    "style_guidelines": "short paragraphs",
    "persona_hints": "friendly expert",
}


class FakeGenerator:
    def __init__(
        self,
        questions: Optional[list[ClarifyingQuestion]] = None,
        prompt: str = "Generated prompt",
    ) -> None:
        self.questions = list(BLOG_QUESTIONS if questions is None else questions)
        self.prompt = prompt
        self.edited: Optional[str] = None
        self.question_error: Optional[BaseException] = None
        self.final_error: Optional[BaseException] = None
        self.edit_error: Optional[BaseException] = None
        self.final_gate: Optional[asyncio.Event] = None
        self.question_calls: list[dict[str, Any]] = []
        self.final_calls: list[dict[str, Any]] = []
        self.edit_calls: list[dict[str, Any]] = []

    async def generate_clarifying_questions(
        self, task: str, preferences: Preferences, allow_unclear: bool = False
    ) -> list[ClarifyingQuestion]:
        self.question_calls.append({"task": task, "allow_unclear": allow_unclear})
        if self.question_error is not None:
            raise self.question_error
        return list(self.questions)

    async def generate_final_prompt(
        self, task: str, preferences: Preferences, answers, allow_unclear: bool = False
    ) -> str:
        self.final_calls.append(
            {
                "task": task,
                "preferences": preferences,
                "answers": list(answers),
                "allow_unclear": allow_unclear,
            }
        )
        if self.final_gate is not None:
            await self.final_gate.wait()
        if self.final_error is not None:
            raise self.final_error
        return self.prompt

    async def edit_prompt(
        self, current_prompt: str, edit_request: str, preferences: Preferences
    ) -> str:
        self.edit_calls.append({"current": current_prompt, "request": edit_request})
        if self.edit_error is not None:
            raise self.edit_error
        if self.edited is not None:
            return self.edited
        return f"{current_prompt}\n{edit_request}"


class FakeHistory:
    def __init__(self, items: Optional[list[HistoryItem]] = None) -> None:
        self.items = list(items or [])
        self.recorded: list[tuple[str, str]] = []
        self.list_error: Optional[BaseException] = None
        self.record_error: Optional[BaseException] = None

    async def list_history(self, limit: int = 20, offset: int = 0) -> list[HistoryItem]:
        if self.list_error is not None:
            raise self.list_error
        return self.items[offset : offset + limit]

    async def record_generation(self, task: str, prompt: str) -> Optional[str]:
        if self.record_error is not None:
            raise self.record_error
        self.recorded.append((task, prompt))
        return f"h{len(self.recorded)}"


class FakePreferenceStore:
    def __init__(self, preferences: Optional[Preferences] = None, source: str = "default") -> None:
        self.preferences = preferences or Preferences()
        self.source = source
        self.saved: list[Preferences] = []
        self.fail = False

    def load_preferences(self) -> LoadedPreferences:
        return LoadedPreferences(preferences=self.preferences, source=self.source)

    def save_preferences(self, preferences: Preferences) -> SaveResult:
        if self.fail:
            return SaveResult(success=False, scope="session")
        self.saved.append(preferences)
        return SaveResult(success=True, scope="session")


class FakeFreeUsage:
    def __init__(self, remaining: int = 100) -> None:
        self.remaining = remaining
        self.calls: list[Optional[str]] = []

    async def consume_free_prompt_allowance(self, user_id: Optional[str] = None) -> FreeUsage:
        self.calls.append(user_id)
        if self.remaining <= 0:
            return FreeUsage(allowed=False, remaining=0, used=len(self.calls) - 1, scope="guest")
        self.remaining -= 1
        return FreeUsage(allowed=True, remaining=self.remaining, used=len(self.calls), scope="guest")


class FakeEvents:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    def record_event(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("events offline")
        self.events.append((event_type, payload))

    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]


def make_collaborators(
    generator: Optional[FakeGenerator] = None,
    *,
    history: Optional[FakeHistory] = None,
    preferences: Optional[Preferences] = None,
    remaining: int = 100,
) -> Collaborators:
    return Collaborators(
        generator=generator or FakeGenerator(),
        history=history or FakeHistory(),
        preferences=FakePreferenceStore(preferences),
        free_usage=FakeFreeUsage(remaining),
        events=FakeEvents(),
    )


def make_flow(
    generator: Optional[FakeGenerator] = None,
    *,
    preferences: Optional[Preferences] = None,
    history: Optional[FakeHistory] = None,
    remaining: int = 100,
    signed_in: bool = False,
    **kwargs: Any,
) -> TaskFlowController:
    services = make_collaborators(
        generator, history=history, preferences=preferences, remaining=remaining
    )
    flow = TaskFlowController(services, **kwargs)
    flow.load_preferences()
    if signed_in:
        flow.state.user = UserIdentity(id="tester")
    return flow


async def submit(flow: TaskFlowController, text: str) -> bool:
    flow.state.value = text
    return await flow.submit_current()
