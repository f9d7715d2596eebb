from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Optional

from ..core.models import PREFERENCE_KEYS, ClarifyingOption, Preferences, clamp_temperature
from ..core.session_log import log_debug

if TYPE_CHECKING:
    from .task_flow import TaskFlowController

_NUMBER = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+))")


def _lettered(labels: tuple[str, ...]) -> tuple[ClarifyingOption, ...]:
    return tuple(ClarifyingOption(chr(ord("a") + idx), label) for idx, label in enumerate(labels))


PREFERENCE_OPTIONS: dict[str, tuple[ClarifyingOption, ...]] = {
    "tone": _lettered(("casual", "neutral", "formal")),
    "audience": _lettered(("general", "technical", "executive")),
    "domain": _lettered(("product", "marketing", "engineering")),
    "depth": _lettered(("Brief summary", "Standard depth", "Deep dive")),
    "output_format": _lettered(
        ("Plain text", "Bulleted list", "Step-by-step", "Table", "Outline")
    ),
    "citation_preference": _lettered(("No citations", "Light references", "Strict citations")),
    "language": _lettered(("English", "Spanish", "French", "German")),
    "default_model": _lettered(
        (
            "gpt-4o",
            "gpt-4.1",
            "o3",
            "o4-mini",
            "claude-3.5-sonnet",
            "claude-3-opus",
            "claude-3-haiku",
            "gemini-2.5-pro",
            "gemini-2.5-flash",
        )
    ),
    "temperature": _lettered(("0.3 (focused)", "0.7 (balanced)", "0.9 (creative)")),
}

PREFERENCE_QUESTIONS: dict[str, str] = {
    "tone": "What tone would you like for this prompt? (e.g., professional, casual, technical)",
    "audience": "Who is the target audience? (e.g., developers, managers, general audience)",
    "domain": "What domain is this for? (e.g., marketing, engineering, product)",
    "default_model": "Which AI model are you targeting? (e.g., gpt-4, claude, gemini)",
    "temperature": (
        "What temperature/creativity level? (0.0-1.0, e.g., 0.7 for balanced, 0.9 for creative)"
    ),
    "output_format": "What output format do you prefer? (e.g., markdown, plain text, code)",
    "language": "What language should the output be in? (e.g., English, Spanish, French)",
    "depth": "How detailed should the output be? (e.g., concise, detailed, comprehensive)",
    "citation_preference": (
        "How should citations be handled? (e.g., include sources, no citations, inline references)"
    ),
    "style_guidelines": (
        "Any specific style guidelines? "
        "(e.g., use bullet points, keep paragraphs short, active voice)"
    ),
    "persona_hints": (
        "Any persona or voice hints? (e.g., write as a senior engineer, be helpful but concise)"
    ),
}
DEFAULT_PREFERENCE_QUESTION = "Please provide your preference:"


def parse_temperature(answer: str) -> Optional[float]:
    match = _NUMBER.match(answer)
    if not match:
        return None
    return clamp_temperature(float(match.group(1)))


class PreferenceFlowEngine:
    """Asks for unset preferences in a fixed order and hands the result to generation."""

    def __init__(self, flow: "TaskFlowController") -> None:
        self.flow = flow

    @property
    def state(self):
        return self.flow.state

    @property
    def step(self) -> str:
        state = self.state
        if state.is_asking_preference_questions:
            return "active"
        if state.pending_task and not self.preferences_to_ask():
            return "complete"
        return "idle"

    def preference_order(self) -> tuple[str, ...]:
        return PREFERENCE_KEYS

    def enabled(self) -> bool:
        return self.state.preferences.ui_defaults.get("ask_preferences", True) is not False

    def preferences_to_ask(self) -> list[str]:
        if not self.enabled():
            return []
        preferences = self.state.preferences
        skipped = self.state.session_skipped_preferences
        return [
            key
            for key in self.preference_order()
            if not preferences.do_not_ask_again.get(key)
            and key not in skipped
            and not preferences.has_value(key)
        ]

    def options_for(self, key: str) -> tuple[ClarifyingOption, ...]:
        return PREFERENCE_OPTIONS.get(key, ())

    def question_for(self, key: str) -> str:
        return PREFERENCE_QUESTIONS.get(key, DEFAULT_PREFERENCE_QUESTION)

    async def start(self) -> None:
        state = self.state
        if not self.enabled():
            self.flow.set_activity(
                "preferences",
                "success",
                "Preferences skipped",
                "Generating your prompt without preference questions.",
            )
            await self._generate()
            return
        to_ask = self.preferences_to_ask()
        if not to_ask:
            self.flow.set_activity(
                "preferences",
                "success",
                "Preferences up to date",
                "Using your saved preferences. Generating your prompt now.",
            )
            await self._generate()
            return
        log_debug("preferences", "start", {"count": len(to_ask)})
        state.is_asking_preference_questions = True
        state.pending_preference_updates = {}
        self._activate(to_ask[0])

    async def next(
        self, selected_option_index: Optional[int] = None, text: Optional[str] = None
    ) -> None:
        state = self.state
        key = state.current_preference_key
        if not state.is_asking_preference_questions or key is None:
            return
        options = self.options_for(key)
        if selected_option_index is not None and 0 <= selected_option_index < len(options):
            answer = options[selected_option_index].label
            state.preference_selected_option_index = selected_option_index
        else:
            answer = (text or "").strip()
        if not answer:
            return

        value: Any = answer
        if key == "temperature":
            value = parse_temperature(answer)
        if value is None:
            state.pending_preference_updates.pop(key, None)
        else:
            state.pending_preference_updates[key] = value
        state.value = ""
        log_debug("preferences", "answer", {"key": key, "value": value})
        await self._advance_from(key)

    def back(self) -> None:
        state = self.state
        key = state.current_preference_key
        if not state.is_asking_preference_questions or key is None:
            return
        to_ask = self.preferences_to_ask()
        position = self.preference_order().index(key)
        earlier = [k for k in to_ask if self.preference_order().index(k) < position]
        if not earlier:
            return
        self._activate(earlier[-1])

    async def skip(self) -> None:
        state = self.state
        key = state.current_preference_key
        if not state.is_asking_preference_questions or key is None:
            return
        state.session_skipped_preferences.add(key)
        state.pending_preference_updates.pop(key, None)
        state.value = ""
        log_debug("preferences", "skip", {"key": key})
        await self._advance_from(key)

    async def skip_all(self) -> None:
        state = self.state
        state.is_asking_preference_questions = False
        state.current_preference_key = None
        state.preference_selected_option_index = None
        state.pending_preference_updates = {}
        self.flow.set_activity(
            "preferences",
            "success",
            "Preferences skipped",
            "Generating your prompt without additional preferences.",
        )
        await self._generate()

    def reset(self) -> None:
        state = self.state
        state.is_asking_preference_questions = False
        state.current_preference_key = None
        state.preference_selected_option_index = None
        state.pending_preference_updates = {}

    def _activate(self, key: str) -> None:
        state = self.state
        to_ask = self.preferences_to_ask()
        position = to_ask.index(key) + 1 if key in to_ask else 1
        state.current_preference_key = key
        state.preference_selected_option_index = 0 if self.options_for(key) else None
        self.flow.set_activity(
            "preferences",
            "loading",
            f"Preferences {position}/{len(to_ask) or 1}",
            self.question_for(key),
        )

    async def _advance_from(self, key: str) -> None:
        position = self.preference_order().index(key)
        remaining = [
            k for k in self.preferences_to_ask() if self.preference_order().index(k) > position
        ]
        if remaining:
            self._activate(remaining[0])
            return
        await self._complete()

    async def _complete(self) -> None:
        state = self.state
        updates = dict(state.pending_preference_updates)
        merged = state.preferences.merged(updates)
        state.is_asking_preference_questions = False
        state.current_preference_key = None
        state.preference_selected_option_index = None
        state.pending_preference_updates = {}
        log_debug("preferences", "complete", {"updates": updates})
        self.flow.set_activity(
            "preferences",
            "success",
            "Preferences captured for this prompt",
            "Using these answers only for this prompt.",
        )
        await self._generate(merged)

    async def _generate(self, override: Optional[Preferences] = None) -> None:
        state = self.state
        if not state.pending_task:
            return
        await self.flow.generate_final_prompt_for_task(
            state.pending_task, state.active_answers, preferences_override=override
        )
