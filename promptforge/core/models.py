from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Optional, Union

PREFERENCE_KEYS = (
    "tone",
    "audience",
    "domain",
    "default_model",
    "temperature",
    "output_format",
    "language",
    "depth",
    "citation_preference",
    "style_guidelines",
    "persona_hints",
)


@dataclass(frozen=True)
class LineStatus:
    title: str
    description: str


@dataclass(frozen=True)
class TerminalLine:
    id: int
    role: str
    text: Union[str, LineStatus]

    @property
    def plain_text(self) -> str:
        if isinstance(self.text, LineStatus):
            return f"{self.text.title}: {self.text.description}"
        return self.text


@dataclass(frozen=True)
class ClarifyingOption:
    id: str
    label: str


@dataclass(frozen=True)
class ClarifyingQuestion:
    id: str
    question: str
    options: tuple[ClarifyingOption, ...] = ()

    def option_index(self, answer: str) -> int:
        """Return the index of the option whose label matches ``answer``, else -1."""
        needle = answer.strip().lower()
        if not needle:
            return -1
        for idx, option in enumerate(self.options):
            if option.label.strip().lower() == needle:
                return idx
        return -1


@dataclass(frozen=True)
class ClarifyingAnswer:
    question_id: str
    question: str
    answer: str


@dataclass
class Preferences:
    """Prompt-shaping preferences plus local UI defaults and skip flags."""

    tone: Optional[str] = None
    audience: Optional[str] = None
    domain: Optional[str] = None
    default_model: Optional[str] = None
    temperature: Optional[float] = None
    output_format: Optional[str] = None
    language: Optional[str] = None
    depth: Optional[str] = None
    citation_preference: Optional[str] = None
    style_guidelines: Optional[str] = None
    persona_hints: Optional[str] = None
    ui_defaults: dict[str, Any] = field(default_factory=dict)
    sharing_links: dict[str, Any] = field(default_factory=dict)
    do_not_ask_again: dict[str, bool] = field(default_factory=dict)

    def value_for(self, key: str) -> Any:
        return getattr(self, key, None)

    def has_value(self, key: str) -> bool:
        value = self.value_for(key)
        return value is not None and value != ""

    def merged(self, updates: dict[str, Any]) -> "Preferences":
        known = {f.name for f in fields(self)}
        clean = {key: value for key, value in updates.items() if key in known}
        return replace(self, **clean)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, dict):
                data[item.name] = dict(value)
            else:
                data[item.name] = value
        return data

    @classmethod
    def from_dict(cls, raw: Any) -> "Preferences":
        if not isinstance(raw, dict):
            return cls()
        values: dict[str, Any] = {}
        for key in PREFERENCE_KEYS:
            if key == "temperature":
                values[key] = clamp_temperature(raw.get(key))
                continue
            value = raw.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            values[key] = value if isinstance(value, str) else None
        for key in ("ui_defaults", "sharing_links", "do_not_ask_again"):
            value = raw.get(key)
            values[key] = dict(value) if isinstance(value, dict) else {}
        return cls(**values)


def clamp_temperature(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value:  # NaN
        return None
    return min(1.0, max(0.0, float(value)))


@dataclass(frozen=True)
class TaskActivity:
    task: str
    stage: str
    status: str
    message: str
    detail: str = ""


@dataclass(frozen=True)
class PromptEditDiff:
    previous: str
    current: str


@dataclass(frozen=True)
class HistoryItem:
    id: str
    task: str
    label: str
    body: str
    created_at: str


@dataclass(frozen=True)
class UserIdentity:
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class FreeUsage:
    allowed: bool
    remaining: int
    used: int
    scope: str


@dataclass(frozen=True)
class LoadedPreferences:
    preferences: Preferences
    source: str


@dataclass(frozen=True)
class SaveResult:
    success: bool
    scope: str


@dataclass(frozen=True)
class UnclearTask:
    reason: str
    stage: str
    task: str
    pending_answers: tuple[ClarifyingAnswer, ...] = ()
