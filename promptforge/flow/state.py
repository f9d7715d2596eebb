from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from ..core.answer_history import AnswerHistoryTracker
from ..core.constants import MESSAGE_WELCOME, MODE_GUIDED, ROLE_APP, ROLE_SYSTEM
from ..core.errors import FailureCode
from ..core.models import (
    ClarifyingAnswer,
    ClarifyingQuestion,
    HistoryItem,
    LineStatus,
    Preferences,
    PromptEditDiff,
    TaskActivity,
    TerminalLine,
    UnclearTask,
    UserIdentity,
)
from ..core.session_log import get_active_logger


class Phase(str, Enum):
    IDLE = "Idle"
    AWAITING_CONSENT = "AwaitingConsent"
    ANSWERING_CLARIFYING = "AnsweringClarifying"
    ASKING_PREFERENCES = "AskingPreferences"
    GENERATING = "Generating"
    REVIEWING = "Reviewing"
    LOGIN_REQUIRED = "LoginRequired"
    SUBSCRIPTION_REQUIRED = "SubscriptionRequired"
    UNCLEAR = "Unclear"


@dataclass
class ToastState:
    """Transient notice. Each raise gets a new token; dismissing a stale token is a no-op."""

    message: Optional[str] = None
    token: int = 0

    def show(self, message: str) -> int:
        self.token += 1
        self.message = message
        return self.token

    def dismiss(self, token: int) -> bool:
        if token != self.token:
            return False
        self.message = None
        return True


@dataclass(frozen=True)
class ResumeRequest:
    """A generation blocked by the login gate, replayed after sign-in."""

    task: str
    answers: tuple[ClarifyingAnswer, ...]
    preferences_override: Optional[Preferences] = None


@dataclass
class ConversationState:
    lines: list[TerminalLine] = field(default_factory=list)
    next_line_id: int = 0
    value: str = ""
    draft: str = ""
    activity: Optional[TaskActivity] = None
    toast: ToastState = field(default_factory=ToastState)

    pending_task: Optional[str] = None
    has_run_initial_task: bool = False
    is_revising: bool = False
    editable_prompt: Optional[str] = None
    prompt_edit_diff: Optional[PromptEditDiff] = None
    is_prompt_editable: bool = True
    is_prompt_finalized: bool = False
    last_approved_prompt: Optional[str] = None

    clarifying_questions: Optional[list[ClarifyingQuestion]] = None
    clarifying_slots: list[Optional[ClarifyingAnswer]] = field(default_factory=list)
    current_question_index: int = 0
    is_answering_questions: bool = False
    awaiting_question_consent: bool = False
    consent_selected_index: Optional[int] = None
    clarifying_selected_option_index: Optional[int] = None
    last_removed_answer: Optional[ClarifyingAnswer] = None
    answer_history: AnswerHistoryTracker = field(default_factory=AnswerHistoryTracker)

    generation_mode: str = MODE_GUIDED
    is_generating: bool = False
    run_id: int = 0

    preferences: Preferences = field(default_factory=Preferences)
    preferences_source: str = "default"
    is_asking_preference_questions: bool = False
    current_preference_key: Optional[str] = None
    preference_selected_option_index: Optional[int] = None
    pending_preference_updates: dict[str, Any] = field(default_factory=dict)
    session_skipped_preferences: set[str] = field(default_factory=set)

    user: Optional[UserIdentity] = None
    login_required_reason: Optional[FailureCode] = None
    subscription_required: bool = False
    resume_request: Optional[ResumeRequest] = None
    unclear: Optional[UnclearTask] = None
    allow_unclear: bool = False
    allow_unclear_next: bool = False

    last_history: list[HistoryItem] = field(default_factory=list)
    snapshot: Optional["Snapshot"] = None

    @property
    def phase(self) -> Phase:
        if self.login_required_reason is not None:
            return Phase.LOGIN_REQUIRED
        if self.subscription_required:
            return Phase.SUBSCRIPTION_REQUIRED
        if self.unclear is not None:
            return Phase.UNCLEAR
        if self.is_generating:
            return Phase.GENERATING
        if self.awaiting_question_consent and self.pending_task:
            return Phase.AWAITING_CONSENT
        if self.is_answering_questions:
            return Phase.ANSWERING_CLARIFYING
        if self.is_asking_preference_questions:
            return Phase.ASKING_PREFERENCES
        if self.editable_prompt is not None:
            return Phase.REVIEWING
        return Phase.IDLE

    @property
    def active_answers(self) -> list[ClarifyingAnswer]:
        return [answer for answer in self.clarifying_slots if answer is not None]

    @property
    def current_question(self) -> Optional[ClarifyingQuestion]:
        questions = self.clarifying_questions or []
        if 0 <= self.current_question_index < len(questions):
            return questions[self.current_question_index]
        return None

    def append_line(self, role: str, text: Union[str, LineStatus]) -> TerminalLine:
        self.next_line_id += 1
        line = TerminalLine(id=self.next_line_id, role=role, text=text)
        self.lines.append(line)
        logger = get_active_logger()
        if logger is not None and role == ROLE_APP:
            logger.log_app_line("flow", line.plain_text)
        return line

    def reset_lines(self, role: str, text: str) -> None:
        self.lines = []
        self.append_line(role, text)

    def sync_answer_history(self) -> None:
        self.answer_history.sync(self.active_answers)


def initial_state(generation_mode: str = MODE_GUIDED) -> ConversationState:
    state = ConversationState(generation_mode=generation_mode)
    state.append_line(ROLE_SYSTEM, MESSAGE_WELCOME)
    return state


@dataclass(frozen=True)
class Snapshot:
    """Deep copy of every field clear/discard can destroy. Activity is not kept."""

    lines: tuple[TerminalLine, ...]
    editable_prompt: Optional[str]
    prompt_edit_diff: Optional[PromptEditDiff]
    pending_task: Optional[str]
    clarifying_questions: Optional[tuple[ClarifyingQuestion, ...]]
    clarifying_slots: tuple[Optional[ClarifyingAnswer], ...]
    current_question_index: int
    is_answering_questions: bool
    awaiting_question_consent: bool
    consent_selected_index: Optional[int]
    clarifying_selected_option_index: Optional[int]
    generation_mode: str
    is_prompt_editable: bool
    is_prompt_finalized: bool
    last_approved_prompt: Optional[str]
    has_run_initial_task: bool
    is_asking_preference_questions: bool
    current_preference_key: Optional[str]
    preference_selected_option_index: Optional[int]
    pending_preference_updates: dict[str, Any]
    answer_history: dict[str, str]

    @classmethod
    def capture(cls, state: ConversationState) -> "Snapshot":
        questions = state.clarifying_questions
        return cls(
            lines=tuple(state.lines),
            editable_prompt=state.editable_prompt,
            prompt_edit_diff=state.prompt_edit_diff,
            pending_task=state.pending_task,
            clarifying_questions=tuple(questions) if questions is not None else None,
            clarifying_slots=tuple(state.clarifying_slots),
            current_question_index=state.current_question_index,
            is_answering_questions=state.is_answering_questions,
            awaiting_question_consent=state.awaiting_question_consent,
            consent_selected_index=state.consent_selected_index,
            clarifying_selected_option_index=state.clarifying_selected_option_index,
            generation_mode=state.generation_mode,
            is_prompt_editable=state.is_prompt_editable,
            is_prompt_finalized=state.is_prompt_finalized,
            last_approved_prompt=state.last_approved_prompt,
            has_run_initial_task=state.has_run_initial_task,
            is_asking_preference_questions=state.is_asking_preference_questions,
            current_preference_key=state.current_preference_key,
            preference_selected_option_index=state.preference_selected_option_index,
            pending_preference_updates=copy.deepcopy(state.pending_preference_updates),
            answer_history=state.answer_history.as_dict(),
        )

    def apply(self, state: ConversationState) -> None:
        """Overwrite the tracked fields of ``state``; nothing is merged."""
        state.lines = list(self.lines)
        state.editable_prompt = self.editable_prompt
        state.prompt_edit_diff = self.prompt_edit_diff
        state.pending_task = self.pending_task
        state.clarifying_questions = (
            list(self.clarifying_questions) if self.clarifying_questions is not None else None
        )
        state.clarifying_slots = list(self.clarifying_slots)
        state.current_question_index = self.current_question_index
        state.is_answering_questions = self.is_answering_questions
        state.awaiting_question_consent = self.awaiting_question_consent
        state.consent_selected_index = self.consent_selected_index
        state.clarifying_selected_option_index = self.clarifying_selected_option_index
        state.generation_mode = self.generation_mode
        state.is_prompt_editable = self.is_prompt_editable
        state.is_prompt_finalized = self.is_prompt_finalized
        state.last_approved_prompt = self.last_approved_prompt
        state.has_run_initial_task = self.has_run_initial_task
        state.is_asking_preference_questions = self.is_asking_preference_questions
        state.current_preference_key = self.current_preference_key
        state.preference_selected_option_index = self.preference_selected_option_index
        state.pending_preference_updates = copy.deepcopy(self.pending_preference_updates)
        state.answer_history.restore(self.answer_history, len(state.active_answers))
