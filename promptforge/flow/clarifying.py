from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from ..core.constants import CONSENT_OPTIONS, MESSAGE_SYSTEM_ERROR, ROLE_APP, ROLE_USER
from ..core.errors import GenerationError
from ..core.models import ClarifyingAnswer, ClarifyingOption, ClarifyingQuestion
from ..core.session_log import log_debug, log_exception
from .unclear import detect_unclear_task

if TYPE_CHECKING:
    from .task_flow import TaskFlowController

# Selection hints for the current question.
SELECT_BACK = -1
SELECT_OWN_ANSWER = -2

CONSENT_NO = "no"
CONSENT_YES = "yes"

FALLBACK_QUESTIONS: tuple[ClarifyingQuestion, ...] = (
    ClarifyingQuestion(id="fallback_outcome", question="What outcome do you want?"),
    ClarifyingQuestion(
        id="fallback_audience",
        question="Who is this for?",
        options=(
            ClarifyingOption("a", "Customers"),
            ClarifyingOption("b", "Internal team"),
            ClarifyingOption("c", "Just me"),
            ClarifyingOption("d", "Not sure"),
        ),
    ),
    ClarifyingQuestion(
        id="fallback_style",
        question="How should it be written?",
        options=(
            ClarifyingOption("a", "Concise bullets"),
            ClarifyingOption("b", "Narrative"),
            ClarifyingOption("c", "Steps"),
            ClarifyingOption("d", "No preference"),
        ),
    ),
)


def normalize_consent(raw: str) -> Optional[str]:
    """Map typed consent replies to yes/no; None when the reply is not understood."""
    cleaned = raw.strip().lower()
    if cleaned in {"generate", "gen", "now", "no", "n"}:
        return CONSENT_NO
    if cleaned in {"sharpen", "yes", "y"}:
        return CONSENT_YES
    return None


def question_line(question: ClarifyingQuestion, index: int, total: int) -> str:
    return f"Question {index + 1}/{total}: {question.question}"


def progress_message(index: int, total: int) -> str:
    remaining = max(0, total - (index + 1))
    suffix = f" · {remaining} left" if remaining else ""
    return f"Clarifying {index + 1}/{total}{suffix}"


class ClarifyingFlowEngine:
    """Asks clarifying questions one at a time and keeps answers in index-aligned slots."""

    def __init__(self, flow: "TaskFlowController") -> None:
        self.flow = flow

    @property
    def state(self):
        return self.flow.state

    async def start(self, task: str, allow_unclear: bool = False) -> None:
        state = self.state
        if not allow_unclear:
            reason = detect_unclear_task(task)
            if reason:
                self.flow.enter_unclear(reason, "clarifying", task)
                state.is_generating = False
                state.awaiting_question_consent = False
                state.is_answering_questions = False
                return

        run_id = self.flow.next_run_id()
        state.is_generating = True
        self.flow.set_activity(
            "clarifying",
            "loading",
            "Preparing clarifying questions",
            "Finding the quickest questions to sharpen your task.",
            task=task,
        )
        self.flow.log_run_start(run_id, task, "clarifying")
        try:
            questions = await self.flow.services.generator.generate_clarifying_questions(
                task, state.preferences, allow_unclear
            )
        except GenerationError as exc:
            if self.flow.is_stale(run_id):
                return
            self.flow.log_run_end(run_id, exc.code.value)
            self.flow.handle_generation_failure(exc, stage="clarifying", task=task)
            return
        except Exception as exc:  # noqa: BLE001
            if self.flow.is_stale(run_id):
                return
            log_exception("clarifying", exc)
            self.flow.log_run_end(run_id, "error")
            self.flow.show_toast(MESSAGE_SYSTEM_ERROR)
            self.flow.set_activity(
                "clarifying",
                "error",
                "Questions unavailable",
                "Could not generate clarifying questions. Using fallback instead.",
                task=task,
            )
            state.is_generating = False
            self.begin(FALLBACK_QUESTIONS)
            return

        if self.flow.is_stale(run_id):
            log_debug("clarifying", "questions.stale", {"run_id": run_id})
            return
        self.flow.log_run_end(run_id, "completed")
        state.is_generating = False
        self.flow.set_activity(
            "clarifying",
            "success",
            "Clarifying ready",
            "Answer a few quick questions to tailor the prompt.",
            task=task,
        )
        self.begin(questions or FALLBACK_QUESTIONS)

    def begin(self, questions: Sequence[ClarifyingQuestion]) -> None:
        if not questions:
            return
        state = self.state
        state.clarifying_questions = list(questions)
        state.clarifying_slots = []
        state.current_question_index = 0
        state.sync_answer_history()
        state.awaiting_question_consent = False
        state.consent_selected_index = None
        state.is_answering_questions = True
        self.select_for_question(questions[0], has_back=False)
        self._show_question(0)

    async def answer_consent(
        self, text: Optional[str] = None, selected_index: Optional[int] = None
    ) -> bool:
        """Resolve the consent prompt. The selected option wins over typed text.

        Returns False when the reply was not understood and the prompt stays open.
        """
        if selected_index in (0, 1):
            choice = CONSENT_YES if selected_index == 1 else CONSENT_NO
        else:
            choice = normalize_consent(text or "")
        if choice is None:
            return False
        state = self.state
        if not state.pending_task:
            state.awaiting_question_consent = False
            return True
        state.append_line(ROLE_USER, CONSENT_OPTIONS[1 if choice == CONSENT_YES else 0])
        self.flow.record_event("question_consent", {"task": state.pending_task, "answer": choice})
        if choice == CONSENT_YES:
            await self.accept_consent()
        else:
            await self.decline_consent()
        return True

    async def accept_consent(self) -> None:
        state = self.state
        state.awaiting_question_consent = False
        state.consent_selected_index = None
        if not state.pending_task:
            return
        questions = state.clarifying_questions
        if questions:
            answered = min(len(state.clarifying_slots), len(questions) - 1)
            state.is_answering_questions = True
            state.current_question_index = answered
            self.select_for_question(questions[answered], has_back=answered > 0)
            self._show_question(answered)
            return
        await self.start(state.pending_task, allow_unclear=state.allow_unclear)

    async def decline_consent(self) -> None:
        state = self.state
        state.awaiting_question_consent = False
        state.consent_selected_index = None
        state.is_answering_questions = False
        if not state.pending_task:
            return
        self.flow.set_activity(
            "generating",
            "loading",
            "Generating without questions",
            "Skipping clarifying; creating your prompt now.",
        )
        await self.flow.generate_final_prompt_for_task(
            state.pending_task, [], skip_consent_check=True
        )

    async def next(
        self, selected_option_index: Optional[int] = None, text: Optional[str] = None
    ) -> None:
        state = self.state
        question = self._question_at_cursor()
        if question is None:
            return
        index = state.current_question_index
        if selected_option_index is not None and 0 <= selected_option_index < len(question.options):
            answer_text = question.options[selected_option_index].label.strip()
            state.clarifying_selected_option_index = selected_option_index
        else:
            answer_text = (text or "").strip()
        if not answer_text:
            return

        answer = ClarifyingAnswer(
            question_id=question.id, question=question.question, answer=answer_text
        )
        self._write_slot(index, answer)
        state.sync_answer_history()
        state.value = ""
        self.flow.record_event(
            "clarifying_answer",
            {
                "task": state.pending_task,
                "question_id": question.id,
                "question": question.question,
                "answer": answer_text,
            },
        )
        log_debug("clarifying", "answer", {"index": index, "question_id": question.id})
        await self._advance(index + 1)

    async def skip(self) -> None:
        state = self.state
        question = self._question_at_cursor()
        if question is None:
            return
        index = state.current_question_index
        self._write_slot(index, None)
        state.sync_answer_history()
        state.value = ""
        log_debug("clarifying", "skip", {"index": index, "question_id": question.id})
        await self._advance(index + 1)

    def undo(self) -> None:
        state = self.state
        questions = state.clarifying_questions
        if not questions or not state.pending_task:
            return
        if state.current_question_index == 0 or not state.clarifying_slots:
            return
        target = max(0, state.current_question_index - 1)
        question = questions[target] if target < len(questions) else None
        previous = state.clarifying_slots[target] if target < len(state.clarifying_slots) else None
        state.last_removed_answer = previous
        state.clarifying_slots = state.clarifying_slots[:target]
        state.sync_answer_history()
        state.current_question_index = target
        state.is_answering_questions = True
        state.awaiting_question_consent = False

        answer_text = previous.answer.strip() if previous is not None else ""
        if question is not None and answer_text and question.option_index(answer_text) < 0:
            state.value = answer_text
            state.clarifying_selected_option_index = SELECT_OWN_ANSWER
        else:
            state.value = ""
            matched = question.option_index(answer_text) if question is not None else -1
            state.clarifying_selected_option_index = matched if matched >= 0 else None

        if question is not None:
            self.flow.set_activity(
                "clarifying",
                "loading",
                progress_message(target, len(questions)),
                "Answer a few quick questions to sharpen your prompt.",
            )
        else:
            state.activity = None

    def reset(self) -> None:
        state = self.state
        state.clarifying_questions = None
        state.clarifying_slots = []
        state.current_question_index = 0
        state.is_answering_questions = False
        state.awaiting_question_consent = False
        state.consent_selected_index = None
        state.clarifying_selected_option_index = None
        state.last_removed_answer = None
        state.sync_answer_history()

    def select_for_question(
        self, question: Optional[ClarifyingQuestion], has_back: bool
    ) -> Optional[int]:
        if question is None:
            selection = None
        elif question.options:
            selection = 0
        elif has_back:
            selection = SELECT_BACK
        else:
            selection = None
        self.state.clarifying_selected_option_index = selection
        return selection

    def first_unanswered_index(self) -> Optional[int]:
        questions = self.state.clarifying_questions or []
        slots = self.state.clarifying_slots
        for idx in range(len(questions)):
            if idx >= len(slots) or slots[idx] is None:
                return idx
        return None

    def resume_at(self, index: int) -> None:
        """Re-enter answering at ``index`` keeping every earlier slot."""
        questions = self.state.clarifying_questions or []
        if not 0 <= index < len(questions):
            return
        state = self.state
        state.is_answering_questions = True
        state.awaiting_question_consent = False
        self._prefill(index)
        self._show_question(index)

    def _question_at_cursor(self) -> Optional[ClarifyingQuestion]:
        state = self.state
        if not state.clarifying_questions or not state.pending_task:
            state.is_answering_questions = False
            return None
        question = state.current_question
        if question is None:
            state.is_answering_questions = False
        return question

    def _write_slot(self, index: int, answer: Optional[ClarifyingAnswer]) -> None:
        slots = self.state.clarifying_slots
        if index < len(slots):
            slots[index] = answer
            return
        slots.extend([None] * (index - len(slots)))
        slots.append(answer)

    async def _advance(self, next_index: int) -> None:
        questions = self.state.clarifying_questions or []
        if next_index < len(questions):
            self._prefill(next_index)
            self._show_question(next_index)
            return
        await self._complete()

    def _prefill(self, index: int) -> None:
        """Restore the buffer or option selection from an earlier answer to this question."""
        state = self.state
        question = (state.clarifying_questions or [])[index]
        state.current_question_index = index
        slot = state.clarifying_slots[index] if index < len(state.clarifying_slots) else None
        previous = slot.answer if slot is not None else state.answer_history.get(question.id)
        answer_text = (previous or "").strip()
        if not answer_text:
            self.select_for_question(question, has_back=index > 0)
            return
        matched = question.option_index(answer_text)
        if matched >= 0:
            state.clarifying_selected_option_index = matched
        else:
            state.value = answer_text
            state.clarifying_selected_option_index = SELECT_OWN_ANSWER

    def _show_question(self, index: int) -> None:
        state = self.state
        questions = state.clarifying_questions or []
        question = questions[index]
        state.current_question_index = index
        self.flow.set_activity(
            "clarifying",
            "loading",
            progress_message(index, len(questions)),
            "Answering these questions improves the quality of your prompt.",
        )
        state.append_line(ROLE_APP, question_line(question, index, len(questions)))

    async def _complete(self) -> None:
        state = self.state
        state.clarifying_selected_option_index = None
        state.is_answering_questions = False
        log_debug("clarifying", "complete", {"answers": len(state.active_answers)})
        if self.flow.preference_flow.preferences_to_ask():
            await self.flow.preference_flow.start()
            return
        await self.flow.generate_final_prompt_for_task(
            state.pending_task or "", state.active_answers
        )
