"""Top-level conversation controller.

The controller owns the :class:`ConversationState` and routes each submitted
line to exactly one handler: a slash command, the consent prompt, the active
clarifying or preference question, or a new task. Every generator call is
guarded by a run id; a result whose run id is no longer live is dropped.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Optional, Sequence

from ..core.constants import (
    DEFAULT_HISTORY_PAGE_SIZE,
    MAX_TASK_LENGTH,
    MESSAGE_AI_STOPPED,
    MESSAGE_CHOOSE_CONSENT,
    MESSAGE_GENERATING_WAIT,
    MESSAGE_PROMPT_APPROVED,
    MESSAGE_PROMPT_READY,
    MESSAGE_QUESTION_CONSENT,
    MESSAGE_QUOTA,
    MESSAGE_RATE_LIMITED,
    MESSAGE_REVISE,
    MESSAGE_SYSTEM_ERROR,
    MESSAGE_TASK_TOO_LONG,
    MESSAGE_TASK_TOO_SHORT,
    MIN_TASK_LENGTH,
    MODE_GUIDED,
    MODE_QUICK,
    ROLE_APP,
    ROLE_USER,
)
from ..core.errors import FailureCode, GenerationError
from ..core.models import (
    PREFERENCE_KEYS,
    ClarifyingAnswer,
    ClarifyingOption,
    Preferences,
    PromptEditDiff,
    TaskActivity,
    UnclearTask,
    UserIdentity,
)
from ..core.session_log import (
    get_active_logger,
    log_debug,
    log_exception,
    log_info,
    log_warn,
)
from ..services.base import Collaborators
from .clarifying import ClarifyingFlowEngine
from .commands import CommandRouter
from .mode import ModeController
from .preferences import PreferenceFlowEngine
from .snapshots import SnapshotController
from .state import ConversationState, ResumeRequest, initial_state

MESSAGE_LOGIN_REQUIRED = "Sign in to keep generating prompts. Your task is saved."
MESSAGE_FREE_PROMPT_USED = (
    "You have used your free prompt. Sign in to continue; your task and answers are kept."
)
MESSAGE_SUBSCRIPTION_REQUIRED = (
    "This needs an active subscription. Upgrade your plan to continue; your task is kept."
)
MESSAGE_NO_PROMPT = "No prompt yet. Describe a task first."
MESSAGE_NOTHING_TO_REVISE = "Nothing to revise yet. Describe a task first."
MESSAGE_UNCLEAR = "This task looks unclear"
MESSAGE_UNCLEAR_DETAIL = "The task may not have enough detail."


def option_index_from_text(options: Sequence[ClarifyingOption], text: str) -> Optional[int]:
    """Map a typed reply to an option: a 1-based number or a label."""
    cleaned = text.strip()
    if cleaned.isdigit():
        number = int(cleaned)
        if 1 <= number <= len(options):
            return number - 1
        return None
    lowered = cleaned.lower()
    for idx, option in enumerate(options):
        if option.label.strip().lower() == lowered:
            return idx
    return None


def _answers_payload(answers: Sequence[ClarifyingAnswer]) -> list[dict[str, str]]:
    return [asdict(answer) for answer in answers]


class TaskFlowController:
    def __init__(
        self,
        services: Collaborators,
        *,
        state: Optional[ConversationState] = None,
        generation_mode: str = MODE_GUIDED,
        consent_required: bool = True,
        ask_preferences: bool = True,
        history_page_size: int = DEFAULT_HISTORY_PAGE_SIZE,
    ) -> None:
        self.services = services
        self.state = state or initial_state(generation_mode)
        self.consent_required = consent_required
        self.ask_preferences = ask_preferences
        self.history_page_size = history_page_size
        self.clarifying_flow = ClarifyingFlowEngine(self)
        self.preference_flow = PreferenceFlowEngine(self)
        self.mode_controller = ModeController(self)
        self.snapshots = SnapshotController(self)
        self.commands = CommandRouter(self)

    # ------------------------------------------------------------------
    # Helpers shared with the engines
    # ------------------------------------------------------------------
    def next_run_id(self) -> int:
        self.state.run_id += 1
        return self.state.run_id

    def is_stale(self, run_id: int) -> bool:
        return run_id != self.state.run_id

    def set_activity(
        self,
        stage: str,
        status: str,
        message: str,
        detail: str = "",
        task: Optional[str] = None,
    ) -> TaskActivity:
        activity = TaskActivity(
            task=task if task is not None else (self.state.pending_task or ""),
            stage=stage,
            status=status,
            message=message,
            detail=detail,
        )
        self.state.activity = activity
        return activity

    def show_toast(self, message: str) -> int:
        return self.state.toast.show(message)

    def dismiss_toast(self, token: int) -> bool:
        return self.state.toast.dismiss(token)

    def record_event(self, event_type: str, payload: dict[str, Any]) -> None:
        try:
            self.services.events.record_event(event_type, payload)
        except Exception as exc:  # noqa: BLE001
            log_warn("flow", "event.record_failed", {"type": event_type, "error": str(exc)})

    def log_run_start(self, run_id: int, task: str, kind: str) -> None:
        logger = get_active_logger()
        if logger is not None:
            logger.start_run("flow", run_id, task=task, kind=kind)

    def log_run_end(self, run_id: int, status: str) -> None:
        logger = get_active_logger()
        if logger is not None:
            logger.end_run("flow", run_id, status=status)

    def load_preferences(self) -> None:
        """Load stored preferences; a stored generation mode wins over the default."""
        try:
            loaded = self.services.preferences.load_preferences()
        except Exception as exc:  # noqa: BLE001
            log_exception("flow", exc)
            return
        state = self.state
        preferences = loaded.preferences
        if not self.ask_preferences and "ask_preferences" not in preferences.ui_defaults:
            ui_defaults = dict(preferences.ui_defaults)
            ui_defaults["ask_preferences"] = False
            preferences = preferences.merged({"ui_defaults": ui_defaults})
        state.preferences = preferences
        state.preferences_source = loaded.source
        stored_mode = preferences.ui_defaults.get("generation_mode")
        if stored_mode in (MODE_QUICK, MODE_GUIDED):
            state.generation_mode = stored_mode
        log_debug("flow", "preferences.loaded", {"source": loaded.source})

    # ------------------------------------------------------------------
    # Input routing
    # ------------------------------------------------------------------
    async def submit_current(self) -> bool:
        """Consume the input buffer. Returns False when a command asked to exit."""
        state = self.state
        if state.is_generating:
            self.show_toast(MESSAGE_GENERATING_WAIT)
            return True
        line = state.value.strip()
        if not line:
            return True
        logger = get_active_logger()
        if logger is not None:
            logger.log_user_input("flow", line)

        if line.startswith("/"):
            # Commands such as /revise and /use refill the buffer.
            state.value = ""
            return await self.commands.dispatch(line)

        if state.awaiting_question_consent and state.pending_task:
            understood = await self.clarifying_flow.answer_consent(
                text=line, selected_index=state.consent_selected_index
            )
            if not understood:
                state.append_line(ROLE_APP, MESSAGE_CHOOSE_CONSENT)
            state.value = ""
            return True

        question = state.current_question
        if state.is_answering_questions and question is not None:
            selected = option_index_from_text(question.options, line)
            state.append_line(
                ROLE_USER, question.options[selected].label if selected is not None else line
            )
            await self.clarifying_flow.next(selected_option_index=selected, text=line)
            return True

        key = state.current_preference_key
        if state.is_asking_preference_questions and key is not None:
            options = self.preference_flow.options_for(key)
            selected = option_index_from_text(options, line)
            state.append_line(ROLE_USER, options[selected].label if selected is not None else line)
            await self.preference_flow.next(selected_option_index=selected, text=line)
            return True

        state.append_line(ROLE_USER, line)
        state.value = ""
        await self.handle_task(line)
        return True

    async def handle_task(self, line: str, allow_unclear: Optional[bool] = None) -> None:
        state = self.state
        task = line.strip()
        if not task:
            return
        self._clear_gates()
        log_debug(
            "flow", "task.start", {"mode": state.generation_mode, "length": len(task)}
        )
        self.record_event("task_submitted", {"task": task})
        self.set_activity(
            "collecting",
            "loading",
            "Received your task",
            "Preparing the best path to generate your prompt.",
            task=task,
        )
        if len(task) < MIN_TASK_LENGTH:
            self._reject_task("too_short", task)
            return
        if len(task) > MAX_TASK_LENGTH:
            self._reject_task("too_long", task)
            return

        if (
            state.is_revising
            and state.pending_task
            and task == state.pending_task
            and state.clarifying_questions
        ):
            state.is_revising = False
            state.has_run_initial_task = True
            state.awaiting_question_consent = False
            state.value = ""
            index = self.clarifying_flow.first_unanswered_index()
            log_debug("flow", "task.revise_resume", {"index": index})
            if index is not None:
                self.clarifying_flow.resume_at(index)
                return
            await self.generate_final_prompt_for_task(
                task, state.active_answers, skip_consent_check=True
            )
            return

        state.is_revising = False
        if state.has_run_initial_task and state.editable_prompt is not None:
            await self.handle_edit_prompt(task)
            return

        allow = state.allow_unclear_next if allow_unclear is None else allow_unclear
        state.allow_unclear_next = False
        state.allow_unclear = allow
        state.has_run_initial_task = True
        state.pending_task = task
        self.clarifying_flow.reset()
        self.preference_flow.reset()
        state.editable_prompt = None
        state.prompt_edit_diff = None
        state.is_prompt_editable = False
        state.is_prompt_finalized = False
        state.value = ""

        if state.generation_mode == MODE_QUICK:
            log_debug("flow", "task.quick")
            await self.generate_final_prompt_for_task(
                task, [], skip_consent_check=True, allow_unclear=allow
            )
            return

        if self.consent_required:
            state.awaiting_question_consent = True
            state.consent_selected_index = None
            state.append_line(ROLE_APP, MESSAGE_QUESTION_CONSENT)
            self.set_activity(
                "clarifying",
                "loading",
                "Guided Build is on",
                "Answer 3 quick questions or generate right away.",
                task=task,
            )
            return

        self.set_activity(
            "clarifying",
            "loading",
            "Guided Build is on",
            "Asking a few quick questions to sharpen this.",
            task=task,
        )
        await self.clarifying_flow.start(task, allow_unclear=allow)

    def _reject_task(self, reason: str, task: str) -> None:
        log_debug("flow", "task.rejected", {"reason": reason})
        message = MESSAGE_TASK_TOO_SHORT if reason == "too_short" else MESSAGE_TASK_TOO_LONG
        self.state.append_line(ROLE_APP, message)
        self.set_activity("error", "error", "Task needs attention", reason, task=task)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    async def generate_final_prompt_for_task(
        self,
        task: str,
        answers: Sequence[ClarifyingAnswer],
        skip_consent_check: bool = False,
        preferences_override: Optional[Preferences] = None,
        allow_unclear: bool = False,
    ) -> Optional[str]:
        state = self.state
        if not skip_consent_check and state.awaiting_question_consent:
            return None
        answers = list(answers)
        if not await self._free_usage_allows(task, answers, preferences_override):
            return None

        effective = preferences_override or state.preferences
        run_id = self.next_run_id()
        state.is_generating = True
        state.is_answering_questions = False
        has_preferences = any(effective.has_value(key) for key in PREFERENCE_KEYS)
        self.set_activity(
            "generating",
            "loading",
            "Creating prompt",
            "Applying your answers and preferences."
            if has_preferences
            else "Turning your task into a prompt.",
            task=task,
        )
        self.log_run_start(run_id, task, "final_prompt")
        logger = get_active_logger()
        if logger is not None:
            logger.log_generation_request(
                "flow",
                task=task,
                answers=_answers_payload(answers),
                preferences=effective.to_dict(),
            )
        try:
            prompt = await self.services.generator.generate_final_prompt(
                task, effective, answers, allow_unclear
            )
        except GenerationError as exc:
            if self.is_stale(run_id):
                return None
            self.log_run_end(run_id, exc.code.value)
            state.is_generating = False
            self.handle_generation_failure(exc, stage="generating", task=task, answers=answers)
            return None
        except Exception as exc:  # noqa: BLE001
            if self.is_stale(run_id):
                return None
            log_exception("flow", exc)
            self.log_run_end(run_id, "error")
            if logger is not None:
                logger.log_generation_result("flow", prompt=None, error=str(exc))
            state.is_generating = False
            self.show_toast(MESSAGE_SYSTEM_ERROR)
            self.set_activity(
                "error",
                "error",
                "Prompt generation failed",
                "Something went wrong. Please try again.",
                task=task,
            )
            return None

        if self.is_stale(run_id):
            log_debug("flow", "generation.stale", {"run_id": run_id})
            return None
        final = (prompt or "").strip() or task
        self.log_run_end(run_id, "completed")
        if logger is not None:
            logger.log_generation_result("flow", prompt=final, error=None)
        state.is_generating = False
        state.editable_prompt = final
        state.prompt_edit_diff = None
        state.is_prompt_editable = True
        state.is_prompt_finalized = False
        state.last_approved_prompt = None
        state.has_run_initial_task = True
        state.resume_request = None
        state.append_line(ROLE_APP, MESSAGE_PROMPT_READY)
        self.set_activity(
            "ready", "success", "Prompt ready", "Review, edit or approve the prompt.", task=task
        )
        self.record_event(
            "prompt_generated", {"task": task, "answers": len(answers), "mode": state.generation_mode}
        )
        await self._record_history(task, final)
        return final

    async def _free_usage_allows(
        self,
        task: str,
        answers: list[ClarifyingAnswer],
        preferences_override: Optional[Preferences],
    ) -> bool:
        if self.state.user is not None:
            return True
        try:
            usage = await self.services.free_usage.consume_free_prompt_allowance(None)
        except Exception as exc:  # noqa: BLE001
            log_exception("flow", exc)
            return True
        if usage.allowed:
            return True
        log_info("flow", "free_usage.exhausted", {"used": usage.used, "scope": usage.scope})
        self._require_login(
            FailureCode.LOGIN_REQUIRED,
            ResumeRequest(task=task, answers=tuple(answers), preferences_override=preferences_override),
        )
        return False

    async def _record_history(self, task: str, prompt: str) -> None:
        try:
            await self.services.history.record_generation(task, prompt)
        except Exception as exc:  # noqa: BLE001
            log_exception("flow", exc)

    def handle_generation_failure(
        self,
        exc: GenerationError,
        *,
        stage: str,
        task: str,
        answers: Sequence[ClarifyingAnswer] = (),
    ) -> None:
        state = self.state
        state.is_generating = False
        code = exc.code
        log_warn("flow", "generation.failed", {"code": code.value, "stage": stage, "reason": exc.reason})
        if code in (FailureCode.UNAUTHENTICATED, FailureCode.LOGIN_REQUIRED):
            self._require_login(code, ResumeRequest(task=task, answers=tuple(answers)))
        elif code == FailureCode.SUBSCRIPTION_REQUIRED:
            state.subscription_required = True
            state.append_line(ROLE_APP, MESSAGE_SUBSCRIPTION_REQUIRED)
            self.set_activity(
                stage, "error", "Subscription required", MESSAGE_SUBSCRIPTION_REQUIRED, task=task
            )
        elif code == FailureCode.INVALID_INPUT:
            reason = exc.reason if exc.reason in ("too_short", "too_long") else "too_short"
            self._reject_task(reason, task)
        elif code == FailureCode.QUOTA_EXCEEDED:
            self.show_toast(MESSAGE_QUOTA)
            self.set_activity(stage, "error", "Plan limit reached", MESSAGE_QUOTA, task=task)
        elif code == FailureCode.RATE_LIMITED:
            self.show_toast(MESSAGE_RATE_LIMITED)
            self.set_activity(stage, "error", "Too many requests", MESSAGE_RATE_LIMITED, task=task)
        elif code == FailureCode.UNCLEAR_TASK:
            self.enter_unclear(exc.reason or MESSAGE_UNCLEAR_DETAIL, stage, task, answers)

    def _require_login(self, code: FailureCode, resume: ResumeRequest) -> None:
        state = self.state
        state.login_required_reason = code
        state.resume_request = resume
        state.is_generating = False
        state.is_answering_questions = False
        if code == FailureCode.LOGIN_REQUIRED:
            message = MESSAGE_FREE_PROMPT_USED
            title = "Free prompt used"
        else:
            message = MESSAGE_LOGIN_REQUIRED
            title = "Sign-in required"
        state.append_line(ROLE_APP, message)
        self.set_activity("generating", "error", title, message, task=resume.task)

    def _clear_gates(self) -> None:
        state = self.state
        state.login_required_reason = None
        state.subscription_required = False
        state.unclear = None

    # ------------------------------------------------------------------
    # Unclear disambiguation
    # ------------------------------------------------------------------
    def enter_unclear(
        self,
        reason: str,
        stage: str,
        task: str,
        answers: Sequence[ClarifyingAnswer] = (),
    ) -> None:
        state = self.state
        state.unclear = UnclearTask(
            reason=reason, stage=stage, task=task, pending_answers=tuple(answers)
        )
        detail = reason or MESSAGE_UNCLEAR_DETAIL
        state.append_line(ROLE_APP, f"{MESSAGE_UNCLEAR}. {detail} Edit it or continue anyway.")
        self.set_activity(stage, "error", MESSAGE_UNCLEAR, detail, task=task)
        log_debug("flow", "unclear", {"reason": reason, "stage": stage})

    def handle_unclear_edit(self) -> None:
        """Put the blocked task back in the buffer; the next submission skips the check."""
        state = self.state
        unclear = state.unclear
        if unclear is None:
            return
        state.unclear = None
        state.value = unclear.task
        state.allow_unclear_next = True
        state.activity = None

    async def handle_unclear_continue(self) -> None:
        state = self.state
        unclear = state.unclear
        if unclear is None:
            return
        state.unclear = None
        state.allow_unclear = True
        if unclear.stage == "clarifying":
            await self.clarifying_flow.start(unclear.task, allow_unclear=True)
            return
        await self.generate_final_prompt_for_task(
            unclear.task,
            list(unclear.pending_answers),
            skip_consent_check=True,
            allow_unclear=True,
        )

    def handle_unclear_dismiss(self) -> None:
        state = self.state
        if state.unclear is None:
            return
        state.unclear = None
        state.activity = None

    # ------------------------------------------------------------------
    # Prompt review
    # ------------------------------------------------------------------
    def handle_stop(self) -> None:
        state = self.state
        if state.run_id == 0 and not state.is_generating:
            return
        self.next_run_id()
        state.is_generating = False
        self.record_event("generation_stopped", {"task": state.pending_task})
        self.set_activity("stopped", "success", "Stopped", MESSAGE_AI_STOPPED)
        state.append_line(ROLE_APP, MESSAGE_AI_STOPPED)

    async def handle_edit_prompt(self, instructions: str) -> Optional[str]:
        state = self.state
        current = state.editable_prompt
        request = instructions.strip()
        if current is None:
            state.append_line(ROLE_APP, MESSAGE_NO_PROMPT)
            return None
        if not request:
            return None
        run_id = self.next_run_id()
        state.is_generating = True
        task = state.pending_task or request
        self.set_activity(
            "generating", "loading", "Updating prompt", "Applying your edit request.", task=task
        )
        self.log_run_start(run_id, request, "edit")
        try:
            updated = await self.services.generator.edit_prompt(
                current, request, state.preferences
            )
        except GenerationError as exc:
            if self.is_stale(run_id):
                return None
            self.log_run_end(run_id, exc.code.value)
            self.handle_generation_failure(exc, stage="generating", task=task)
            return None
        except Exception as exc:  # noqa: BLE001
            if self.is_stale(run_id):
                return None
            log_exception("flow", exc)
            self.log_run_end(run_id, "error")
            state.is_generating = False
            self.show_toast(MESSAGE_SYSTEM_ERROR)
            self.set_activity(
                "error", "error", "Edit failed", "Could not update the prompt. Try again.", task=task
            )
            return None

        if self.is_stale(run_id):
            return None
        self.log_run_end(run_id, "completed")
        final = (updated or "").strip() or current
        state.is_generating = False
        state.prompt_edit_diff = PromptEditDiff(previous=current, current=final)
        state.editable_prompt = final
        state.is_prompt_editable = True
        state.is_prompt_finalized = False
        state.append_line(ROLE_APP, "Prompt updated.")
        self.set_activity("ready", "success", "Prompt updated", "Your edit was applied.", task=task)
        self.record_event("prompt_edited", {"task": task, "request": request})
        await self._record_history(task, final)
        return final

    def handle_approve(self) -> bool:
        state = self.state
        prompt = state.editable_prompt
        if prompt is None:
            state.append_line(ROLE_APP, MESSAGE_NO_PROMPT)
            return False
        state.is_prompt_finalized = True
        state.is_prompt_editable = False
        state.last_approved_prompt = prompt
        state.append_line(ROLE_APP, MESSAGE_PROMPT_APPROVED)
        self.set_activity("ready", "success", "Prompt approved", "Copy it or keep refining.")
        self.record_event("prompt_approved", {"task": state.pending_task})
        return True

    def handle_revise(self) -> bool:
        """Return to task editing; clarifying answers are kept for the re-run."""
        state = self.state
        if not state.pending_task:
            state.append_line(ROLE_APP, MESSAGE_NOTHING_TO_REVISE)
            return False
        state.is_revising = True
        state.has_run_initial_task = False
        state.awaiting_question_consent = False
        state.consent_selected_index = None
        state.is_answering_questions = False
        state.current_question_index = len(state.clarifying_slots)
        state.clarifying_selected_option_index = None
        self.preference_flow.reset()
        state.editable_prompt = None
        state.prompt_edit_diff = None
        state.is_prompt_editable = False
        state.is_prompt_finalized = False
        state.last_approved_prompt = None
        state.value = state.pending_task
        state.append_line(ROLE_APP, MESSAGE_REVISE)
        self.set_activity("collecting", "loading", "Revising task", MESSAGE_REVISE)
        return True

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------
    async def sign_in(self, user: UserIdentity) -> Optional[str]:
        """Record the signed-in user and re-run a task blocked on login."""
        state = self.state
        state.user = user
        state.login_required_reason = None
        log_info("flow", "sign_in", {"user": user.id})
        resume = state.resume_request
        state.resume_request = None
        if resume is None or resume.task != state.pending_task:
            state.activity = None
            return None
        return await self.generate_final_prompt_for_task(
            resume.task,
            list(resume.answers),
            skip_consent_check=True,
            preferences_override=resume.preferences_override,
        )
