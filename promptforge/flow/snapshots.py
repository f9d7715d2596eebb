from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..core.constants import (
    DEFAULT_HISTORY_PAGE_SIZE,
    EMPTY_TRANSCRIPT_MESSAGES,
    MESSAGE_HISTORY_CLEARED,
    MESSAGE_NOTHING_TO_RESTORE,
    MESSAGE_WELCOME_FRESH,
    ROLE_APP,
    ROLE_SYSTEM,
)
from ..core.models import HistoryItem
from ..core.session_log import log_debug, log_exception
from .state import Snapshot

if TYPE_CHECKING:
    from .task_flow import TaskFlowController

MESSAGE_HISTORY_FAILED = "Could not load history. Please try again."
MESSAGE_HISTORY_EMPTY = "No prompts in history yet."


class SnapshotController:
    """Clear, discard and restore the conversation through a single snapshot slot."""

    def __init__(self, flow: "TaskFlowController") -> None:
        self.flow = flow

    @property
    def state(self):
        return self.flow.state

    def has_snapshot(self) -> bool:
        return self.state.snapshot is not None

    def save_snapshot(self) -> Snapshot:
        snapshot = Snapshot.capture(self.state)
        self.state.snapshot = snapshot
        log_debug("snapshots", "save", {"lines": len(snapshot.lines)})
        return snapshot

    def is_transcript_empty(self) -> bool:
        lines = self.state.lines
        if not lines:
            return True
        if len(lines) != 1:
            return False
        only = lines[0]
        return only.role == ROLE_SYSTEM and only.plain_text in EMPTY_TRANSCRIPT_MESSAGES

    def handle_clear(self) -> bool:
        """Hide the transcript; task, prompt and answers stay live until /restore or /discard."""
        state = self.state
        if self.is_transcript_empty():
            state.value = ""
            return False
        self.save_snapshot()
        state.reset_lines(ROLE_SYSTEM, MESSAGE_HISTORY_CLEARED)
        state.activity = None
        state.value = ""
        return True

    def handle_discard(self) -> None:
        self.save_snapshot()
        self._reset_conversation()
        log_debug("snapshots", "discard")

    def handle_start_new_conversation(self) -> None:
        self.save_snapshot()
        self._reset_conversation()
        log_debug("snapshots", "new")

    def handle_restore(self) -> bool:
        state = self.state
        snapshot = state.snapshot
        if snapshot is None:
            state.append_line(ROLE_APP, MESSAGE_NOTHING_TO_RESTORE)
            return False
        self.flow.next_run_id()
        state.is_generating = False
        snapshot.apply(state)
        state.activity = None
        state.value = ""
        log_debug("snapshots", "restore", {"lines": len(snapshot.lines)})
        return True

    async def handle_history(
        self, limit: int = DEFAULT_HISTORY_PAGE_SIZE, offset: int = 0
    ) -> list[HistoryItem]:
        state = self.state
        try:
            items = await self.flow.services.history.list_history(limit=limit, offset=offset)
        except Exception as exc:  # noqa: BLE001
            log_exception("snapshots", exc)
            self.flow.show_toast(MESSAGE_HISTORY_FAILED)
            return []
        state.last_history = list(items)
        if not items:
            state.append_line(ROLE_APP, MESSAGE_HISTORY_EMPTY)
            return []
        rows = [f"{idx}. {item.label or item.task}" for idx, item in enumerate(items, start=1)]
        state.append_line(
            ROLE_APP, "Recent prompts (use /use N to reload one):\n" + "\n".join(rows)
        )
        return list(items)

    def handle_use_from_history(self, index: int) -> Optional[HistoryItem]:
        """Reload entry ``index`` (0-based) of the last listed page for review."""
        state = self.state
        if not 0 <= index < len(state.last_history):
            state.append_line(ROLE_APP, "No history entry with that number. Run /history first.")
            return None
        item = state.last_history[index]
        state.pending_task = item.task
        state.editable_prompt = item.body
        state.prompt_edit_diff = None
        state.is_prompt_editable = False
        state.is_prompt_finalized = False
        state.last_approved_prompt = None
        state.has_run_initial_task = True
        state.value = item.task
        state.append_line(ROLE_APP, f"Loaded prompt from history: {item.label or item.task}")
        self.flow.set_activity(
            "ready",
            "success",
            "Prompt loaded",
            "Loaded from history. Your next message is applied as an edit to this prompt.",
        )
        return item

    def _reset_conversation(self) -> None:
        state = self.state
        self.flow.next_run_id()
        state.is_generating = False
        state.pending_task = None
        state.editable_prompt = None
        state.prompt_edit_diff = None
        state.is_prompt_editable = True
        state.is_prompt_finalized = False
        state.has_run_initial_task = False
        state.is_revising = False
        state.last_approved_prompt = None
        self.flow.clarifying_flow.reset()
        self.flow.preference_flow.reset()
        state.answer_history.reset()
        state.last_history = []
        state.unclear = None
        state.allow_unclear = False
        state.allow_unclear_next = False
        state.login_required_reason = None
        state.subscription_required = False
        state.resume_request = None
        state.activity = None
        state.value = ""
        state.draft = ""
        state.reset_lines(ROLE_SYSTEM, MESSAGE_WELCOME_FRESH)
