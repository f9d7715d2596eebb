from __future__ import annotations

from typing import TYPE_CHECKING

from ..core.constants import (
    GENERATION_MODES,
    MESSAGE_GUIDED_MODE,
    MESSAGE_QUICK_MODE,
    MODE_GUIDED,
    MODE_QUICK,
    ROLE_APP,
)
from ..core.session_log import log_debug, log_exception, log_warn

if TYPE_CHECKING:
    from .task_flow import TaskFlowController


class ModeController:
    """Switches between quick and guided generation."""

    def __init__(self, flow: "TaskFlowController") -> None:
        self.flow = flow

    def handle_mode_change(self, mode: str, silent: bool = False) -> bool:
        """Apply ``mode``; returns False when nothing changed."""
        state = self.flow.state
        if mode not in GENERATION_MODES or mode == state.generation_mode:
            return False
        state.generation_mode = mode
        ui_defaults = dict(state.preferences.ui_defaults)
        ui_defaults["generation_mode"] = mode
        # show_clarifying always tracks the mode.
        ui_defaults["show_clarifying"] = mode == MODE_GUIDED
        state.preferences = state.preferences.merged({"ui_defaults": ui_defaults})
        self._save_preferences()
        if mode == MODE_QUICK:
            self.flow.clarifying_flow.reset()
            self.flow.preference_flow.reset()
            state.awaiting_question_consent = False
        log_debug("mode", "change", {"mode": mode})
        if not silent:
            state.append_line(
                ROLE_APP, MESSAGE_QUICK_MODE if mode == MODE_QUICK else MESSAGE_GUIDED_MODE
            )
        return True

    def _save_preferences(self) -> None:
        try:
            result = self.flow.services.preferences.save_preferences(self.flow.state.preferences)
        except Exception as exc:  # noqa: BLE001
            log_exception("mode", exc)
            return
        if not result.success:
            log_warn("mode", "preferences.save_failed", {"scope": result.scope})
