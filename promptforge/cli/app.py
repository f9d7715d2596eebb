from __future__ import annotations

import argparse
import asyncio
import errno
import signal
from contextlib import suppress
from pathlib import Path
from typing import Any, Awaitable

from prompt_toolkit import PromptSession
from prompt_toolkit.key_binding import KeyBindings
from rich.console import Console, Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from ..config import ConfigManager
from ..config.paths import PromptForgePaths
from ..core.constants import (
    COMMAND_EXIT,
    COMMAND_LOGIN,
    CONSENT_OPTIONS,
    GENERATION_MODES,
    MODE_QUICK,
    ROLE_APP,
    ROLE_SYSTEM,
    ROLE_USER,
)
from ..core.models import TaskActivity, TerminalLine, UserIdentity
from ..core.session_log import SessionLogger, log_exception, set_active_logger
from ..flow import Phase, TaskFlowController
from ..flow.commands import command_argument
from ..services import Collaborators, build_collaborators
from .input import PromptForgeCompleter

EXIT_CODE_USAGE = 2
EXIT_CODE_FAILED = 1
EXIT_CODE_LOGIN_REQUIRED = 10
EXIT_CODE_INTERRUPTED = 14

UNCLEAR_CHOICES = ("Edit the task", "Continue anyway", "Dismiss")

ROLE_STYLES = {
    ROLE_SYSTEM: "dim",
    ROLE_USER: "bold cyan",
    ROLE_APP: "white",
}
STATUS_ICONS = {"loading": "⏳", "success": "✅", "error": "⚠️"}


class PromptForgeCLI:
    """Interactive terminal front end for the conversation flow."""

    def __init__(
        self,
        root: Path | None = None,
        console: Console | None = None,
        *,
        collaborators: Collaborators | None = None,
        session: Any = None,
        generation_mode: str | None = None,
        interactive_prompts: bool = True,
    ) -> None:
        self.console = console or Console()
        self.root = root or Path.cwd()
        self.paths = PromptForgePaths(self.root)
        self.config_manager = ConfigManager(self.paths, console=self.console)
        project_cfg = self.config_manager.load_project_config()
        self.session_logger = SessionLogger(self.paths, project_cfg.get("debug"))
        set_active_logger(self.session_logger)
        self.settings = self.config_manager.load_settings()
        services = collaborators or build_collaborators(
            self.config_manager, self.paths, self.settings, console=self.console
        )
        self.flow = TaskFlowController(
            services,
            generation_mode=self.settings.generation_mode,
            consent_required=self.settings.consent_required,
            ask_preferences=self.settings.ask_preferences,
            history_page_size=self.settings.history_page_size,
        )
        self.flow.load_preferences()
        if generation_mode in GENERATION_MODES:
            self.flow.state.generation_mode = generation_mode
        if self.settings.user_id:
            self.flow.state.user = UserIdentity(id=self.settings.user_id)
        self.registry = self.flow.commands.registry
        self._register_commands()
        self._shutting_down = False
        self._rendered_lines: list[TerminalLine] | None = None
        self._rendered_line_id = 0
        self._rendered_activity: TaskActivity | None = None
        self._rendered_toast = 0
        self._rendered_prompt: str | None = None
        self._rendered_choices: tuple[Any, ...] | None = None
        self.session = session
        if self.session is None and interactive_prompts:
            bindings = KeyBindings()

            @bindings.add("escape", "enter", eager=True)
            def _(event):  # type: ignore
                """Insert newline with Alt/Option+Enter."""
                event.current_buffer.insert_text("\n")

            self.session = PromptSession(
                completer=PromptForgeCompleter(
                    self.registry.names(), option_provider=self._current_option_labels
                ),
                complete_while_typing=True,
                key_bindings=bindings,
            )

    def _register_commands(self) -> None:
        self.registry.register(
            COMMAND_LOGIN,
            self._cmd_login,
            "Sign in to keep generating: /login <name or email>.",
        )
        self.registry.register(COMMAND_EXIT, self._cmd_exit, "Exit PromptForge gracefully.")

    def _print_banner(self) -> None:
        from promptforge import __version__

        state = self.flow.state
        helper_lines = [
            f"PromptForge v{__version__}",
            f"Mode: {state.generation_mode}",
            f"Generator: {self.settings.generator}",
            f"Model: {self.settings.model or '<not set>'}",
            f"Signed in: {state.user.id if state.user else 'guest'}",
            "Reminders: /help for commands • Ctrl+C stops a running generation",
        ]
        self.console.print(
            Panel(
                Text("\n".join(helper_lines)),
                title="🛠️ PromptForge",
                expand=True,
                padding=(1, 2),
            )
        )

    async def _cmd_login(self, command: str) -> bool:
        user_id = command_argument(command)
        if not user_id:
            self.flow.state.append_line(ROLE_APP, "Usage: /login <name or email>.")
            return True
        email = user_id if "@" in user_id else None
        await self.flow.sign_in(UserIdentity(id=user_id, email=email))
        self.flow.state.append_line(ROLE_APP, f"Signed in as {user_id}.")
        return True

    async def _cmd_exit(self, _: str) -> bool:
        return False

    async def run(self) -> None:
        self._print_banner()
        self._render()
        try:
            while True:
                try:
                    raw = await self._read_input(self._prompt_label())
                except (EOFError, KeyboardInterrupt):
                    break
                self._apply_choice_shortcut(raw)
                self.flow.state.value = raw
                should_continue = await self._run_interruptible(self.flow.submit_current())
                self._render()
                if should_continue is False:
                    break
                await self._resolve_side_states()
        except Exception as exc:  # noqa: BLE001
            self.session_logger.log_exception("cli", exc)
            raise
        finally:
            await self._graceful_exit()

    async def run_prompt(self, prompt: str) -> int:
        """Generate one prompt in quick mode and print it."""
        text = (prompt or "").strip()
        if not text:
            self.console.print(Panel("Prompt is required.", title="Error", border_style="red"))
            return EXIT_CODE_USAGE
        state = self.flow.state
        state.generation_mode = MODE_QUICK
        state.value = text
        try:
            await self._run_interruptible(self.flow.submit_current())
        finally:
            with suppress(Exception):
                self.session_logger.close()
            set_active_logger(None)
        if state.editable_prompt is None:
            self._render_lines()
            if state.phase == Phase.LOGIN_REQUIRED:
                self._render_side_panels()
                return EXIT_CODE_LOGIN_REQUIRED
            if state.activity is not None and state.activity.stage == "stopped":
                return EXIT_CODE_INTERRUPTED
            return EXIT_CODE_FAILED
        self.console.print(state.editable_prompt, markup=False, highlight=False)
        return 0

    async def _run_interruptible(self, coro: Awaitable[Any]) -> Any:
        """Run a flow call; Ctrl+C stops the generation instead of exiting."""
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(coro)
        installed = False
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGINT, self._interrupt, task)
            installed = True
        try:
            return await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
            return True
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)

    def _interrupt(self, task: asyncio.Future) -> None:
        self.flow.handle_stop()
        task.cancel()

    async def _resolve_side_states(self) -> None:
        state = self.flow.state
        if state.phase != Phase.UNCLEAR:
            return
        choice = await self._prompt_choice(
            title="Unclear task",
            prompt_text="How would you like to continue?",
            options=list(UNCLEAR_CHOICES),
        )
        if choice == 0:
            self.flow.handle_unclear_edit()
        elif choice == 1:
            await self._run_interruptible(self.flow.handle_unclear_continue())
        else:
            self.flow.handle_unclear_dismiss()
        self._render()

    async def _prompt_choice(
        self, *, title: str, prompt_text: str, options: list[str]
    ) -> int | None:
        lines = [prompt_text, ""] + [f"{idx}. {label}" for idx, label in enumerate(options, 1)]
        self.console.print(Panel("\n".join(lines), title=title, border_style="yellow"))
        try:
            raw = await self._read_input("choice> ")
        except (EOFError, KeyboardInterrupt):
            return None
        cleaned = raw.strip().lower()
        if cleaned.isdigit() and 1 <= int(cleaned) <= len(options):
            return int(cleaned) - 1
        for idx, label in enumerate(options):
            if cleaned and label.lower().startswith(cleaned):
                return idx
        return None

    def _apply_choice_shortcut(self, raw: str) -> None:
        state = self.flow.state
        cleaned = raw.strip()
        if state.phase == Phase.AWAITING_CONSENT and cleaned in ("1", "2"):
            state.consent_selected_index = int(cleaned) - 1

    async def _read_input(self, prompt: str = "promptforge> ") -> str:
        default_text = self.flow.state.value
        if self.session is None:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, lambda: self.console.input(prompt))
        prompt_kwargs = {"default": default_text} if default_text else {}
        return await self.session.prompt_async(prompt, **prompt_kwargs)

    def _prompt_label(self) -> str:
        phase = self.flow.state.phase
        if phase == Phase.AWAITING_CONSENT:
            return "consent> "
        if phase == Phase.ANSWERING_CLARIFYING:
            return "answer> "
        if phase == Phase.ASKING_PREFERENCES:
            return "preference> "
        if phase == Phase.REVIEWING:
            return "edit> "
        return "promptforge> "

    def _current_option_labels(self) -> list[str]:
        state = self.flow.state
        if state.phase == Phase.AWAITING_CONSENT:
            return list(CONSENT_OPTIONS)
        question = state.current_question
        if state.is_answering_questions and question is not None:
            return [option.label for option in question.options]
        key = state.current_preference_key
        if state.is_asking_preference_questions and key is not None:
            return [option.label for option in self.flow.preference_flow.options_for(key)]
        return []

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def _render(self) -> None:
        self._render_lines()
        self._render_activity()
        self._render_toast()
        self._render_prompt()
        self._render_choices()
        self._render_side_panels()

    def _render_lines(self) -> None:
        state = self.flow.state
        if state.lines is not self._rendered_lines:
            # The transcript was replaced by clear, discard or restore.
            if self._rendered_lines is not None:
                self.console.rule(style="dim")
            self._rendered_lines = state.lines
            self._rendered_line_id = 0
        for line in state.lines:
            if line.id <= self._rendered_line_id:
                continue
            self._rendered_line_id = line.id
            if line.role == ROLE_USER:
                continue
            self.console.print(
                Text(line.plain_text, style=ROLE_STYLES.get(line.role, "")), highlight=False
            )

    def _render_activity(self) -> None:
        activity = self.flow.state.activity
        if activity == self._rendered_activity:
            return
        self._rendered_activity = activity
        if activity is None:
            return
        icon = STATUS_ICONS.get(activity.status, "•")
        detail = f" · {activity.detail}" if activity.detail else ""
        self.console.print(Text(f"{icon} {activity.message}{detail}", style="dim"))

    def _render_toast(self) -> None:
        toast = self.flow.state.toast
        if toast.token == self._rendered_toast:
            return
        self._rendered_toast = toast.token
        if toast.message:
            self.console.print(Panel(toast.message, title="Notice", border_style="yellow"))
            self.flow.dismiss_toast(toast.token)

    def _render_prompt(self) -> None:
        state = self.flow.state
        prompt = state.editable_prompt
        if prompt == self._rendered_prompt:
            return
        self._rendered_prompt = prompt
        if prompt is None:
            return
        subtitle = "approved" if state.is_prompt_finalized else "/edit, /approve, /revise"
        self.console.print(
            Panel(
                Markdown(prompt, code_theme="monokai"),
                title="📝 Prompt",
                subtitle=subtitle,
                border_style="green",
            )
        )

    def _render_choices(self) -> None:
        state = self.flow.state
        labels = self._current_option_labels()
        key = (state.phase, state.current_question_index, state.current_preference_key, tuple(labels))
        if key == self._rendered_choices:
            return
        self._rendered_choices = key
        if state.is_asking_preference_questions and state.current_preference_key:
            question = self.flow.preference_flow.question_for(state.current_preference_key)
            self.console.print(Text(question, style="bold"))
        if not labels:
            return
        rows = [Text(f"  {idx}. {label}") for idx, label in enumerate(labels, 1)]
        hint = "Type a number, an option or your own answer."
        if state.phase == Phase.AWAITING_CONSENT:
            hint = "Type 1 or 2 (or generate/sharpen)."
        elif state.phase in (Phase.ANSWERING_CLARIFYING, Phase.ASKING_PREFERENCES):
            hint += " /skip to skip, /back to go back."
        self.console.print(Group(*rows, Text(hint, style="dim")))

    def _render_side_panels(self) -> None:
        state = self.flow.state
        if state.phase == Phase.LOGIN_REQUIRED:
            self.console.print(
                Panel(
                    "Sign in with /login <name or email> to continue. Your task is kept.",
                    title="🔐 Sign-in required",
                    border_style="yellow",
                )
            )
        elif state.phase == Phase.SUBSCRIPTION_REQUIRED:
            self.console.print(
                Panel(
                    "An active subscription is required. Upgrade your plan and try again.",
                    title="💳 Subscription required",
                    border_style="yellow",
                )
            )

    async def _graceful_exit(self) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        with suppress(Exception):
            self.session_logger.close()
        set_active_logger(None)
        try:
            self.console.print(
                Panel("Exiting PromptForge. See you soon!", title="Goodbye", border_style="cyan")
            )
        except BrokenPipeError:
            return
        except OSError as exc:
            if exc.errno == errno.EPIPE:
                return
            log_exception("cli", exc)
            raise


def main() -> None:
    parser = argparse.ArgumentParser(
        description="PromptForge CLI - turn a fuzzy task into a reusable prompt"
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version and exit")
    parser.add_argument(
        "-p",
        "--prompt",
        help="Generate one prompt in quick mode without entering the interactive UI",
    )
    parser.add_argument(
        "--mode",
        choices=GENERATION_MODES,
        help="Generation mode for this session (overrides the workspace config)",
    )
    args, _ = parser.parse_known_args()
    if args.version:
        from promptforge import __version__

        print(f"promptforge {__version__}")
        return
    try:
        if args.prompt:
            cli = PromptForgeCLI(interactive_prompts=False)
            code = asyncio.run(cli.run_prompt(args.prompt))
            raise SystemExit(code)
        asyncio.run(PromptForgeCLI(generation_mode=args.mode).run())
    except BrokenPipeError:
        return
    except KeyboardInterrupt:
        return
    except OSError as exc:
        if exc.errno == errno.EPIPE:
            return
        log_exception("cli", exc)
        raise


if __name__ == "__main__":
    main()
