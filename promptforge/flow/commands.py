from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional

from ..core.constants import (
    COMMAND_APPROVE,
    COMMAND_BACK,
    COMMAND_CLEAR,
    COMMAND_DISCARD,
    COMMAND_EDIT,
    COMMAND_HELP,
    COMMAND_HISTORY,
    COMMAND_MODE,
    COMMAND_NEW,
    COMMAND_RESTORE,
    COMMAND_REVISE,
    COMMAND_SKIP,
    COMMAND_STOP,
    COMMAND_USE,
    GENERATION_MODES,
    ROLE_APP,
    ROLE_USER,
)

if TYPE_CHECKING:
    from .task_flow import TaskFlowController


CommandHandler = Callable[[str], Awaitable[bool]]


@dataclass
class Command:
    name: str
    handler: CommandHandler
    description: str


class CommandRegistry:
    """Registry for slash commands."""

    def __init__(self) -> None:
        self._commands: Dict[str, Command] = {}

    def register(self, name: str, handler: CommandHandler, description: str) -> None:
        if not name.startswith("/"):
            name = f"/{name}"
        self._commands[name] = Command(name=name, handler=handler, description=description)

    def get(self, name: str) -> Optional[Command]:
        if not name.startswith("/"):
            name = f"/{name}"
        return self._commands.get(name)

    def names(self) -> List[str]:
        return list(self._commands.keys())

    def descriptions(self) -> List[str]:
        return [f"{cmd.name} - {cmd.description}" for cmd in self._commands.values()]


def command_argument(command: str) -> str:
    parts = command.split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


class CommandRouter:
    """Routes slash commands typed into the conversation to the flow controllers.

    Handlers return False only when the caller should stop reading input.
    """

    def __init__(self, flow: "TaskFlowController") -> None:
        self.flow = flow
        self.registry = CommandRegistry()
        self._register_commands()

    def _register_commands(self) -> None:
        register = self.registry.register
        register(COMMAND_HELP, self._cmd_help, "List the available commands.")
        register(COMMAND_CLEAR, self._cmd_clear, "Hide the transcript (undo with /restore).")
        register(COMMAND_RESTORE, self._cmd_restore, "Bring back the conversation saved by /clear, /discard or /new.")
        register(COMMAND_DISCARD, self._cmd_discard, "Drop the current task and prompt and start fresh.")
        register(COMMAND_NEW, self._cmd_new, "Start a new conversation (the old one stays restorable).")
        register(COMMAND_HISTORY, self._cmd_history, "List recent prompts: /history [page].")
        register(COMMAND_USE, self._cmd_use, "Reload a prompt listed by /history: /use N.")
        register(COMMAND_MODE, self._cmd_mode, "Switch generation mode: /mode quick|guided.")
        register(COMMAND_EDIT, self._cmd_edit, "Edit the current prompt: /edit <instructions>.")
        register(COMMAND_BACK, self._cmd_back, "Go back to the previous question.")
        register(COMMAND_SKIP, self._cmd_skip, "Skip the current question (/skip all skips preferences).")
        register(COMMAND_REVISE, self._cmd_revise, "Revise the task keeping your clarifying answers.")
        register(COMMAND_APPROVE, self._cmd_approve, "Approve the current prompt.")
        register(COMMAND_STOP, self._cmd_stop, "Stop the running generation.")

    async def dispatch(self, line: str) -> bool:
        text = line.strip()
        name = text.split(maxsplit=1)[0].lower()
        state = self.flow.state
        if name == COMMAND_CLEAR and self.flow.snapshots.is_transcript_empty():
            state.value = ""
            return True
        state.append_line(ROLE_USER, text)
        self.flow.record_event("command", {"command": text})
        command = self.registry.get(name)
        if command is None:
            state.append_line(ROLE_APP, f"Unknown command: {name}. Type /help to see the commands.")
            return True
        return await command.handler(text)

    async def _cmd_help(self, _: str) -> bool:
        lines = "\n".join(f"- {line}" for line in self.registry.descriptions())
        self.flow.state.append_line(ROLE_APP, f"Commands:\n{lines}")
        return True

    async def _cmd_clear(self, _: str) -> bool:
        self.flow.snapshots.handle_clear()
        return True

    async def _cmd_restore(self, _: str) -> bool:
        self.flow.snapshots.handle_restore()
        return True

    async def _cmd_discard(self, _: str) -> bool:
        self.flow.snapshots.handle_discard()
        return True

    async def _cmd_new(self, _: str) -> bool:
        self.flow.snapshots.handle_start_new_conversation()
        return True

    async def _cmd_history(self, command: str) -> bool:
        arg = command_argument(command)
        page = int(arg) if arg.isdigit() and int(arg) > 0 else 1
        limit = self.flow.history_page_size
        await self.flow.snapshots.handle_history(limit=limit, offset=(page - 1) * limit)
        return True

    async def _cmd_use(self, command: str) -> bool:
        arg = command_argument(command)
        if not arg.isdigit() or int(arg) < 1:
            self.flow.state.append_line(ROLE_APP, "Usage: /use N (a number from /history).")
            return True
        self.flow.snapshots.handle_use_from_history(int(arg) - 1)
        return True

    async def _cmd_mode(self, command: str) -> bool:
        arg = command_argument(command).lower()
        state = self.flow.state
        if not arg:
            state.append_line(ROLE_APP, f"Current mode: {state.generation_mode}. Use /mode quick|guided.")
            return True
        if arg not in GENERATION_MODES:
            state.append_line(ROLE_APP, f"Unknown mode: {arg}. Use /mode quick|guided.")
            return True
        self.flow.mode_controller.handle_mode_change(arg)
        return True

    async def _cmd_edit(self, command: str) -> bool:
        instructions = command_argument(command)
        if not instructions:
            self.flow.state.append_line(ROLE_APP, "Usage: /edit <instructions>.")
            return True
        await self.flow.handle_edit_prompt(instructions)
        return True

    async def _cmd_back(self, _: str) -> bool:
        state = self.flow.state
        if state.is_asking_preference_questions:
            self.flow.preference_flow.back()
        elif state.is_answering_questions:
            self.flow.clarifying_flow.undo()
        else:
            state.append_line(ROLE_APP, "Nothing to go back to.")
        return True

    async def _cmd_skip(self, command: str) -> bool:
        state = self.flow.state
        if state.is_asking_preference_questions:
            if command_argument(command).lower() == "all":
                await self.flow.preference_flow.skip_all()
            else:
                await self.flow.preference_flow.skip()
        elif state.is_answering_questions:
            await self.flow.clarifying_flow.skip()
        else:
            state.append_line(ROLE_APP, "Nothing to skip.")
        return True

    async def _cmd_revise(self, _: str) -> bool:
        self.flow.handle_revise()
        return True

    async def _cmd_approve(self, _: str) -> bool:
        self.flow.handle_approve()
        return True

    async def _cmd_stop(self, _: str) -> bool:
        self.flow.handle_stop()
        return True
