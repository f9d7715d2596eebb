from __future__ import annotations

from typing import Callable, Iterable, Sequence

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..core.constants import COMMAND_MODE, COMMAND_SKIP, GENERATION_MODES

COMMAND_ARGUMENTS: dict[str, Sequence[str]] = {
    COMMAND_MODE: GENERATION_MODES,
    COMMAND_SKIP: ("all",),
}


class PromptForgeCompleter(Completer):
    """Suggests slash commands, their arguments and the options of the open question."""

    def __init__(
        self,
        commands: list[str],
        *,
        option_provider: Callable[[], Iterable[str]] | None = None,
    ) -> None:
        self.commands = commands
        self.option_provider = option_provider

    def get_completions(self, document: Document, complete_event):  # type: ignore[override]
        text = document.text_before_cursor
        if text.startswith("/"):
            yield from self._command_completions(text)
            return
        if self.option_provider is None:
            return
        lowered = text.strip().lower()
        for label in self.option_provider():
            if lowered and not label.lower().startswith(lowered):
                continue
            yield Completion(label, start_position=-len(text))

    def _command_completions(self, text: str) -> Iterable[Completion]:
        tokens = text.split()
        if not tokens:
            return
        command = tokens[0]
        if len(tokens) == 1 and not text.endswith(" "):
            for name in self.commands:
                if name.startswith(command):
                    yield Completion(name, start_position=-len(command))
            return
        choices = COMMAND_ARGUMENTS.get(command)
        if not choices:
            return
        partial = tokens[1] if len(tokens) > 1 and not text.endswith(" ") else ""
        for choice in choices:
            if choice.startswith(partial):
                yield Completion(choice, start_position=-len(partial))
