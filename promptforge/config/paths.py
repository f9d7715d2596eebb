from dataclasses import dataclass
from pathlib import Path


@dataclass
class PromptForgePaths:
    """Centralizes filesystem paths for a PromptForge workspace."""

    root: Path

    @property
    def workspace_dir(self) -> Path:
        return self.root / ".promptforge"

    @property
    def config_file(self) -> Path:
        return self.workspace_dir / "promptforge.json"

    @property
    def history_file(self) -> Path:
        return self.workspace_dir / "history.json"

    @property
    def preferences_file(self) -> Path:
        return self.workspace_dir / "preferences.json"

    @property
    def free_usage_file(self) -> Path:
        return self.workspace_dir / "free_usage.json"

    @property
    def events_file(self) -> Path:
        return self.workspace_dir / "events.jsonl"

    @property
    def logs_dir(self) -> Path:
        return self.workspace_dir / "logs"

    @property
    def global_dir(self) -> Path:
        return Path.home() / ".promptforge"

    @property
    def global_config_file(self) -> Path:
        return self.global_dir / "promptforge.json"

    @property
    def global_preferences_file(self) -> Path:
        return self.global_dir / "preferences.json"
