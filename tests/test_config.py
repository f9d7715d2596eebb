import json
import os
import tempfile
import unittest
from io import StringIO
from pathlib import Path

from rich.console import Console

from promptforge.config import ConfigManager, PromptForgePaths
from promptforge.core.constants import DEFAULT_HISTORY_PAGE_SIZE, MODE_GUIDED, MODE_QUICK

ENV_KEYS = (
    "HOME",
    "ANTHROPIC_BASE_URL",
    "ANTHROPIC_AUTH_TOKEN",
    "ANTHROPIC_MODEL",
    "API_TIMEOUT_MS",
    "PROMPTFORGE_GENERATOR",
)


class ConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._saved_env = {key: os.environ.get(key) for key in ENV_KEYS}
        for key in ENV_KEYS[1:]:
            os.environ.pop(key, None)
        self._home = tempfile.TemporaryDirectory()
        self._root = tempfile.TemporaryDirectory()
        os.environ["HOME"] = self._home.name
        self.paths = PromptForgePaths(Path(self._root.name))
        self.output = StringIO()
        self.console = Console(file=self.output, force_terminal=False, color_system=None)
        self.manager = ConfigManager(self.paths, console=self.console)

    def tearDown(self) -> None:
        for key, value in self._saved_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        self._home.cleanup()
        self._root.cleanup()

    def _write(self, path: Path, data) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        text = data if isinstance(data, str) else json.dumps(data)
        path.write_text(text, encoding="utf-8")

    def test_defaults_without_files(self) -> None:
        settings = self.manager.load_settings()
        self.assertEqual(settings.generator, "offline")
        self.assertEqual(settings.generation_mode, MODE_GUIDED)
        self.assertTrue(settings.consent_required)
        self.assertTrue(settings.ask_preferences)
        self.assertEqual(settings.history_page_size, DEFAULT_HISTORY_PAGE_SIZE)
        self.assertIsNone(settings.user_id)

    def test_workspace_config_overrides_global(self) -> None:
        self._write(
            self.paths.global_config_file,
            {"generation_mode": "quick", "history_page_size": 5, "anthropic": {"model": "a"}},
        )
        self._write(self.paths.config_file, {"history_page_size": 7, "anthropic": {"base_url": "b"}})

        settings = self.manager.load_settings()
        self.assertEqual(settings.generation_mode, MODE_QUICK)
        self.assertEqual(settings.history_page_size, 7)
        self.assertEqual(settings.model, "a")
        self.assertEqual(settings.base_url, "b")

    def test_invalid_values_are_normalized(self) -> None:
        self._write(
            self.paths.config_file,
            {
                "generation_mode": "turbo",
                "consent_required": "no",
                "history_page_size": 0,
                "user": "   ",
            },
        )
        settings = self.manager.load_settings()
        self.assertEqual(settings.generation_mode, MODE_GUIDED)
        self.assertFalse(settings.consent_required)
        self.assertEqual(settings.history_page_size, DEFAULT_HISTORY_PAGE_SIZE)
        self.assertIsNone(settings.user_id)

    def test_user_key_is_trimmed(self) -> None:
        self._write(self.paths.config_file, {"user": " ada "})
        self.assertEqual(self.manager.load_settings().user_id, "ada")

    def test_broken_json_warns_and_uses_defaults(self) -> None:
        self._write(self.paths.config_file, "{not json")
        settings = self.manager.load_settings()
        self.assertEqual(settings.generation_mode, MODE_GUIDED)
        self.assertIn("Failed to parse JSON config", self.output.getvalue())

    def test_env_fills_missing_anthropic_settings(self) -> None:
        os.environ["ANTHROPIC_MODEL"] = "env-model"
        os.environ["API_TIMEOUT_MS"] = "1500"
        os.environ["PROMPTFORGE_GENERATOR"] = "Claude"
        settings = self.manager.load_settings()

        self.assertEqual(settings.model, "env-model")
        self.assertEqual(settings.api_timeout_ms, 1500)
        self.assertEqual(settings.generator, "claude")
        env = self.manager.build_env(settings)
        self.assertEqual(env["ANTHROPIC_MODEL"], "env-model")
        self.assertEqual(env["API_TIMEOUT_MS"], "1500")

    def test_unknown_generator_falls_back_to_offline(self) -> None:
        self._write(self.paths.config_file, {"generator": "gpt"})
        self.assertEqual(self.manager.load_settings().generator, "offline")
        self.assertIn("Unknown generator", self.output.getvalue())


if __name__ == "__main__":
    unittest.main()
