import json
import os
import tempfile
import unittest
from pathlib import Path

from promptforge.config.paths import PromptForgePaths
from promptforge.core.models import Preferences
from promptforge.services.events import JsonlEventRecorder
from promptforge.services.free_usage import JsonFreeUsageGate
from promptforge.services.preferences import SCOPE_USER, JsonPreferenceStore


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._original_home = os.environ.get("HOME")
        self._home = tempfile.TemporaryDirectory()
        self._root = tempfile.TemporaryDirectory()
        os.environ["HOME"] = self._home.name
        self.paths = PromptForgePaths(Path(self._root.name))

    def tearDown(self) -> None:
        if self._original_home is not None:
            os.environ["HOME"] = self._original_home
        else:
            os.environ.pop("HOME", None)
        self._home.cleanup()
        self._root.cleanup()


class PreferenceStoreTests(StoreTestCase):
    def test_defaults_when_nothing_saved(self) -> None:
        loaded = JsonPreferenceStore(self.paths).load_preferences()
        self.assertEqual(loaded.source, "default")
        self.assertIsNone(loaded.preferences.tone)

    def test_workspace_file_wins_over_global(self) -> None:
        user_store = JsonPreferenceStore(self.paths, scope=SCOPE_USER)
        user_store.save_preferences(
            Preferences(tone="formal", language="French", ui_defaults={"a": 1})
        )
        JsonPreferenceStore(self.paths).save_preferences(
            Preferences(tone="casual", ui_defaults={"b": 2})
        )

        loaded = JsonPreferenceStore(self.paths).load_preferences()
        self.assertEqual(loaded.source, "session")
        self.assertEqual(loaded.preferences.tone, "casual")
        self.assertEqual(loaded.preferences.language, "French")
        self.assertEqual(loaded.preferences.ui_defaults, {"a": 1, "b": 2})

    def test_global_only_reports_user_source(self) -> None:
        JsonPreferenceStore(self.paths, scope=SCOPE_USER).save_preferences(Preferences(depth="Deep dive"))
        loaded = JsonPreferenceStore(self.paths).load_preferences()
        self.assertEqual(loaded.source, "user")
        self.assertEqual(loaded.preferences.depth, "Deep dive")

    def test_temperature_is_clamped_on_load(self) -> None:
        self.paths.workspace_dir.mkdir(parents=True)
        self.paths.preferences_file.write_text(json.dumps({"temperature": 4}), encoding="utf-8")
        loaded = JsonPreferenceStore(self.paths).load_preferences()
        self.assertEqual(loaded.preferences.temperature, 1.0)

    def test_save_reports_scope(self) -> None:
        result = JsonPreferenceStore(self.paths).save_preferences(Preferences())
        self.assertTrue(result.success)
        self.assertEqual(result.scope, "session")


class FreeUsageGateTests(StoreTestCase):
    async def test_guest_gets_one_free_prompt(self) -> None:
        gate = JsonFreeUsageGate(self.paths)
        first = await gate.consume_free_prompt_allowance()
        second = await gate.consume_free_prompt_allowance()

        self.assertTrue(first.allowed)
        self.assertEqual(first.remaining, 0)
        self.assertFalse(second.allowed)
        self.assertEqual(second.used, 1)
        self.assertEqual(second.scope, "guest")

    async def test_users_are_counted_separately(self) -> None:
        gate = JsonFreeUsageGate(self.paths, max_user=2)
        await gate.consume_free_prompt_allowance()
        usage = await gate.consume_free_prompt_allowance("ada")
        self.assertTrue(usage.allowed)
        self.assertEqual(usage.remaining, 1)
        self.assertEqual(usage.scope, "user")

    async def test_unknown_version_resets_counts(self) -> None:
        self.paths.workspace_dir.mkdir(parents=True)
        self.paths.free_usage_file.write_text(json.dumps({"v": 99, "guest": 5}), encoding="utf-8")
        usage = await JsonFreeUsageGate(self.paths).consume_free_prompt_allowance()
        self.assertTrue(usage.allowed)


class EventRecorderTests(StoreTestCase):
    def test_events_append_as_json_lines(self) -> None:
        recorder = JsonlEventRecorder(self.paths)
        recorder.record_event("task_submitted", {"task": "Write"})
        recorder.record_event("prompt_generated", {"answers": 2})

        lines = self.paths.events_file.read_text(encoding="utf-8").splitlines()
        self.assertEqual([json.loads(line)["event_type"] for line in lines], ["task_submitted", "prompt_generated"])
        self.assertEqual(json.loads(lines[1])["payload"], {"answers": 2})


if __name__ == "__main__":
    unittest.main()
