import tempfile
import unittest
from pathlib import Path

from promptforge.config.paths import PromptForgePaths
from promptforge.core import session_log
from promptforge.core.session_log import SessionLogger, resolve_debug_config


class SessionLoggerTests(unittest.TestCase):
    def tearDown(self) -> None:
        session_log.set_active_logger(None)

    def _log_text(self, paths: PromptForgePaths) -> str:
        files = list(paths.logs_dir.glob("promptforge_session_*.md"))
        self.assertEqual(len(files), 1)
        return files[0].read_text(encoding="utf-8")

    def test_logger_disabled_creates_no_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = PromptForgePaths(Path(tmp))
            logger = SessionLogger(paths, None)
            logger.log_user_input("flow", "hello")
            self.assertFalse(logger.enabled)
            self.assertFalse(paths.logs_dir.exists())

    def test_user_input_writes_markdown(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = PromptForgePaths(Path(tmp))
            logger = SessionLogger(paths, "session")
            logger.log_user_input("flow", "Write a blog post")
            logger.close()
            text = self._log_text(paths)
            self.assertIn("# PromptForge Session Log", text)
            self.assertIn("input.user", text)
            self.assertIn("Write a blog post", text)

    def test_run_events_carry_run_id(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = PromptForgePaths(Path(tmp))
            logger = SessionLogger(paths, "session")
            logger.start_run("flow", 3, task="Write a blog post", kind="final_prompt")
            logger.log_generation_result("flow", prompt="Done", error=None)
            logger.end_run("flow", 3, status="completed")
            text = self._log_text(paths)
            self.assertIn("run.final_prompt.start · run 3", text)
            self.assertIn('"prompt": "Done"', text)
            self.assertIn("run.end · run 3", text)

    def test_session_only_skips_levels(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = PromptForgePaths(Path(tmp))
            logger = SessionLogger(paths, "session")
            session_log.set_active_logger(logger)
            session_log.log_debug("flow", "task.start")
            session_log.log_warn("flow", "event.record_failed")
            self.assertFalse(paths.logs_dir.exists())

    def test_exception_is_logged_with_location(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            paths = PromptForgePaths(Path(tmp))
            logger = SessionLogger(paths, "error")
            session_log.set_active_logger(logger)
            try:
                raise RuntimeError("boom")
            except RuntimeError as exc:
                session_log.log_exception("flow", exc)
            text = self._log_text(paths)
            self.assertIn("RuntimeError", text)
            self.assertIn("test_session_log.py", text)

    def test_resolve_debug_config(self) -> None:
        selection = resolve_debug_config(["session", "warn"])
        self.assertEqual(selection.enabled_types, frozenset({"session"}))
        self.assertEqual(selection.enabled_levels, frozenset({"error", "warn"}))
        self.assertEqual(resolve_debug_config("off").enabled_levels, frozenset())
        self.assertEqual(len(resolve_debug_config(True).enabled_levels), 4)


if __name__ == "__main__":
    unittest.main()
