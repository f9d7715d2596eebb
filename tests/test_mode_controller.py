import unittest

from fakes import make_flow, submit

from promptforge.core.constants import MESSAGE_GUIDED_MODE, MESSAGE_QUICK_MODE, MODE_GUIDED, MODE_QUICK
from promptforge.core.models import Preferences


class ModeControllerTests(unittest.IsolatedAsyncioTestCase):
    def test_same_mode_changes_nothing(self) -> None:
        flow = make_flow()
        lines_before = list(flow.state.lines)

        self.assertFalse(flow.mode_controller.handle_mode_change(MODE_GUIDED))
        self.assertEqual(flow.state.lines, lines_before)
        self.assertEqual(flow.services.preferences.saved, [])

    def test_unknown_mode_is_ignored(self) -> None:
        flow = make_flow()
        self.assertFalse(flow.mode_controller.handle_mode_change("turbo"))
        self.assertEqual(flow.state.generation_mode, MODE_GUIDED)

    async def test_quick_mode_drops_guided_progress(self) -> None:
        flow = make_flow(signed_in=True)
        await submit(flow, "Write a blog post")
        await submit(flow, "sharpen")
        self.assertTrue(flow.state.is_answering_questions)

        self.assertTrue(flow.mode_controller.handle_mode_change(MODE_QUICK))
        state = flow.state
        self.assertEqual(state.generation_mode, MODE_QUICK)
        self.assertFalse(state.is_answering_questions)
        self.assertFalse(state.awaiting_question_consent)
        self.assertIsNone(state.clarifying_questions)
        self.assertEqual(state.lines[-1].plain_text, MESSAGE_QUICK_MODE)

    def test_mode_is_saved_with_show_clarifying(self) -> None:
        flow = make_flow()
        flow.mode_controller.handle_mode_change(MODE_QUICK)
        saved = flow.services.preferences.saved[-1]
        self.assertEqual(saved.ui_defaults["generation_mode"], MODE_QUICK)
        self.assertFalse(saved.ui_defaults["show_clarifying"])

        flow.mode_controller.handle_mode_change(MODE_GUIDED)
        saved = flow.services.preferences.saved[-1]
        self.assertTrue(saved.ui_defaults["show_clarifying"])
        self.assertEqual(flow.state.lines[-1].plain_text, MESSAGE_GUIDED_MODE)

    def test_silent_change_adds_no_line(self) -> None:
        flow = make_flow()
        count = len(flow.state.lines)
        flow.mode_controller.handle_mode_change(MODE_QUICK, silent=True)
        self.assertEqual(len(flow.state.lines), count)

    def test_failed_save_still_switches(self) -> None:
        flow = make_flow()
        flow.services.preferences.fail = True
        self.assertTrue(flow.mode_controller.handle_mode_change(MODE_QUICK))
        self.assertEqual(flow.state.generation_mode, MODE_QUICK)

    def test_stored_mode_wins_on_load(self) -> None:
        flow = make_flow(preferences=Preferences(ui_defaults={"generation_mode": MODE_QUICK}))
        self.assertEqual(flow.state.generation_mode, MODE_QUICK)


if __name__ == "__main__":
    unittest.main()
