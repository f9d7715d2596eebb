import unittest

from fakes import FakeHistory, make_flow, submit

from promptforge.core.constants import MODE_QUICK
from promptforge.core.models import HistoryItem
from promptforge.flow.commands import CommandRegistry, command_argument


class CommandRegistryTests(unittest.IsolatedAsyncioTestCase):
    async def test_register_normalizes_slash(self) -> None:
        registry = CommandRegistry()

        async def handler(_: str) -> bool:
            return True

        registry.register("ping", handler, "Ping the flow.")
        self.assertEqual(registry.names(), ["/ping"])
        self.assertIs(registry.get("ping").handler, handler)
        self.assertEqual(registry.descriptions(), ["/ping - Ping the flow."])

    def test_command_argument(self) -> None:
        self.assertEqual(command_argument("/use  3 "), "3")
        self.assertEqual(command_argument("/help"), "")


class CommandRouterTests(unittest.IsolatedAsyncioTestCase):
    async def test_unknown_command_reports_help(self) -> None:
        flow = make_flow()
        self.assertTrue(await submit(flow, "/frobnicate"))
        self.assertIn("Unknown command: /frobnicate", flow.state.lines[-1].plain_text)

    async def test_help_lists_commands(self) -> None:
        flow = make_flow()
        await submit(flow, "/help")
        text = flow.state.lines[-1].plain_text
        for name in ("/clear", "/restore", "/mode", "/skip"):
            self.assertIn(name, text)

    async def test_commands_are_recorded_as_events(self) -> None:
        flow = make_flow()
        await submit(flow, "/help")
        self.assertIn("command", flow.services.events.types())

    async def test_clear_on_empty_transcript_adds_no_line(self) -> None:
        flow = make_flow()
        count = len(flow.state.lines)
        await submit(flow, "/clear")
        self.assertEqual(len(flow.state.lines), count)
        self.assertFalse(flow.snapshots.has_snapshot())

    async def test_mode_command(self) -> None:
        flow = make_flow()
        await submit(flow, "/mode quick")
        self.assertEqual(flow.state.generation_mode, MODE_QUICK)

        await submit(flow, "/mode turbo")
        self.assertIn("Unknown mode: turbo", flow.state.lines[-1].plain_text)

    async def test_use_is_one_based_and_refills_buffer(self) -> None:
        item = HistoryItem(
            id="h1", task="Draft a memo", label="Memo", body="Memo prompt", created_at=""
        )
        flow = make_flow(history=FakeHistory([item]))
        await submit(flow, "/history")
        await submit(flow, "/use 1")

        self.assertEqual(flow.state.editable_prompt, "Memo prompt")
        self.assertEqual(flow.state.value, "Draft a memo")

    async def test_use_without_number_shows_usage(self) -> None:
        flow = make_flow()
        await submit(flow, "/use first")
        self.assertIn("Usage: /use N", flow.state.lines[-1].plain_text)

    async def test_back_and_skip_outside_questions(self) -> None:
        flow = make_flow()
        await submit(flow, "/back")
        self.assertEqual(flow.state.lines[-1].plain_text, "Nothing to go back to.")
        await submit(flow, "/skip")
        self.assertEqual(flow.state.lines[-1].plain_text, "Nothing to skip.")

    async def test_skip_routes_to_clarifying_question(self) -> None:
        flow = make_flow(signed_in=True)
        await submit(flow, "Write a blog post")
        await submit(flow, "sharpen")
        await submit(flow, "/skip")
        self.assertEqual(flow.state.current_question_index, 1)
        self.assertEqual(flow.state.clarifying_slots, [None])

    async def test_edit_requires_instructions(self) -> None:
        flow = make_flow()
        await submit(flow, "/edit")
        self.assertEqual(flow.state.lines[-1].plain_text, "Usage: /edit <instructions>.")


if __name__ == "__main__":
    unittest.main()
