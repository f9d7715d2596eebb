import unittest

from fakes import ALL_PREFERENCES_SET, BLOG_QUESTIONS, FakeGenerator, make_flow, submit

from promptforge.core.models import Preferences
from promptforge.flow import Phase
from promptforge.flow.preferences import parse_temperature


def _preferences_missing(*keys: str, **extra) -> Preferences:
    values = {key: value for key, value in ALL_PREFERENCES_SET.items() if key not in keys}
    values.update(extra)
    return Preferences(**values)


class ParseTemperatureTests(unittest.TestCase):
    def test_reads_leading_number_and_clamps(self) -> None:
        self.assertEqual(parse_temperature("0.7 (balanced)"), 0.7)
        self.assertEqual(parse_temperature("3"), 1.0)
        self.assertEqual(parse_temperature("-2"), 0.0)

    def test_non_numeric_answer_is_dropped(self) -> None:
        self.assertIsNone(parse_temperature("creative please"))


class PreferenceFlowTests(unittest.IsolatedAsyncioTestCase):
    async def _flow_with_pending_task(self, preferences: Preferences):
        generator = FakeGenerator([])
        flow = make_flow(generator, preferences=preferences, signed_in=True)
        flow.state.pending_task = "Write a blog post"
        return flow, generator

    async def test_only_unset_keys_are_asked_in_order(self) -> None:
        flow, _ = await self._flow_with_pending_task(
            _preferences_missing("temperature", "tone", do_not_ask_again={"language": True})
        )
        self.assertEqual(flow.preference_flow.preferences_to_ask(), ["tone", "temperature"])

        flow.state.session_skipped_preferences.add("tone")
        self.assertEqual(flow.preference_flow.preferences_to_ask(), ["temperature"])

    async def test_disabled_questions_generate_immediately(self) -> None:
        flow, generator = await self._flow_with_pending_task(
            Preferences(ui_defaults={"ask_preferences": False})
        )
        self.assertEqual(flow.preference_flow.preferences_to_ask(), [])
        await flow.preference_flow.start()

        self.assertEqual(len(generator.final_calls), 1)
        self.assertEqual(flow.preference_flow.step, "complete")

    async def test_answers_are_merged_into_generation_only(self) -> None:
        flow, generator = await self._flow_with_pending_task(
            _preferences_missing("tone", "temperature")
        )
        await flow.preference_flow.start()
        self.assertEqual(flow.state.phase, Phase.ASKING_PREFERENCES)
        self.assertEqual(flow.state.current_preference_key, "tone")
        self.assertEqual(flow.preference_flow.step, "active")

        await submit(flow, "3")
        self.assertEqual(flow.state.pending_preference_updates, {"tone": "formal"})
        self.assertEqual(flow.state.current_preference_key, "temperature")

        await submit(flow, "0.9 (creative)")
        used = generator.final_calls[0]["preferences"]
        self.assertEqual(used.tone, "formal")
        self.assertEqual(used.temperature, 0.9)
        self.assertIsNone(flow.state.preferences.tone)
        self.assertEqual(flow.state.pending_preference_updates, {})
        self.assertFalse(flow.state.is_asking_preference_questions)

    async def test_invalid_temperature_is_not_recorded(self) -> None:
        flow, generator = await self._flow_with_pending_task(_preferences_missing("temperature"))
        await flow.preference_flow.start()
        await submit(flow, "very creative")

        self.assertIsNone(generator.final_calls[0]["preferences"].temperature)

    async def test_back_returns_to_previous_key(self) -> None:
        flow, _ = await self._flow_with_pending_task(_preferences_missing("tone", "depth"))
        await flow.preference_flow.start()
        await submit(flow, "casual")
        self.assertEqual(flow.state.current_preference_key, "depth")

        flow.preference_flow.back()
        self.assertEqual(flow.state.current_preference_key, "tone")
        self.assertEqual(flow.state.pending_preference_updates, {"tone": "casual"})

    async def test_skip_marks_key_for_the_session(self) -> None:
        flow, generator = await self._flow_with_pending_task(_preferences_missing("tone", "depth"))
        await flow.preference_flow.start()
        await flow.preference_flow.skip()

        self.assertIn("tone", flow.state.session_skipped_preferences)
        self.assertEqual(flow.state.current_preference_key, "depth")
        await flow.preference_flow.skip()
        self.assertEqual(len(generator.final_calls), 1)

    async def test_skipped_key_is_not_asked_on_the_next_task(self) -> None:
        generator = FakeGenerator(BLOG_QUESTIONS[:1])
        flow = make_flow(
            generator, preferences=_preferences_missing("tone", "depth"), signed_in=True
        )
        await submit(flow, "Write a blog post")
        await submit(flow, "sharpen")
        await submit(flow, "Release notes")
        self.assertEqual(flow.state.current_preference_key, "tone")
        await flow.preference_flow.skip()
        await submit(flow, "casual")
        self.assertEqual(len(generator.final_calls), 1)

        flow.snapshots.handle_start_new_conversation()
        await submit(flow, "Write a product changelog")
        await submit(flow, "sharpen")
        await submit(flow, "Version two")

        self.assertEqual(flow.state.current_preference_key, "depth")
        self.assertEqual(flow.preference_flow.preferences_to_ask(), ["depth"])

    async def test_skip_all_generates_without_updates(self) -> None:
        flow, generator = await self._flow_with_pending_task(_preferences_missing("tone", "depth"))
        await flow.preference_flow.start()
        await submit(flow, "casual")
        await flow.preference_flow.skip_all()

        self.assertEqual(len(generator.final_calls), 1)
        self.assertIsNone(generator.final_calls[0]["preferences"].tone)
        self.assertFalse(flow.state.is_asking_preference_questions)

    async def test_reset_clears_active_question(self) -> None:
        flow, _ = await self._flow_with_pending_task(_preferences_missing("tone"))
        await flow.preference_flow.start()
        flow.preference_flow.reset()

        self.assertIsNone(flow.state.current_preference_key)
        self.assertFalse(flow.state.is_asking_preference_questions)


if __name__ == "__main__":
    unittest.main()
