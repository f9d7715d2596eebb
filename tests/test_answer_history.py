import unittest

from promptforge.core.answer_history import AnswerHistoryTracker
from promptforge.core.models import ClarifyingAnswer


def _answer(question_id: str, text: str) -> ClarifyingAnswer:
    return ClarifyingAnswer(question_id=question_id, question=f"{question_id}?", answer=text)


class AnswerHistoryTrackerTests(unittest.TestCase):
    def test_keeps_answers_removed_from_active_list(self) -> None:
        tracker = AnswerHistoryTracker()
        tracker.sync([_answer("q1", "a"), _answer("q2", "b")])
        tracker.sync([_answer("q1", "a")])

        self.assertEqual(tracker.get("q2"), "b")
        self.assertEqual(tracker.question_ids(), {"q1", "q2"})

    def test_history_is_superset_of_active_ids(self) -> None:
        tracker = AnswerHistoryTracker()
        sequences = [
            [_answer("q1", "a")],
            [_answer("q1", "a"), _answer("q2", "b")],
            [_answer("q1", "a")],
            [_answer("q1", "a"), _answer("q2", "c"), _answer("q3", "d")],
        ]
        for active in sequences:
            tracker.sync(active)
            self.assertTrue({item.question_id for item in active} <= tracker.question_ids())
        self.assertEqual(tracker.get("q2"), "c")

    def test_empty_active_list_clears_history(self) -> None:
        tracker = AnswerHistoryTracker()
        tracker.sync([_answer("q1", "a")])
        tracker.sync([])

        self.assertEqual(len(tracker), 0)
        self.assertIsNone(tracker.get("q1"))

    def test_new_answers_after_empty_start_fresh(self) -> None:
        tracker = AnswerHistoryTracker()
        tracker.sync([_answer("q1", "a"), _answer("q2", "b")])
        tracker.sync([])
        tracker.sync([_answer("q3", "c")])

        self.assertEqual(tracker.as_dict(), {"q3": "c"})

    def test_reset_drops_everything(self) -> None:
        tracker = AnswerHistoryTracker()
        tracker.sync([_answer("q1", "a")])
        tracker.reset()
        self.assertEqual(tracker.as_dict(), {})


if __name__ == "__main__":
    unittest.main()
