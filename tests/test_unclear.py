import unittest

from promptforge.flow.unclear import detect_unclear_task


class DetectUnclearTaskTests(unittest.TestCase):
    def test_plain_requests_pass(self) -> None:
        for task in ("Write a blog post about onboarding", "api", "Summarize the Q3 report"):
            self.assertIsNone(detect_unclear_task(task), task)

    def test_noise_is_flagged(self) -> None:
        for task in ("", "ab", "!!!???", "123456", "zxcvbnmqwrt", "a1b2c3d4e5f6", "helloooooooo world"):
            self.assertIsNotNone(detect_unclear_task(task), task)

    def test_reason_explains_random_characters(self) -> None:
        self.assertIn("random characters", detect_unclear_task("qwrtzpsdfgh"))


if __name__ == "__main__":
    unittest.main()
