from __future__ import annotations

import re
import unicodedata
from typing import Optional

SHORT_ALLOWLIST = frozenset({"api", "sql", "css", "ui", "ux"})
_LONG_REPEAT = re.compile(r"(.)\1{5,}")


def detect_unclear_task(task: str) -> Optional[str]:
    """Return a reason when ``task`` looks like noise rather than a request, else None."""
    normalized = task.strip()
    if not normalized:
        return "Task is empty. Please describe what you want to accomplish."
    if len(normalized) < 4 and normalized.lower() not in SHORT_ALLOWLIST:
        return "Task is very short. Please describe what you want to accomplish in more detail."

    non_space = "".join(ch for ch in normalized if not ch.isspace())
    letters = [ch for ch in non_space if unicodedata.category(ch).startswith("L")]
    digits = [ch for ch in non_space if unicodedata.category(ch).startswith("N")]
    symbols = len(non_space) - len(letters) - len(digits)

    if not letters and not digits and symbols:
        return (
            "Task contains only symbols or emojis. "
            "Please describe what you want to accomplish in words."
        )
    if not letters and digits and not symbols:
        return "Task contains only numbers. Please describe what you want to accomplish in words."
    if not letters:
        return "Task has no readable words. Please describe what you want to accomplish."

    vowels = sum(1 for ch in letters if ch.lower() in "aeiouy")
    digit_ratio = len(digits) / max(len(non_space), 1)
    has_spaces = any(ch.isspace() for ch in normalized)

    if not has_spaces and len(letters) >= 10 and vowels == 0:
        return "This looks like random characters. Please describe the goal in plain language."
    if not has_spaces and len(non_space) >= 10 and digit_ratio > 0.4:
        return (
            "Task mixes letters and digits without clear context. "
            "Please describe the goal in plain language."
        )
    if _LONG_REPEAT.search(normalized):
        return "Task contains long character repeats. Please describe the goal more clearly."
    return None
