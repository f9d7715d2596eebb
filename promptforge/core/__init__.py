"""Core data types, answer history and session logging."""

from .answer_history import AnswerHistoryTracker
from .errors import FailureCode, GenerationError
from .models import (
    ClarifyingAnswer,
    ClarifyingOption,
    ClarifyingQuestion,
    HistoryItem,
    Preferences,
    TaskActivity,
    TerminalLine,
)
from .session_log import SessionLogger

__all__ = [
    "AnswerHistoryTracker",
    "ClarifyingAnswer",
    "ClarifyingOption",
    "ClarifyingQuestion",
    "FailureCode",
    "GenerationError",
    "HistoryItem",
    "Preferences",
    "SessionLogger",
    "TaskActivity",
    "TerminalLine",
]
