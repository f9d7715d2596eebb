from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureCode(str, Enum):
    UNAUTHENTICATED = "UNAUTHENTICATED"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    INVALID_INPUT = "INVALID_INPUT"
    SUBSCRIPTION_REQUIRED = "SUBSCRIPTION_REQUIRED"
    UNCLEAR_TASK = "UNCLEAR_TASK"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    RATE_LIMITED = "RATE_LIMITED"


class GenerationError(Exception):
    """Typed failure raised by a prompt generator collaborator."""

    def __init__(self, code: FailureCode, reason: Optional[str] = None) -> None:
        super().__init__(reason or code.value)
        self.code = code
        self.reason = reason

