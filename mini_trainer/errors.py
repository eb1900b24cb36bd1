"""
Error types for the trainer engine.

ValidationError and PersistenceError propagate to callers. StateError is
caught at the controller boundary and turned into a logged no-op.
"""

from __future__ import annotations

from enum import Enum


class TrainerError(Exception):
    """Base class for all trainer engine errors."""


class ValidationError(TrainerError):
    """Raised when input (save files, nicknames, ranges) is rejected before any mutation."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(f"{field}: {message}" if field else message)


class PersistenceError(TrainerError):
    """Raised when a durable-tier write or read fails."""

    def __init__(self, operation: str, message: str, failures: int = 1):
        self.operation = operation
        self.failures = failures
        super().__init__(f"{operation} failed: {message}")


class StateError(TrainerError):
    """Raised for an illegal session or profile transition."""


class CreditOutcome(str, Enum):
    """How a solved exercise was treated by the completion guard."""

    CREDITED = "credited"
    ALREADY_COMPLETED = "already_completed"
    NOT_CORRECT = "not_correct"
    NO_PROFILE = "no_profile"
