"""
Session Module - the exercise state machine and its re-entrancy guard.
"""

from mini_trainer.session.controller import (
    CreditResult,
    LastAnswer,
    SessionController,
    SessionState,
    SessionStats,
    SessionSummary,
    SessionView,
)
from mini_trainer.session.guard import SingleFlight, single_flight

__all__ = [
    "CreditResult",
    "LastAnswer",
    "SessionController",
    "SessionState",
    "SessionStats",
    "SessionSummary",
    "SessionView",
    "SingleFlight",
    "single_flight",
]
