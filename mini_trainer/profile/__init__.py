"""
Profile Module - the learner aggregate and its mutation API.
"""

from mini_trainer.profile.store import MAX_NICKNAME_LENGTH, DailyReward, ProfileStore, validate_nickname

__all__ = [
    "MAX_NICKNAME_LENGTH",
    "DailyReward",
    "ProfileStore",
    "validate_nickname",
]
