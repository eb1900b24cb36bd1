"""
Gamification Module - badge rules, progress and notifications.
"""

from mini_trainer.gamification.badges import (
    DEFAULT_BADGES,
    BadgeDefinition,
    BadgeProgress,
    BadgeRule,
    BadgeStatus,
    ExercisesCompletedRule,
    StreakRule,
    ThemeLevelRule,
    ThemesCompletedRule,
    TotalStarsRule,
    evaluate_rule,
    find_new_badges,
    get_all_badges_with_progress,
    get_badge_progress,
    get_next_badges,
    parse_badge_definitions,
)
from mini_trainer.gamification.notifications import NotificationQueue

__all__ = [
    "DEFAULT_BADGES",
    "BadgeDefinition",
    "BadgeProgress",
    "BadgeRule",
    "BadgeStatus",
    "ExercisesCompletedRule",
    "NotificationQueue",
    "StreakRule",
    "ThemeLevelRule",
    "ThemesCompletedRule",
    "TotalStarsRule",
    "evaluate_rule",
    "find_new_badges",
    "get_all_badges_with_progress",
    "get_badge_progress",
    "get_next_badges",
    "parse_badge_definitions",
]
