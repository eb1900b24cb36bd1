"""
Core Module - Shared domain models and scoring.

Components:
- models: Exercise, ExerciseResult, Profile and friends (pydantic)
- scoring: the pure ScoringEngine (stars, levels, streaks, statistics)

All other packages import scoring from here rather than reimplementing it.
"""

from mini_trainer.core.models import (
    Badge,
    Exercise,
    ExerciseResult,
    Profile,
    ThemeProgress,
)
from mini_trainer.core.scoring import (
    MAX_ATTEMPTS,
    LevelProgress,
    ScoringStats,
    StreakUpdate,
    calculate_global_level,
    calculate_stars,
    get_level_progress,
    get_stars_for_next_level,
    is_level_accessible,
    is_streak_at_risk,
    level_from_stars,
    summarize_results,
    update_streak,
)

__all__ = [
    # Models
    "Badge",
    "Exercise",
    "ExerciseResult",
    "Profile",
    "ThemeProgress",
    # Scoring
    "MAX_ATTEMPTS",
    "LevelProgress",
    "ScoringStats",
    "StreakUpdate",
    "calculate_global_level",
    "calculate_stars",
    "get_level_progress",
    "get_stars_for_next_level",
    "is_level_accessible",
    "is_streak_at_risk",
    "level_from_stars",
    "summarize_results",
    "update_streak",
]
