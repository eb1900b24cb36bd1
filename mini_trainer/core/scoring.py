"""
Core Scoring Module.

Pure, side-effect-free calculations for stars, levels, streaks and level
access. Every other layer consults these functions instead of carrying its
own formula.

Design:
- calculate_stars: the one mapping from attempts to a 0-3 star score
- level_from_stars / get_level_progress: global level from total stars
- calculate_global_level: combination of per-theme levels
- update_streak / is_streak_at_risk: calendar-day streak arithmetic
- summarize_results: aggregate statistics over result records
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta

from mini_trainer.core.models import ExerciseResult

MAX_ATTEMPTS = 3
DEFAULT_STARS_PER_LEVEL = 10
MAX_STARS_PER_EXERCISE = 3
MAX_THEME_LEVEL = 4


# =============================================================================
# Stars
# =============================================================================


def calculate_stars(attempts: int, max_attempts: int = MAX_ATTEMPTS) -> int:
    """
    Convert the number of attempts on a solved exercise into a star score.

    Args:
        attempts: Attempts used, including the correct one
        max_attempts: Attempts allowed before the level fails

    Returns:
        3 for the first attempt, 2 for the second, 1 up to max_attempts,
        0 for anything else (never solved within the allowance)
    """
    if attempts < 1 or attempts > max_attempts:
        return 0
    if attempts == 1:
        return 3
    if attempts == 2:
        return 2
    return 1


# =============================================================================
# Levels
# =============================================================================


@dataclass
class LevelProgress:
    """Progress of the global level derived from total stars."""

    current_level: int
    current_stars: int  # stars inside the current level
    stars_to_next_level: int
    progress_percentage: float  # 0-100
    just_leveled_up: bool = False


def level_from_stars(total_stars: int, stars_per_level: int = DEFAULT_STARS_PER_LEVEL) -> int:
    """Global level: floor(total_stars / stars_per_level) + 1, never below 1."""
    if stars_per_level <= 0:
        raise ValueError("stars_per_level must be positive")
    return max(1, math.floor(max(total_stars, 0) / stars_per_level) + 1)


def get_stars_for_next_level(total_stars: int, stars_per_level: int = DEFAULT_STARS_PER_LEVEL) -> int:
    """Stars still missing until the next level boundary."""
    if stars_per_level <= 0:
        raise ValueError("stars_per_level must be positive")
    return stars_per_level - (max(total_stars, 0) % stars_per_level)


def get_level_progress(
    total_stars: int,
    stars_per_level: int = DEFAULT_STARS_PER_LEVEL,
    previous_level: int | None = None,
) -> LevelProgress:
    """
    Build the full level progress view.

    Args:
        total_stars: Total stars on the profile
        stars_per_level: Stars required per level
        previous_level: Level before the latest credit (for just_leveled_up)
    """
    current_level = level_from_stars(total_stars, stars_per_level)
    current_stars = max(total_stars, 0) % stars_per_level
    return LevelProgress(
        current_level=current_level,
        current_stars=current_stars,
        stars_to_next_level=stars_per_level - current_stars,
        progress_percentage=current_stars / stars_per_level * 100,
        just_leveled_up=previous_level is not None and current_level > previous_level,
    )


def calculate_global_level(
    current_levels: Mapping[str, int],
    all_theme_ids: Iterable[str],
    max_theme_level: int = MAX_THEME_LEVEL,
) -> int:
    """
    Combine per-theme levels into one global level.

    Rule: the lowest unlocked level across all known themes, capped at
    max_theme_level. A theme without an entry counts as level 1, so the
    global level only rises once every theme has been pushed past it.
    """
    theme_ids = list(dict.fromkeys(all_theme_ids))
    if not theme_ids:
        return 1
    lowest = min(max(current_levels.get(theme_id, 1), 1) for theme_id in theme_ids)
    return min(lowest, max_theme_level)


def is_level_accessible(
    theme_id: str,
    requested_level: int,
    current_levels: Mapping[str, int],
    all_theme_ids: Iterable[str] | None = None,
) -> bool:
    """
    Check whether a theme level may be played.

    Level 1 is always open; higher levels need the theme's unlocked level to
    be at least the requested one. ``all_theme_ids`` is accepted for call-site
    symmetry with calculate_global_level and does not gate access.
    """
    if requested_level <= 1:
        return True
    return requested_level <= current_levels.get(theme_id, 1)


# =============================================================================
# Streaks
# =============================================================================


@dataclass
class StreakUpdate:
    """Result of applying one day of activity to a streak."""

    current_streak: int
    longest_streak: int
    last_active_date: date
    updated: bool
    broken: bool


def update_streak(
    current_streak: int,
    longest_streak: int,
    last_active_date: date | None,
    today: date,
) -> StreakUpdate:
    """
    Apply activity on ``today`` to a streak.

    Same day is a no-op, the next calendar day extends the streak, any
    larger gap (or no previous activity) restarts it at 1.
    """
    if last_active_date == today:
        return StreakUpdate(
            current_streak=current_streak,
            longest_streak=max(longest_streak, current_streak),
            last_active_date=today,
            updated=False,
            broken=False,
        )

    if last_active_date is not None and today - last_active_date == timedelta(days=1):
        new_streak = current_streak + 1
        broken = False
    else:
        new_streak = 1
        broken = last_active_date is not None and current_streak > 0

    return StreakUpdate(
        current_streak=new_streak,
        longest_streak=max(longest_streak, new_streak),
        last_active_date=today,
        updated=True,
        broken=broken,
    )


def is_streak_at_risk(last_active_date: date | None, today: date | None = None) -> bool:
    """True unless the last activity was today or yesterday (local calendar days)."""
    if last_active_date is None:
        return True
    today = today or date.today()
    return (today - last_active_date).days not in (0, 1)


# =============================================================================
# Result Statistics
# =============================================================================


@dataclass
class GroupStats:
    """Statistics for one group of results (area, level, ...)."""

    total: int = 0
    correct: int = 0
    total_stars: int = 0
    total_attempts: int = 0

    @property
    def accuracy(self) -> float:
        return self.correct / self.total * 100 if self.total else 0.0

    @property
    def average_attempts(self) -> float:
        return self.total_attempts / self.total if self.total else 0.0

    @property
    def average_stars(self) -> float:
        return self.total_stars / self.total if self.total else 0.0


@dataclass
class ScoringStats:
    """Aggregate statistics over a list of exercise results."""

    total_exercises: int = 0
    total_correct: int = 0
    total_stars: int = 0
    max_stars: int = 0
    average_attempts: float = 0.0
    average_time_seconds: float = 0.0
    by_area: dict[str, GroupStats] = field(default_factory=dict)
    by_level: dict[int, GroupStats] = field(default_factory=dict)

    @property
    def overall_accuracy(self) -> float:
        return self.total_correct / self.total_exercises * 100 if self.total_exercises else 0.0

    @property
    def star_completion(self) -> float:
        return self.total_stars / self.max_stars * 100 if self.max_stars else 0.0


def _group(results: list[ExerciseResult], key: Callable[[ExerciseResult], object]) -> dict:
    groups: dict = defaultdict(GroupStats)
    for result in results:
        stats = groups[key(result)]
        stats.total += 1
        stats.correct += int(result.correct)
        stats.total_stars += result.score
        stats.total_attempts += result.attempts
    return dict(groups)


def summarize_results(results: Iterable[ExerciseResult]) -> ScoringStats:
    """Summarize result records for progress views."""
    results = list(results)
    if not results:
        return ScoringStats()

    count = len(results)
    return ScoringStats(
        total_exercises=count,
        total_correct=sum(1 for r in results if r.correct),
        total_stars=sum(r.score for r in results),
        max_stars=count * MAX_STARS_PER_EXERCISE,
        average_attempts=sum(r.attempts for r in results) / count,
        average_time_seconds=sum(r.time_spent_seconds for r in results) / count,
        by_area=_group(results, lambda r: r.area_id),
        by_level=_group(results, lambda r: r.level),
    )
