"""
Badge rules and the achievement evaluator.

Badge criteria are data: each definition carries a tagged rule
(``{"kind": "totalStars", "threshold": 10}``) that one pure interpreter
evaluates against a profile snapshot. Rules serialize with the rest of the
trainer configuration and are testable without any store.

Evaluation must be given the profile *after* the mutation that may have
unlocked something has been committed; callers pass the freshly committed
snapshot, never a copy captured before the mutation.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from mini_trainer.core.models import Badge, Profile, TrainerModel

# =============================================================================
# Rule Variants
# =============================================================================


class TotalStarsRule(BaseModel):
    """Earned when totalStars reaches the threshold."""

    kind: Literal["totalStars"] = "totalStars"
    threshold: int = Field(ge=1)


class StreakRule(BaseModel):
    """Earned when the longest streak reaches the threshold (days)."""

    kind: Literal["streak"] = "streak"
    threshold: int = Field(ge=1)


class ThemesCompletedRule(BaseModel):
    """Earned when the number of fully completed themes reaches the threshold."""

    kind: Literal["themesCompleted"] = "themesCompleted"
    threshold: int = Field(ge=1)


class ThemeLevelRule(BaseModel):
    """Earned when any theme has been unlocked up to the threshold level."""

    kind: Literal["themeLevel"] = "themeLevel"
    threshold: int = Field(ge=1)


class ExercisesCompletedRule(BaseModel):
    """Earned when the completed-exercise count across themes reaches the threshold."""

    kind: Literal["exercisesCompleted"] = "exercisesCompleted"
    threshold: int = Field(ge=1)


BadgeRule = Annotated[
    Union[TotalStarsRule, StreakRule, ThemesCompletedRule, ThemeLevelRule, ExercisesCompletedRule],
    Field(discriminator="kind"),
]


class BadgeDefinition(TrainerModel):
    """A badge that can be earned, with the rule that unlocks it."""

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    icon: str = ""
    rule: BadgeRule

    def to_badge(self, earned_at: datetime) -> Badge:
        return Badge(
            id=self.id,
            name=self.name,
            description=self.description,
            icon=self.icon,
            earned_at=earned_at,
        )


_definitions_adapter = TypeAdapter(list[BadgeDefinition])


def parse_badge_definitions(data: list[dict]) -> list[BadgeDefinition]:
    """Parse badge definitions from trainer configuration data."""
    return _definitions_adapter.validate_python(data)


# =============================================================================
# Rule Interpreter
# =============================================================================


def _completed_themes(profile: Profile) -> int:
    return sum(1 for progress in profile.theme_progress.values() if progress.is_complete)


def _highest_theme_level(profile: Profile) -> int:
    return max(profile.current_levels.values(), default=1)


def _completed_exercises(profile: Profile) -> int:
    return sum(progress.exercises_completed for progress in profile.theme_progress.values())


_RULE_VALUES: dict[str, Callable[[Profile], int]] = {
    "totalStars": lambda profile: profile.total_stars,
    "streak": lambda profile: profile.longest_streak,
    "themesCompleted": _completed_themes,
    "themeLevel": _highest_theme_level,
    "exercisesCompleted": _completed_exercises,
}


def rule_value(rule: BadgeRule, profile: Profile) -> int:
    """Current value of the quantity a rule measures."""
    return _RULE_VALUES[rule.kind](profile)


def evaluate_rule(rule: BadgeRule, profile: Profile) -> bool:
    """Whether the rule is satisfied by the profile."""
    return rule_value(rule, profile) >= rule.threshold


# =============================================================================
# Progress
# =============================================================================


@dataclass
class BadgeProgress:
    """Progress towards one badge."""

    current: int
    target: int
    percentage: float  # 0-100


@dataclass
class BadgeStatus:
    """A badge definition together with the learner's progress on it."""

    definition: BadgeDefinition
    earned: bool
    progress: BadgeProgress
    earned_at: datetime | None = None


def get_badge_progress(definition: BadgeDefinition, profile: Profile) -> BadgeProgress:
    current = rule_value(definition.rule, profile)
    target = definition.rule.threshold
    percentage = min(max(current, 0) / target * 100, 100.0)
    return BadgeProgress(current=current, target=target, percentage=percentage)


def get_all_badges_with_progress(
    profile: Profile,
    definitions: Sequence[BadgeDefinition],
) -> list[BadgeStatus]:
    """
    Progress for every defined badge.

    A badge already on the profile is reported as earned at 100% even if the
    measured value has since been reset (e.g. a streak).
    """
    earned = {badge.id: badge for badge in profile.badges}
    statuses = []
    for definition in definitions:
        progress = get_badge_progress(definition, profile)
        badge = earned.get(definition.id)
        if badge is not None:
            progress = BadgeProgress(
                current=max(progress.current, progress.target),
                target=progress.target,
                percentage=100.0,
            )
        statuses.append(
            BadgeStatus(
                definition=definition,
                earned=badge is not None,
                progress=progress,
                earned_at=badge.earned_at if badge else None,
            )
        )
    return statuses


def find_new_badges(
    profile: Profile,
    definitions: Iterable[BadgeDefinition],
    now: datetime | None = None,
) -> list[Badge]:
    """
    Badges newly satisfied by the profile, in definition order.

    Badges already on the profile are skipped, as are duplicate definition ids.
    """
    now = now or datetime.now(UTC)
    seen = set(profile.badge_ids)
    new_badges = []
    for definition in definitions:
        if definition.id in seen:
            continue
        if evaluate_rule(definition.rule, profile):
            new_badges.append(definition.to_badge(now))
            seen.add(definition.id)
    return new_badges


def get_next_badges(profile: Profile, definitions: Sequence[BadgeDefinition]) -> list[BadgeDefinition]:
    """First unearned badge per rule kind, easiest threshold first."""
    earned = profile.badge_ids
    next_badges: list[BadgeDefinition] = []
    seen_kinds: set[str] = set()
    for definition in sorted(definitions, key=lambda d: (d.rule.kind, d.rule.threshold)):
        if definition.rule.kind in seen_kinds or definition.id in earned:
            continue
        next_badges.append(definition)
        seen_kinds.add(definition.rule.kind)
    return next_badges


# =============================================================================
# Default Catalogue
# =============================================================================


def _badge(badge_id: str, name: str, description: str, icon: str, rule: BadgeRule) -> BadgeDefinition:
    return BadgeDefinition(id=badge_id, name=name, description=description, icon=icon, rule=rule)


STAR_MILESTONE_BADGES = [
    _badge("stars_10", "Star Collector", "Earn 10 stars", "⭐", TotalStarsRule(threshold=10)),
    _badge("stars_25", "Star Hunter", "Earn 25 stars", "🌟", TotalStarsRule(threshold=25)),
    _badge("stars_50", "Star Champion", "Earn 50 stars", "💫", TotalStarsRule(threshold=50)),
    _badge("stars_100", "Star Master", "Earn 100 stars", "✨", TotalStarsRule(threshold=100)),
    _badge("stars_250", "Star Legend", "Earn 250 stars", "🌠", TotalStarsRule(threshold=250)),
    _badge("stars_500", "Star Supernova", "Earn 500 stars", "🎆", TotalStarsRule(threshold=500)),
]

STREAK_MILESTONE_BADGES = [
    _badge("streak_3", "Getting Started", "Practice 3 days in a row", "🔥", StreakRule(threshold=3)),
    _badge("streak_7", "Week Warrior", "Practice 7 days in a row", "💪", StreakRule(threshold=7)),
    _badge("streak_14", "Fortnight Fighter", "Practice 14 days in a row", "⚡", StreakRule(threshold=14)),
    _badge("streak_30", "Monthly Master", "Practice 30 days in a row", "🏆", StreakRule(threshold=30)),
]

LEVEL_MILESTONE_BADGES = [
    _badge("level_2", "Climber", "Unlock level 2 in any theme", "📈", ThemeLevelRule(threshold=2)),
    _badge("level_3", "Rising Star", "Unlock level 3 in any theme", "🎓", ThemeLevelRule(threshold=3)),
    _badge("level_4", "Grand Master", "Unlock level 4 in any theme", "👑", ThemeLevelRule(threshold=4)),
]

THEME_COMPLETION_BADGES = [
    _badge("themes_1", "Explorer", "Complete a whole theme", "🗺️", ThemesCompletedRule(threshold=1)),
    _badge("themes_3", "Adventurer", "Complete 3 themes", "🧭", ThemesCompletedRule(threshold=3)),
    _badge("themes_5", "Globetrotter", "Complete 5 themes", "🌍", ThemesCompletedRule(threshold=5)),
]

DEFAULT_BADGES: list[BadgeDefinition] = [
    _badge("first_steps", "First Steps", "Complete your first exercise", "🎯", ExercisesCompletedRule(threshold=1)),
    *STAR_MILESTONE_BADGES,
    *STREAK_MILESTONE_BADGES,
    *LEVEL_MILESTONE_BADGES,
    *THEME_COMPLETION_BADGES,
]
