"""
Domain models for the trainer engine.

Pydantic models shared by every layer. JSON produced from them uses the
camelCase field names of the save-file format (totalStars, currentLevels, ...),
while Python code uses snake_case attributes.

- Exercise: read-only content supplied by the content provider
- ExerciseResult: one append-only record in the durable result log
- ThemeProgress / Badge / Profile: the durable learner aggregate
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TrainerModel(BaseModel):
    """Base model with camelCase aliases for JSON round-trips."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Dump using save-file (camelCase) keys and JSON-compatible values."""
        return self.model_dump(mode="json", by_alias=True)


class Exercise(TrainerModel):
    """A single exercise as delivered by the content provider. Never mutated."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    type: str
    area_id: str
    theme_id: str
    level: int = Field(ge=1, le=4)
    difficulty: int = Field(default=1, ge=1, le=3)
    instruction: str = ""
    content: dict[str, Any] = Field(default_factory=dict)
    hints: list[str] = Field(default_factory=list)
    feedback_correct: str | None = None
    feedback_incorrect: str | None = None


class ExerciseResult(TrainerModel):
    """Outcome of one exercise, appended to the durable log."""

    id: str
    exercise_id: str
    theme_id: str
    area_id: str
    level: int = Field(ge=1)
    correct: bool
    score: int = Field(ge=0, le=3)
    attempts: int = Field(ge=1)
    time_spent_seconds: float = Field(default=0.0, ge=0)
    completed_at: datetime
    profile_id: str


class ThemeProgress(TrainerModel):
    """Per-theme completion counters."""

    exercises_completed: int = Field(default=0, ge=0)
    exercises_total: int = Field(default=0, ge=0)
    stars_earned: int = Field(default=0, ge=0)

    @property
    def is_complete(self) -> bool:
        return self.exercises_total > 0 and self.exercises_completed >= self.exercises_total

    @property
    def percentage(self) -> float:
        if self.exercises_total == 0:
            return 0.0
        return min(self.exercises_completed / self.exercises_total * 100, 100.0)


class Badge(TrainerModel):
    """An earned achievement. Badges are only ever appended to a profile."""

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    icon: str = ""
    earned_at: datetime


class Profile(TrainerModel):
    """
    Canonical learner aggregate.

    Invariants kept by ProfileStore:
    - total_stars never decreases
    - current_levels values never decrease
    - badges only grow and ids are unique
    """

    id: str
    nickname: str
    avatar_id: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    total_stars: int = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_active_date: date | None = None
    current_levels: dict[str, int] = Field(default_factory=dict)
    theme_progress: dict[str, ThemeProgress] = Field(default_factory=dict)
    badges: list[Badge] = Field(default_factory=list)

    @property
    def badge_ids(self) -> set[str]:
        return {badge.id for badge in self.badges}

    def level_for(self, theme_id: str) -> int:
        """Unlocked level for a theme (1 when the theme was never played)."""
        return self.current_levels.get(theme_id, 1)
