"""
Durable Tier Models.

SQLAlchemy models for the durable side of the persistence layer:
- Append-only exercise result log (completion lookup, level aggregation)
- Profile copies (survive loss of the snapshot file)
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from mini_trainer.core.models import ExerciseResult, Profile

from .base import Base


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class ExerciseResultRecord(Base):
    """
    One exercise outcome.

    Rows are never updated. Keyed logically by (profile_id, exercise_id,
    completed_at); a correct row for an exercise marks it completed for good.
    """

    __tablename__ = "exercise_results"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    profile_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    exercise_id: Mapped[str] = mapped_column(Text, nullable=False)
    theme_id: Mapped[str] = mapped_column(Text, nullable=False)
    area_id: Mapped[str] = mapped_column(Text, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    time_spent_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)  # naive UTC

    __table_args__ = (
        UniqueConstraint("profile_id", "exercise_id", "completed_at", name="uq_result_profile_exercise_time"),
        Index("idx_results_completion", "profile_id", "exercise_id", "correct"),
        Index("idx_results_theme_level", "profile_id", "theme_id", "level"),
    )

    def __repr__(self) -> str:
        return f"<ExerciseResultRecord profile={self.profile_id} exercise={self.exercise_id} correct={self.correct}>"

    @classmethod
    def from_model(cls, result: ExerciseResult) -> ExerciseResultRecord:
        return cls(
            id=result.id,
            profile_id=result.profile_id,
            exercise_id=result.exercise_id,
            theme_id=result.theme_id,
            area_id=result.area_id,
            level=result.level,
            correct=result.correct,
            score=result.score,
            attempts=result.attempts,
            time_spent_seconds=result.time_spent_seconds,
            completed_at=_to_naive_utc(result.completed_at),
        )

    def to_model(self) -> ExerciseResult:
        return ExerciseResult(
            id=self.id,
            profile_id=self.profile_id,
            exercise_id=self.exercise_id,
            theme_id=self.theme_id,
            area_id=self.area_id,
            level=self.level,
            correct=self.correct,
            score=self.score,
            attempts=self.attempts,
            time_spent_seconds=self.time_spent_seconds,
            completed_at=self.completed_at.replace(tzinfo=UTC),
        )


class ProfileRecord(Base):
    """Durable copy of a profile, stored as its save-file JSON."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    nickname: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<ProfileRecord id={self.id} nickname={self.nickname}>"

    def to_model(self) -> Profile:
        return Profile.model_validate(self.payload)
