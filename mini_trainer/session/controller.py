"""
Session Controller.

Runs one pass through an ordered exercise list (a theme level) and owns
every transition of it:

    IDLE -> ACTIVE -> (submit) -> SOLVED | RETRY | LEVEL_FAILED
    SOLVED -> (next) -> ANSWERING ... -> COMPLETE
    LEVEL_FAILED -> restart_level() | exit_level()

Crediting happens when the learner moves on from a solved exercise
(``next_exercise`` or ``end_session``):
1. CompletionGuard: skip crediting if the exercise was ever solved before
2. Log the result (always, also for already-solved exercises)
3. Stars from calculate_stars, theme progress, streak
4. Badge evaluation against the freshly committed profile

``end_session`` is the only place that decides level completion, and it
flushes all pending durable writes before returning. Advancing actions
share one single-flight guard.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TypeVar

from loguru import logger

from config import Settings
from mini_trainer.core.models import Badge, Exercise, ExerciseResult
from mini_trainer.core.scoring import calculate_stars, level_from_stars
from mini_trainer.errors import CreditOutcome, PersistenceError, StateError
from mini_trainer.gamification.notifications import NotificationQueue
from mini_trainer.profile.store import ProfileStore
from mini_trainer.session.guard import single_flight

T = TypeVar("T")


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"  # first exercise shown, no answer yet
    ANSWERING = "answering"  # a later exercise shown, no answer yet
    SOLVED = "solved"
    RETRY = "retry"
    LEVEL_FAILED = "level_failed"
    COMPLETE = "complete"


_AWAITING_ANSWER = (SessionState.ACTIVE, SessionState.ANSWERING, SessionState.RETRY)


@dataclass
class LastAnswer:
    correct: bool
    attempts: int
    score: int = 0


@dataclass
class SessionView:
    """Everything the exercise renderer needs; it owns no transition logic."""

    state: SessionState
    current: int  # 1-based position, 0 when idle
    total: int
    exercise: Exercise | None
    attempts: int
    last_answer: LastAnswer | None
    has_answered: bool
    show_solution: bool
    level_failed: bool
    is_completed: bool


@dataclass
class CreditResult:
    """What happened when a solved exercise was credited."""

    exercise_id: str
    outcome: CreditOutcome
    stars: int = 0
    level_up: int | None = None
    new_badges: list[Badge] = field(default_factory=list)


@dataclass
class SessionStats:
    total_exercises: int = 0
    answered: int = 0
    correct: int = 0
    stars_earned: int = 0
    time_spent_seconds: float = 0.0


@dataclass
class SessionSummary:
    """Returned by end_session."""

    theme_id: str
    level: int
    stats: SessionStats
    level_completed: bool = False
    unlocked_level: int | None = None
    new_badges: list[Badge] = field(default_factory=list)
    credits: list[CreditResult] = field(default_factory=list)


class SessionController:
    """
    Exercise session state machine.

    Args:
        store: ProfileStore used for crediting
        settings: Policy values (max attempts, stars per level, max theme level)
        catalog: All exercises known to the trainer; used for theme totals and
            the exercise set of a level. Falls back to the session list.
        notifications: Queue that receives new badges and level-ups
        clock: Returns the current aware datetime
    """

    def __init__(
        self,
        store: ProfileStore,
        settings: Settings | None = None,
        catalog: Sequence[Exercise] | None = None,
        notifications: NotificationQueue | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.repository = store.repository
        self.settings = settings or store.settings
        self.catalog = list(catalog) if catalog is not None else None
        self.notifications = notifications or NotificationQueue()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.persistence_errors: list[PersistenceError] = []
        self._reset()

    def _reset(self) -> None:
        self.state = SessionState.IDLE
        self.exercises: tuple[Exercise, ...] = ()
        self.theme_id: str | None = None
        self.area_id: str | None = None
        self.level: int | None = None
        self.profile_id: str | None = None
        self.index = 0
        self.show_solution_flag = False
        self.has_answered = False
        self.level_failed = False
        self.is_completed = False
        self.last_answer: LastAnswer | None = None
        self._attempts: dict[str, int] = {}
        self._solved: dict[str, LastAnswer] = {}
        self._time_spent: dict[str, float] = {}
        self._credited: set[str] = set()
        self._newly_credited: list[str] = []
        self._credits: list[CreditResult] = []
        self._outbox: list[ExerciseResult] = []
        self._stats = SessionStats()

    # =========================================================================
    # Read Side
    # =========================================================================

    @property
    def active(self) -> bool:
        return self.state != SessionState.IDLE

    @property
    def current_exercise(self) -> Exercise | None:
        if self.index < len(self.exercises):
            return self.exercises[self.index]
        return None

    @property
    def last_credit(self) -> CreditResult | None:
        return self._credits[-1] if self._credits else None

    @property
    def session_stats(self) -> SessionStats:
        stats = self._stats
        stats.total_exercises = len(self.exercises)
        stats.answered = sum(1 for count in self._attempts.values() if count > 0)
        stats.correct = len(self._solved)
        stats.time_spent_seconds = sum(self._time_spent.values())
        return stats

    def view(self) -> SessionView:
        exercise = self.current_exercise
        return SessionView(
            state=self.state,
            current=min(self.index + 1, len(self.exercises)) if self.active else 0,
            total=len(self.exercises),
            exercise=exercise,
            attempts=self._attempts.get(exercise.id, 0) if exercise else 0,
            last_answer=self.last_answer,
            has_answered=self.has_answered,
            show_solution=self.show_solution_flag,
            level_failed=self.level_failed,
            is_completed=self.is_completed,
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def start_session(
        self,
        exercises: Sequence[Exercise],
        theme_id: str,
        area_id: str | None = None,
        profile_id: str | None = None,
        level: int | None = None,
    ) -> SessionView:
        """
        Start a run through ``exercises``.

        Starting the theme+level that is already active returns the running
        session unchanged. Any other active session is discarded.
        """
        level = level if level is not None else (exercises[0].level if exercises else 1)
        if self.active and self.theme_id == theme_id and self.level == level:
            logger.debug(f"Session {theme_id}/L{level} already active")
            return self.view()
        carried: list[ExerciseResult] = []
        if self.active:
            carried = self._discard("replaced by a new session")

        self._reset()
        self._outbox = carried
        self.exercises = tuple(exercises)
        self.theme_id = theme_id
        self.area_id = area_id
        self.level = level
        profile = self.store.profile
        self.profile_id = profile_id or (profile.id if profile else None)
        self.state = SessionState.ACTIVE if self.exercises else SessionState.COMPLETE
        self.is_completed = not self.exercises
        logger.info(f"Session started: theme={theme_id} level={level} exercises={len(self.exercises)}")
        return self.view()

    def submit_answer(self, correct: bool) -> SessionView:
        """Register one answer for the current exercise. Illegal calls are logged no-ops."""
        try:
            self._submit(correct)
        except StateError as e:
            logger.warning(f"submit_answer ignored: {e}")
        return self.view()

    def _submit(self, correct: bool) -> None:
        if self.state not in _AWAITING_ANSWER:
            raise StateError(f"no answer expected in state {self.state.value}")
        exercise = self.current_exercise
        if exercise is None:
            raise StateError("no current exercise")

        attempts = self._attempts.get(exercise.id, 0) + 1
        self._attempts[exercise.id] = attempts
        self.has_answered = True

        if correct:
            score = calculate_stars(attempts, self.settings.max_attempts)
            self.last_answer = LastAnswer(correct=True, attempts=attempts, score=score)
            self._solved[exercise.id] = self.last_answer
            self.state = SessionState.SOLVED
        elif attempts >= self.settings.max_attempts:
            self.last_answer = LastAnswer(correct=False, attempts=attempts)
            self.level_failed = True
            self.show_solution_flag = True
            self.state = SessionState.LEVEL_FAILED
            self._outbox.append(self._result_for(exercise, self.last_answer))
            logger.info(f"Level failed on {exercise.id} after {attempts} attempts")
        else:
            self.last_answer = LastAnswer(correct=False, attempts=attempts)
            self.state = SessionState.RETRY

    def show_solution(self) -> SessionView:
        if self.current_exercise is None or not self.active:
            logger.warning("show_solution ignored: no current exercise")
        else:
            self.show_solution_flag = True
        return self.view()

    def record_time(self, seconds: float) -> None:
        exercise = self.current_exercise
        if exercise is None or seconds <= 0:
            return
        self._time_spent[exercise.id] = self._time_spent.get(exercise.id, 0.0) + seconds

    def restart_level(self) -> SessionView:
        """Start the same exercise list over from the first exercise."""
        if not self.active:
            logger.warning("restart_level ignored: no active session")
            return self.view()
        self.index = 0
        self._attempts.clear()
        self._solved.clear()
        self.last_answer = None
        self.has_answered = False
        self.show_solution_flag = False
        self.level_failed = False
        self.is_completed = not self.exercises
        self.state = SessionState.ACTIVE if self.exercises else SessionState.COMPLETE
        logger.info(f"Level restarted: theme={self.theme_id} level={self.level}")
        return self.view()

    @single_flight("advance")
    async def next_exercise(self) -> SessionView:
        """
        Credit the solved exercise and move to the next one.

        Blocked while the level is failed. Durable write failures are logged
        and collected; the session keeps going and end_session reports them.

        Raises:
            PersistenceError: the completion lookup failed; the exercise stays
                solved and uncredited, so next_exercise may be called again
        """
        try:
            if self.state == SessionState.LEVEL_FAILED:
                raise StateError("level failed; restart_level() or exit_level() first")
            if self.state != SessionState.SOLVED:
                raise StateError(f"cannot advance from state {self.state.value}")
        except StateError as e:
            logger.warning(f"next_exercise ignored: {e}")
            return self.view()

        self._send_outbox()
        await self._credit_current(evaluate_badges=True)

        self.index += 1
        self.show_solution_flag = False
        self.has_answered = False
        self.last_answer = None
        if self.index >= len(self.exercises):
            self.is_completed = True
            self.state = SessionState.COMPLETE
        else:
            self.state = SessionState.ANSWERING
        return self.view()

    @single_flight("advance")
    async def end_session(self) -> SessionSummary | None:
        """
        Finalize the session.

        Credits a solved-but-not-yet-credited exercise, evaluates level
        completion, runs one badge pass and flushes all pending writes.
        On success the controller is idle again.

        Raises:
            PersistenceError: pending writes could not be flushed; the
                session stays as it is and end_session may be called again
        """
        if not self.active:
            logger.warning("end_session ignored: no active session")
            return None

        self._send_outbox()
        credit = await self._credit_current(evaluate_badges=False)

        summary = SessionSummary(theme_id=self.theme_id or "", level=self.level or 1, stats=self.session_stats)
        profile = self.store.profile
        if self._newly_credited and profile is not None and self.theme_id is not None:
            just_solved = credit.exercise_id if credit else self._newly_credited[-1]
            summary.level_completed = await self.repository.is_level_complete(
                profile.id, self.theme_id, self._level_exercise_ids(), just_solved
            )
            if summary.level_completed:
                before = profile.level_for(self.theme_id)
                target = min((self.level or 1) + 1, self.settings.max_theme_level)
                after = await self._persisting(self.store.update_theme_level(self.theme_id, target), before)
                if after > before:
                    summary.unlocked_level = after
            summary.new_badges = await self._evaluate_badges()

        try:
            await self.repository.flush()
        except PersistenceError as e:
            logger.error(f"end_session could not flush pending writes: {e}")
            raise
        self.persistence_errors.clear()

        summary.credits = list(self._credits)
        logger.info(
            f"Session ended: theme={summary.theme_id} level={summary.level} "
            f"stars={summary.stats.stars_earned} completed={summary.level_completed}"
        )
        self._reset()
        return summary

    async def exit_level(self) -> None:
        """Leave the session without crediting; already logged results are flushed."""
        if not self.active:
            return
        self._send_outbox()
        self._discard("exited")
        await self.repository.flush()

    def _discard(self, reason: str) -> list[ExerciseResult]:
        """
        Drop the session. Returns logged results that could not be scheduled
        yet (no running event loop); the caller keeps them for the next send.
        """
        uncredited = [exercise_id for exercise_id in self._solved if exercise_id not in self._credited]
        if uncredited:
            logger.warning(f"Session {reason} with uncredited solved exercises: {uncredited}")
        else:
            logger.info(f"Session {reason}: theme={self.theme_id} level={self.level}")
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            carried = list(self._outbox)
        else:
            self._send_outbox()
            carried = []
        self._reset()
        return carried

    # =========================================================================
    # Crediting
    # =========================================================================

    async def _persisting(self, operation: Awaitable[T], fallback: T) -> T:
        """Await a profile mutation, collecting a durable failure instead of aborting."""
        try:
            return await operation
        except PersistenceError as e:
            logger.error(f"Durable write failed, continuing with in-memory profile: {e}")
            self.persistence_errors.append(e)
            return fallback

    async def _evaluate_badges(self) -> list[Badge]:
        """One badge pass; new badges go to the notification queue even if the write failed."""
        profile = self.store.profile
        held = profile.badge_ids if profile else set()
        try:
            new_badges = await self.store.evaluate_badges()
        except PersistenceError as e:
            logger.error(f"Durable write failed, continuing with in-memory profile: {e}")
            self.persistence_errors.append(e)
            current = self.store.profile
            new_badges = [b for b in current.badges if b.id not in held] if current else []
        self.notifications.push_badges(new_badges)
        return new_badges

    def _result_for(self, exercise: Exercise, answer: LastAnswer) -> ExerciseResult:
        profile = self.store.profile
        return ExerciseResult(
            id=str(uuid.uuid4()),
            exercise_id=exercise.id,
            theme_id=exercise.theme_id,
            area_id=exercise.area_id,
            level=exercise.level,
            correct=answer.correct,
            score=answer.score,
            attempts=answer.attempts,
            time_spent_seconds=self._time_spent.get(exercise.id, 0.0),
            completed_at=self._clock(),
            profile_id=self.profile_id or (profile.id if profile else ""),
        )

    def _send_outbox(self) -> None:
        for result in self._outbox:
            if result.profile_id:
                self.repository.schedule_result(result)
        self._outbox.clear()

    async def _credit_current(self, evaluate_badges: bool) -> CreditResult | None:
        exercise = self.current_exercise
        if exercise is None:
            return None
        answer = self._solved.get(exercise.id)
        if answer is None or exercise.id in self._credited:
            return None

        profile = self.store.profile
        if profile is None:
            self._credited.add(exercise.id)
            credit = CreditResult(exercise_id=exercise.id, outcome=CreditOutcome.NO_PROFILE)
            self._credits.append(credit)
            return credit

        try:
            already_completed = await self.repository.has_exercise_been_completed(profile.id, exercise.id)
        except PersistenceError as e:
            logger.error(f"Completion lookup for {exercise.id} failed, left uncredited: {e}")
            raise
        self._credited.add(exercise.id)
        self.repository.schedule_result(self._result_for(exercise, answer))

        if already_completed:
            logger.debug(f"Exercise {exercise.id} already completed, not credited again")
            credit = CreditResult(exercise_id=exercise.id, outcome=CreditOutcome.ALREADY_COMPLETED)
            self._credits.append(credit)
            return credit

        previous_level = level_from_stars(profile.total_stars, self.settings.stars_per_level)
        stars = await self._persisting(self.store.add_stars(answer.score), self.store.clamp_stars(answer.score))

        completed = await self._persisting(self.repository.completed_exercise_ids(profile.id, exercise.theme_id), None)
        await self._persisting(
            self.store.update_theme_progress(
                exercise.theme_id,
                exercises_completed=len(completed) if completed is not None else None,
                exercises_total=self._theme_total(exercise.theme_id),
                stars=stars,
            ),
            None,
        )
        await self._persisting(self.store.increment_streak(), None)

        credit = CreditResult(exercise_id=exercise.id, outcome=CreditOutcome.CREDITED, stars=stars)
        current = self.store.profile
        new_level = level_from_stars(current.total_stars, self.settings.stars_per_level) if current else 1
        if new_level > previous_level:
            credit.level_up = new_level
            self.notifications.set_level_up(new_level)
            logger.info(f"Level up: {previous_level} -> {new_level}")

        if evaluate_badges:
            credit.new_badges = await self._evaluate_badges()

        self._stats.stars_earned += stars
        self._newly_credited.append(exercise.id)
        self._credits.append(credit)
        return credit

    def _level_pool(self) -> list[Exercise]:
        return self.catalog if self.catalog is not None else list(self.exercises)

    def _level_exercise_ids(self) -> list[str]:
        return [e.id for e in self._level_pool() if e.theme_id == self.theme_id and e.level == self.level]

    def _theme_total(self, theme_id: str) -> int | None:
        if self.catalog is None:
            return None
        return sum(1 for e in self.catalog if e.theme_id == theme_id)
