"""
Durable result log (SQLAlchemy).

Provides portable persistence for:
- Append-only exercise results (completion lookup, level aggregation)
- Durable profile copies
- Cascading deletion for a full profile reset

Blocking database calls run in a worker thread so the event loop driving
the UI never blocks. Every failure surfaces as PersistenceError.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import TypeVar

from loguru import logger
from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mini_trainer.core.models import ExerciseResult, Profile
from mini_trainer.db import (
    ExerciseResultRecord,
    ProfileRecord,
    create_db_engine,
    init_db,
    make_session_factory,
    session_scope,
)
from mini_trainer.errors import PersistenceError

T = TypeVar("T")


class SqlResultRepository:
    """
    SQLAlchemy-backed durable tier.

    Handles:
    - exercise_results: append, query by profile/theme/level, completion lookup
    - profiles: durable copy of each profile
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = make_session_factory(engine)
        init_db(engine)

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> SqlResultRepository:
        return cls(create_db_engine(url, echo=echo))

    async def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        def work() -> T:
            with session_scope(self._session_factory) as session:
                return fn(session)

        try:
            return await asyncio.to_thread(work)
        except SQLAlchemyError as e:
            logger.error(f"Durable tier {operation} failed: {e}")
            raise PersistenceError(operation, str(e)) from e

    # =========================================================================
    # Exercise Results
    # =========================================================================

    async def add_result(self, result: ExerciseResult) -> None:
        def work(session: Session) -> None:
            session.add(ExerciseResultRecord.from_model(result))

        await self._run("add_result", work)

    async def add_results(self, results: Iterable[ExerciseResult]) -> int:
        records = [ExerciseResultRecord.from_model(result) for result in results]

        def work(session: Session) -> int:
            session.add_all(records)
            return len(records)

        return await self._run("add_results", work)

    async def results_for_profile(
        self,
        profile_id: str,
        theme_id: str | None = None,
        level: int | None = None,
    ) -> list[ExerciseResult]:
        """Results for a profile, oldest first, optionally narrowed to a theme/level."""

        def work(session: Session) -> list[ExerciseResult]:
            stmt = select(ExerciseResultRecord).where(ExerciseResultRecord.profile_id == profile_id)
            if theme_id is not None:
                stmt = stmt.where(ExerciseResultRecord.theme_id == theme_id)
            if level is not None:
                stmt = stmt.where(ExerciseResultRecord.level == level)
            stmt = stmt.order_by(ExerciseResultRecord.completed_at)
            return [record.to_model() for record in session.scalars(stmt)]

        return await self._run("results_for_profile", work)

    async def has_correct_result(self, profile_id: str, exercise_id: str) -> bool:
        def work(session: Session) -> bool:
            stmt = (
                select(ExerciseResultRecord.id)
                .where(
                    ExerciseResultRecord.profile_id == profile_id,
                    ExerciseResultRecord.exercise_id == exercise_id,
                    ExerciseResultRecord.correct.is_(True),
                )
                .limit(1)
            )
            return session.scalar(stmt) is not None

        return await self._run("has_correct_result", work)

    async def completed_exercise_ids(self, profile_id: str, theme_id: str | None = None) -> set[str]:
        def work(session: Session) -> set[str]:
            stmt = select(ExerciseResultRecord.exercise_id).where(
                ExerciseResultRecord.profile_id == profile_id,
                ExerciseResultRecord.correct.is_(True),
            )
            if theme_id is not None:
                stmt = stmt.where(ExerciseResultRecord.theme_id == theme_id)
            return set(session.scalars(stmt.distinct()))

        return await self._run("completed_exercise_ids", work)

    async def replace_results(self, profile_id: str, results: Iterable[ExerciseResult]) -> int:
        """
        Swap a profile's whole result log in one transaction.

        If any insert fails the delete is rolled back too, so the old log
        (and with it every completion) survives a failed import.
        """
        records = [ExerciseResultRecord.from_model(result) for result in results]

        def work(session: Session) -> int:
            session.execute(delete(ExerciseResultRecord).where(ExerciseResultRecord.profile_id == profile_id))
            session.add_all(records)
            session.flush()
            return len(records)

        return await self._run("replace_results", work)

    # =========================================================================
    # Profiles
    # =========================================================================

    async def save_profile(self, profile: Profile) -> None:
        payload = profile.to_json_dict()

        def work(session: Session) -> None:
            record = session.get(ProfileRecord, profile.id)
            if record is None:
                session.add(ProfileRecord(id=profile.id, nickname=profile.nickname, payload=payload))
            else:
                record.nickname = profile.nickname
                record.payload = payload

        await self._run("save_profile", work)

    async def load_profile(self, profile_id: str) -> Profile | None:
        def work(session: Session) -> Profile | None:
            record = session.get(ProfileRecord, profile_id)
            return record.to_model() if record else None

        return await self._run("load_profile", work)

    async def list_profiles(self) -> list[Profile]:
        def work(session: Session) -> list[Profile]:
            stmt = select(ProfileRecord).order_by(ProfileRecord.nickname)
            return [record.to_model() for record in session.scalars(stmt)]

        return await self._run("list_profiles", work)

    async def delete_profile(self, profile_id: str) -> int:
        """Delete a profile and all of its results. Returns the number of results removed."""

        def work(session: Session) -> int:
            removed = session.execute(
                delete(ExerciseResultRecord).where(ExerciseResultRecord.profile_id == profile_id)
            )
            session.execute(delete(ProfileRecord).where(ProfileRecord.id == profile_id))
            return removed.rowcount or 0

        return await self._run("delete_profile", work)

    def dispose(self) -> None:
        self.engine.dispose()
