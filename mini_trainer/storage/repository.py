"""
Progress Repository.

Single persistence interface over the two tiers:
- SnapshotStore: in-memory profile, mirrored to a JSON file on every save
- SqlResultRepository: durable profile copies and the append-only result log

Result writes are scheduled as tracked tasks so the caller is never blocked
on the database. Until a write lands, the record stays in ``_pending`` and
every read unions it with the durable rows, so a just-solved exercise is
visible immediately. ``flush()`` is the explicit barrier: it waits for all
outstanding writes, retries the failed ones once and raises a single
PersistenceError if anything is still missing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from loguru import logger

from mini_trainer.core.models import ExerciseResult, Profile
from mini_trainer.errors import PersistenceError
from mini_trainer.storage.results import SqlResultRepository
from mini_trainer.storage.snapshot import SnapshotStore


class ProgressRepository:
    """Write-through cache over the snapshot tier and the durable tier."""

    def __init__(self, snapshot: SnapshotStore, durable: SqlResultRepository):
        self.snapshot = snapshot
        self.durable = durable

        self._pending: dict[str, ExerciseResult] = {}  # result id -> not yet durable
        self._failed: dict[str, PersistenceError] = {}  # result id -> last error
        self._tasks: set[asyncio.Task[bool]] = set()
        self._profile_dirty = False  # durable profile copy is behind the snapshot

    # =========================================================================
    # Profile
    # =========================================================================

    @property
    def current_profile(self) -> Profile | None:
        """The snapshot profile that all UI reads go against."""
        return self.snapshot.profile

    async def save_profile(self, profile: Profile) -> None:
        """
        Persist a profile to both tiers.

        The snapshot is replaced first and is not rolled back if the durable
        write fails; the failure is re-raised and the profile is retried on
        the next flush.
        """
        self.snapshot.save(profile)
        try:
            await self.durable.save_profile(profile)
        except PersistenceError:
            self._profile_dirty = True
            raise
        self._profile_dirty = False

    async def load_profile(self, profile_id: str) -> Profile | None:
        """Make ``profile_id`` the active profile, reading the durable copy if needed."""
        current = self.snapshot.profile
        if current is not None and current.id == profile_id:
            return current
        profile = await self.durable.load_profile(profile_id)
        if profile is not None:
            self.snapshot.save(profile)
            logger.info(f"Loaded profile {profile.nickname} ({profile.id}) from durable tier")
        return profile

    async def list_profiles(self) -> list[Profile]:
        return await self.durable.list_profiles()

    async def delete_profile(self, profile_id: str) -> int:
        """Delete a profile with all of its results from both tiers."""
        await self._drain()
        self._drop_pending(profile_id)
        removed = await self.durable.delete_profile(profile_id)
        current = self.snapshot.profile
        if current is not None and current.id == profile_id:
            self.snapshot.clear()
            self._profile_dirty = False
        logger.info(f"Deleted profile {profile_id} and {removed} result(s)")
        return removed

    async def replace_all(self, profile: Profile, results: Iterable[ExerciseResult]) -> None:
        """
        Replace a profile and its whole result log (save-game import).

        The result log is swapped atomically before the profile is written;
        if that fails nothing has changed.
        """
        results = list(results)
        await self._drain()
        await self.durable.replace_results(profile.id, results)
        self._drop_pending(profile.id)
        await self.save_profile(profile)
        logger.info(f"Replaced profile {profile.id} with {len(results)} imported result(s)")

    # =========================================================================
    # Results
    # =========================================================================

    def schedule_result(self, result: ExerciseResult) -> asyncio.Task[bool]:
        """
        Queue a durable result write without waiting for it.

        Must be called from a running event loop. The returned task resolves
        to True once the row is durable and to False if the write failed.
        """
        self._pending[result.id] = result
        task = asyncio.create_task(self._write_result(result))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def record_result(self, result: ExerciseResult) -> None:
        """Write a result and wait for it; raises PersistenceError on failure."""
        if not await self.schedule_result(result):
            raise self._failed[result.id]

    async def _write_result(self, result: ExerciseResult) -> bool:
        try:
            await self.durable.add_result(result)
        except PersistenceError as e:
            self._failed[result.id] = e
            logger.error(f"Result {result.id} for {result.exercise_id} not persisted, kept pending: {e}")
            return False
        self._pending.pop(result.id, None)
        self._failed.pop(result.id, None)
        return True

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._pending) or self._profile_dirty

    @property
    def pending_results(self) -> list[ExerciseResult]:
        return list(self._pending.values())

    async def flush(self) -> None:
        """
        Wait for every outstanding write and retry failed ones.

        Raises:
            PersistenceError: if any result or the profile could not be
                persisted (the records stay pending for a later flush)
        """
        await self._drain()

        retry = [self._pending[result_id] for result_id in list(self._failed) if result_id in self._pending]
        if retry:
            logger.info(f"Retrying {len(retry)} failed result write(s)")
            await asyncio.gather(*(self._write_result(result) for result in retry))

        if self._profile_dirty and self.snapshot.profile is not None:
            try:
                await self.save_profile(self.snapshot.profile)
            except PersistenceError as e:
                logger.error(f"Profile still not persisted after retry: {e}")

        failures = len(self._failed) + int(self._profile_dirty)
        if failures:
            last_error = next(iter(self._failed.values()), None)
            raise PersistenceError(
                "flush",
                f"{failures} write(s) could not be persisted",
                failures=failures,
            ) from last_error

    async def _drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _drop_pending(self, profile_id: str) -> None:
        for result_id, result in list(self._pending.items()):
            if result.profile_id == profile_id:
                self._pending.pop(result_id)
                self._failed.pop(result_id, None)

    # =========================================================================
    # Completion Lookup
    # =========================================================================

    def _pending_correct(self, profile_id: str, theme_id: str | None = None) -> set[str]:
        return {
            result.exercise_id
            for result in self._pending.values()
            if result.correct
            and result.profile_id == profile_id
            and (theme_id is None or result.theme_id == theme_id)
        }

    async def has_exercise_been_completed(self, profile_id: str, exercise_id: str) -> bool:
        """Whether any correct result exists for the exercise, durable or pending."""
        if exercise_id in self._pending_correct(profile_id):
            return True
        return await self.durable.has_correct_result(profile_id, exercise_id)

    async def completed_exercise_ids(self, profile_id: str, theme_id: str | None = None) -> set[str]:
        durable_ids = await self.durable.completed_exercise_ids(profile_id, theme_id)
        return durable_ids | self._pending_correct(profile_id, theme_id)

    async def is_level_complete(
        self,
        profile_id: str,
        theme_id: str,
        level_exercise_ids: Iterable[str],
        just_solved_id: str | None = None,
    ) -> bool:
        """
        Whether every exercise of a theme level has a correct result.

        The exercise solved in the current session is added explicitly since
        the durable tier may not reflect it yet.
        """
        required = set(level_exercise_ids)
        if not required:
            return False
        completed = await self.completed_exercise_ids(profile_id, theme_id)
        if just_solved_id is not None:
            completed.add(just_solved_id)
        return required <= completed

    async def results_for_profile(
        self,
        profile_id: str,
        theme_id: str | None = None,
        level: int | None = None,
    ) -> list[ExerciseResult]:
        results = await self.durable.results_for_profile(profile_id, theme_id, level)
        known = {result.id for result in results}
        for result in self._pending.values():
            if result.id in known or result.profile_id != profile_id:
                continue
            if theme_id is not None and result.theme_id != theme_id:
                continue
            if level is not None and result.level != level:
                continue
            results.append(result)
        return sorted(results, key=lambda r: r.completed_at)
