"""
Unit tests for the SessionController state machine.

Covers attempt scoring, level failure and restart, crediting through the
completion guard, level completion in end_session, the single-flight
advance guard and durable failures that must not stop a session.
"""

import asyncio

import pytest

from mini_trainer.errors import CreditOutcome, PersistenceError
from mini_trainer.session.controller import SessionController, SessionState


def level_one(catalog):
    return [e for e in catalog if e.theme_id == "verbs" and e.level == 1]


async def solve_all(controller):
    """Answer every exercise correctly on the first try, advancing after each."""
    while controller.state in (SessionState.ACTIVE, SessionState.ANSWERING):
        controller.submit_answer(True)
        await controller.next_exercise()


class TestStart:
    def test_initial_view(self, controller, catalog):
        view = controller.start_session(level_one(catalog), "verbs")

        assert view.state == SessionState.ACTIVE
        assert (view.current, view.total) == (1, 3)
        assert view.exercise.id == "v1"
        assert view.attempts == 0
        assert view.has_answered is False

    def test_same_theme_and_level_is_idempotent(self, controller, catalog):
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(False)

        view = controller.start_session(level_one(catalog), "verbs")

        assert view.attempts == 1
        assert view.state == SessionState.RETRY

    def test_other_theme_replaces_session(self, controller, catalog):
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(False)

        nouns = [e for e in catalog if e.theme_id == "nouns"]
        view = controller.start_session(nouns, "nouns")

        assert view.exercise.id == "n1"
        assert view.attempts == 0

    def test_empty_list_is_complete(self, controller):
        view = controller.start_session([], "verbs")
        assert view.state == SessionState.COMPLETE
        assert view.is_completed is True


class TestAnswers:
    def test_submit_without_session_is_noop(self, controller):
        view = controller.submit_answer(True)
        assert view.state == SessionState.IDLE
        assert view.last_answer is None

    def test_first_try_scores_three(self, controller, catalog):
        controller.start_session(level_one(catalog), "verbs")
        view = controller.submit_answer(True)

        assert view.state == SessionState.SOLVED
        assert view.last_answer.score == 3

    def test_submit_after_solved_is_ignored(self, controller, catalog):
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(True)
        view = controller.submit_answer(False)

        assert view.state == SessionState.SOLVED
        assert view.attempts == 1

    @pytest.mark.asyncio
    async def test_third_attempt_credits_one_star(self, controller, store, catalog):
        await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")

        controller.submit_answer(False)
        controller.submit_answer(False)
        view = controller.submit_answer(True)
        assert view.last_answer.score == 1

        await controller.next_exercise()
        assert controller.last_credit.stars == 1
        assert store.profile.total_stars == 1

    @pytest.mark.asyncio
    async def test_next_before_solving_is_noop(self, controller, catalog):
        controller.start_session(level_one(catalog), "verbs")
        view = await controller.next_exercise()
        assert view.exercise.id == "v1"
        assert view.state == SessionState.ACTIVE


class TestLevelFailure:
    @pytest.mark.asyncio
    async def test_max_attempts_fails_level(self, controller, store, catalog):
        await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        for _ in range(3):
            view = controller.submit_answer(False)

        assert view.state == SessionState.LEVEL_FAILED
        assert view.level_failed is True
        assert view.show_solution is True

        blocked = await controller.next_exercise()
        assert blocked.exercise.id == "v1"
        assert blocked.state == SessionState.LEVEL_FAILED

    @pytest.mark.asyncio
    async def test_restart_resets_attempts(self, controller, store, catalog):
        await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        for _ in range(3):
            controller.submit_answer(False)

        view = controller.restart_level()

        assert view.state == SessionState.ACTIVE
        assert view.attempts == 0
        assert view.level_failed is False
        assert view.show_solution is False

    @pytest.mark.asyncio
    async def test_failed_result_is_logged(self, controller, store, catalog):
        profile = await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        for _ in range(3):
            controller.submit_answer(False)

        await controller.exit_level()

        results = await store.repository.results_for_profile(profile.id)
        assert [(r.exercise_id, r.correct, r.score) for r in results] == [("v1", False, 0)]
        assert store.profile.total_stars == 0

    @pytest.mark.asyncio
    async def test_replacing_failed_session_still_logs_result(self, controller, store, catalog):
        profile = await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        for _ in range(3):
            controller.submit_answer(False)

        controller.start_session([e for e in catalog if e.theme_id == "nouns"], "nouns")
        await store.repository.flush()

        results = await store.repository.results_for_profile(profile.id)
        assert [(r.exercise_id, r.correct) for r in results] == [("v1", False)]

    @pytest.mark.asyncio
    async def test_restart_does_not_double_count_correct(self, controller, catalog):
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(True)
        await controller.next_exercise()
        for _ in range(3):
            controller.submit_answer(False)

        controller.restart_level()
        controller.submit_answer(True)

        assert controller.session_stats.correct == 1


class TestCrediting:
    @pytest.mark.asyncio
    async def test_full_level_run(self, controller, store, catalog):
        await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")

        await solve_all(controller)
        assert controller.state == SessionState.COMPLETE

        summary = await controller.end_session()

        assert summary.level_completed is True
        assert summary.unlocked_level == 2
        assert summary.stats.stars_earned == 9
        assert [c.outcome for c in summary.credits] == [CreditOutcome.CREDITED] * 3
        profile = store.profile
        assert profile.total_stars == 9
        assert profile.current_levels["verbs"] == 2
        assert profile.theme_progress["verbs"].exercises_completed == 3
        assert profile.theme_progress["verbs"].exercises_total == 5
        assert profile.current_streak == 1
        assert {"first_steps", "level_2"} <= profile.badge_ids
        assert [b.id for b in controller.notifications.pending_badges] == ["first_steps", "level_2"]
        assert controller.state == SessionState.IDLE

    @pytest.mark.asyncio
    async def test_partial_run_does_not_complete_level(self, controller, store, catalog):
        await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(True)

        summary = await controller.end_session()

        assert summary.level_completed is False
        assert summary.unlocked_level is None
        assert store.profile.level_for("verbs") == 1

    @pytest.mark.asyncio
    async def test_solved_exercise_credited_once_across_sessions(self, controller, store, catalog):
        await store.create_profile("Mia")
        controller.start_session(catalog[:1], "verbs")
        controller.submit_answer(True)
        await controller.end_session()
        assert store.profile.total_stars == 3

        controller.start_session(catalog[:1], "verbs")
        view = controller.submit_answer(True)
        assert view.last_answer.score == 3

        summary = await controller.end_session()

        assert summary.credits[0].outcome == CreditOutcome.ALREADY_COMPLETED
        assert store.profile.total_stars == 3
        # The repeat is still logged
        assert len(await store.repository.results_for_profile(store.profile.id)) == 2

    @pytest.mark.asyncio
    async def test_level_up_notification(self, controller, store, catalog):
        await store.create_profile("Mia")
        for _ in range(3):
            await store.add_stars(3)
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(True)

        await controller.next_exercise()

        assert controller.last_credit.level_up == 2
        assert controller.notifications.level_up == 2

    @pytest.mark.asyncio
    async def test_without_profile(self, controller, catalog):
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(True)
        await controller.next_exercise()
        assert controller.last_credit.outcome == CreditOutcome.NO_PROFILE


class TestReentrancy:
    @pytest.mark.asyncio
    async def test_concurrent_end_session(self, counting_store, counting_durable, settings, catalog, calendar):
        controller = SessionController(counting_store, settings=settings, catalog=catalog, clock=calendar.now)
        await counting_store.create_profile("Mia")
        controller.start_session(catalog[:1], "verbs")
        controller.submit_answer(True)

        results = await asyncio.gather(controller.end_session(), controller.end_session())

        assert sum(1 for r in results if r is None) == 1
        assert counting_durable.result_writes == 1
        assert counting_store.badge_evaluations == 1
        assert counting_store.profile.total_stars == 3

    @pytest.mark.asyncio
    async def test_double_next_advances_once(self, controller, store, catalog):
        await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(True)

        first, second = await asyncio.gather(controller.next_exercise(), controller.next_exercise())

        assert second is None
        assert first.exercise.id == "v2"
        assert store.profile.total_stars == 3


class TestDurableFailure:
    @pytest.mark.asyncio
    async def test_session_continues_and_end_reports(
        self, failing_store, failing_durable, settings, catalog, calendar
    ):
        controller = SessionController(failing_store, settings=settings, catalog=catalog, clock=calendar.now)
        profile = await failing_store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        failing_durable.failing = True

        controller.submit_answer(True)
        view = await controller.next_exercise()

        assert view.exercise.id == "v2"
        assert failing_store.profile.total_stars == 3
        assert controller.persistence_errors
        assert [b.id for b in controller.notifications.pending_badges] == ["first_steps"]

        controller.submit_answer(True)
        with pytest.raises(PersistenceError):
            await controller.end_session()
        assert controller.active is True

        failing_durable.failing = False
        summary = await controller.end_session()

        assert summary is not None
        assert failing_store.profile.total_stars == 6
        assert await failing_durable.completed_exercise_ids(profile.id) == {"v1", "v2"}
        assert (await failing_durable.load_profile(profile.id)).total_stars == 6

    @pytest.mark.asyncio
    async def test_failed_lookup_can_be_retried(self, controller, store, durable, catalog, monkeypatch):
        await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(True)

        async def unavailable(profile_id, exercise_id):
            raise PersistenceError("has_correct_result", "disk unavailable")

        monkeypatch.setattr(durable, "has_correct_result", unavailable)
        with pytest.raises(PersistenceError):
            await controller.next_exercise()
        assert controller.state == SessionState.SOLVED
        assert store.profile.total_stars == 0

        monkeypatch.undo()
        view = await controller.next_exercise()

        assert view.exercise.id == "v2"
        assert controller.last_credit.outcome == CreditOutcome.CREDITED
        assert store.profile.total_stars == 3
        await store.repository.flush()
        assert await durable.completed_exercise_ids(store.profile.id) == {"v1"}


class TestMisc:
    def test_show_solution(self, controller, catalog):
        assert controller.show_solution().show_solution is False
        controller.start_session(level_one(catalog), "verbs")
        assert controller.show_solution().show_solution is True

    def test_record_time(self, controller, catalog):
        controller.start_session(level_one(catalog), "verbs")
        controller.record_time(4.5)
        controller.record_time(-1)
        controller.record_time(0.5)
        assert controller.session_stats.time_spent_seconds == 5.0

    @pytest.mark.asyncio
    async def test_exit_level_does_not_credit(self, controller, store, catalog):
        await store.create_profile("Mia")
        controller.start_session(level_one(catalog), "verbs")
        controller.submit_answer(True)

        await controller.exit_level()

        assert controller.state == SessionState.IDLE
        assert store.profile.total_stars == 0

    @pytest.mark.asyncio
    async def test_end_session_when_idle(self, controller):
        assert await controller.end_session() is None
