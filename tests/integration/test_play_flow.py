"""
Integration Tests for the Play Flow.

Wires the engine the way the CLI does (build_services on a SQLite file in
tmp_path) and walks the learner path:
1. Create a profile
2. Play a theme level to completion
3. Export the save game, reset, import it again
4. Restart from disk and keep the progress
"""

import json

import pytest

from mini_trainer.delivery.services import build_services
from mini_trainer.errors import CreditOutcome, ValidationError
from mini_trainer.session.controller import SessionState

pytestmark = pytest.mark.integration


@pytest.fixture
def services(settings, catalog):
    services = build_services(settings, exercises=catalog)
    yield services
    services.close()


async def play_level(session, exercises, theme_id, level):
    session.start_session(exercises, theme_id, level=level)
    while session.state != SessionState.COMPLETE:
        session.submit_answer(True)
        await session.next_exercise()
    return await session.end_session()


class TestPlayFlow:
    @pytest.mark.asyncio
    async def test_level_run_unlocks_next_level(self, services):
        await services.profiles.create_profile("Mia")
        verbs_one = [e for e in services.exercises if e.theme_id == "verbs" and e.level == 1]

        summary = await play_level(services.new_session(), verbs_one, "verbs", 1)

        assert summary.level_completed is True
        assert summary.unlocked_level == 2
        profile = services.profiles.profile
        assert profile.total_stars == 9
        assert profile.level_for("verbs") == 2
        assert services.repository.has_pending_writes is False

    @pytest.mark.asyncio
    async def test_second_session_shares_notification_queue(self, services):
        await services.profiles.create_profile("Mia")
        verbs_one = [e for e in services.exercises if e.theme_id == "verbs" and e.level == 1]

        await play_level(services.new_session(), verbs_one, "verbs", 1)
        summary = await play_level(services.new_session(), verbs_one, "verbs", 1)

        assert {c.outcome for c in summary.credits} == {CreditOutcome.ALREADY_COMPLETED}
        assert services.profiles.profile.total_stars == 9
        assert [b.id for b in services.notifications.pending_badges] == ["first_steps", "level_2"]

    @pytest.mark.asyncio
    async def test_progress_survives_restart(self, settings, catalog):
        services = build_services(settings, exercises=catalog)
        profile = await services.profiles.create_profile("Mia")
        await play_level(services.new_session(), catalog[:3], "verbs", 1)
        services.close()

        reopened = build_services(settings, exercises=catalog)
        try:
            assert reopened.profiles.profile.total_stars == 9
            assert await reopened.repository.has_exercise_been_completed(profile.id, "v2") is True
        finally:
            reopened.close()


class TestSaveGameFlow:
    @pytest.mark.asyncio
    async def test_export_reset_import(self, services, catalog):
        profile = await services.profiles.create_profile("Mia")
        await play_level(services.new_session(), catalog[:3], "verbs", 1)
        exported = json.dumps((await services.profiles.export_save_game()).to_json_dict())

        assert await services.profiles.delete_profile() is True
        assert await services.repository.results_for_profile(profile.id) == []

        imported = await services.profiles.import_save_game(exported)

        assert imported.total_stars == 9
        assert imported.badge_ids == {"first_steps", "level_2"}
        results = await services.repository.results_for_profile(profile.id)
        assert {r.exercise_id for r in results} == {"v1", "v2", "v3"}

    @pytest.mark.asyncio
    async def test_save_game_from_other_trainer_rejected(self, services):
        await services.profiles.create_profile("Mia")
        data = (await services.profiles.export_save_game()).to_json_dict()
        data["trainerId"] = "mathe"

        with pytest.raises(ValidationError):
            await services.profiles.import_save_game(data)
        assert services.profiles.profile.nickname == "Mia"


class TestContentFromDisk:
    def test_catalogue_loaded_from_settings(self, settings, catalog):
        settings.exercises_path.write_text(
            json.dumps({"exercises": [e.to_json_dict() for e in catalog]}),
            encoding="utf-8",
        )
        services = build_services(settings)
        try:
            assert services.theme_ids == ["verbs", "nouns"]
            assert len(services.exercises) == len(catalog)
        finally:
            services.close()

    def test_missing_catalogue_is_empty(self, settings):
        services = build_services(settings)
        try:
            assert services.exercises == []
        finally:
            services.close()
