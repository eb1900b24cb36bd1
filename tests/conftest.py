"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from mini_trainer.core.models import Exercise, ExerciseResult, Profile  # noqa: E402
from mini_trainer.errors import PersistenceError  # noqa: E402
from mini_trainer.profile.store import ProfileStore  # noqa: E402
from mini_trainer.session.controller import SessionController  # noqa: E402
from mini_trainer.storage.daily import DailyChallengeLedger  # noqa: E402
from mini_trainer.storage.repository import ProgressRepository  # noqa: E402
from mini_trainer.storage.results import SqlResultRepository  # noqa: E402
from mini_trainer.storage.snapshot import SnapshotStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite in tmp_path)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Test Doubles
# =============================================================================


class FakeCalendar:
    """Deterministic clock; every now() call moves one second forward."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 10, 0, tzinfo=UTC)):
        self.current = start
        self.day = start.date()

    def now(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current

    def today(self) -> date:
        return self.day

    def advance(self, days: int = 1) -> None:
        self.day += timedelta(days=days)
        self.current += timedelta(days=days)


class FailingResultRepository(SqlResultRepository):
    """Durable tier whose writes fail while ``failing`` is set."""

    def __init__(self, engine):
        super().__init__(engine)
        self.failing = False

    async def add_result(self, result):
        if self.failing:
            raise PersistenceError("add_result", "disk unavailable")
        await super().add_result(result)

    async def save_profile(self, profile):
        if self.failing:
            raise PersistenceError("save_profile", "disk unavailable")
        await super().save_profile(profile)


class CountingResultRepository(SqlResultRepository):
    """Durable tier that counts result writes."""

    def __init__(self, engine):
        super().__init__(engine)
        self.result_writes = 0

    async def add_result(self, result):
        self.result_writes += 1
        await super().add_result(result)


# =============================================================================
# Fixtures
# =============================================================================


def make_exercise(exercise_id: str, theme_id: str = "verbs", level: int = 1, area_id: str = "grammar") -> Exercise:
    return Exercise(
        id=exercise_id,
        type="multiple-choice",
        area_id=area_id,
        theme_id=theme_id,
        level=level,
        instruction=f"Solve {exercise_id}",
        content={"options": ["a", "b"], "correctIndex": 0},
        hints=["Look closely"],
    )


def make_result(
    exercise_id: str,
    profile_id: str = "p1",
    correct: bool = True,
    score: int = 3,
    theme_id: str = "verbs",
    level: int = 1,
    completed_at: datetime | None = None,
) -> ExerciseResult:
    return ExerciseResult(
        id=f"r-{exercise_id}-{profile_id}-{int(correct)}-{score}",
        exercise_id=exercise_id,
        theme_id=theme_id,
        area_id="grammar",
        level=level,
        correct=correct,
        score=score,
        attempts=1 if score == 3 else 2,
        completed_at=completed_at or datetime(2024, 3, 1, 9, 0, tzinfo=UTC),
        profile_id=profile_id,
    )


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every file into tmp_path."""
    return Settings(
        trainer_id="daz",
        data_dir=tmp_path,
        database_url=f"sqlite:///{tmp_path / 'results.db'}",
        exercises_path=tmp_path / "exercises.json",
    )


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def exercise_factory():
    return make_exercise


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def catalog():
    """Two themes: verbs (3 exercises on level 1, 2 on level 2) and nouns (2 on level 1)."""
    return [
        make_exercise("v1"),
        make_exercise("v2"),
        make_exercise("v3", area_id="reading"),
        make_exercise("v4", level=2),
        make_exercise("v5", level=2),
        make_exercise("n1", theme_id="nouns"),
        make_exercise("n2", theme_id="nouns"),
    ]


@pytest.fixture
def sample_profile():
    return Profile(id="p1", nickname="Mia", avatar_id="fox")


@pytest.fixture
def durable(tmp_path):
    repo = SqlResultRepository.from_url(f"sqlite:///{tmp_path / 'results.db'}")
    yield repo
    repo.dispose()


@pytest.fixture
def failing_durable(tmp_path):
    from mini_trainer.db import create_db_engine

    repo = FailingResultRepository(create_db_engine(f"sqlite:///{tmp_path / 'failing.db'}"))
    yield repo
    repo.dispose()


@pytest.fixture
def counting_durable(tmp_path):
    from mini_trainer.db import create_db_engine

    repo = CountingResultRepository(create_db_engine(f"sqlite:///{tmp_path / 'counting.db'}"))
    yield repo
    repo.dispose()


@pytest.fixture
def repository(tmp_path, durable):
    return ProgressRepository(SnapshotStore(tmp_path / "profile.json"), durable)


def _store(repository, settings, calendar, tmp_path):
    return ProfileStore(
        repository,
        settings=settings,
        daily_ledger=DailyChallengeLedger(tmp_path / "daily.json"),
        clock=calendar.now,
        today=calendar.today,
    )


@pytest.fixture
def store(repository, settings, calendar, tmp_path):
    return _store(repository, settings, calendar, tmp_path)


@pytest.fixture
def failing_store(failing_durable, settings, calendar, tmp_path):
    repository = ProgressRepository(SnapshotStore(tmp_path / "failing-profile.json"), failing_durable)
    return _store(repository, settings, calendar, tmp_path)


@pytest.fixture
def counting_store(counting_durable, settings, calendar, tmp_path):
    repository = ProgressRepository(SnapshotStore(tmp_path / "counting-profile.json"), counting_durable)
    return _store(repository, settings, calendar, tmp_path)


@pytest.fixture
def controller(store, settings, catalog, calendar):
    return SessionController(store, settings=settings, catalog=catalog, clock=calendar.now)
