"""
Application root.

Builds every service once from Settings and hands them out explicitly;
nothing in the engine keeps module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from config import Settings
from mini_trainer.content.loader import load_badges, load_exercises, theme_ids
from mini_trainer.core.models import Exercise
from mini_trainer.gamification.badges import DEFAULT_BADGES, BadgeDefinition
from mini_trainer.gamification.notifications import NotificationQueue
from mini_trainer.profile.store import ProfileStore
from mini_trainer.session.controller import SessionController
from mini_trainer.storage.daily import DailyChallengeLedger
from mini_trainer.storage.repository import ProgressRepository
from mini_trainer.storage.results import SqlResultRepository
from mini_trainer.storage.snapshot import SnapshotStore


@dataclass
class TrainerServices:
    """Service container passed down from the entry point."""

    settings: Settings
    repository: ProgressRepository
    profiles: ProfileStore
    notifications: NotificationQueue
    exercises: list[Exercise] = field(default_factory=list)

    @property
    def theme_ids(self) -> list[str]:
        return theme_ids(self.exercises)

    def new_session(self) -> SessionController:
        return SessionController(
            self.profiles,
            settings=self.settings,
            catalog=self.exercises,
            notifications=self.notifications,
        )

    def close(self) -> None:
        self.repository.durable.dispose()


def build_services(
    settings: Settings,
    exercises: list[Exercise] | None = None,
    badges: list[BadgeDefinition] | None = None,
) -> TrainerServices:
    """
    Wire the engine for one trainer.

    Args:
        settings: Application settings
        exercises: Exercise catalogue (loaded from settings.exercises_path if None
            and the file exists)
        badges: Badge catalogue (settings.badges_path, else DEFAULT_BADGES)
    """
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    if exercises is None:
        exercises = load_exercises(settings.exercises_path) if settings.exercises_path.exists() else []
    if badges is None:
        badges = load_badges(settings.badges_path) if settings.badges_path else list(DEFAULT_BADGES)

    repository = ProgressRepository(
        SnapshotStore(settings.get_snapshot_path()),
        SqlResultRepository.from_url(settings.get_database_url()),
    )
    profiles = ProfileStore(
        repository,
        settings=settings,
        badge_definitions=badges,
        daily_ledger=DailyChallengeLedger(settings.get_daily_store_path()),
    )
    logger.info(f"Trainer {settings.trainer_id} ready: {len(exercises)} exercises, {len(badges)} badges")
    return TrainerServices(
        settings=settings,
        repository=repository,
        profiles=profiles,
        notifications=NotificationQueue(),
        exercises=exercises,
    )
