"""
Profile Store.

The canonical learner aggregate and its validated mutation API. There is
one store per application, constructed at the root and handed to whoever
needs it.

Every mutation follows the same transaction (see ``mutate``):
1. Read the current snapshot
2. Compute the new profile from a private copy
3. Compare-and-swap on the revision counter (recompute if it moved)
4. Persist through the ProgressRepository before returning

A durable-tier failure is re-raised as PersistenceError after the snapshot
has been replaced, so the session keeps the optimistic value.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from loguru import logger

from config import Settings, get_settings
from mini_trainer.core.models import Badge, Profile, ThemeProgress
from mini_trainer.core.scoring import StreakUpdate, update_streak
from mini_trainer.errors import PersistenceError, StateError, ValidationError
from mini_trainer.gamification.badges import DEFAULT_BADGES, BadgeDefinition, find_new_badges
from mini_trainer.storage.daily import ChallengeKind, DailyChallengeLedger
from mini_trainer.storage.repository import ProgressRepository
from mini_trainer.storage.savegame import (
    ImportLimits,
    SaveGamePayload,
    build_save_game,
    parse_save_game,
    validate_save_game,
)

MAX_NICKNAME_LENGTH = 20
MAX_CAS_RETRIES = 3


@dataclass
class DailyReward:
    """Outcome of completing a daily or bonus challenge."""

    kind: ChallengeKind
    stars: int
    already_completed: bool = False
    new_badges: list[Badge] = field(default_factory=list)


def validate_nickname(nickname: str) -> str:
    name = nickname.strip()
    if not name:
        raise ValidationError("must not be empty", "nickname")
    if len(name) > MAX_NICKNAME_LENGTH:
        raise ValidationError(f"must be at most {MAX_NICKNAME_LENGTH} characters", "nickname")
    return name


class ProfileStore:
    """
    Validated mutation API over the active profile.

    Args:
        repository: Persistence layer (snapshot + durable tier)
        settings: Application settings (defaults to get_settings())
        badge_definitions: Badge catalogue evaluated by evaluate_badges()
        daily_ledger: Storage for daily challenge keys
        clock: Returns the current aware datetime (timestamps)
        today: Returns the current local calendar date (streaks, dailies)
    """

    def __init__(
        self,
        repository: ProgressRepository,
        settings: Settings | None = None,
        badge_definitions: Sequence[BadgeDefinition] = DEFAULT_BADGES,
        daily_ledger: DailyChallengeLedger | None = None,
        clock: Callable[[], datetime] | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.repository = repository
        self.settings = settings or get_settings()
        self.badge_definitions = list(badge_definitions)
        self.daily_ledger = daily_ledger or DailyChallengeLedger()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._today = today or date.today
        self._revision = 0
        self.badge_evaluations = 0

    @property
    def profile(self) -> Profile | None:
        """The freshest profile snapshot (None before onboarding)."""
        return self.repository.current_profile

    @property
    def revision(self) -> int:
        return self._revision

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self._today()

    # =========================================================================
    # Transaction Primitive
    # =========================================================================

    async def mutate(self, fn: Callable[[Profile], Profile | None]) -> Profile | None:
        """
        Apply ``fn`` to a copy of the current profile and persist the result.

        ``fn`` receives a deep copy it may modify in place; returning None
        keeps the copy. An unchanged profile is not written.

        Returns:
            The committed profile, or None when there is no active profile
        """
        for _ in range(MAX_CAS_RETRIES):
            current = self.profile
            if current is None:
                return None
            revision = self._revision

            draft = current.model_copy(deep=True)
            updated = fn(draft)
            if updated is None:
                updated = draft

            if revision != self._revision:
                logger.debug("Profile changed during mutation, recomputing")
                continue
            if updated == current:
                return current

            self._revision += 1
            await self.repository.save_profile(updated)
            return updated

        raise StateError("profile kept changing during mutation")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_profile(self, nickname: str, avatar_id: str = "") -> Profile:
        profile = Profile(
            id=str(uuid.uuid4()),
            nickname=validate_nickname(nickname),
            avatar_id=avatar_id,
            created_at=self.now(),
        )
        self._revision += 1
        await self.repository.save_profile(profile)
        logger.info(f"Created profile {profile.nickname} ({profile.id})")
        return profile

    async def load(self, profile_id: str) -> Profile | None:
        profile = await self.repository.load_profile(profile_id)
        if profile is not None:
            self._revision += 1
        return profile

    async def delete_profile(self) -> bool:
        """Full reset: remove the active profile and all its results."""
        profile = self.profile
        if profile is None:
            return False
        self._revision += 1
        await self.repository.delete_profile(profile.id)
        return True

    async def set_nickname(self, nickname: str) -> Profile | None:
        name = validate_nickname(nickname)

        def apply(profile: Profile) -> None:
            profile.nickname = name

        return await self.mutate(apply)

    async def set_avatar(self, avatar_id: str) -> Profile | None:
        def apply(profile: Profile) -> None:
            profile.avatar_id = avatar_id

        return await self.mutate(apply)

    # =========================================================================
    # Stars, Streaks, Levels
    # =========================================================================

    def clamp_stars(self, stars: int) -> int:
        return max(0, min(int(stars), self.settings.max_stars_per_credit))

    async def add_stars(self, stars: int) -> int:
        """
        Credit stars to the active profile.

        Args:
            stars: Requested amount, clamped to [0, max_stars_per_credit]

        Returns:
            Stars actually credited (0 without a profile)
        """
        amount = self.clamp_stars(stars)
        if self.profile is None or amount == 0:
            return 0

        def apply(profile: Profile) -> None:
            profile.total_stars += amount

        await self.mutate(apply)
        return amount

    async def increment_streak(self) -> StreakUpdate | None:
        """Record activity for today. Same-day calls do nothing."""
        today = self.today()
        outcome: list[StreakUpdate] = []

        def apply(profile: Profile) -> None:
            update = update_streak(profile.current_streak, profile.longest_streak, profile.last_active_date, today)
            outcome[:] = [update]
            profile.current_streak = update.current_streak
            profile.longest_streak = update.longest_streak
            profile.last_active_date = update.last_active_date

        if await self.mutate(apply) is None:
            return None
        update = outcome[0]
        if not update.updated:
            logger.debug(f"Streak already counted for {today}")
        elif update.broken:
            logger.info(f"Streak restarted at 1 on {today}")
        return update

    async def reset_streak(self) -> Profile | None:
        def apply(profile: Profile) -> None:
            profile.current_streak = 0

        return await self.mutate(apply)

    async def update_theme_level(self, theme_id: str, level: int) -> int:
        """
        Raise a theme's unlocked level. Never lowers it.

        Returns:
            The theme's level after the update (1 without a profile)
        """

        def apply(profile: Profile) -> None:
            profile.current_levels[theme_id] = max(profile.current_levels.get(theme_id, 1), level)

        before = self.profile.level_for(theme_id) if self.profile else 1
        profile = await self.mutate(apply)
        if profile is None:
            return 1
        after = profile.level_for(theme_id)
        if after > before:
            logger.info(f"Unlocked level {after} in theme {theme_id}")
        return after

    async def update_theme_progress(
        self,
        theme_id: str,
        exercises_completed: int | None = None,
        exercises_total: int | None = None,
        stars: int = 0,
    ) -> ThemeProgress | None:
        """
        Update a theme's counters.

        The completed count never decreases; ``stars`` is added to the
        theme's earned stars.
        """

        def apply(profile: Profile) -> None:
            progress = profile.theme_progress.get(theme_id, ThemeProgress())
            if exercises_completed is not None:
                progress.exercises_completed = max(progress.exercises_completed, exercises_completed)
            if exercises_total is not None:
                progress.exercises_total = max(exercises_total, 0)
            progress.stars_earned += max(stars, 0)
            profile.theme_progress[theme_id] = progress

        profile = await self.mutate(apply)
        return profile.theme_progress[theme_id] if profile else None

    # =========================================================================
    # Badges
    # =========================================================================

    async def earn_badges(self, badges: Sequence[Badge]) -> list[Badge]:
        """Append badges not yet on the profile. Returns those actually added."""
        added: list[Badge] = []

        def apply(profile: Profile) -> None:
            held = profile.badge_ids
            added[:] = []
            for badge in badges:
                if badge.id not in held:
                    profile.badges.append(badge)
                    held.add(badge.id)
                    added.append(badge)

        await self.mutate(apply)
        return added

    async def evaluate_badges(self) -> list[Badge]:
        """
        Award every badge the current profile newly satisfies.

        Evaluation runs inside the mutation against the committed state, so
        it always sees the effect of the preceding mutations.

        Returns:
            New badges in definition order
        """
        if self.profile is None:
            return []
        self.badge_evaluations += 1
        new_badges: list[Badge] = []

        def apply(profile: Profile) -> None:
            new_badges[:] = find_new_badges(profile, self.badge_definitions, self.now())
            profile.badges.extend(new_badges)

        await self.mutate(apply)
        if new_badges:
            logger.info(f"Badges earned: {', '.join(badge.id for badge in new_badges)}")
        return new_badges

    # =========================================================================
    # Save Games
    # =========================================================================

    async def export_save_game(self) -> SaveGamePayload | None:
        profile = self.profile
        if profile is None:
            return None
        results = await self.repository.results_for_profile(profile.id)
        return build_save_game(
            profile,
            results,
            trainer_id=self.settings.trainer_id,
            trainer_version=self.settings.trainer_version,
            now=self.now(),
        )

    async def import_save_game(self, payload: SaveGamePayload | dict[str, Any] | str) -> Profile:
        """
        Replace the active profile and its results with a save game.

        Validation happens before anything is touched.

        Raises:
            ValidationError: the save game was rejected (no side effects)
            PersistenceError: the durable tier rejected the import
        """
        limits = ImportLimits(**self.settings.get_import_limits())
        trainer_id = self.settings.trainer_id
        try:
            if isinstance(payload, str):
                save_game = parse_save_game(payload, trainer_id, limits, self.now())
            else:
                data = payload.to_json_dict() if isinstance(payload, SaveGamePayload) else payload
                save_game = validate_save_game(data, trainer_id, limits, self.now())
        except ValidationError as e:
            logger.warning(f"Rejected save game: {e}")
            raise

        self._revision += 1
        await self.repository.replace_all(save_game.profile, save_game.exercise_results)
        logger.info(f"Imported save game for {save_game.profile.nickname} ({save_game.profile.id})")
        return save_game.profile

    # =========================================================================
    # Daily Challenges
    # =========================================================================

    async def complete_daily_challenge(self, bonus: bool = False) -> DailyReward:
        """
        Credit today's daily (or bonus) challenge once.

        The bonus challenge only opens after the daily one is done.
        """
        kind = ChallengeKind.BONUS if bonus else ChallengeKind.DAILY
        today = self.today()
        if self.profile is None:
            return DailyReward(kind=kind, stars=0)
        if self.daily_ledger.is_completed(kind, today):
            return DailyReward(kind=kind, stars=self.daily_ledger.stars_for(kind, today), already_completed=True)
        if bonus and not self.daily_ledger.is_completed(ChallengeKind.DAILY, today):
            logger.warning("Bonus challenge requested before the daily challenge")
            return DailyReward(kind=kind, stars=0)

        reward = self.settings.bonus_challenge_stars if bonus else self.settings.daily_challenge_stars
        try:
            stars = await self.add_stars(reward)
        except PersistenceError:
            # The stars are already in the snapshot; a retry must not credit them again
            self.daily_ledger.record(kind, today, self.clamp_stars(reward))
            raise
        self.daily_ledger.record(kind, today, stars)
        await self.increment_streak()
        new_badges = await self.evaluate_badges()
        logger.info(f"{kind.value} for {today} completed: +{stars} stars")
        return DailyReward(kind=kind, stars=stars, new_badges=new_badges)
