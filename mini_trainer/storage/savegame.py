"""
Save games (import/export).

A save game is a versioned JSON projection of one profile and its result
log. Export is a pure read. Import is validated in full (shape, numeric
ranges, badge timestamps, trainer identity) before anything is replaced;
a rejected file leaves no trace.

No signature or checksum is written or checked.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from pydantic import Field
from pydantic import ValidationError as PydanticValidationError

from mini_trainer.core.models import ExerciseResult, Profile, TrainerModel
from mini_trainer.errors import ValidationError

SAVE_GAME_VERSION = 2


@dataclass(frozen=True)
class ImportLimits:
    """Upper bounds applied to imported numbers."""

    max_total_stars: int = 1_000_000
    max_streak_days: int = 365
    max_level: int = 100


class SaveGamePayload(TrainerModel):
    """Serialized save game: {version, savedAt, trainerId, profile, exerciseResults}."""

    version: int = SAVE_GAME_VERSION
    saved_at: datetime
    trainer_id: str
    trainer_version: str | None = None
    profile: Profile
    exercise_results: list[ExerciseResult] = Field(default_factory=list)


# =============================================================================
# Export
# =============================================================================


def build_save_game(
    profile: Profile,
    results: list[ExerciseResult],
    trainer_id: str,
    trainer_version: str | None = None,
    now: datetime | None = None,
) -> SaveGamePayload:
    return SaveGamePayload(
        version=SAVE_GAME_VERSION,
        saved_at=now or datetime.now(UTC),
        trainer_id=trainer_id,
        trainer_version=trainer_version,
        profile=profile,
        exercise_results=list(results),
    )


def dump_save_game(payload: SaveGamePayload) -> str:
    return json.dumps(payload.to_json_dict(), indent=2, ensure_ascii=False)


def save_game_filename(nickname: str, day: date | None = None) -> str:
    """File name offered for an export, e.g. ``spielstand-mia-2024-03-01.json``."""
    day = day or date.today()
    safe = re.sub(r"[^\w-]+", "-", nickname.strip()).strip("-") or "profil"
    return f"spielstand-{safe}-{day.isoformat()}.json"


# =============================================================================
# Import
# =============================================================================


def _check_int(value: Any, field: str, minimum: int, maximum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("must be an integer", field)
    if not minimum <= value <= maximum:
        raise ValidationError(f"must be between {minimum} and {maximum}, got {value}", field)


def _parse_timestamp(value: Any, field: str) -> datetime:
    if not isinstance(value, str):
        raise ValidationError("must be an ISO timestamp", field)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"invalid timestamp {value!r}", field) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _check_profile(data: Any, limits: ImportLimits, now: datetime) -> None:
    if not isinstance(data, dict):
        raise ValidationError("must be an object", "profile")

    for key in ("id", "nickname"):
        if not isinstance(data.get(key), str) or not data[key].strip():
            raise ValidationError("is required", f"profile.{key}")

    _check_int(data.get("totalStars", 0), "profile.totalStars", 0, limits.max_total_stars)
    for key in ("currentStreak", "longestStreak"):
        _check_int(data.get(key, 0), f"profile.{key}", 0, limits.max_streak_days)

    levels = data.get("currentLevels", {})
    if not isinstance(levels, dict):
        raise ValidationError("must be an object", "profile.currentLevels")
    for theme_id, level in levels.items():
        _check_int(level, f"profile.currentLevels.{theme_id}", 1, limits.max_level)

    badges = data.get("badges", [])
    if not isinstance(badges, list):
        raise ValidationError("must be a list", "profile.badges")
    seen: set[str] = set()
    for index, badge in enumerate(badges):
        field = f"profile.badges[{index}]"
        if not isinstance(badge, dict):
            raise ValidationError("must be an object", field)
        badge_id = badge.get("id")
        if not isinstance(badge_id, str) or not badge_id:
            raise ValidationError("badge id is required", f"{field}.id")
        if badge_id in seen:
            raise ValidationError(f"duplicate badge id {badge_id!r}", f"{field}.id")
        seen.add(badge_id)
        earned_at = _parse_timestamp(badge.get("earnedAt"), f"{field}.earnedAt")
        if earned_at > now:
            raise ValidationError("lies in the future", f"{field}.earnedAt")


def _check_results(data: Any, profile_id: str) -> None:
    if not isinstance(data, list):
        raise ValidationError("must be a list", "exerciseResults")
    for index, result in enumerate(data):
        field = f"exerciseResults[{index}]"
        if not isinstance(result, dict):
            raise ValidationError("must be an object", field)
        _check_int(result.get("score"), f"{field}.score", 0, 3)
        if result.get("profileId", profile_id) != profile_id:
            raise ValidationError("belongs to a different profile", f"{field}.profileId")


def validate_save_game(
    data: Any,
    trainer_id: str,
    limits: ImportLimits | None = None,
    now: datetime | None = None,
) -> SaveGamePayload:
    """
    Validate decoded save-game JSON.

    Args:
        data: Decoded JSON document
        trainer_id: Trainer the file must belong to
        limits: Numeric range limits (defaults to ImportLimits())
        now: Reference time for the future-timestamp check

    Returns:
        The parsed payload

    Raises:
        ValidationError: naming the first offending field
    """
    limits = limits or ImportLimits()
    now = now or datetime.now(UTC)

    if not isinstance(data, dict):
        raise ValidationError("save game must be a JSON object")
    if data.get("version") != SAVE_GAME_VERSION:
        raise ValidationError(f"unsupported version {data.get('version')!r}", "version")
    if data.get("trainerId") != trainer_id:
        raise ValidationError(
            f"save game belongs to trainer {data.get('trainerId')!r}, not {trainer_id!r}", "trainerId"
        )

    _check_profile(data.get("profile"), limits, now)
    profile_id = data["profile"]["id"]
    results = data.get("exerciseResults", [])
    _check_results(results, profile_id)

    # Results may omit profileId; the save game scopes them to its profile.
    normalized = dict(data, exerciseResults=[dict(r, profileId=profile_id) for r in results])
    try:
        return SaveGamePayload.model_validate(normalized)
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise ValidationError(error["msg"], field) from None


def parse_save_game(
    text: str,
    trainer_id: str,
    limits: ImportLimits | None = None,
    now: datetime | None = None,
) -> SaveGamePayload:
    """Decode and validate a save-game file's text."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"not valid JSON ({e.msg})") from None
    return validate_save_game(data, trainer_id, limits, now)
