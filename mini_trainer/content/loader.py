"""
Content provider.

Loads the read-only exercise catalogue (and optional badge catalogue) from
JSON files. Accepts either a bare list or an object wrapping it
(``{"exercises": [...]}`` / ``{"badges": [...]}``).
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from mini_trainer.core.models import Exercise
from mini_trainer.errors import ValidationError
from mini_trainer.gamification.badges import BadgeDefinition, parse_badge_definitions


def _read_list(path: Path, key: str) -> list:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"{path} is not valid JSON ({e.msg})") from None
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise ValidationError(f"expected a list of {key}", key)
    return data


def load_exercises(path: Path) -> list[Exercise]:
    """
    Load the exercise catalogue.

    Raises:
        ValidationError: malformed file or exercise (with its index)
        OSError: the file cannot be read
    """
    raw = _read_list(path, "exercises")
    exercises = []
    seen: set[str] = set()
    for index, item in enumerate(raw):
        try:
            exercise = Exercise.model_validate(item)
        except PydanticValidationError as e:
            error = e.errors()[0]
            loc = ".".join(str(part) for part in error["loc"])
            raise ValidationError(error["msg"], f"exercises[{index}].{loc}") from None
        if exercise.id in seen:
            raise ValidationError(f"duplicate exercise id {exercise.id!r}", f"exercises[{index}].id")
        seen.add(exercise.id)
        exercises.append(exercise)

    logger.info(f"Loaded {len(exercises)} exercises from {path}")
    return exercises


def load_badges(path: Path) -> list[BadgeDefinition]:
    raw = _read_list(path, "badges")
    try:
        return parse_badge_definitions(raw)
    except PydanticValidationError as e:
        raise ValidationError(str(e), "badges") from None


def filter_exercises(
    exercises: Iterable[Exercise],
    theme_id: str | None = None,
    area_id: str | None = None,
    level: int | None = None,
) -> list[Exercise]:
    """Ordered subset matching every given criterion."""
    return [
        e
        for e in exercises
        if (theme_id is None or e.theme_id == theme_id)
        and (area_id is None or e.area_id == area_id)
        and (level is None or e.level == level)
    ]


def theme_ids(exercises: Sequence[Exercise]) -> list[str]:
    """Theme ids in first-seen order."""
    return list(dict.fromkeys(e.theme_id for e in exercises))


def levels_for_theme(exercises: Sequence[Exercise], theme_id: str) -> list[int]:
    return sorted({e.level for e in exercises if e.theme_id == theme_id})
