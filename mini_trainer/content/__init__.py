"""
Content Module - read-only exercise and badge catalogues.
"""

from mini_trainer.content.loader import (
    filter_exercises,
    levels_for_theme,
    load_badges,
    load_exercises,
    theme_ids,
)

__all__ = [
    "filter_exercises",
    "levels_for_theme",
    "load_badges",
    "load_exercises",
    "theme_ids",
]
