"""
Unit tests for the exercise and badge catalogue loader.
"""

import json

import pytest

from mini_trainer.content.loader import (
    filter_exercises,
    levels_for_theme,
    load_badges,
    load_exercises,
    theme_ids,
)
from mini_trainer.errors import ValidationError


def exercise_data(exercise_id, theme_id="verbs", level=1):
    return {
        "id": exercise_id,
        "type": "multiple-choice",
        "areaId": "grammar",
        "themeId": theme_id,
        "level": level,
        "instruction": "Pick one",
        "content": {"options": ["a", "b"], "correctIndex": 1},
    }


@pytest.fixture
def write_json(tmp_path):
    def _write(data, name="exercises.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


class TestLoadExercises:
    def test_bare_list(self, write_json):
        exercises = load_exercises(write_json([exercise_data("v1"), exercise_data("v2")]))
        assert [e.id for e in exercises] == ["v1", "v2"]
        assert exercises[0].theme_id == "verbs"
        assert exercises[0].content["correctIndex"] == 1

    def test_wrapped_object(self, write_json):
        exercises = load_exercises(write_json({"exercises": [exercise_data("v1")]}))
        assert len(exercises) == 1

    def test_invalid_exercise_reports_index(self, write_json):
        broken = dict(exercise_data("v2"), level=9)
        with pytest.raises(ValidationError) as exc_info:
            load_exercises(write_json([exercise_data("v1"), broken]))
        assert exc_info.value.field == "exercises[1].level"

    def test_duplicate_id(self, write_json):
        with pytest.raises(ValidationError, match="duplicate"):
            load_exercises(write_json([exercise_data("v1"), exercise_data("v1")]))

    def test_not_json(self, tmp_path):
        path = tmp_path / "exercises.json"
        path.write_text("nope", encoding="utf-8")
        with pytest.raises(ValidationError):
            load_exercises(path)


class TestQueries:
    def test_filter_keeps_order(self, catalog):
        assert [e.id for e in filter_exercises(catalog, theme_id="verbs", level=1)] == ["v1", "v2", "v3"]
        assert [e.id for e in filter_exercises(catalog, area_id="reading")] == ["v3"]
        assert filter_exercises(catalog) == catalog

    def test_theme_ids_and_levels(self, catalog):
        assert theme_ids(catalog) == ["verbs", "nouns"]
        assert levels_for_theme(catalog, "verbs") == [1, 2]
        assert levels_for_theme(catalog, "missing") == []


class TestLoadBadges:
    def test_wrapped_badges(self, write_json):
        path = write_json(
            {"badges": [{"id": "five", "name": "Five", "rule": {"kind": "totalStars", "threshold": 5}}]},
            name="badges.json",
        )
        definitions = load_badges(path)
        assert definitions[0].rule.threshold == 5

    def test_unknown_rule_kind(self, write_json):
        path = write_json([{"id": "x", "name": "X", "rule": {"kind": "magic", "threshold": 1}}], name="badges.json")
        with pytest.raises(ValidationError) as exc_info:
            load_badges(path)
        assert exc_info.value.field == "badges"
