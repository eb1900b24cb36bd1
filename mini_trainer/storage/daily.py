"""
Daily challenge ledger.

Plain string keys ``daily-challenge-<ISO date>`` / ``bonus-challenge-<ISO date>``
mapped to the number of stars awarded, stored as a flat JSON object.
"""

from __future__ import annotations

import json
from datetime import date
from enum import Enum
from pathlib import Path

from loguru import logger

from mini_trainer.errors import PersistenceError


class ChallengeKind(str, Enum):
    DAILY = "daily-challenge"
    BONUS = "bonus-challenge"


def challenge_key(kind: ChallengeKind, day: date) -> str:
    return f"{kind.value}-{day.isoformat()}"


class DailyChallengeLedger:
    """Records which daily challenges were completed and what they paid."""

    def __init__(self, path: Path | None = None):
        self.path = path
        self._entries: dict[str, str] | None = None

    @property
    def entries(self) -> dict[str, str]:
        if self._entries is None:
            self._entries = self._read()
        return self._entries

    def _read(self) -> dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable daily challenge file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def is_completed(self, kind: ChallengeKind, day: date) -> bool:
        return challenge_key(kind, day) in self.entries

    def stars_for(self, kind: ChallengeKind, day: date) -> int:
        """Stars recorded for a challenge (0 if not completed or unreadable)."""
        value = self.entries.get(challenge_key(kind, day))
        try:
            return int(value) if value is not None else 0
        except ValueError:
            return 0

    def record(self, kind: ChallengeKind, day: date, stars: int) -> bool:
        """
        Mark a challenge as completed.

        Returns:
            False if it was already recorded for that day (nothing changes)
        """
        key = challenge_key(kind, day)
        if key in self.entries:
            return False
        self.entries[key] = str(stars)
        self._write()
        return True

    def _write(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.entries, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write daily challenge file {self.path}: {e}")
            raise PersistenceError("daily.record", str(e)) from e
