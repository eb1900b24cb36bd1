"""
Profile snapshot (fast tier).

Holds the active profile in memory and mirrors it to a JSON file that is
replaced atomically on every save. UI reads always go against the in-memory
copy. Stored as <data_dir>/<trainer_id>-profile.json
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from mini_trainer.core.models import Profile
from mini_trainer.errors import PersistenceError

SNAPSHOT_VERSION = 1


class SnapshotStore:
    """
    Whole-profile snapshot, overwritten on every mutation.

    With ``path=None`` the snapshot lives in memory only.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._profile: Profile | None = None
        self._loaded = path is None

    @property
    def profile(self) -> Profile | None:
        """The in-memory snapshot (loads the file on first access)."""
        if not self._loaded:
            self._profile = self._read()
            self._loaded = True
        return self._profile

    def _read(self) -> Profile | None:
        if self.path is None or not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if data.get("version") != SNAPSHOT_VERSION:
                logger.warning(f"Ignoring snapshot with unknown version {data.get('version')!r}")
                return None
            return Profile.model_validate(data["profile"])
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError, PydanticValidationError) as e:
            logger.warning(f"Ignoring unreadable profile snapshot {self.path}: {e}")
            return None

    def save(self, profile: Profile) -> None:
        """
        Replace the snapshot.

        The in-memory copy is updated first so it stays authoritative even
        when the file write fails.
        """
        self._profile = profile
        self._loaded = True
        if self.path is None:
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = {"version": SNAPSHOT_VERSION, "profile": profile.to_json_dict()}
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".snapshot-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.error(f"Failed to write profile snapshot {self.path}: {e}")
            raise PersistenceError("snapshot.save", str(e)) from e

    def clear(self) -> None:
        """Forget the snapshot and remove its file."""
        self._profile = None
        self._loaded = True
        if self.path is not None and self.path.exists():
            self.path.unlink()
