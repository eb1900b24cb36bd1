"""
Storage Module - the dual-tier persistence layer.

Components:
- snapshot: fast tier (in-memory profile + atomic JSON file)
- results: durable tier (SQLAlchemy result log and profile copies)
- repository: ProgressRepository, the write-through interface used by the engine
- savegame: versioned import/export
- daily: daily challenge ledger
"""

from mini_trainer.storage.daily import ChallengeKind, DailyChallengeLedger, challenge_key
from mini_trainer.storage.repository import ProgressRepository
from mini_trainer.storage.results import SqlResultRepository
from mini_trainer.storage.savegame import (
    SAVE_GAME_VERSION,
    ImportLimits,
    SaveGamePayload,
    build_save_game,
    dump_save_game,
    parse_save_game,
    save_game_filename,
    validate_save_game,
)
from mini_trainer.storage.snapshot import SnapshotStore

__all__ = [
    "SAVE_GAME_VERSION",
    "ChallengeKind",
    "DailyChallengeLedger",
    "ImportLimits",
    "ProgressRepository",
    "SaveGamePayload",
    "SnapshotStore",
    "SqlResultRepository",
    "build_save_game",
    "challenge_key",
    "dump_save_game",
    "parse_save_game",
    "save_game_filename",
    "validate_save_game",
]
