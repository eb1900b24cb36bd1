"""
Configuration settings for the mini trainer engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Trainer Identity
    # ========================================
    trainer_id: str = Field(
        default="daz",
        description="Trainer identifier (scopes data files and save games)",
    )
    trainer_version: str = Field(
        default="1.0.0",
        description="Trainer version written into exported save games",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".mini-trainer",
        description="Root directory for all local trainer files",
    )
    database_url: str | None = Field(
        default=None,
        description="Durable result log (defaults to SQLite under data_dir)",
    )
    snapshot_path: Path | None = Field(
        default=None,
        description="Profile snapshot file (defaults to data_dir)",
    )
    daily_store_path: Path | None = Field(
        default=None,
        description="Daily challenge key file (defaults to data_dir)",
    )

    # ========================================
    # Content
    # ========================================
    exercises_path: Path = Field(
        default=Path("data/exercises.json"),
        description="Exercise catalogue (JSON list or {'exercises': [...]})",
    )
    badges_path: Path | None = Field(
        default=None,
        description="Optional badge catalogue; built-in milestones when unset",
    )

    # ========================================
    # Scoring & Progression
    # ========================================
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per exercise before the whole level fails",
    )
    stars_per_level: int = Field(
        default=10,
        ge=1,
        description="Stars needed per global level",
    )
    max_theme_level: int = Field(
        default=4,
        ge=1,
        description="Highest per-theme level",
    )
    max_stars_per_credit: int = Field(
        default=3,
        ge=0,
        description="Upper clamp for a single star credit",
    )
    daily_challenge_stars: int = Field(
        default=3,
        ge=0,
        description="Stars credited for the daily challenge",
    )
    bonus_challenge_stars: int = Field(
        default=2,
        ge=0,
        description="Stars credited for the bonus challenge",
    )

    # ========================================
    # Save Game Validation
    # ========================================
    max_total_stars: int = Field(
        default=1_000_000,
        description="Upper bound for totalStars in imported save games",
    )
    max_streak_days: int = Field(
        default=365,
        description="Upper bound for streak values in imported save games",
    )
    max_level: int = Field(
        default=100,
        description="Upper bound for level values in imported save games",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def get_database_url(self) -> str:
        """Return the durable tier URL, defaulting to a per-trainer SQLite file."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / f'{self.trainer_id}.db'}"

    def get_snapshot_path(self) -> Path:
        """Return the profile snapshot file path."""
        return self.snapshot_path or self.data_dir / f"{self.trainer_id}-profile.json"

    def get_daily_store_path(self) -> Path:
        """Return the daily challenge key file path."""
        return self.daily_store_path or self.data_dir / f"{self.trainer_id}-daily.json"

    def get_import_limits(self) -> dict[str, int]:
        """Range limits applied when validating imported save games."""
        return {
            "max_total_stars": self.max_total_stars,
            "max_streak_days": self.max_streak_days,
            "max_level": self.max_level,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
