from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Global application-level configuration.

    This class is the single source of truth for:
    - environment selection
    - logging behavior
    - game rules that are tunable per deployment
    - where state and question files live
    """

    model_config = SettingsConfigDict(
        env_prefix="TRIVIA_",
        env_file=".env",
        extra="ignore",
    )

    # ---- Environment -------------------------------------------------

    env: Literal["local", "staging", "prod"] = "local"

    # ---- Logging -----------------------------------------------------

    log_level: str = "INFO"

    # ---- Game rules --------------------------------------------------

    daily_play_limit: int = Field(
        default=3,
        ge=1,
        description="Maximum runs that may be started per rolling 24h",
    )

    question_time_limit_ms: int = Field(
        default=20000,
        ge=1,
        description="Deadline for a live question before it auto-times-out",
    )

    # ---- Storage -----------------------------------------------------

    # Durable slot for run, purchases and play log
    state_path: Path = Field(
        default=Path("data/state.json"),
        description="JSON file holding the persisted game state",
    )

    # None keeps the question lock in memory for the life of the process
    lock_path: Path | None = Field(
        default=None,
        description="Optional session-scoped file for the question lock",
    )

    questions_dir: Path = Field(
        default=Path("questions"),
        description="Directory containing manifest.json and category files",
    )

    # ---- Prize -------------------------------------------------------

    claim_base_url: str = Field(
        default="https://example.com",
        description="Origin used to build shareable prize claim links",
    )


# Singleton settings object
settings = AppSettings()
