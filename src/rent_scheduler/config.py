# src/rent_scheduler/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "RENT"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _clamp_hour(value: int, default: int) -> int:
    return value if 0 <= value <= 23 else default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Switches ----
    console_enabled: bool
    scheduler_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Scheduler tuning ----
    tick_seconds: float
    retry_delay_seconds: float
    generation_hour: int
    recalculation_hour: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "rent-scheduler") or "rent-scheduler"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        scheduler_enabled = _env_bool(_k("SCHEDULER_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/rent_scheduler"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "rentals.sqlite3")

        tick_seconds = _env_float(_k("TICK_SECONDS"), 60.0)
        retry_delay_seconds = _env_float(_k("RETRY_DELAY_SECONDS"), 3600.0)
        generation_hour = _clamp_hour(_env_int(_k("GENERATION_HOUR"), 9), 9)
        recalculation_hour = _clamp_hour(_env_int(_k("RECALCULATION_HOUR"), 8), 8)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            scheduler_enabled=scheduler_enabled,
            data_dir=data_dir,
            db_path=db_path,
            tick_seconds=tick_seconds,
            retry_delay_seconds=retry_delay_seconds,
            generation_hour=generation_hour,
            recalculation_hour=recalculation_hour,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Local .env never overrides variables already set in the environment.
    load_dotenv(override=False)
    return Settings.from_env()
