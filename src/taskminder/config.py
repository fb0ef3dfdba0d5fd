# src/taskminder/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Process configuration only: where data lives, logging, console switches,
  and the defaults applied when no AppSettings are stored yet.
- User-editable retention settings live in the task store, not here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKMINDER"

load_dotenv(override=False)


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


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Switches ----
    console_enabled: bool
    startup_cleanup: bool

    # ---- Local data paths ----
    data_dir: Path
    db_path: Path
    log_dir: Path

    # ---- AppSettings defaults (first start only) ----
    default_completed_retention_days: int
    default_overdue_retention_days: int
    default_history_retention_months: int
    default_history_cleanup_frequency_days: int
    default_cleanup_frequency_days: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskminder") or "taskminder"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        startup_cleanup = _env_bool(_k("STARTUP_CLEANUP"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskminder"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "taskminder.sqlite3")
        log_dir = _env_path(_k("LOG_DIR"), data_dir)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            startup_cleanup=startup_cleanup,
            data_dir=data_dir,
            db_path=db_path,
            log_dir=log_dir,
            default_completed_retention_days=_env_int(_k("COMPLETED_RETENTION_DAYS"), 30),
            default_overdue_retention_days=_env_int(_k("OVERDUE_RETENTION_DAYS"), 90),
            default_history_retention_months=_env_int(_k("HISTORY_RETENTION_MONTHS"), 3),
            default_history_cleanup_frequency_days=_env_int(_k("HISTORY_CLEANUP_FREQUENCY_DAYS"), 30),
            default_cleanup_frequency_days=_env_int(_k("CLEANUP_FREQUENCY_DAYS"), 7),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
