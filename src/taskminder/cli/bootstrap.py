# src/taskminder/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the SQLite key-value store, task store and task service into AppState,
- performs the first data load and the one-shot startup cleanup.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import Clock, KeyValueStore, local_now
from ..core.state import AppState
from ..storage.sqlite_kv import SqliteKeyValueStore
from ..tasks.task_api import TaskService
from ..tasks.task_scheduler import run_startup_cleanup
from ..tasks.task_store import RetentionDefaults, TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.log_dir.mkdir(parents=True, exist_ok=True)


def retention_defaults(settings) -> RetentionDefaults:
    return RetentionDefaults(
        completed_task_retention_days=settings.default_completed_retention_days,
        overdue_task_retention_days=settings.default_overdue_retention_days,
        history_retention_months=settings.default_history_retention_months,
        history_cleanup_frequency_days=settings.default_history_cleanup_frequency_days,
        cleanup_frequency_days=settings.default_cleanup_frequency_days,
    )


def create_initial_state(
    *,
    settings=None,
    kv: KeyValueStore | None = None,
    clock: Clock = local_now,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings, store and clock injectable makes the app easier to test
    and avoids hidden global config reads. If settings is None, falls back to
    get_settings(); if kv is None, opens the SQLite store at settings.db_path.
    """
    if settings is None:
        settings = get_settings()

    if kv is None:
        _ensure_local_dirs(settings)
        kv = SqliteKeyValueStore(settings.db_path)

    store = TaskStore(kv, clock=clock, defaults=retention_defaults(settings))
    service = TaskService(store, clock=clock)

    return AppState(settings=settings, kv=kv, clock=clock, tasks=service)


async def start_state(state: AppState) -> None:
    """First load, then the startup cleanup gate (reloading if it changed anything)."""
    await state.tasks.load_all()

    if not getattr(state.settings, "startup_cleanup", True):
        logger.info("Startup cleanup disabled by configuration.")
        return

    if await run_startup_cleanup(state.tasks):
        await state.tasks.load_all()
