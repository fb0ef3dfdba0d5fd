# src/taskminder/tasks/cleanup.py

from __future__ import annotations

"""
Cleanup orchestrator.

One run:
- loads tasks, settings and history,
- reconciles pending -> overdue,
- moves aged-out tasks into history (completed_expired / overdue_expired),
- purges history entries past their retention,
- persists history, then tasks, then settings.

Write order matters: history is written before the task list shrinks, so a
failure between the two writes leaves a task in both places, never in neither.
A later run recognizes a snapshot it archived itself (same task, updated_at
and reason) and does not archive it twice. Entries with another reason, such as
a manual_deletion left by a half-finished delete, do not count.
"""

import asyncio
import logging
from datetime import datetime

from .errors import CleanupInProgressError
from .lifecycle import (
    is_eligible_for_history,
    is_history_entry_expired,
    make_history_entry,
    reconcile_status,
)
from .task_models import CleanupResult, DeletionReason, Task, TaskHistory
from .task_store import TaskStore

logger = logging.getLogger(__name__)


def _snapshot_key(task: Task, reason: DeletionReason) -> tuple[str, datetime, DeletionReason]:
    return task.id, task.updated_at, reason


class CleanupOrchestrator:
    """Runs cleanup passes against a TaskStore; at most one pass at a time."""

    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self, now: datetime) -> CleanupResult:
        """
        Execute one cleanup pass.

        Raises CleanupInProgressError if another pass is in flight and
        StorageError if loading or the history write fails (nothing is
        written in that case).
        """
        if self._lock.locked():
            raise CleanupInProgressError("cleanup already running")

        async with self._lock:
            return await self._run_locked(now)

    async def _run_locked(self, now: datetime) -> CleanupResult:
        tasks = await self._store.load_tasks()
        settings = await self._store.load_settings()
        history = await self._store.load_history()

        archived = {_snapshot_key(h.task, h.deletion_reason) for h in history}
        result = CleanupResult()
        retained: list[Task] = []

        for task in tasks:
            # Newly overdue tasks wait for the next pass before they can expire.
            if reconcile_status(task, now):
                result.overdue_marked += 1
                retained.append(task)
                continue

            eligible, reason = is_eligible_for_history(task, settings, now)
            if not eligible or reason is None:
                retained.append(task)
                continue

            if _snapshot_key(task, reason) in archived:
                logger.warning("Task %s already archived by an interrupted run; dropping from active list", task.id)
            else:
                history.append(make_history_entry(task, reason, now, settings))

            if reason == DeletionReason.COMPLETED_EXPIRED:
                result.completed_moved_to_history += 1
            else:
                result.overdue_moved_to_history += 1

        kept_history = _purge(history, now)
        result.history_cleaned = len(history) - len(kept_history)

        settings.last_cleanup = now
        settings.last_history_cleanup = now

        await self._store.save_history(kept_history)
        await self._store.save_tasks(retained)
        await self._store.save_settings(settings)

        logger.info(
            "Cleanup done: completed->history=%d overdue->history=%d marked_overdue=%d history_purged=%d",
            result.completed_moved_to_history,
            result.overdue_moved_to_history,
            result.overdue_marked,
            result.history_cleaned,
        )
        return result

    async def purge_history(self, now: datetime) -> int:
        """History-only pass. Returns the number of entries removed."""
        if self._lock.locked():
            raise CleanupInProgressError("cleanup already running")

        async with self._lock:
            history = await self._store.load_history()
            settings = await self._store.load_settings()

            kept = _purge(history, now)
            removed = len(history) - len(kept)

            await self._store.save_history(kept)
            settings.last_history_cleanup = now
            await self._store.save_settings(settings)

            logger.info("History purge done: removed=%d kept=%d", removed, len(kept))
            return removed


def _purge(history: list[TaskHistory], now: datetime) -> list[TaskHistory]:
    return [h for h in history if not is_history_entry_expired(h, now)]
