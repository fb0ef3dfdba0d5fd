# src/taskminder/tasks/task_scheduler.py

from __future__ import annotations

"""
Startup cleanup gate.

Runs once per process, after the first data load:
- if the cleanup cadence is due, run a full cleanup pass,
- otherwise, if only the history cadence is due, purge expired history.

There is no background timer. The next chance to run is the next start
(or a manual /cleanup).
"""

import logging
from datetime import datetime

from .lifecycle import should_run_cleanup, should_run_history_cleanup
from .task_api import TaskService

logger = logging.getLogger(__name__)


async def run_startup_cleanup(service: TaskService, *, now: datetime | None = None) -> bool:
    """
    Consult the stored cadence and run maintenance if it is due.

    Returns True when something changed and the caller should reload its
    collections (service.load_all()). Errors are logged, never raised.
    """
    if not service.loaded:
        logger.warning("Startup cleanup skipped: data not loaded yet")
        return False

    now = now or service.clock()
    settings = service.settings

    if should_run_cleanup(settings, now):
        logger.info(
            "Running scheduled cleanup (every %d days, last=%s)",
            settings.cleanup_frequency_days,
            settings.last_cleanup.isoformat(),
        )
        result = await service.run_cleanup(now=now, reload=False)
        if result.skipped:
            return False
        return result.has_changes

    if should_run_history_cleanup(settings, now):
        logger.info(
            "Running scheduled history purge (every %d days, last=%s)",
            settings.history_cleanup_frequency_days,
            settings.last_history_cleanup.isoformat(),
        )
        removed = await service.purge_history(now=now)
        return removed > 0

    logger.debug("No scheduled maintenance due")
    return False
