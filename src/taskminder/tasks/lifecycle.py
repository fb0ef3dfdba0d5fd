# src/taskminder/tasks/lifecycle.py

from __future__ import annotations

"""
Task lifecycle policy.

Pure functions only: no I/O and no wall-clock reads. Every decision takes an
explicit `now` so the cleanup orchestrator, the startup gate and the tests
all see the same reference instant.

Rules:
- overdue-ness is decided by calendar day (in `now`'s timezone), not by instant
- a task created and due on the same day is never overdue on that day
- a retention/frequency value of 0 disables the corresponding automatic step
"""

import calendar
import copy
import math
from datetime import date, datetime

from .task_models import AppSettings, DeletionReason, Task, TaskHistory, TaskStatus

SECONDS_PER_DAY = 86400


def elapsed_days(since: datetime, now: datetime) -> int:
    """Whole days between two instants, floored (negative if `since` is in the future)."""
    return math.floor((now - since).total_seconds() / SECONDS_PER_DAY)


def _day(value: datetime, now: datetime) -> date:
    if value.tzinfo is not None and now.tzinfo is not None:
        return value.astimezone(now.tzinfo).date()
    return value.date()


def add_months(value: datetime, months: int) -> datetime:
    """
    Shift by calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month -> Feb 28 (or 29).
    """
    idx = value.month - 1 + months
    year = value.year + idx // 12
    month = idx % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def is_overdue(task: Task, now: datetime) -> bool:
    """
    Live overdue check.

    The stored status is only consulted for "completed"; a stored "overdue"
    is a cache and does not short-circuit this.
    """
    if task.due_date is None or task.status == TaskStatus.COMPLETED:
        return False

    today = _day(now, now)
    due_day = _day(task.due_date, now)

    if _day(task.created_at, now) == today and due_day == today:
        return False

    return due_day < today


def is_eligible_for_history(
    task: Task, settings: AppSettings, now: datetime
) -> tuple[bool, DeletionReason | None]:
    """Whether the task has aged out of the active list, and why."""
    if task.status == TaskStatus.COMPLETED and task.completed_date is not None:
        days = settings.completed_task_retention_days
        if days > 0 and elapsed_days(task.completed_date, now) >= days:
            return True, DeletionReason.COMPLETED_EXPIRED
        return False, None

    if task.status == TaskStatus.OVERDUE and task.due_date is not None:
        days = settings.overdue_task_retention_days
        if days > 0 and elapsed_days(task.due_date, now) >= days:
            return True, DeletionReason.OVERDUE_EXPIRED
        return False, None

    return False, None


def is_history_entry_expired(entry: TaskHistory, now: datetime) -> bool:
    return now > entry.retention_until


def should_run_cleanup(settings: AppSettings, now: datetime) -> bool:
    """Scheduled-run gate. Frequency 0 means manual-only."""
    if settings.cleanup_frequency_days <= 0:
        return False
    return elapsed_days(settings.last_cleanup, now) >= settings.cleanup_frequency_days


def should_run_history_cleanup(settings: AppSettings, now: datetime) -> bool:
    """Same gate for the history-only purge cadence."""
    if settings.history_cleanup_frequency_days <= 0:
        return False
    return elapsed_days(settings.last_history_cleanup, now) >= settings.history_cleanup_frequency_days


def retention_until(deleted_at: datetime, settings: AppSettings) -> datetime:
    return add_months(deleted_at, settings.history_retention_months)


def history_entry_id(task_id: str, deleted_at: datetime) -> str:
    return f"{task_id}_{int(deleted_at.timestamp() * 1000)}"


def make_history_entry(
    task: Task, reason: DeletionReason, now: datetime, settings: AppSettings
) -> TaskHistory:
    """Archive a deep copy of `task`; later edits to the task never leak into history."""
    return TaskHistory(
        id=history_entry_id(task.id, now),
        task=copy.deepcopy(task),
        deleted_at=now,
        deletion_reason=reason,
        retention_until=retention_until(now, settings),
    )


def reconcile_status(task: Task, now: datetime) -> bool:
    """
    Refresh the cached classification: pending -> overdue when the due day passed.

    Mutates the task in place and bumps updated_at. Returns True on transition.
    """
    if task.status == TaskStatus.PENDING and is_overdue(task, now):
        task.status = TaskStatus.OVERDUE
        task.updated_at = now
        return True
    return False


def transition_status(task: Task, status: TaskStatus, now: datetime) -> None:
    """
    Programmatic status change that keeps completed_date in sync:
    set when entering "completed", cleared when leaving it.
    """
    if status == TaskStatus.COMPLETED:
        if task.status != TaskStatus.COMPLETED or task.completed_date is None:
            task.completed_date = now
    else:
        task.completed_date = None
    task.status = status
    task.updated_at = now
