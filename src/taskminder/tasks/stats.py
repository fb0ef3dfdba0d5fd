# src/taskminder/tasks/stats.py

from __future__ import annotations

"""
Statistics over active tasks + the history log.

History snapshots keep counting after a task leaves the active list, so the
"all time" figures are active + historical. Rates are percentages (0..100).
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from .lifecycle import is_overdue
from .task_models import Category, Task, TaskHistory, TaskStatus, UrgencyLevel


def _rate(part: int, total: int) -> float:
    return (part / total) * 100.0 if total > 0 else 0.0


def _completed(tasks: list[Task]) -> int:
    return sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)


@dataclass(frozen=True, slots=True)
class HistoricalStats:
    total_historical: int
    completed_historical: int
    monthly_completed: int
    completion_rate: float


@dataclass(frozen=True, slots=True)
class Overview:
    total: int
    completed: int
    pending: int
    overdue: int
    total_all_time: int
    completed_all_time: int
    completion_rate: float
    all_time_completion_rate: float
    overdue_rate: float


@dataclass(frozen=True, slots=True)
class GroupStats:
    """Per-category or per-urgency figures."""

    id: str
    name: str
    color: str
    total_tasks: int
    active_tasks: int
    historical_tasks: int
    completed_tasks: int
    active_completed_tasks: int
    historical_completed_tasks: int
    completion_rate: float
    active_completion_rate: float


def historical_stats(history: list[TaskHistory], now: datetime) -> HistoricalStats:
    snapshots = [h.task for h in history]
    completed = [t for t in snapshots if t.status == TaskStatus.COMPLETED]

    def in_current_month(entry: TaskHistory) -> bool:
        when = entry.task.completed_date or entry.deleted_at
        if when.tzinfo is not None and now.tzinfo is not None:
            when = when.astimezone(now.tzinfo)
        return (when.year, when.month) == (now.year, now.month)

    monthly = sum(1 for h in history if h.task.status == TaskStatus.COMPLETED and in_current_month(h))

    return HistoricalStats(
        total_historical=len(snapshots),
        completed_historical=len(completed),
        monthly_completed=monthly,
        completion_rate=_rate(len(completed), len(snapshots)),
    )


def overview(tasks: list[Task], history: list[TaskHistory], now: datetime) -> Overview:
    hist = historical_stats(history, now)
    total = len(tasks)
    completed = _completed(tasks)
    pending = sum(1 for t in tasks if t.status == TaskStatus.PENDING)
    # Live check, not the cached status: the view may be ahead of the last cleanup.
    overdue = sum(1 for t in tasks if is_overdue(t, now))

    total_all_time = total + hist.total_historical
    completed_all_time = completed + hist.completed_historical

    return Overview(
        total=total,
        completed=completed,
        pending=pending,
        overdue=overdue,
        total_all_time=total_all_time,
        completed_all_time=completed_all_time,
        completion_rate=_rate(completed, total),
        all_time_completion_rate=_rate(completed_all_time, total_all_time),
        overdue_rate=_rate(overdue, total),
    )


def _group_stats(
    group_id: str,
    name: str,
    color: str,
    tasks: list[Task],
    history: list[TaskHistory],
    key: Callable[[Task], str | None],
) -> GroupStats:
    active = [t for t in tasks if key(t) == group_id]
    historical = [h.task for h in history if key(h.task) == group_id]
    active_done = _completed(active)
    hist_done = _completed(historical)
    total = len(active) + len(historical)

    return GroupStats(
        id=group_id,
        name=name,
        color=color,
        total_tasks=total,
        active_tasks=len(active),
        historical_tasks=len(historical),
        completed_tasks=active_done + hist_done,
        active_completed_tasks=active_done,
        historical_completed_tasks=hist_done,
        completion_rate=_rate(active_done + hist_done, total),
        active_completion_rate=_rate(active_done, len(active)),
    )


def category_stats(
    categories: list[Category], tasks: list[Task], history: list[TaskHistory]
) -> list[GroupStats]:
    """One entry per category that has at least one active or historical task."""
    out = [_group_stats(c.id, c.name, c.color, tasks, history, lambda t: t.category_id) for c in categories]
    return [s for s in out if s.total_tasks > 0]


def urgency_stats(
    levels: list[UrgencyLevel], tasks: list[Task], history: list[TaskHistory]
) -> list[GroupStats]:
    ordered = sorted(levels, key=lambda u: u.priority)
    out = [_group_stats(u.id, u.name, u.color, tasks, history, lambda t: t.urgency) for u in ordered]
    return [s for s in out if s.total_tasks > 0]


def recent_completed(tasks: list[Task], limit: int = 5) -> list[Task]:
    done = [t for t in tasks if t.status == TaskStatus.COMPLETED and t.completed_date is not None]
    done.sort(key=lambda t: t.completed_date, reverse=True)  # type: ignore[arg-type,return-value]
    return done[:limit]
