# src/taskminder/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Cached task classification.

    Notes:
    - "overdue" is persisted, not computed on every read. It is reconciled
      from the due date once per cleanup pass (see lifecycle.reconcile_status).
    """

    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class DeletionReason(StrEnum):
    COMPLETED_EXPIRED = "completed_expired"
    OVERDUE_EXPIRED = "overdue_expired"
    MANUAL_DELETION = "manual_deletion"
    CLEANUP = "cleanup"

    @classmethod
    def from_db(cls, raw: str | None) -> DeletionReason:
        if not raw:
            return cls.CLEANUP
        try:
            return cls(raw)
        except ValueError:
            return cls.CLEANUP


@dataclass(slots=True)
class Subtask:
    id: str
    title: str
    completed: bool
    created_at: datetime


@dataclass(slots=True)
class Task:
    id: str
    title: str
    urgency: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime

    description: str | None = None
    category_id: str | None = None

    start_date: datetime | None = None
    due_date: datetime | None = None
    completed_date: datetime | None = None

    subtasks: list[Subtask] = field(default_factory=list)


@dataclass(slots=True)
class Category:
    id: str
    name: str
    color: str
    created_at: datetime


@dataclass(slots=True)
class UrgencyLevel:
    """Lower priority number means more urgent ("alta" = 1)."""

    id: str
    name: str
    color: str
    priority: int
    created_at: datetime


@dataclass(slots=True)
class TaskHistory:
    id: str
    task: Task  # snapshot at deletion time, never shared with the active list
    deleted_at: datetime
    deletion_reason: DeletionReason
    retention_until: datetime


@dataclass(slots=True)
class AppSettings:
    completed_task_retention_days: int  # 0 = never expire
    overdue_task_retention_days: int  # 0 = never expire
    history_retention_months: int
    history_cleanup_frequency_days: int  # 0 = manual only
    cleanup_frequency_days: int  # 0 = manual only
    last_cleanup: datetime
    last_history_cleanup: datetime


@dataclass(slots=True)
class CleanupResult:
    completed_moved_to_history: int = 0
    overdue_moved_to_history: int = 0
    overdue_marked: int = 0
    history_cleaned: int = 0
    skipped: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(
            self.completed_moved_to_history
            or self.overdue_moved_to_history
            or self.overdue_marked
            or self.history_cleaned
        )


@dataclass(slots=True)
class DateRange:
    start: datetime
    end: datetime


@dataclass(slots=True)
class TaskFilters:
    """
    View filters applied by TaskService.filter_tasks.

    sort_by: newest | oldest | due_date | urgency | title
    """

    categories: list[str] = field(default_factory=list)
    urgency: list[str] = field(default_factory=list)
    status: list[TaskStatus] = field(default_factory=list)
    search_query: str = ""
    date_range: DateRange | None = None
    sort_by: str = "newest"
