# src/taskminder/tasks/task_api.py

from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from ..core.ports import Clock, local_now
from . import stats
from .cleanup import CleanupOrchestrator
from .errors import CleanupInProgressError, StorageError
from .lifecycle import is_overdue, make_history_entry, transition_status
from .task_models import (
    AppSettings,
    Category,
    CleanupResult,
    DeletionReason,
    Subtask,
    Task,
    TaskFilters,
    TaskHistory,
    TaskStatus,
    UrgencyLevel,
)
from .task_store import DEFAULT_CATEGORIES, DEFAULT_URGENCY_LEVELS, NEUTRAL_COLOR, TaskStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_CATEGORY_LABEL = "Sin categoría"

_UPDATABLE_TASK_FIELDS = frozenset(
    {
        "title",
        "description",
        "category_id",
        "urgency",
        "status",
        "start_date",
        "due_date",
        "completed_date",
        "subtasks",
    }
)

_DEFAULT_CATEGORY_BY_ID = {cid: (name, color) for cid, name, color in DEFAULT_CATEGORIES}
_DEFAULT_URGENCY_BY_ID = {uid: (name, color) for uid, name, color, _ in DEFAULT_URGENCY_LEVELS}


def generate_id(now: datetime) -> str:
    """Millisecond timestamp + random suffix, unique enough for one device."""
    return f"{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:9]}"


def _name_taken(names: list[tuple[str, str]], name: str, exclude_id: str | None = None) -> bool:
    wanted = name.strip().casefold()
    return any(n.strip().casefold() == wanted for i, n in names if i != exclude_id)


# User-editable AppSettings; last_cleanup / last_history_cleanup belong to the orchestrator.
EDITABLE_SETTINGS = (
    "completed_task_retention_days",
    "overdue_task_retention_days",
    "history_retention_months",
    "history_cleanup_frequency_days",
    "cleanup_frequency_days",
)


def _check_retention(settings: AppSettings) -> None:
    for field_name in EDITABLE_SETTINGS:
        value = getattr(settings, field_name)
        if not isinstance(value, int) or value < 0:
            raise ValueError(f"{field_name} must be a non-negative integer, got {value!r}")


class TaskService:
    """
    Entry points used by the UI layer (or the console connector).

    Holds the in-memory view of the five collections and routes every mutation
    through the store as read-modify-write:
    - storage read failure -> logged, operation aborted, view unchanged
    - storage write failure -> logged, operation aborted, view unchanged
    - unknown id -> logged no-op (returns None / False)

    Mutations are serialized by one asyncio.Lock; a cleanup trigger that
    arrives while a cleanup is running is rejected (CleanupResult.skipped).
    """

    def __init__(
        self,
        store: TaskStore,
        *,
        clock: Clock = local_now,
        cleanup: CleanupOrchestrator | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.cleanup = cleanup or CleanupOrchestrator(store)
        self._write_lock = asyncio.Lock()

        self.tasks: list[Task] = []
        self.categories: list[Category] = []
        self.urgency_levels: list[UrgencyLevel] = []
        self.history: list[TaskHistory] = []
        self.settings: AppSettings = store.default_settings()
        self.filters = TaskFilters()
        self.loaded = False

    # ---- loading ----

    async def _load_or_default(self, what: str, loader: Callable[[], Awaitable[T]], default: Callable[[], T]) -> T:
        try:
            return await loader()
        except StorageError:
            logger.exception("Failed to load %s; using defaults", what)
            return default()

    async def load_all(self) -> None:
        """(Re)load every collection; failing families fall back to their defaults."""
        self.tasks = await self._load_or_default("tasks", self.store.load_tasks, list)
        self.categories = await self._load_or_default(
            "categories", self.store.load_categories, self.store.default_categories
        )
        self.urgency_levels = await self._load_or_default(
            "urgency levels", self.store.load_urgency_levels, self.store.default_urgency_levels
        )
        self.settings = await self._load_or_default("settings", self.store.load_settings, self.store.default_settings)
        self.history = await self._load_or_default("history", self.store.load_history, list)
        self.loaded = True
        logger.info(
            "Loaded tasks=%d categories=%d urgency_levels=%d history=%d",
            len(self.tasks),
            len(self.categories),
            len(self.urgency_levels),
            len(self.history),
        )

    # ---- tasks ----

    async def add_task(
        self,
        title: str,
        *,
        urgency: str,
        description: str | None = None,
        category_id: str | None = None,
        start_date: datetime | None = None,
        due_date: datetime | None = None,
        subtasks: list[str] | None = None,
    ) -> Task | None:
        if not title or not title.strip():
            raise ValueError("title is required")

        now = self.clock()
        task = Task(
            id=generate_id(now),
            title=title.strip(),
            description=description,
            category_id=category_id,
            urgency=urgency,
            status=TaskStatus.PENDING,
            start_date=start_date,
            due_date=due_date,
            created_at=now,
            updated_at=now,
            subtasks=[
                Subtask(id=generate_id(now), title=st.strip(), completed=False, created_at=now)
                for st in (subtasks or [])
                if st and st.strip()
            ],
        )

        async with self._write_lock:
            try:
                tasks = await self.store.load_tasks()
                tasks.append(task)
                await self.store.save_tasks(tasks)
            except StorageError:
                logger.exception("add_task failed title=%r", task.title)
                return None
            self.tasks = tasks

        logger.debug("Task added id=%s urgency=%s due=%s", task.id, task.urgency, task.due_date)
        return task

    async def _modify_task(self, task_id: str, op: str, mutate: Callable[[Task, datetime], None]) -> Task | None:
        async with self._write_lock:
            now = self.clock()
            try:
                tasks = await self.store.load_tasks()
            except StorageError:
                logger.exception("%s: could not load tasks", op)
                return None

            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                logger.info("%s: task %s not found", op, task_id)
                return None

            mutate(task, now)
            task.updated_at = now

            try:
                await self.store.save_tasks(tasks)
            except StorageError:
                logger.exception("%s: could not save task %s", op, task_id)
                return None

            self.tasks = tasks
            return task

    async def update_task(self, task_id: str, **changes: Any) -> Task | None:
        """
        Partial update; bumps updated_at.

        A status change keeps completed_date in sync unless the caller passes
        completed_date explicitly together with status="completed". Setting
        status="overdue" raises ValueError unless the due day has passed.
        """
        unknown = set(changes) - _UPDATABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {', '.join(sorted(unknown))}")
        if "title" in changes and not str(changes["title"] or "").strip():
            raise ValueError("title is required")

        def mutate(task: Task, now: datetime) -> None:
            fields = dict(changes)
            raw_status = fields.pop("status", None)
            for key, value in fields.items():
                setattr(task, key, value)
            if raw_status is not None:
                status = TaskStatus(raw_status)
                # "overdue" only with a due day that has actually passed.
                if status == TaskStatus.OVERDUE and not is_overdue(
                    dataclasses.replace(task, status=TaskStatus.PENDING), now
                ):
                    raise ValueError("status 'overdue' requires a due date in the past")
                transition_status(task, status, now)
                if status == TaskStatus.COMPLETED and changes.get("completed_date") is not None:
                    task.completed_date = changes["completed_date"]

        return await self._modify_task(task_id, "update_task", mutate)

    async def toggle_task_completion(self, task_id: str) -> Task | None:
        def mutate(task: Task, now: datetime) -> None:
            new_status = TaskStatus.PENDING if task.status == TaskStatus.COMPLETED else TaskStatus.COMPLETED
            transition_status(task, new_status, now)

        return await self._modify_task(task_id, "toggle_task_completion", mutate)

    async def add_subtask(self, task_id: str, title: str) -> Task | None:
        if not title or not title.strip():
            raise ValueError("title is required")

        def mutate(task: Task, now: datetime) -> None:
            task.subtasks.append(Subtask(id=generate_id(now), title=title.strip(), completed=False, created_at=now))

        return await self._modify_task(task_id, "add_subtask", mutate)

    async def toggle_subtask(self, task_id: str, subtask_id: str) -> Task | None:
        def mutate(task: Task, now: datetime) -> None:
            for st in task.subtasks:
                if st.id == subtask_id:
                    st.completed = not st.completed
                    return
            logger.info("toggle_subtask: subtask %s not found in task %s", subtask_id, task_id)

        return await self._modify_task(task_id, "toggle_subtask", mutate)

    async def delete_task(self, task_id: str) -> TaskHistory | None:
        """Move a task into history with reason manual_deletion."""
        async with self._write_lock:
            now = self.clock()
            try:
                tasks = await self.store.load_tasks()
                settings = await self.store.load_settings()
                history = await self.store.load_history()
            except StorageError:
                logger.exception("delete_task: could not load state")
                return None

            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                logger.info("delete_task: task %s not found", task_id)
                return None

            entry = make_history_entry(task, DeletionReason.MANUAL_DELETION, now, settings)
            history.append(entry)
            remaining = [t for t in tasks if t.id != task_id]

            # History first: a failure afterwards leaves the task in both lists, not in neither.
            try:
                await self.store.save_history(history)
            except StorageError:
                logger.exception("delete_task: could not archive task %s", task_id)
                return None
            try:
                await self.store.save_tasks(remaining)
            except StorageError:
                logger.exception("delete_task: task %s archived but still active", task_id)
                self.history = history
                return None

            self.tasks = remaining
            self.history = history
            logger.info("Task %s moved to history (manual_deletion)", task_id)
            return entry

    # ---- categories ----

    async def add_category(self, name: str, color: str) -> Category | None:
        if not name or not name.strip():
            raise ValueError("name is required")

        async with self._write_lock:
            try:
                categories = await self.store.load_categories()
            except StorageError:
                logger.exception("add_category: could not load categories")
                return None
            if _name_taken([(c.id, c.name) for c in categories], name):
                raise ValueError(f"category {name.strip()!r} already exists")

            now = self.clock()
            category = Category(id=generate_id(now), name=name.strip(), color=color, created_at=now)
            categories.append(category)
            try:
                await self.store.save_categories(categories)
            except StorageError:
                logger.exception("add_category: could not save %r", category.name)
                return None
            self.categories = categories
            return category

    async def update_category(
        self, category_id: str, *, name: str | None = None, color: str | None = None
    ) -> Category | None:
        async with self._write_lock:
            try:
                categories = await self.store.load_categories()
            except StorageError:
                logger.exception("update_category: could not load categories")
                return None
            category = next((c for c in categories if c.id == category_id), None)
            if category is None:
                logger.info("update_category: category %s not found", category_id)
                return None
            if name is not None:
                if not name.strip():
                    raise ValueError("name is required")
                if _name_taken([(c.id, c.name) for c in categories], name, exclude_id=category_id):
                    raise ValueError(f"category {name.strip()!r} already exists")
                category.name = name.strip()
            if color is not None:
                category.color = color
            try:
                await self.store.save_categories(categories)
            except StorageError:
                logger.exception("update_category: could not save %s", category_id)
                return None
            self.categories = categories
            return category

    async def delete_category(self, category_id: str) -> bool:
        """Tasks keep their category_id; it resolves to the fallback label afterwards."""
        async with self._write_lock:
            try:
                categories = await self.store.load_categories()
                remaining = [c for c in categories if c.id != category_id]
                if len(remaining) == len(categories):
                    logger.info("delete_category: category %s not found", category_id)
                    return False
                await self.store.save_categories(remaining)
            except StorageError:
                logger.exception("delete_category failed id=%s", category_id)
                return False
            self.categories = remaining
            return True

    # ---- urgency levels ----

    async def add_urgency_level(self, name: str, color: str, priority: int | None = None) -> UrgencyLevel | None:
        """New levels default to the least urgent position (max priority + 1)."""
        if not name or not name.strip():
            raise ValueError("name is required")

        async with self._write_lock:
            try:
                levels = await self.store.load_urgency_levels()
            except StorageError:
                logger.exception("add_urgency_level: could not load urgency levels")
                return None
            if _name_taken([(u.id, u.name) for u in levels], name):
                raise ValueError(f"urgency level {name.strip()!r} already exists")

            if priority is None:
                priority = max((u.priority for u in levels), default=0) + 1

            now = self.clock()
            level = UrgencyLevel(id=generate_id(now), name=name.strip(), color=color, priority=priority, created_at=now)
            levels.append(level)
            try:
                await self.store.save_urgency_levels(levels)
            except StorageError:
                logger.exception("add_urgency_level: could not save %r", level.name)
                return None
            self.urgency_levels = levels
            return level

    async def update_urgency_level(
        self,
        level_id: str,
        *,
        name: str | None = None,
        color: str | None = None,
        priority: int | None = None,
    ) -> UrgencyLevel | None:
        async with self._write_lock:
            try:
                levels = await self.store.load_urgency_levels()
            except StorageError:
                logger.exception("update_urgency_level: could not load urgency levels")
                return None
            level = next((u for u in levels if u.id == level_id), None)
            if level is None:
                logger.info("update_urgency_level: level %s not found", level_id)
                return None
            if name is not None:
                if not name.strip():
                    raise ValueError("name is required")
                if _name_taken([(u.id, u.name) for u in levels], name, exclude_id=level_id):
                    raise ValueError(f"urgency level {name.strip()!r} already exists")
                level.name = name.strip()
            if color is not None:
                level.color = color
            if priority is not None:
                level.priority = int(priority)
            try:
                await self.store.save_urgency_levels(levels)
            except StorageError:
                logger.exception("update_urgency_level: could not save %s", level_id)
                return None
            self.urgency_levels = levels
            return level

    async def delete_urgency_level(self, level_id: str) -> bool:
        async with self._write_lock:
            try:
                levels = await self.store.load_urgency_levels()
                remaining = [u for u in levels if u.id != level_id]
                if len(remaining) == len(levels):
                    logger.info("delete_urgency_level: level %s not found", level_id)
                    return False
                await self.store.save_urgency_levels(remaining)
            except StorageError:
                logger.exception("delete_urgency_level failed id=%s", level_id)
                return False
            self.urgency_levels = remaining
            return True

    # ---- settings ----

    async def update_settings(self, new_settings: AppSettings) -> bool:
        """
        Persist the retention/frequency fields of `new_settings`.

        They are merged onto the stored settings, so a caller holding an older
        copy can never roll back last_cleanup / last_history_cleanup.
        """
        _check_retention(new_settings)
        async with self._write_lock:
            try:
                stored = await self.store.load_settings()
                merged = dataclasses.replace(
                    stored, **{name: getattr(new_settings, name) for name in EDITABLE_SETTINGS}
                )
                await self.store.save_settings(merged)
            except StorageError:
                logger.exception("update_settings failed")
                return False
            self.settings = merged
            return True

    async def _refresh_settings(self) -> None:
        try:
            self.settings = await self.store.load_settings()
        except StorageError:
            logger.exception("Could not refresh settings after maintenance")

    # ---- cleanup ----

    async def run_cleanup(self, *, now: datetime | None = None, reload: bool = True) -> CleanupResult:
        """
        One cleanup pass, bypassing the schedule.

        Never raises for storage problems or a concurrent run; those come back
        as CleanupResult(skipped=True). After a completed pass the in-memory
        settings always reflect the new last_cleanup, even without `reload`.
        """
        if self.cleanup.running:
            logger.warning("Cleanup requested while another run is in progress; ignoring")
            return CleanupResult(skipped=True)

        now = now or self.clock()
        async with self._write_lock:
            try:
                result = await self.cleanup.run(now)
            except CleanupInProgressError:
                logger.warning("Cleanup requested while another run is in progress; ignoring")
                return CleanupResult(skipped=True)
            except StorageError:
                logger.exception("Cleanup aborted")
                return CleanupResult(skipped=True)
            if not reload:
                await self._refresh_settings()

        if reload:
            await self.load_all()
        return result

    async def run_manual_cleanup(self) -> CleanupResult:
        return await self.run_cleanup(reload=True)

    async def purge_history(self, *, now: datetime | None = None) -> int:
        if self.cleanup.running:
            logger.warning("History purge requested while cleanup is in progress; ignoring")
            return 0
        now = now or self.clock()
        async with self._write_lock:
            try:
                removed = await self.cleanup.purge_history(now)
            except (CleanupInProgressError, StorageError):
                logger.exception("History purge aborted")
                return 0
            await self._refresh_settings()
            return removed

    # ---- reference resolution ----

    def category_for(self, task: Task) -> Category | None:
        if not task.category_id:
            return None
        return next((c for c in self.categories if c.id == task.category_id), None)

    def urgency_for(self, task: Task) -> UrgencyLevel | None:
        return next((u for u in self.urgency_levels if u.id == task.urgency), None)

    def category_label(self, task: Task) -> str:
        category = self.category_for(task)
        if category is not None:
            return category.name
        fallback = _DEFAULT_CATEGORY_BY_ID.get(task.category_id or "")
        return fallback[0] if fallback else NO_CATEGORY_LABEL

    def category_color(self, task: Task) -> str:
        category = self.category_for(task)
        if category is not None:
            return category.color
        fallback = _DEFAULT_CATEGORY_BY_ID.get(task.category_id or "")
        return fallback[1] if fallback else NEUTRAL_COLOR

    def urgency_label(self, task: Task) -> str:
        level = self.urgency_for(task)
        if level is not None:
            return level.name
        fallback = _DEFAULT_URGENCY_BY_ID.get(task.urgency)
        return fallback[0] if fallback else task.urgency

    def urgency_color(self, task: Task) -> str:
        level = self.urgency_for(task)
        if level is not None:
            return level.color
        fallback = _DEFAULT_URGENCY_BY_ID.get(task.urgency)
        return fallback[1] if fallback else NEUTRAL_COLOR

    # ---- views ----

    def filter_tasks(self, tasks: list[Task], filters: TaskFilters | None = None) -> list[Task]:
        f = filters or self.filters
        out = list(tasks)

        query = f.search_query.strip().casefold()
        if query:
            out = [
                t
                for t in out
                if query in t.title.casefold()
                or query in (t.description or "").casefold()
                or any(query in st.title.casefold() for st in t.subtasks)
            ]

        if f.categories:
            out = [t for t in out if t.category_id and t.category_id in f.categories]
        if f.urgency:
            out = [t for t in out if t.urgency in f.urgency]
        if f.status:
            out = [t for t in out if t.status in f.status]
        if f.date_range is not None:
            start, end = f.date_range.start, f.date_range.end
            out = [t for t in out if t.due_date is not None and start <= t.due_date <= end]

        if f.sort_by == "newest":
            out.sort(key=lambda t: t.created_at, reverse=True)
        elif f.sort_by == "oldest":
            out.sort(key=lambda t: t.created_at)
        elif f.sort_by == "due_date":
            with_due = sorted((t for t in out if t.due_date is not None), key=lambda t: t.due_date)  # type: ignore[arg-type,return-value]
            out = with_due + [t for t in out if t.due_date is None]
        elif f.sort_by == "urgency":
            # Most urgent (lowest priority number) first; unknown levels last.
            priorities = {u.id: u.priority for u in self.urgency_levels}
            out.sort(key=lambda t: priorities.get(t.urgency, math.inf))
        elif f.sort_by == "title":
            out.sort(key=lambda t: t.title.casefold())

        return out

    @property
    def active_tasks(self) -> list[Task]:
        return self.filter_tasks([t for t in self.tasks if t.status != TaskStatus.COMPLETED])

    @property
    def completed_tasks(self) -> list[Task]:
        return self.filter_tasks([t for t in self.tasks if t.status == TaskStatus.COMPLETED])

    @property
    def incomplete_tasks(self) -> list[Task]:
        return self.filter_tasks(
            [t for t in self.tasks if t.status in (TaskStatus.PENDING, TaskStatus.OVERDUE)]
        )

    def overdue_tasks(self, now: datetime | None = None) -> list[Task]:
        """Live classification; may be ahead of the stored status until the next cleanup."""
        now = now or self.clock()
        return [t for t in self.tasks if is_overdue(t, now)]

    # ---- statistics ----

    def historical_stats(self, now: datetime | None = None) -> stats.HistoricalStats:
        return stats.historical_stats(self.history, now or self.clock())

    def overview(self, now: datetime | None = None) -> stats.Overview:
        return stats.overview(self.tasks, self.history, now or self.clock())

    def category_stats(self) -> list[stats.GroupStats]:
        return stats.category_stats(self.categories, self.tasks, self.history)

    def urgency_stats(self) -> list[stats.GroupStats]:
        return stats.urgency_stats(self.urgency_levels, self.tasks, self.history)

    def recent_completed(self, limit: int = 5) -> list[Task]:
        return stats.recent_completed(self.tasks, limit)
