# src/taskminder/tasks/task_store.py

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

from ..core.ports import Clock, KeyValueStore, local_now
from .errors import StorageError
from .task_models import (
    AppSettings,
    Category,
    DeletionReason,
    Subtask,
    Task,
    TaskHistory,
    TaskStatus,
    UrgencyLevel,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_TASKS = "tasks"
KEY_CATEGORIES = "categories"
KEY_URGENCY_LEVELS = "urgencyLevels"
KEY_SETTINGS = "settings"
KEY_HISTORY = "taskHistory"

NEUTRAL_COLOR = "#6B7280"

# (id, name, color). Ids are stable across installs; tasks reference them.
DEFAULT_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("trabajo", "Trabajo", "#3B82F6"),
    ("personal", "Personal", "#10B981"),
    ("salud", "Salud", "#EF4444"),
    ("finanzas", "Finanzas", "#F59E0B"),
)

# (id, name, color, priority). Lower priority = more urgent.
DEFAULT_URGENCY_LEVELS: tuple[tuple[str, str, str, int], ...] = (
    ("alta", "Alta", "#EF4444", 1),
    ("media", "Media", "#F59E0B", 2),
    ("baja", "Baja", "#10B981", 3),
)


@dataclass(frozen=True, slots=True)
class RetentionDefaults:
    """Numeric AppSettings used when nothing is stored yet."""

    completed_task_retention_days: int = 30
    overdue_task_retention_days: int = 90
    history_retention_months: int = 3
    history_cleanup_frequency_days: int = 30
    cleanup_frequency_days: int = 7


class TaskStore:
    """
    JSON persistence adapter over a KeyValueStore.

    Each entity family lives under one fixed key as a JSON document:
    - tasks, categories, urgencyLevels, taskHistory -> arrays
    - settings -> single object

    Field names are camelCase; instants are ISO-8601 strings and are
    re-hydrated into aware datetimes on every load (numeric epoch millis
    and a trailing "Z" are accepted too).

    Errors:
    - missing key -> built-in default
    - backend failure or unparseable payload -> StorageError
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        clock: Clock = local_now,
        defaults: RetentionDefaults | None = None,
    ) -> None:
        self._kv = kv
        self._clock = clock
        self._defaults = defaults or RetentionDefaults()

    # ---- low-level helpers ----

    async def _read_json(self, key: str) -> Any | None:
        try:
            raw = await self._kv.get(key)
        except Exception as e:
            raise StorageError("get", key, e) from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StorageError("decode", key, e) from e

    async def _write_json(self, key: str, payload: Any) -> None:
        try:
            raw = json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError("encode", key, e) from e
        try:
            await self._kv.set(key, raw)
        except Exception as e:
            raise StorageError("set", key, e) from e

    async def _load_list(self, key: str, decode: Callable[[dict[str, Any]], T]) -> list[T] | None:
        data = await self._read_json(key)
        if data is None:
            return None
        if not isinstance(data, list):
            raise StorageError("decode", key, TypeError(f"expected a JSON array, got {type(data).__name__}"))
        try:
            return [decode(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError("decode", key, e) from e

    @staticmethod
    def _dt_to_str(value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    @staticmethod
    def _str_to_dt(raw: Any) -> datetime | None:
        if raw is None or raw == "":
            return None
        if isinstance(raw, bool):
            raise ValueError(f"not a date: {raw!r}")
        if isinstance(raw, (int, float)):
            return datetime.fromtimestamp(raw / 1000.0, tz=timezone.utc)
        if isinstance(raw, str):
            dt = datetime.fromisoformat(raw)
            # Naive values are taken as local wall-clock time.
            return dt if dt.tzinfo is not None else dt.astimezone()
        raise ValueError(f"not a date: {raw!r}")

    def _required_dt(self, raw: Any) -> datetime:
        return self._str_to_dt(raw) or self._clock()

    # ---- (de)serialization ----

    def _serialize_task(self, task: Task) -> dict[str, Any]:
        return {
            "id": task.id,
            "title": task.title,
            "description": task.description,
            "categoryId": task.category_id,
            "urgency": task.urgency,
            "status": task.status.value,
            "startDate": self._dt_to_str(task.start_date),
            "dueDate": self._dt_to_str(task.due_date),
            "completedDate": self._dt_to_str(task.completed_date),
            "createdAt": self._dt_to_str(task.created_at),
            "updatedAt": self._dt_to_str(task.updated_at),
            "subtasks": [
                {
                    "id": st.id,
                    "title": st.title,
                    "completed": st.completed,
                    "createdAt": self._dt_to_str(st.created_at),
                }
                for st in task.subtasks
            ],
        }

    def _deserialize_task(self, data: dict[str, Any]) -> Task:
        created_at = self._required_dt(data.get("createdAt"))
        return Task(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=data.get("description"),
            category_id=data.get("categoryId"),
            urgency=str(data.get("urgency", "")),
            status=TaskStatus.from_db(data.get("status")),
            start_date=self._str_to_dt(data.get("startDate")),
            due_date=self._str_to_dt(data.get("dueDate")),
            completed_date=self._str_to_dt(data.get("completedDate")),
            created_at=created_at,
            updated_at=self._str_to_dt(data.get("updatedAt")) or created_at,
            subtasks=[
                Subtask(
                    id=str(st["id"]),
                    title=str(st.get("title", "")),
                    completed=bool(st.get("completed", False)),
                    created_at=self._required_dt(st.get("createdAt")),
                )
                for st in data.get("subtasks") or []
            ],
        )

    def _serialize_category(self, category: Category) -> dict[str, Any]:
        return {
            "id": category.id,
            "name": category.name,
            "color": category.color,
            "createdAt": self._dt_to_str(category.created_at),
        }

    def _deserialize_category(self, data: dict[str, Any]) -> Category:
        return Category(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            color=str(data.get("color", NEUTRAL_COLOR)),
            created_at=self._required_dt(data.get("createdAt")),
        )

    def _serialize_urgency(self, level: UrgencyLevel) -> dict[str, Any]:
        return {
            "id": level.id,
            "name": level.name,
            "color": level.color,
            "priority": level.priority,
            "createdAt": self._dt_to_str(level.created_at),
        }

    def _deserialize_urgency(self, data: dict[str, Any]) -> UrgencyLevel:
        return UrgencyLevel(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            color=str(data.get("color", NEUTRAL_COLOR)),
            priority=int(data.get("priority", 0)),
            created_at=self._required_dt(data.get("createdAt")),
        )

    def _serialize_settings(self, settings: AppSettings) -> dict[str, Any]:
        return {
            "completedTaskRetentionDays": settings.completed_task_retention_days,
            "overdueTaskRetentionDays": settings.overdue_task_retention_days,
            "historyRetentionMonths": settings.history_retention_months,
            "historyCleanupFrequencyDays": settings.history_cleanup_frequency_days,
            "cleanupFrequencyDays": settings.cleanup_frequency_days,
            "lastCleanup": self._dt_to_str(settings.last_cleanup),
            "lastHistoryCleanup": self._dt_to_str(settings.last_history_cleanup),
        }

    def _deserialize_settings(self, data: dict[str, Any]) -> AppSettings:
        d = self._defaults

        def pick(*names: str, default: int) -> int:
            for n in names:
                v = data.get(n)
                if v is not None:
                    return max(0, int(v))
            return default

        last_cleanup = self._required_dt(data.get("lastCleanup"))
        return AppSettings(
            # Older payloads used "...ExpirationDays".
            completed_task_retention_days=pick(
                "completedTaskRetentionDays",
                "completedTaskExpirationDays",
                default=d.completed_task_retention_days,
            ),
            overdue_task_retention_days=pick(
                "overdueTaskRetentionDays",
                "overdueTaskExpirationDays",
                default=d.overdue_task_retention_days,
            ),
            history_retention_months=pick("historyRetentionMonths", default=d.history_retention_months),
            history_cleanup_frequency_days=pick(
                "historyCleanupFrequencyDays", default=d.history_cleanup_frequency_days
            ),
            cleanup_frequency_days=pick("cleanupFrequencyDays", default=d.cleanup_frequency_days),
            last_cleanup=last_cleanup,
            last_history_cleanup=self._str_to_dt(data.get("lastHistoryCleanup")) or last_cleanup,
        )

    def _serialize_history(self, entry: TaskHistory) -> dict[str, Any]:
        return {
            "id": entry.id,
            "task": self._serialize_task(entry.task),
            "deletedAt": self._dt_to_str(entry.deleted_at),
            "deletionReason": entry.deletion_reason.value,
            "retentionUntil": self._dt_to_str(entry.retention_until),
        }

    def _deserialize_history(self, data: dict[str, Any]) -> TaskHistory:
        deleted_at = self._required_dt(data.get("deletedAt"))
        return TaskHistory(
            id=str(data["id"]),
            task=self._deserialize_task(data["task"]),
            deleted_at=deleted_at,
            deletion_reason=DeletionReason.from_db(data.get("deletionReason")),
            retention_until=self._str_to_dt(data.get("retentionUntil")) or deleted_at,
        )

    # ---- defaults ----

    def default_categories(self) -> list[Category]:
        now = self._clock()
        return [Category(id=cid, name=name, color=color, created_at=now) for cid, name, color in DEFAULT_CATEGORIES]

    def default_urgency_levels(self) -> list[UrgencyLevel]:
        now = self._clock()
        return [
            UrgencyLevel(id=uid, name=name, color=color, priority=prio, created_at=now)
            for uid, name, color, prio in DEFAULT_URGENCY_LEVELS
        ]

    def default_settings(self) -> AppSettings:
        now = self._clock()
        d = self._defaults
        return AppSettings(
            completed_task_retention_days=d.completed_task_retention_days,
            overdue_task_retention_days=d.overdue_task_retention_days,
            history_retention_months=d.history_retention_months,
            history_cleanup_frequency_days=d.history_cleanup_frequency_days,
            cleanup_frequency_days=d.cleanup_frequency_days,
            last_cleanup=now,
            last_history_cleanup=now,
        )

    # ---- public API ----

    async def load_tasks(self) -> list[Task]:
        tasks = await self._load_list(KEY_TASKS, self._deserialize_task)
        logger.debug("load_tasks count=%s", None if tasks is None else len(tasks))
        return tasks or []

    async def save_tasks(self, tasks: list[Task]) -> None:
        await self._write_json(KEY_TASKS, [self._serialize_task(t) for t in tasks])
        logger.debug("save_tasks count=%d", len(tasks))

    async def load_categories(self) -> list[Category]:
        categories = await self._load_list(KEY_CATEGORIES, self._deserialize_category)
        if categories is None:
            logger.debug("load_categories: nothing stored, using defaults")
            return self.default_categories()
        return categories

    async def save_categories(self, categories: list[Category]) -> None:
        await self._write_json(KEY_CATEGORIES, [self._serialize_category(c) for c in categories])

    async def load_urgency_levels(self) -> list[UrgencyLevel]:
        levels = await self._load_list(KEY_URGENCY_LEVELS, self._deserialize_urgency)
        if levels is None:
            logger.debug("load_urgency_levels: nothing stored, using defaults")
            return self.default_urgency_levels()
        return levels

    async def save_urgency_levels(self, levels: list[UrgencyLevel]) -> None:
        await self._write_json(KEY_URGENCY_LEVELS, [self._serialize_urgency(u) for u in levels])

    async def load_settings(self) -> AppSettings:
        """
        Return stored AppSettings, creating them on first read.

        The defaults are written back so that last_cleanup is anchored to the
        first start; a failed write-back is logged and the defaults returned.
        """
        data = await self._read_json(KEY_SETTINGS)
        if data is None:
            settings = self.default_settings()
            try:
                await self.save_settings(settings)
                logger.info("Initialized default settings")
            except StorageError:
                logger.warning("Could not persist default settings", exc_info=True)
            return settings
        if not isinstance(data, dict):
            raise StorageError("decode", KEY_SETTINGS, TypeError("expected a JSON object"))
        try:
            return self._deserialize_settings(data)
        except (TypeError, ValueError) as e:
            raise StorageError("decode", KEY_SETTINGS, e) from e

    async def save_settings(self, settings: AppSettings) -> None:
        await self._write_json(KEY_SETTINGS, self._serialize_settings(settings))

    async def load_history(self) -> list[TaskHistory]:
        history = await self._load_list(KEY_HISTORY, self._deserialize_history)
        return history or []

    async def save_history(self, history: list[TaskHistory]) -> None:
        await self._write_json(KEY_HISTORY, [self._serialize_history(h) for h in history])
        logger.debug("save_history count=%d", len(history))
