# src/taskminder/cli/commands.py

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..core.state import AppState
from ..tasks.task_api import EDITABLE_SETTINGS
from ..tasks.task_models import Task, TaskStatus

CommandHandler = Callable[[AppState, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(state, args)
        except ValueError as e:
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def _parse_date(raw: str) -> datetime:
    try:
        return datetime.fromisoformat(raw).astimezone()
    except ValueError:
        raise ValueError(f"bad date {raw!r}, expected YYYY-MM-DD") from None


def format_task(state: AppState, task: Task) -> str:
    svc = state.tasks
    done = sum(1 for st in task.subtasks if st.completed)
    sub = f" [{done}/{len(task.subtasks)}]" if task.subtasks else ""
    return (
        f"{task.id[-9:]} {task.status.value:<9} {task.title}{sub} "
        f"({svc.urgency_label(task)}, {svc.category_label(task)}) due {_fmt_date(task.due_date)}"
    )


def _find_task(state: AppState, ref: str) -> Task:
    matches = [t for t in state.tasks.tasks if t.id == ref or t.id.endswith(ref)]
    if not matches:
        raise ValueError(f"no task matches {ref!r}")
    if len(matches) > 1:
        raise ValueError(f"{ref!r} is ambiguous ({len(matches)} tasks)")
    return matches[0]


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list            -> active (not completed)
    /list completed  -> completed
    /list incomplete -> pending + overdue
    /list overdue    -> live overdue check
    /list all        -> everything
    """
    which = args[0].lower() if args else "active"
    svc = state.tasks
    views = {
        "active": lambda: svc.active_tasks,
        "completed": lambda: svc.completed_tasks,
        "incomplete": lambda: svc.incomplete_tasks,
        "overdue": lambda: svc.overdue_tasks(),
        "all": lambda: svc.filter_tasks(svc.tasks),
    }
    view = views.get(which)
    if view is None:
        return f"Usage: /list [{' | '.join(views)}]"

    tasks = view()
    if not tasks:
        return f"No {which} tasks."
    return "\n".join([f"{which.capitalize()} tasks ({len(tasks)}):"] + [format_task(state, t) for t in tasks])


async def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <title words> [due=YYYY-MM-DD] [urgency=<id>] [category=<id>]"""
    opts: dict[str, str] = {}
    words: list[str] = []
    for a in args:
        key, sep, value = a.partition("=")
        if sep and key in ("due", "urgency", "category"):
            opts[key] = value
        else:
            words.append(a)

    if not words:
        return "Usage: /add <title> [due=YYYY-MM-DD] [urgency=alta|media|baja] [category=<id>]"

    task = await state.tasks.add_task(
        " ".join(words),
        urgency=opts.get("urgency", "media"),
        category_id=opts.get("category"),
        due_date=_parse_date(opts["due"]) if "due" in opts else None,
    )
    if task is None:
        return "Could not save the task (see log)."
    return f"Added: {format_task(state, task)}"


async def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <task id>"
    task = _find_task(state, args[0])
    updated = await state.tasks.toggle_task_completion(task.id)
    if updated is None:
        return "Could not update the task (see log)."
    verb = "Completed" if updated.status == TaskStatus.COMPLETED else "Reopened"
    return f"{verb}: {format_task(state, updated)}"


async def cmd_delete(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /delete <task id>"
    task = _find_task(state, args[0])
    entry = await state.tasks.delete_task(task.id)
    if entry is None:
        return "Could not delete the task (see log)."
    return f"Moved to history: {task.title} (kept until {_fmt_date(entry.retention_until)})"


async def cmd_cleanup(state: AppState, args: list[str]) -> str:
    result = await state.tasks.run_manual_cleanup()
    if result.skipped:
        return "Cleanup did not run (already running or storage error, see log)."
    return (
        "Cleanup finished:\n"
        f"  Completed -> history: {result.completed_moved_to_history}\n"
        f"  Overdue -> history: {result.overdue_moved_to_history}\n"
        f"  Marked overdue: {result.overdue_marked}\n"
        f"  History purged: {result.history_cleaned}"
    )


async def cmd_history(state: AppState, args: list[str]) -> str:
    limit = int(args[0]) if args and args[0].isdigit() else 10
    entries = sorted(state.tasks.history, key=lambda h: h.deleted_at, reverse=True)[:limit]
    if not entries:
        return "History is empty."
    lines = [f"History (latest {len(entries)} of {len(state.tasks.history)}):"]
    for h in entries:
        lines.append(
            f"  {_fmt_date(h.deleted_at)} {h.deletion_reason.value:<17} {h.task.title} "
            f"(until {_fmt_date(h.retention_until)})"
        )
    return "\n".join(lines)


async def cmd_stats(state: AppState, args: list[str]) -> str:
    svc = state.tasks
    ov = svc.overview()
    hist = svc.historical_stats()
    lines = [
        "Statistics:",
        f"  Active: {ov.total} (completed {ov.completed}, pending {ov.pending}, overdue {ov.overdue})",
        f"  Completion rate: {ov.completion_rate:.1f}% (all time {ov.all_time_completion_rate:.1f}%)",
        f"  History: {hist.total_historical} (completed {hist.completed_historical}, "
        f"this month {hist.monthly_completed}, success {hist.completion_rate:.1f}%)",
    ]
    for title, rows in (("By category:", svc.category_stats()), ("By urgency:", svc.urgency_stats())):
        if rows:
            lines.append(f"  {title}")
            lines.extend(f"    {r.name}: {r.completed_tasks}/{r.total_tasks} ({r.completion_rate:.0f}%)" for r in rows)
    return "\n".join(lines)


async def cmd_settings(state: AppState, args: list[str]) -> str:
    """
    /settings               -> show
    /settings <field> <n>   -> set a retention/frequency value
    """
    current = state.tasks.settings
    if not args:
        lines = ["Settings:"]
        lines.extend(f"  {name} = {getattr(current, name)}" for name in EDITABLE_SETTINGS)
        lines.append(f"  last_cleanup = {current.last_cleanup.isoformat()}")
        lines.append(f"  last_history_cleanup = {current.last_history_cleanup.isoformat()}")
        return "\n".join(lines)

    if len(args) != 2 or args[0] not in EDITABLE_SETTINGS or not args[1].isdigit():
        return f"Usage: /settings <{' | '.join(EDITABLE_SETTINGS)}> <non-negative integer>"

    updated = dataclasses.replace(current, **{args[0]: int(args[1])})
    if not await state.tasks.update_settings(updated):
        return "Could not save settings (see log)."
    return f"{args[0]} set to {args[1]}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="List tasks: /list [active|completed|incomplete|overdue|all].", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a task: /add <title> [due=YYYY-MM-DD] [urgency=..] [category=..].")
registry.register("done", cmd_done, help_text="Toggle completion: /done <task id>.")
registry.register("delete", cmd_delete, help_text="Move a task to history: /delete <task id>.", aliases=["rm"])
registry.register("cleanup", cmd_cleanup, help_text="Run cleanup now (ignores the schedule).")
registry.register("history", cmd_history, help_text="Show archived tasks: /history [n].")
registry.register("stats", cmd_stats, help_text="Show statistics (active + history).")
registry.register("settings", cmd_settings, help_text="Show or change retention settings.")
