# tests/test_commands.py

from __future__ import annotations

import pytest

from taskminder.cli.commands import CommandRegistry, registry
from taskminder.tasks.task_models import TaskStatus

from .fakes import dt, make_settings, make_task


@pytest.mark.asyncio
async def test_command_registry_routes_and_aliases(state) -> None:
    reg = CommandRegistry()
    seen: list[list[str]] = []

    async def echo(state, args):
        seen.append(args)
        return "ok"

    reg.register("echo", echo, "echo", aliases=["e"])

    assert await reg.handle(state, "/echo a b") == "ok"
    assert await reg.handle(state, "/E c") == "ok"
    assert seen == [["a", "b"], ["c"]]


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")


@pytest.mark.asyncio
async def test_value_errors_become_replies(state) -> None:
    reply = await registry.handle(state, "/done nothing-here")
    assert reply is not None and reply.startswith("Error:")


@pytest.mark.asyncio
async def test_add_then_list(state) -> None:
    await state.tasks.load_all()

    added = await registry.handle(state, "/add Pay rent due=2024-01-31 urgency=alta category=finanzas")
    listing = await registry.handle(state, "/list")

    assert added is not None and added.startswith("Added:")
    assert listing is not None
    assert "Pay rent" in listing
    assert "Alta" in listing
    assert "Finanzas" in listing


@pytest.mark.asyncio
async def test_done_and_delete(state) -> None:
    await state.tasks.store.save_tasks([make_task("1700000000000-abcdefghi")])
    await state.tasks.load_all()

    reply = await registry.handle(state, "/done abcdefghi")
    assert reply is not None and reply.startswith("Completed:")
    assert state.tasks.tasks[0].status == TaskStatus.COMPLETED

    reply = await registry.handle(state, "/rm abcdefghi")
    assert reply is not None and reply.startswith("Moved to history:")
    assert state.tasks.tasks == []
    assert "task 1700000000000-abcdefghi" in (await registry.handle(state, "/history") or "")


@pytest.mark.asyncio
async def test_cleanup_reports_counts(state) -> None:
    await state.tasks.store.save_tasks([make_task(due_date=dt(2024, 1, 1))])
    await state.tasks.store.save_settings(make_settings())
    await state.tasks.load_all()

    reply = await registry.handle(state, "/cleanup")

    assert reply is not None
    assert "Marked overdue: 1" in reply
    assert state.tasks.tasks[0].status == TaskStatus.OVERDUE


@pytest.mark.asyncio
async def test_settings_show_and_set(state) -> None:
    await state.tasks.load_all()

    shown = await registry.handle(state, "/settings")
    assert shown is not None and "cleanup_frequency_days = 7" in shown

    reply = await registry.handle(state, "/settings cleanup_frequency_days 0")
    assert reply == "cleanup_frequency_days set to 0."
    assert state.tasks.settings.cleanup_frequency_days == 0

    usage = await registry.handle(state, "/settings cleanup_frequency_days -1")
    assert usage is not None and usage.startswith("Usage:")
