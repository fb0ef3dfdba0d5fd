# tests/test_cleanup.py

from __future__ import annotations

import asyncio

import pytest

from taskminder.tasks.cleanup import CleanupOrchestrator
from taskminder.tasks.errors import CleanupInProgressError, StorageError
from taskminder.tasks.lifecycle import make_history_entry
from taskminder.tasks.task_models import DeletionReason, TaskStatus
from taskminder.tasks.task_store import KEY_HISTORY, KEY_SETTINGS, KEY_TASKS, TaskStore

from .fakes import (
    BlockingKeyValueStore,
    FailingKeyValueStore,
    FixedClock,
    MemoryKeyValueStore,
    dt,
    make_settings,
    make_task,
)


@pytest.mark.asyncio
async def test_pending_past_due_is_marked_overdue_but_stays_active(store: TaskStore) -> None:
    await store.save_tasks([make_task(due_date=dt(2024, 1, 1), created_at=dt(2023, 12, 1))])
    await store.save_settings(make_settings(overdue_days=3, completed_days=7))
    now = dt(2024, 1, 5)

    result = await CleanupOrchestrator(store).run(now)

    assert result.overdue_marked == 1
    assert result.overdue_moved_to_history == 0
    tasks = await store.load_tasks()
    assert [t.status for t in tasks] == [TaskStatus.OVERDUE]
    assert tasks[0].updated_at == now
    assert await store.load_history() == []


@pytest.mark.asyncio
async def test_expired_overdue_task_moves_to_history(store: TaskStore) -> None:
    await store.save_tasks([make_task(status=TaskStatus.OVERDUE, due_date=dt(2024, 1, 1))])
    await store.save_settings(make_settings(overdue_days=3, history_months=3))
    now = dt(2024, 1, 10)

    result = await CleanupOrchestrator(store).run(now)

    assert result.overdue_moved_to_history == 1
    assert await store.load_tasks() == []
    history = await store.load_history()
    assert len(history) == 1
    assert history[0].deletion_reason == DeletionReason.OVERDUE_EXPIRED
    assert history[0].deleted_at == now
    assert history[0].retention_until == dt(2024, 4, 10)
    assert history[0].task.id == "t1"


@pytest.mark.asyncio
async def test_completed_tasks_expire_unless_retention_is_zero(store: TaskStore) -> None:
    await store.save_tasks(
        [make_task("old", status=TaskStatus.COMPLETED, completed_date=dt(2023, 12, 1))]
    )
    await store.save_settings(make_settings(completed_days=0))

    result = await CleanupOrchestrator(store).run(dt(2024, 1, 5))
    assert result.completed_moved_to_history == 0
    assert [t.id for t in await store.load_tasks()] == ["old"]

    await store.save_settings(make_settings(completed_days=7))
    result = await CleanupOrchestrator(store).run(dt(2024, 1, 5))
    assert result.completed_moved_to_history == 1
    assert [h.deletion_reason for h in await store.load_history()] == [DeletionReason.COMPLETED_EXPIRED]


@pytest.mark.asyncio
async def test_only_eligible_tasks_leave_and_order_is_kept(store: TaskStore) -> None:
    tasks = [
        make_task("a", due_date=dt(2024, 2, 1)),
        make_task("b", status=TaskStatus.COMPLETED, completed_date=dt(2023, 12, 1)),
        make_task("c"),
        make_task("d", status=TaskStatus.OVERDUE, due_date=dt(2024, 1, 4)),
        make_task("e", status=TaskStatus.COMPLETED, completed_date=dt(2024, 1, 4)),
    ]
    await store.save_tasks(tasks)
    await store.save_settings(make_settings(completed_days=7, overdue_days=3))

    result = await CleanupOrchestrator(store).run(dt(2024, 1, 5))

    assert [t.id for t in await store.load_tasks()] == ["a", "c", "d", "e"]
    assert [h.task.id for h in await store.load_history()] == ["b"]
    assert result.completed_moved_to_history == 1
    assert result.overdue_moved_to_history == 0
    assert result.overdue_marked == 0


@pytest.mark.asyncio
async def test_expired_history_is_purged(store: TaskStore) -> None:
    settings = make_settings(history_months=3)
    old = make_history_entry(make_task("old"), DeletionReason.MANUAL_DELETION, dt(2023, 10, 1, 0), settings)
    fresh = make_history_entry(make_task("fresh"), DeletionReason.MANUAL_DELETION, dt(2024, 1, 1), settings)
    assert old.retention_until == dt(2024, 1, 1, 0)

    await store.save_history([old, fresh])
    await store.save_settings(settings)

    result = await CleanupOrchestrator(store).run(dt(2024, 2, 1))

    assert result.history_cleaned == 1
    assert [h.task.id for h in await store.load_history()] == ["fresh"]


@pytest.mark.asyncio
async def test_run_records_last_cleanup(store: TaskStore) -> None:
    await store.save_settings(make_settings(last_cleanup=dt(2023, 1, 1)))
    now = dt(2024, 1, 5)

    await CleanupOrchestrator(store).run(now)

    settings = await store.load_settings()
    assert settings.last_cleanup == now
    assert settings.last_history_cleanup == now


@pytest.mark.asyncio
async def test_history_is_written_before_tasks(kv: MemoryKeyValueStore, store: TaskStore) -> None:
    await store.save_tasks([make_task(status=TaskStatus.OVERDUE, due_date=dt(2023, 1, 1))])
    await store.save_settings(make_settings())
    kv.writes.clear()

    await CleanupOrchestrator(store).run(dt(2024, 1, 5))

    assert kv.writes == [KEY_HISTORY, KEY_TASKS, KEY_SETTINGS]


@pytest.mark.asyncio
async def test_history_write_failure_leaves_tasks_untouched() -> None:
    kv = FailingKeyValueStore()
    store = TaskStore(kv, clock=FixedClock(dt(2024, 1, 5)))
    await store.save_tasks([make_task(status=TaskStatus.OVERDUE, due_date=dt(2023, 1, 1))])
    await store.save_settings(make_settings())
    before = dict(kv.data)

    kv.fail_set = {KEY_HISTORY}
    with pytest.raises(StorageError):
        await CleanupOrchestrator(store).run(dt(2024, 1, 5))

    assert kv.data == before


@pytest.mark.asyncio
async def test_interrupted_run_does_not_archive_twice() -> None:
    kv = FailingKeyValueStore()
    store = TaskStore(kv, clock=FixedClock(dt(2024, 1, 5)))
    await store.save_tasks([make_task(status=TaskStatus.OVERDUE, due_date=dt(2023, 1, 1))])
    await store.save_settings(make_settings())
    orchestrator = CleanupOrchestrator(store)

    kv.fail_set = {KEY_TASKS}
    with pytest.raises(StorageError):
        await orchestrator.run(dt(2024, 1, 5))

    # archived but still active: present in both, never in neither
    assert [t.id for t in await store.load_tasks()] == ["t1"]
    assert [h.task.id for h in await store.load_history()] == ["t1"]

    kv.fail_set = set()
    result = await orchestrator.run(dt(2024, 1, 5))

    assert result.overdue_moved_to_history == 1
    assert await store.load_tasks() == []
    assert [h.task.id for h in await store.load_history()] == ["t1"]


@pytest.mark.asyncio
async def test_load_failure_aborts_without_writes() -> None:
    kv = FailingKeyValueStore(fail_get={KEY_TASKS})
    store = TaskStore(kv, clock=FixedClock(dt(2024, 1, 5)))

    with pytest.raises(StorageError):
        await CleanupOrchestrator(store).run(dt(2024, 1, 5))

    assert kv.writes == []


@pytest.mark.asyncio
async def test_second_run_is_rejected_while_first_is_in_flight() -> None:
    kv = BlockingKeyValueStore()
    store = TaskStore(kv, clock=FixedClock(dt(2024, 1, 5)))
    orchestrator = CleanupOrchestrator(store)

    first = asyncio.create_task(orchestrator.run(dt(2024, 1, 5)))
    await kv.entered.wait()
    assert orchestrator.running

    with pytest.raises(CleanupInProgressError):
        await orchestrator.run(dt(2024, 1, 5))

    kv.release.set()
    result = await first
    assert result.has_changes is False
    assert orchestrator.running is False


@pytest.mark.asyncio
async def test_purge_history_only_touches_history(kv: MemoryKeyValueStore, store: TaskStore) -> None:
    settings = make_settings(history_months=1, last_history_cleanup=dt(2023, 1, 1))
    await store.save_settings(settings)
    await store.save_tasks([make_task(status=TaskStatus.OVERDUE, due_date=dt(2023, 1, 1))])
    await store.save_history(
        [make_history_entry(make_task("old"), DeletionReason.CLEANUP, dt(2023, 6, 1), settings)]
    )
    kv.writes.clear()
    now = dt(2024, 1, 5)

    removed = await CleanupOrchestrator(store).purge_history(now)

    assert removed == 1
    assert KEY_TASKS not in kv.writes
    assert (await store.load_settings()).last_history_cleanup == now
    assert [t.id for t in await store.load_tasks()] == ["t1"]


@pytest.mark.asyncio
async def test_half_finished_manual_delete_does_not_hide_expiry() -> None:
    store = TaskStore(MemoryKeyValueStore(), clock=FixedClock(dt(2024, 1, 5)))
    settings = make_settings(completed_days=7)
    task = make_task(status=TaskStatus.COMPLETED, completed_date=dt(2023, 12, 1))
    await store.save_tasks([task])
    await store.save_settings(settings)
    # delete_task wrote its history entry, then failed to shrink the task list
    await store.save_history([make_history_entry(task, DeletionReason.MANUAL_DELETION, dt(2024, 1, 2), settings)])

    result = await CleanupOrchestrator(store).run(dt(2024, 1, 5))

    assert result.completed_moved_to_history == 1
    assert await store.load_tasks() == []
    reasons = [h.deletion_reason for h in await store.load_history()]
    assert reasons == [DeletionReason.MANUAL_DELETION, DeletionReason.COMPLETED_EXPIRED]
