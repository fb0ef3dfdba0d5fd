# tests/test_lifecycle.py

from __future__ import annotations

from dataclasses import replace

import pytest

from taskminder.tasks.lifecycle import (
    add_months,
    elapsed_days,
    is_eligible_for_history,
    is_history_entry_expired,
    is_overdue,
    make_history_entry,
    reconcile_status,
    should_run_cleanup,
    should_run_history_cleanup,
    transition_status,
)
from taskminder.tasks.task_models import DeletionReason, Subtask, TaskStatus

from .fakes import dt, make_settings, make_task


@pytest.mark.parametrize("status", list(TaskStatus))
def test_no_due_date_is_never_overdue(status: TaskStatus) -> None:
    task = make_task(status=status, created_at=dt(2020, 1, 1))
    assert is_overdue(task, dt(2024, 6, 1)) is False


def test_completed_task_is_never_overdue() -> None:
    task = make_task(status=TaskStatus.COMPLETED, due_date=dt(2023, 1, 1), completed_date=dt(2023, 1, 2))
    assert is_overdue(task, dt(2024, 1, 5)) is False


def test_same_day_task_gets_grace_until_next_day() -> None:
    task = make_task(created_at=dt(2024, 1, 5, 8), due_date=dt(2024, 1, 5, 9))

    assert is_overdue(task, dt(2024, 1, 5, 23, 59)) is False
    assert is_overdue(task, dt(2024, 1, 6, 0, 1)) is True


def test_overdue_is_by_calendar_day_not_instant() -> None:
    task = make_task(created_at=dt(2024, 1, 1), due_date=dt(2024, 1, 5, 9))

    assert is_overdue(task, dt(2024, 1, 5, 10)) is False
    assert is_overdue(task, dt(2024, 1, 6, 0, 0)) is True


def test_stored_overdue_status_is_not_the_source_of_truth() -> None:
    task = make_task(status=TaskStatus.OVERDUE, created_at=dt(2024, 1, 1), due_date=dt(2024, 1, 10))
    assert is_overdue(task, dt(2024, 1, 5)) is False
    assert is_overdue(task, dt(2024, 1, 11)) is True


def test_elapsed_days_is_floored() -> None:
    assert elapsed_days(dt(2024, 1, 1, 12), dt(2024, 1, 8, 11, 59)) == 6
    assert elapsed_days(dt(2024, 1, 1, 12), dt(2024, 1, 8, 12)) == 7


def test_completed_task_expires_after_retention() -> None:
    settings = make_settings(completed_days=7)
    task = make_task(status=TaskStatus.COMPLETED, completed_date=dt(2024, 1, 1, 12))

    assert is_eligible_for_history(task, settings, dt(2024, 1, 8, 11)) == (False, None)
    assert is_eligible_for_history(task, settings, dt(2024, 1, 8, 12)) == (
        True,
        DeletionReason.COMPLETED_EXPIRED,
    )


def test_overdue_task_expires_after_retention() -> None:
    settings = make_settings(overdue_days=3)
    task = make_task(status=TaskStatus.OVERDUE, due_date=dt(2024, 1, 1))

    assert is_eligible_for_history(task, settings, dt(2024, 1, 10)) == (
        True,
        DeletionReason.OVERDUE_EXPIRED,
    )


def test_zero_retention_never_expires() -> None:
    settings = make_settings(completed_days=0, overdue_days=0)
    far_future = dt(2030, 1, 1)

    completed = make_task(status=TaskStatus.COMPLETED, completed_date=dt(2020, 1, 1))
    overdue = make_task(status=TaskStatus.OVERDUE, due_date=dt(2020, 1, 1))

    assert is_eligible_for_history(completed, settings, far_future) == (False, None)
    assert is_eligible_for_history(overdue, settings, far_future) == (False, None)


def test_pending_and_incomplete_records_are_not_eligible() -> None:
    settings = make_settings()
    now = dt(2030, 1, 1)

    assert is_eligible_for_history(make_task(due_date=dt(2020, 1, 1)), settings, now) == (False, None)
    # completed without completed_date cannot age out
    assert is_eligible_for_history(make_task(status=TaskStatus.COMPLETED), settings, now) == (False, None)


def test_history_entry_expiry_is_strict() -> None:
    entry = make_history_entry(make_task(), DeletionReason.CLEANUP, dt(2023, 10, 1), make_settings(history_months=3))
    assert entry.retention_until == dt(2024, 1, 1)

    assert is_history_entry_expired(entry, dt(2024, 1, 1)) is False
    assert is_history_entry_expired(entry, dt(2024, 1, 1, 12, 1)) is True


def test_should_run_cleanup_manual_only_when_zero() -> None:
    settings = make_settings(frequency_days=0, last_cleanup=dt(2000, 1, 1))
    assert should_run_cleanup(settings, dt(2024, 1, 1)) is False


def test_should_run_cleanup_after_frequency() -> None:
    settings = make_settings(frequency_days=7, last_cleanup=dt(2024, 1, 1))

    assert should_run_cleanup(settings, dt(2024, 1, 7)) is False
    assert should_run_cleanup(settings, dt(2024, 1, 8)) is True


def test_should_run_history_cleanup_uses_its_own_cadence() -> None:
    settings = make_settings(
        frequency_days=7,
        history_frequency_days=30,
        last_cleanup=dt(2024, 1, 1),
        last_history_cleanup=dt(2023, 12, 1),
    )
    assert should_run_history_cleanup(settings, dt(2024, 1, 2)) is True
    assert should_run_history_cleanup(replace(settings, history_cleanup_frequency_days=0), dt(2024, 1, 2)) is False


def test_add_months_clamps_day() -> None:
    assert add_months(dt(2024, 1, 31), 1) == dt(2024, 2, 29)
    assert add_months(dt(2023, 11, 15), 3) == dt(2024, 2, 15)
    assert add_months(dt(2024, 5, 5), 0) == dt(2024, 5, 5)


def test_history_entry_is_an_independent_snapshot() -> None:
    task = make_task(subtasks=[Subtask(id="s1", title="step", completed=False, created_at=dt(2023, 12, 1))])
    now = dt(2024, 1, 10)

    entry = make_history_entry(task, DeletionReason.MANUAL_DELETION, now, make_settings(history_months=3))

    task.title = "changed"
    task.subtasks[0].completed = True

    assert entry.task.title == "task t1"
    assert entry.task.subtasks[0].completed is False
    assert entry.id.startswith("t1_")
    assert entry.deleted_at == now
    assert entry.retention_until == dt(2024, 4, 10)


def test_history_entry_ids_differ_for_reused_task_id() -> None:
    settings = make_settings()
    a = make_history_entry(make_task("same"), DeletionReason.MANUAL_DELETION, dt(2024, 1, 1), settings)
    b = make_history_entry(make_task("same"), DeletionReason.MANUAL_DELETION, dt(2024, 1, 2), settings)
    assert a.id != b.id


def test_reconcile_status_marks_and_bumps_updated_at() -> None:
    task = make_task(due_date=dt(2024, 1, 1))
    now = dt(2024, 1, 5)

    assert reconcile_status(task, now) is True
    assert task.status == TaskStatus.OVERDUE
    assert task.updated_at == now

    # already overdue: no second transition
    assert reconcile_status(task, now) is False


def test_transition_status_keeps_completed_date_in_sync() -> None:
    task = make_task()

    transition_status(task, TaskStatus.COMPLETED, dt(2024, 1, 3))
    assert task.completed_date == dt(2024, 1, 3)

    transition_status(task, TaskStatus.PENDING, dt(2024, 1, 4))
    assert task.completed_date is None
    assert task.status == TaskStatus.PENDING
    assert task.updated_at == dt(2024, 1, 4)
