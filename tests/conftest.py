# tests/conftest.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from taskminder.core.state import AppState
from taskminder.tasks.task_api import TaskService
from taskminder.tasks.task_store import TaskStore

from .fakes import FixedClock, MemoryKeyValueStore, dt


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(dt(2024, 1, 5))


@pytest.fixture()
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture()
def store(kv: MemoryKeyValueStore, clock: FixedClock) -> TaskStore:
    return TaskStore(kv, clock=clock)


@pytest.fixture()
def service(store: TaskStore, clock: FixedClock) -> TaskService:
    return TaskService(store, clock=clock)


@pytest.fixture()
def state(kv: MemoryKeyValueStore, clock: FixedClock, service: TaskService) -> AppState:
    """
    AppState wired with deterministic fakes.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    settings = SimpleNamespace(app_name="taskminder-test", startup_cleanup=True)
    return AppState(settings=settings, kv=kv, clock=clock, tasks=service)
