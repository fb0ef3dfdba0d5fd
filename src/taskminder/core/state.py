# src/taskminder/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..tasks.task_api import TaskService
from .ports import Clock, KeyValueStore


@dataclass
class AppState:
    """
    Explicit context object handed to commands and the startup gate.

    Replaces module-level state: everything an operation needs (settings,
    storage, clock, the task service) is reachable from here.
    """

    settings: object
    kv: KeyValueStore
    clock: Clock
    tasks: TaskService
