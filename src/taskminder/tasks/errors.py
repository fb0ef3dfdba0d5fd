# src/taskminder/tasks/errors.py

"""Exceptions raised by the task subsystem."""

from __future__ import annotations


class TaskminderError(Exception):
    """Base exception for all task subsystem errors."""


class StorageError(TaskminderError):
    """A key-value store read or write failed (or returned unparseable data)."""

    def __init__(self, operation: str, key: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"storage {operation} failed for key={key!r}{detail}")


class CleanupInProgressError(TaskminderError):
    """A cleanup run was triggered while another one was still in flight."""
