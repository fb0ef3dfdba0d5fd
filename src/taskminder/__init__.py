"""taskminder: task lifecycle, retention and cleanup for a personal task list."""

__version__ = "0.1.0"
