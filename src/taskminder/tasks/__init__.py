"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskHistory, AppSettings, ...)
- task_store.py: JSON persistence over an async key-value store
- lifecycle.py: pure policy (overdue, expiry, retention, schedule)
- cleanup.py: cleanup orchestrator (one run at a time)
- task_scheduler.py: one-shot startup cleanup gate
- task_api.py: TaskService, the entry points used by the UI layer
- stats.py: statistics over active tasks + history
"""
