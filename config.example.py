# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
User-editable retention settings are stored with the tasks; the TASKMINDER_*_DAYS/MONTHS
variables below only seed them on the very first start.

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TASKMINDER_APP_NAME": "App display name (default: taskminder).",
    "TASKMINDER_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Switches
    "TASKMINDER_CONSOLE_ENABLED": "Start the console REPL after startup (true/false, default: true).",
    "TASKMINDER_STARTUP_CLEANUP": "Run the scheduled cleanup check at startup (true/false, default: true).",
    # Paths (gitignored)
    "TASKMINDER_DATA_DIR": "Local data directory (default: .local/taskminder).",
    "TASKMINDER_DB_PATH": "SQLite key-value store path (default: <data_dir>/taskminder.sqlite3).",
    "TASKMINDER_LOG_DIR": "Directory for taskminder.log (default: <data_dir>).",
    # First-start defaults for AppSettings
    "TASKMINDER_COMPLETED_RETENTION_DAYS": "Days a completed task stays active (0 = never expire, default: 30).",
    "TASKMINDER_OVERDUE_RETENTION_DAYS": "Days an overdue task stays active (0 = never expire, default: 90).",
    "TASKMINDER_HISTORY_RETENTION_MONTHS": "Months a history entry is kept (default: 3).",
    "TASKMINDER_HISTORY_CLEANUP_FREQUENCY_DAYS": "History purge cadence in days (0 = manual, default: 30).",
    "TASKMINDER_CLEANUP_FREQUENCY_DAYS": "Cleanup cadence in days (0 = manual, default: 7).",
}
