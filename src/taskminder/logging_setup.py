# src/taskminder/logging_setup.py

from __future__ import annotations

import logging
import logging.handlers
import sys
from collections.abc import Mapping
from pathlib import Path

LOG_FILE_NAME = "taskminder.log"

# Console thresholds per logger prefix (longest prefix wins).
# Storage writes every kv call at DEBUG; cleanup summaries stay visible at INFO.
CONSOLE_THRESHOLDS: Mapping[str, int] = {
    "taskminder": logging.DEBUG,
    "taskminder.storage": logging.WARNING,
    "py.warnings": logging.ERROR,
}


def parse_level(name: str | int | None, default: int = logging.INFO) -> int:
    """'debug' / 'INFO' / 10 -> logging level; unknown names fall back to `default`."""
    if isinstance(name, int):
        return name
    if not name:
        return default
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else default


class ConsoleThresholdFilter(logging.Filter):
    """
    Per-prefix minimum level for the interactive console.

    Loggers not covered by any prefix (third-party) only reach the console at
    `fallback` and above. The log file is never filtered.
    """

    def __init__(self, thresholds: Mapping[str, int] = CONSOLE_THRESHOLDS, fallback: int = logging.ERROR) -> None:
        super().__init__()
        # Longest prefix first so "taskminder.storage" beats "taskminder".
        self._rules = sorted(thresholds.items(), key=lambda kv: len(kv[0]), reverse=True)
        self._fallback = fallback

    def threshold_for(self, name: str) -> int:
        for prefix, level in self._rules:
            if name == prefix or name.startswith(prefix + "."):
                return level
        return self._fallback

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.threshold_for(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskminder",
    console_level: int | str = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """
    Install the console + rotating file handlers on the root logger.

    Call once at startup, before the first log line. Re-calling replaces the
    handlers instead of stacking them. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename).name == LOG_FILE_NAME:
            h.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(parse_level(console_level))
    console.setFormatter(logging.Formatter("%(levelname)-7s %(name)s: %(message)s"))
    console.addFilter(ConsoleThresholdFilter())
    root.addHandler(console)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    return log_file
