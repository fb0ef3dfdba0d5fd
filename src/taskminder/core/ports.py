# src/taskminder/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the storage backend swappable and makes testing easier.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

Clock = Callable[[], datetime]
# Returns a timezone-aware "now". Injected everywhere wall-clock time is needed.


def local_now() -> datetime:
    """Default clock: aware datetime in the local timezone."""
    return datetime.now().astimezone()


class KeyValueStore(Protocol):
    """
    Asynchronous string-keyed store (AsyncStorage-style).

    Values are opaque strings; the task store puts JSON in them.
    Implementations raise on I/O failure; callers wrap that into StorageError.
    """

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...
