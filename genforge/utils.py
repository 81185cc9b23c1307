"""Shared utility functions for GenForge.

Provides Rich-based console reporting, JSON/text I/O helpers that keep the
event loop free, identifier helpers, and per-key asyncio locks used to
serialise mutations of one session or one project while unrelated keys
proceed in parallel.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from rich.console import Console

console = Console()

# ---------------------------------------------------------------------------
# String / identifier helpers
# ---------------------------------------------------------------------------

_IDENTIFIER_RE = re.compile(r"[A-Za-z0-9_.-]+")


def is_safe_identifier(value: str) -> bool:
    """Return ``True`` if *value* can be used as a single directory name.

    Only ASCII letters, digits, ``_``, ``.`` and ``-`` are allowed, and the
    special names ``.`` and ``..`` are rejected.

    Examples::

        is_safe_identifier("1718035200000") -> True
        is_safe_identifier("../etc")        -> False
    """
    if not value or value in (".", ".."):
        return False
    return _IDENTIFIER_RE.fullmatch(value) is not None


_last_timestamp_id = 0


def timestamp_id() -> str:
    """Return a millisecond timestamp identifier that never repeats in-process.

    Two calls within the same millisecond get consecutive values, so the
    sequence is strictly increasing for the life of the process.
    """
    global _last_timestamp_id
    candidate = int(time.time() * 1000)
    if candidate <= _last_timestamp_id:
        candidate = _last_timestamp_id + 1
    _last_timestamp_id = candidate
    return str(candidate)


def truncate(text: str, limit: int = 500) -> str:
    """Return at most *limit* characters of *text*, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + f"... [{len(text) - limit} more chars]"


# ---------------------------------------------------------------------------
# JSON / text I/O
# ---------------------------------------------------------------------------


def load_json(path: str | Path) -> Any:
    """Load and parse a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    raw = Path(path).read_text(encoding="utf-8")
    return json.loads(raw)


async def save_text(content: str, path: str | Path) -> Path:
    """Write *content* to *path* from a thread-pool executor.

    Parent directories are created automatically.

    Returns:
        The path that was written.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, file_path.write_text, content, "utf-8")
    return file_path


# ---------------------------------------------------------------------------
# File-system helpers
# ---------------------------------------------------------------------------


def ensure_dir(path: str | Path) -> Path:
    """Create a directory (and parents) if it does not exist.

    Returns:
        The resolved ``Path`` object.
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path.resolve()


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
        format_duration(3661.0) -> "1h 1m 1s"
    """
    if seconds < 0:
        return "0.0s"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")

    if hours > 0 or minutes > 0:
        parts.append(f"{int(secs)}s")
    else:
        parts.append(f"{secs:.1f}s")

    return " ".join(parts)


def format_size(num_bytes: int) -> str:
    """Format a byte count, e.g. ``format_size(2048) -> "2.0 KB"``."""
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")


# ---------------------------------------------------------------------------
# Keyed locks
# ---------------------------------------------------------------------------


class KeyedLocks:
    """One ``asyncio.Lock`` per key, created on demand.

    Holders of different keys never contend. A key's lock is discarded once
    no task holds or waits for it, so the table only grows with the number
    of keys that are busy at the same time.

    Usage::

        locks = KeyedLocks()
        async with locks.hold("project-1"):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
