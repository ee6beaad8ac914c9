"""Common helpers for the JSON documents shared by the orchestrator and overseer."""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

Clock = Callable[[], datetime]

_LOCK_SUFFIX = ".lock"
_PROCESS_LOCKS: dict[Path, threading.RLock] = {}
_PROCESS_LOCKS_GUARD = threading.Lock()
_HELD = threading.local()


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def from_iso(value: str) -> datetime:
    """Parse ISO datetime and ensure timezone-aware UTC fallback."""

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def to_iso(value: datetime) -> str:
    """Serialize a datetime as an ISO string in UTC."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def _process_lock(path: Path) -> threading.RLock:
    key = path.resolve()
    with _PROCESS_LOCKS_GUARD:
        lock = _PROCESS_LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _PROCESS_LOCKS[key] = lock
        return lock


@contextmanager
def locked_document(path: Path) -> Iterator[None]:
    """Hold an exclusive lock on *path* for one read-modify-write cycle.

    Threads of one process serialize on an ``RLock``; separate processes
    serialize on ``fcntl.flock`` over a ``.lock`` sidecar so the document
    itself can be replaced with ``os.replace``.
    """

    key = path.resolve()
    held: set[Path] = getattr(_HELD, "paths", None) or set()
    _HELD.paths = held
    if key in held:
        # Re-entered from the same thread: the outer frame owns the flock.
        yield
        return

    lock_path = path.with_suffix(path.suffix + _LOCK_SUFFIX)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with _process_lock(path), lock_path.open("a+", encoding="utf-8") as lock_handle:
        fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
        held.add(key)
        try:
            yield
        finally:
            held.discard(key)
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)


def atomic_write_json(path: Path, payload: Any) -> None:
    """Write *payload* as JSON through a temp file renamed into place."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def read_json(path: Path) -> Any:
    """Load a JSON document, returning ``None`` when the file does not exist."""

    if not path.is_file():
        return None
    text = path.read_text("utf-8")
    if not text.strip():
        return None
    return json.loads(text)


def read_json_object(path: Path) -> dict[str, Any] | None:
    """Load a JSON document and validate top-level object type."""

    payload = read_json(path)
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def serialized_size(payload: Any) -> int:
    """Compact serialized size in bytes, used for retention savings."""

    return len(json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))
