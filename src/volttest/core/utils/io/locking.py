"""Advisory file locks for coordinating across processes."""
from __future__ import annotations

import fcntl
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .core import ensure_directory

_THREAD_MUTEXES: dict[str, threading.Lock] = {}
_THREAD_MUTEXES_GUARD = threading.Lock()


class LockTimeoutError(TimeoutError):
    """Raised when an OS file lock cannot be acquired within timeout."""


def _thread_mutex(path: Path) -> threading.Lock:
    # flock() is per open file description, so two threads of one process
    # would both "acquire" it; serialize them with a per-path mutex first.
    key = str(path.resolve())
    with _THREAD_MUTEXES_GUARD:
        lock = _THREAD_MUTEXES.get(key)
        if lock is None:
            lock = _THREAD_MUTEXES.setdefault(key, threading.Lock())
    return lock


@contextmanager
def acquire_file_lock(
    file_path: Path | str,
    timeout: Optional[float] = None,
    *,
    fail_open: Optional[bool] = None,
    poll_interval: Optional[float] = None,
) -> Iterator[Optional[object]]:
    """Acquire an exclusive lock on ``file_path`` with a timeout.

    - Uses ``fcntl.flock`` with ``LOCK_EX | LOCK_NB`` in a retry loop.
    - The lock file is created if missing and left in place afterwards, so
      concurrent holders always lock the same inode.
    - When ``fail_open`` is True the context yields ``None`` after ``timeout``
      instead of raising.

    Args:
        file_path: Lock file path.
        timeout: Seconds to wait before raising ``LockTimeoutError``. Defaults to
            ``file_locking.timeout_seconds`` from configuration.
        fail_open: Defaults to ``file_locking.fail_open``.
        poll_interval: Defaults to ``file_locking.poll_interval_seconds``.

    Yields:
        The open lock file, or None when failing open.
    """
    cfg = get_file_locking_config()
    effective_timeout = timeout if timeout is not None else cfg["timeout_seconds"]
    effective_poll_interval = (
        poll_interval if poll_interval is not None else cfg["poll_interval_seconds"]
    )
    effective_fail_open = cfg["fail_open"] if fail_open is None else fail_open

    _validate_positive("timeout", effective_timeout)
    _validate_positive("poll_interval", effective_poll_interval)

    start = time.monotonic()
    target = Path(file_path)
    ensure_directory(target.parent)

    mutex = _thread_mutex(target)
    if not mutex.acquire(timeout=effective_timeout):
        if effective_fail_open:
            yield None
            return
        raise LockTimeoutError(f"Could not acquire lock on {target} within {effective_timeout}s")

    try:
        fh = open(target, "a+")
        acquired = False
        try:
            while True:
                try:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    acquired = True
                    break
                except OSError:
                    if (time.monotonic() - start) >= effective_timeout:
                        if effective_fail_open:
                            break
                        raise LockTimeoutError(
                            f"Could not acquire lock on {target} within {effective_timeout}s"
                        )
                    time.sleep(effective_poll_interval)

            yield fh if acquired else None
        finally:
            try:
                if acquired:
                    fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
            finally:
                fh.close()
    finally:
        mutex.release()


def _validate_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {value})")


def get_file_locking_config(repo_root: Optional[Path] = None) -> Dict[str, Any]:
    """Return the resolved ``file_locking`` configuration section."""
    # Lazy import to avoid circular dependency
    from volttest.core.config.cache import get_cached_config

    section = get_cached_config(repo_root=repo_root).get("file_locking")
    if not isinstance(section, dict):
        raise RuntimeError("file_locking section missing from configuration")

    try:
        timeout_seconds = float(section["timeout_seconds"])
        poll_interval_seconds = float(section["poll_interval_seconds"])
    except KeyError as exc:
        raise RuntimeError(
            "file_locking configuration must define timeout_seconds and poll_interval_seconds"
        ) from exc

    _validate_positive("timeout_seconds", timeout_seconds)
    _validate_positive("poll_interval_seconds", poll_interval_seconds)

    return {
        "timeout_seconds": timeout_seconds,
        "poll_interval_seconds": poll_interval_seconds,
        "fail_open": bool(section.get("fail_open", False)),
    }


__all__ = ["acquire_file_lock", "LockTimeoutError", "get_file_locking_config"]
