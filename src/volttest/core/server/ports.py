"""TCP port discovery for ephemeral servers.

Ports are never reserved ahead of binding: a port found free here can still
be taken before the server binds it, so callers treat a bind failure during
startup as a retryable start failure.
"""
from __future__ import annotations

import logging
import os
import socket
from typing import Optional

from volttest.core.exceptions import PortExhaustedError

from .models import DEFAULT_HOST, DEFAULT_PORT

logger = logging.getLogger(__name__)

MAX_PORT = 65535
DEFAULT_CONNECT_TIMEOUT = 0.1
DEFAULT_SCAN_WINDOW = 100
DEFAULT_WORKER_WINDOW = 10
DEFAULT_FALLBACK_WINDOW = 1000
WORKER_BUCKETS = 100


def is_port_in_use(host: str, port: int, timeout: float = DEFAULT_CONNECT_TIMEOUT) -> bool:
    """Return True when something accepts TCP connections on ``host:port``.

    Refused connections and timeouts both count as "free".
    """
    try:
        with socket.create_connection((host, int(port)), timeout=timeout):
            return True
    except OSError:
        return False


def detect_running_server(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, timeout: float = 1.0) -> bool:
    """Check whether a server is already listening on ``host:port``."""
    return is_port_in_use(host, port, timeout=timeout)


def _scan(host: str, start: int, end: int, timeout: float) -> Optional[int]:
    for port in range(max(1, start), min(end, MAX_PORT + 1)):
        if not is_port_in_use(host, port, timeout=timeout):
            return port
    return None


def find_available_port(
    start_port: int,
    host: str = DEFAULT_HOST,
    window: int = DEFAULT_SCAN_WINDOW,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> int:
    """Return the first free port in ``[start_port, start_port + window)``."""
    end = start_port + window
    port = _scan(host, start_port, end, timeout)
    if port is None:
        raise PortExhaustedError(
            f"No available ports found on {host} in range {start_port}-{end - 1}",
            context={"host": host, "start": start_port, "end": end - 1},
        )
    return port


def worker_start_port(
    base_port: int = DEFAULT_PORT,
    *,
    pid: Optional[int] = None,
    worker_window: int = DEFAULT_WORKER_WINDOW,
) -> int:
    """Deterministic per-process starting port: ``base + (pid % 100) * window``.

    Parallel workers sharing one base port usually land in disjoint windows.
    Two pids in the same bucket still collide, so this is only a hint.
    """
    if pid is None:
        pid = os.getpid()
    return base_port + (pid % WORKER_BUCKETS) * worker_window


def find_available_port_for_worker(
    base_port: int = DEFAULT_PORT,
    host: str = DEFAULT_HOST,
    *,
    worker_window: int = DEFAULT_WORKER_WINDOW,
    fallback_window: int = DEFAULT_FALLBACK_WINDOW,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
    pid: Optional[int] = None,
) -> int:
    """Find a free port, trying this worker's window before a wide fallback scan."""
    start = worker_start_port(base_port, pid=pid, worker_window=worker_window)
    port = _scan(host, start, start + worker_window, timeout)
    if port is not None:
        return port

    logger.debug(
        "Worker window %s-%s exhausted on %s, scanning %s-%s",
        start,
        start + worker_window - 1,
        host,
        base_port,
        base_port + fallback_window - 1,
    )
    port = _scan(host, base_port, base_port + fallback_window, timeout)
    if port is None:
        raise PortExhaustedError(
            "No available ports found for test server",
            context={
                "host": host,
                "worker_start": start,
                "start": base_port,
                "end": base_port + fallback_window - 1,
            },
        )
    return port


__all__ = [
    "is_port_in_use",
    "detect_running_server",
    "find_available_port",
    "worker_start_port",
    "find_available_port_for_worker",
]
