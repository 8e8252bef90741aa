"""Process identity helpers."""
from __future__ import annotations

import os


def current_pid() -> int:
    """Return the OS process id of the running interpreter."""
    return os.getpid()


__all__ = ["current_pid"]
