"""Process ownership and inspection utilities."""

from .handle import ProcessHandle
from .inspector import current_pid

__all__ = [
    "ProcessHandle",
    "current_pid",
]
