"""I/O utilities: directories, YAML and advisory file locks."""
from __future__ import annotations

from .core import PathLike, ensure_directory, iter_yaml_files
from .locking import LockTimeoutError, acquire_file_lock, get_file_locking_config
from .yaml import read_yaml

__all__ = [
    "PathLike",
    "ensure_directory",
    "iter_yaml_files",
    "read_yaml",
    "LockTimeoutError",
    "acquire_file_lock",
    "get_file_locking_config",
]
