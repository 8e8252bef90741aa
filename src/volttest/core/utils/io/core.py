"""Directory and file discovery helpers."""
from __future__ import annotations

from pathlib import Path
from typing import List, Union

PathLike = Union[str, Path]


def ensure_directory(path: PathLike, create: bool = True) -> Path:
    """Ensure ``path`` exists as a directory.

    Args:
        path: Directory path to check/create
        create: If False, raise instead of creating a missing directory

    Raises:
        FileNotFoundError: If create=False and the directory is missing
        NotADirectoryError: If path exists but is not a directory
    """
    path = Path(path)

    if path.exists():
        if not path.is_dir():
            raise NotADirectoryError(f"Path exists but is not a directory: {path}")
        return path

    if not create:
        raise FileNotFoundError(f"Directory does not exist: {path}")
    path.mkdir(parents=True, exist_ok=True)
    return path


def iter_yaml_files(directory: PathLike) -> List[Path]:
    """Return ``*.yaml`` / ``*.yml`` files in ``directory`` sorted by name."""
    d = Path(directory)
    if not d.is_dir():
        return []
    files = [p for p in d.iterdir() if p.is_file() and p.suffix in {".yaml", ".yml"}]
    return sorted(files, key=lambda p: p.name)


__all__ = ["PathLike", "ensure_directory", "iter_yaml_files"]
