"""Centralized configuration caching.

Every domain config reads through ``get_cached_config`` so a project's YAML
is parsed once per process. Cache keys fingerprint ``VOLTTEST_*`` overrides
and project config mtimes so edits made by tests or long-running processes
are picked up without an explicit clear.
"""
from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any, Dict, Optional

_config_cache: Dict[str, Dict[str, Any]] = {}


def _normalize_repo_root(repo_root: Optional[Path]) -> Path:
    return Path(repo_root or Path.cwd()).expanduser().resolve()


def _cache_key(repo_root: Path, validate: bool) -> str:
    from volttest.core.utils.io import iter_yaml_files

    from .manager import ENV_PREFIX, PROJECT_CONFIG_DIRNAME

    env_items = sorted(
        (k, os.environ.get(k, "")) for k in os.environ.keys() if k.startswith(ENV_PREFIX)
    )
    env_fp = hashlib.sha256(repr(env_items).encode("utf-8")).hexdigest()[:12]

    files: list[tuple[str, int, int]] = []
    for p in iter_yaml_files(repo_root / PROJECT_CONFIG_DIRNAME / "config"):
        try:
            st = p.stat()
            files.append((p.name, int(st.st_mtime_ns), int(st.st_size)))
        except OSError:
            files.append((p.name, 0, 0))
    cfg_fp = hashlib.sha256(repr(files).encode("utf-8")).hexdigest()[:12]

    suffix = ":validated" if validate else ":raw"
    return f"{repo_root}{suffix}:env={env_fp}:cfg={cfg_fp}"


def get_cached_config(repo_root: Optional[Path] = None, validate: bool = True) -> Dict[str, Any]:
    """Get configuration with caching.

    Returns the same dict instance for the same inputs; treat it as immutable.
    """
    normalized_root = _normalize_repo_root(repo_root)
    key = _cache_key(normalized_root, validate)
    if key not in _config_cache:
        from .manager import ConfigManager

        manager = ConfigManager(repo_root=normalized_root)
        _config_cache[key] = manager._load_config_uncached(validate=validate)
    return _config_cache[key]


def clear_all_caches() -> None:
    """Drop every cached configuration (tests, long-running processes)."""
    _config_cache.clear()


def is_cached(repo_root: Optional[Path] = None, validate: bool = True) -> bool:
    return _cache_key(_normalize_repo_root(repo_root), validate) in _config_cache


__all__ = ["get_cached_config", "clear_all_caches", "is_cached"]
