"""Domain-specific configuration for the server registry."""
from __future__ import annotations

import tempfile
from functools import cached_property
from pathlib import Path

from ..base import BaseDomainConfig

DEFAULT_LOCK_FILENAME = "volttest_server_registry.lock"


class RegistryConfig(BaseDomainConfig):
    """Accessor for the ``registry`` section (worker ports and lock policy)."""

    def _config_section(self) -> str:
        return "registry"

    @cached_property
    def base_port(self) -> int:
        return int(self.section.get("base_port", 8000))

    @cached_property
    def worker_window(self) -> int:
        return int(self.section.get("worker_window", 10))

    @cached_property
    def fallback_window(self) -> int:
        return int(self.section.get("fallback_window", 1000))

    @cached_property
    def _lock(self) -> dict:
        lock = self.section.get("lock")
        return lock if isinstance(lock, dict) else {}

    @cached_property
    def cross_process_lock(self) -> bool:
        return bool(self._lock.get("cross_process", False))

    @cached_property
    def lock_path(self) -> Path:
        raw = self._lock.get("path")
        if raw:
            return Path(str(raw)).expanduser()
        return Path(tempfile.gettempdir()) / DEFAULT_LOCK_FILENAME

    @cached_property
    def lock_timeout_seconds(self) -> float:
        return float(self._lock.get("timeout_seconds", 30.0))


__all__ = ["RegistryConfig", "DEFAULT_LOCK_FILENAME"]
