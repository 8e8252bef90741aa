"""Process-scoped registry of ServerManagers.

Entries live in process memory only. Every entry remembers the pid that
registered it; an entry observed from any other pid (a forked worker
inheriting the parent's map) is foreign and is discarded instead of being
handed out.
"""
from __future__ import annotations

import atexit
import hashlib
import logging
import os
import secrets
import threading
from contextlib import nullcontext
from types import MappingProxyType
from typing import Any, Mapping, Optional

from volttest.core.process import current_pid
from volttest.core.utils.io import acquire_file_lock

from .manager import ServerManager
from .models import DEFAULT_HOST, RegistryEntry, ServerSettings
from .ports import DEFAULT_CONNECT_TIMEOUT, find_available_port_for_worker

logger = logging.getLogger(__name__)


class ServerRegistry:
    """Keyed store of ServerManagers with get-or-create and orphan cleanup.

    Args:
        config: Optional ``RegistryConfig``; loaded from the working
            directory on first use when omitted.
    """

    def __init__(self, config: Any = None) -> None:
        self._config = config
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = threading.RLock()
        self._identity: Optional[str] = None
        self._identity_pid: Optional[int] = None
        self._shutdown_registered = False

    @property
    def config(self) -> Any:
        if self._config is None:
            # Lazy import to avoid circular dependency
            from volttest.core.config.domains.registry import RegistryConfig

            self._config = RegistryConfig()
        return self._config

    # ------------------------------------------------------------------
    # Identity and keys
    # ------------------------------------------------------------------

    def process_identity(self) -> str:
        """``<pid>_<token>``, stable for the lifetime of this process."""
        pid = current_pid()
        with self._lock:
            if self._identity is None or self._identity_pid != pid:
                self._identity = f"{pid}_volttest_{secrets.token_hex(8)}"
                self._identity_pid = pid
            return self._identity

    def reset_process_identity(self) -> None:
        with self._lock:
            self._identity = None
            self._identity_pid = None

    def generate_key(self, owner: str, host: str = DEFAULT_HOST) -> str:
        raw = f"{self.process_identity()}|{owner}|{host}"
        return hashlib.md5(raw.encode("utf-8")).hexdigest()  # noqa: S324

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def _cross_process_lock(self) -> Any:
        cfg = self.config
        if not cfg.cross_process_lock:
            return nullcontext()
        return acquire_file_lock(cfg.lock_path, timeout=cfg.lock_timeout_seconds)

    def register(self, key: str, manager: ServerManager) -> RegistryEntry:
        """Store ``manager`` at ``key`` owned by the current process."""
        with self._lock, self._cross_process_lock():
            entry = RegistryEntry(key=key, manager=manager, owner_pid=current_pid())
            self._entries[key] = entry
        logger.debug("Registered server %s at %s", key, manager.get_url())
        return entry

    def get(self, key: str) -> Optional[ServerManager]:
        """Return the manager at ``key`` if this process registered it."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_owned_by(current_pid()):
                logger.debug("Discarding foreign registry entry %s (owner pid=%s)", key, entry.owner_pid)
                del self._entries[key]
                return None
            return entry.manager

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def get_or_create(
        self,
        owner: str,
        application_root: str | os.PathLike[str],
        debug: bool = False,
        host: str = DEFAULT_HOST,
        preferred_port: Optional[int] = None,
        *,
        settings: Optional[ServerSettings] = None,
    ) -> ServerManager:
        """Return the registered manager for ``owner``, creating it if needed.

        An existing manager is returned as is: not re-validated and not
        restarted. A new one starts from ``preferred_port`` or, when omitted,
        from a free port in this worker's window.
        """
        key = self.generate_key(owner, host)
        with self._lock:
            existing = self.get(key)
            if existing is not None:
                return existing

            if preferred_port is not None:
                port = int(preferred_port)
            else:
                cfg = self.config
                port = find_available_port_for_worker(
                    cfg.base_port,
                    host,
                    worker_window=cfg.worker_window,
                    fallback_window=cfg.fallback_window,
                    timeout=DEFAULT_CONNECT_TIMEOUT,
                )

            manager = ServerManager(application_root, debug, host, port, settings=settings)
            self.register(key, manager)
            return manager

    def stop(self, key: str) -> bool:
        """Stop and forget the server at ``key``; False when nothing was registered."""
        with self._lock:
            if self.get(key) is None:
                return False
            entry = self._entries.pop(key)
        entry.manager.stop()
        return True

    def stop_all(self) -> int:
        """Stop every server owned by this process; foreign entries stay."""
        pid = current_pid()
        with self._lock:
            owned = [entry for entry in self._entries.values() if entry.is_owned_by(pid)]
            for entry in owned:
                del self._entries[entry.key]

        for entry in owned:
            try:
                entry.manager.stop()
            except Exception as exc:  # noqa: BLE001
                # One stubborn server must not keep the rest alive.
                logger.warning("Failed to stop server %s: %s", entry.key, exc)
        return len(owned)

    def cleanup_orphaned(self) -> list[str]:
        """Drop foreign entries and entries whose manager is not running."""
        pid = current_pid()
        with self._lock:
            removed = [
                key
                for key, entry in self._entries.items()
                if not entry.is_owned_by(pid) or not entry.manager.is_running()
            ]
            for key in removed:
                del self._entries[key]
        if removed:
            logger.debug("Removed %d orphaned registry entries", len(removed))
        return removed

    def entries(self) -> Mapping[str, RegistryEntry]:
        """Read-only snapshot of every entry, foreign ones included."""
        with self._lock:
            return MappingProxyType(dict(self._entries))

    def clear(self) -> None:
        """Forget every entry without stopping anything."""
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict[str, Any]:
        pid = current_pid()
        with self._lock:
            owned = [entry for entry in self._entries.values() if entry.is_owned_by(pid)]
        servers: dict[str, dict[str, Any]] = {}
        active = 0
        for entry in owned:
            running = entry.manager.is_running()
            if running:
                active += 1
            servers[entry.key] = {
                "running": running,
                "url": entry.manager.get_url(),
                "port": entry.manager.get_port(),
                "uptime": entry.uptime(),
            }
        return {
            "process_id": self.process_identity(),
            "pid": pid,
            "total_servers": len(owned),
            "active_servers": active,
            "servers": servers,
        }

    def register_shutdown_handler(self) -> bool:
        """Install an ``atexit`` hook running ``stop_all``; True on first install."""
        with self._lock:
            if self._shutdown_registered:
                return False
            atexit.register(self.stop_all)
            self._shutdown_registered = True
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def format_stats(stats: Mapping[str, Any]) -> str:
    """Render ``get_stats()`` output as a short human-readable report."""
    lines = [
        "=== VoltTest Server Stats ===",
        f"Process ID: {stats.get('process_id')}",
        f"PID: {stats.get('pid')}",
        f"Total Servers: {stats.get('total_servers', 0)}",
        f"Active Servers: {stats.get('active_servers', 0)}",
    ]
    for key, server in (stats.get("servers") or {}).items():
        lines.extend(
            [
                "",
                f"Server: {key}",
                f"  URL: {server.get('url')}",
                f"  Port: {server.get('port')}",
                f"  Running: {'Yes' if server.get('running') else 'No'}",
                f"  Uptime: {round(float(server.get('uptime', 0.0)), 2)}s",
            ]
        )
    lines.append("=" * 29)
    return "\n".join(lines)


_DEFAULT_REGISTRY: Optional[ServerRegistry] = None
_DEFAULT_REGISTRY_GUARD = threading.Lock()


def get_registry() -> ServerRegistry:
    """Return the process-wide default registry, creating it on first use."""
    global _DEFAULT_REGISTRY
    with _DEFAULT_REGISTRY_GUARD:
        if _DEFAULT_REGISTRY is None:
            _DEFAULT_REGISTRY = ServerRegistry()
        return _DEFAULT_REGISTRY


def reset_registry() -> None:
    """Stop every server in the default registry and discard it."""
    global _DEFAULT_REGISTRY
    with _DEFAULT_REGISTRY_GUARD:
        registry, _DEFAULT_REGISTRY = _DEFAULT_REGISTRY, None
    if registry is not None:
        registry.stop_all()


__all__ = ["ServerRegistry", "format_stats", "get_registry", "reset_registry"]
