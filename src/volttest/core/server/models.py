from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, TypedDict

if TYPE_CHECKING:
    from .manager import ServerManager

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# Fixed probe list: "/" plus two conventional health routes.
HEALTH_ENDPOINTS: tuple[str, ...] = ("/", "/api/health", "/__volttest_health")

DEFAULT_COMMAND: tuple[str, ...] = (
    "{php_binary}",
    "-S",
    "{host}:{port}",
    "-t",
    "{public_dir}",
    "{router}",
)


@dataclass(frozen=True)
class ApplicationLayout:
    """Relative locations of the files that make up an application root."""

    bootstrap_file: str = "bootstrap/app.php"
    public_dir: str = "public"
    entrypoint: str = "index.php"
    router_file: str | None = "server.php"

    @classmethod
    def from_raw(cls, raw: Any) -> ApplicationLayout:
        if not isinstance(raw, dict):
            return cls()
        defaults = cls()

        def _str(key: str, default: str) -> str:
            value = raw.get(key)
            value = str(value).strip() if value is not None else ""
            return value or default

        router_raw = raw.get("router_file", defaults.router_file)
        router = str(router_raw).strip() if router_raw is not None else None
        return cls(
            bootstrap_file=_str("bootstrap_file", defaults.bootstrap_file),
            public_dir=_str("public_dir", defaults.public_dir),
            entrypoint=_str("entrypoint", defaults.entrypoint),
            router_file=router or None,
        )


@dataclass(frozen=True)
class ServerSettings:
    """Everything a ``ServerManager`` needs besides root, host, port and debug."""

    php_binary: str = "php"
    command: tuple[str, ...] = DEFAULT_COMMAND
    env: dict[str, str] = field(default_factory=dict)
    layout: ApplicationLayout = field(default_factory=ApplicationLayout)
    startup_timeout_seconds: float = 10.0
    stop_timeout_seconds: float = 5.0
    stop_poll_interval_seconds: float = 0.1
    probe_timeout_seconds: float = 1.0
    port_scan_window: int = 100
    port_connect_timeout_seconds: float = 0.1

    @classmethod
    def from_raw(cls, raw: Any) -> ServerSettings:
        """Build settings from the ``server`` configuration section."""
        if not isinstance(raw, dict):
            return cls()
        defaults = cls()

        def _as_float(v: Any, default: float) -> float:
            try:
                return float(v) if v is not None else float(default)
            except (TypeError, ValueError):
                return float(default)

        def _as_int(v: Any, default: int) -> int:
            try:
                return int(v) if v is not None else int(default)
            except (TypeError, ValueError):
                return int(default)

        command_raw = raw.get("command")
        command = defaults.command
        if isinstance(command_raw, (list, tuple)) and command_raw:
            command = tuple(str(part) for part in command_raw)

        env_raw = raw.get("env")
        env: dict[str, str] = {}
        if isinstance(env_raw, dict):
            env = {str(k): os.path.expandvars(str(v)) for k, v in env_raw.items()}

        ports = raw.get("ports") if isinstance(raw.get("ports"), dict) else {}
        php_binary = os.path.expandvars(str(raw.get("php_binary") or defaults.php_binary).strip())

        return cls(
            php_binary=php_binary or defaults.php_binary,
            command=command,
            env=env,
            layout=ApplicationLayout.from_raw(raw.get("layout")),
            startup_timeout_seconds=_as_float(
                raw.get("startup_timeout_seconds"), defaults.startup_timeout_seconds
            ),
            stop_timeout_seconds=_as_float(
                raw.get("stop_timeout_seconds"), defaults.stop_timeout_seconds
            ),
            stop_poll_interval_seconds=_as_float(
                raw.get("stop_poll_interval_seconds"), defaults.stop_poll_interval_seconds
            ),
            probe_timeout_seconds=_as_float(
                raw.get("probe_timeout_seconds"), defaults.probe_timeout_seconds
            ),
            port_scan_window=_as_int(ports.get("scan_window"), defaults.port_scan_window),
            port_connect_timeout_seconds=_as_float(
                ports.get("connect_timeout_seconds"), defaults.port_connect_timeout_seconds
            ),
        )


class ServerStatus(TypedDict):
    running: bool
    url: str
    port: int
    pid: Optional[int]


@dataclass
class RegistryEntry:
    """One registered manager and the process that registered it.

    The manager reference is only meaningful inside ``owner_pid``; any other
    process must treat the entry as absent.
    """

    key: str
    manager: "ServerManager"
    owner_pid: int
    registered_at: float = field(default_factory=time.time)

    def is_owned_by(self, pid: int) -> bool:
        return self.owner_pid == pid

    def uptime(self, now: float | None = None) -> float:
        return max(0.0, (now if now is not None else time.time()) - self.registered_at)


def trim_root(path: str | os.PathLike[str]) -> Path:
    """Return ``path`` without trailing separators (``/`` stays ``/``)."""
    raw = os.fspath(path)
    stripped = raw.rstrip("/" + os.sep)
    return Path(stripped or raw[:1] or ".")


__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "HEALTH_ENDPOINTS",
    "DEFAULT_COMMAND",
    "ApplicationLayout",
    "ServerSettings",
    "ServerStatus",
    "RegistryEntry",
    "trim_root",
]
