"""Ephemeral HTTP server lifecycle: ports, managers and the registry."""

from .manager import ServerManager, is_ready_status, probe_http
from .models import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    HEALTH_ENDPOINTS,
    ApplicationLayout,
    RegistryEntry,
    ServerSettings,
    ServerStatus,
)
from .ports import (
    detect_running_server,
    find_available_port,
    find_available_port_for_worker,
    is_port_in_use,
    worker_start_port,
)
from .registry import ServerRegistry, format_stats, get_registry, reset_registry

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "HEALTH_ENDPOINTS",
    "ApplicationLayout",
    "RegistryEntry",
    "ServerManager",
    "ServerRegistry",
    "ServerSettings",
    "ServerStatus",
    "detect_running_server",
    "find_available_port",
    "find_available_port_for_worker",
    "format_stats",
    "get_registry",
    "is_port_in_use",
    "is_ready_status",
    "probe_http",
    "reset_registry",
    "worker_start_port",
]
