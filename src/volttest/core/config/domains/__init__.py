"""Domain-specific configuration accessors."""
from __future__ import annotations

from .logging import LoggingConfig
from .registry import RegistryConfig
from .server import ServerConfig

__all__ = ["LoggingConfig", "RegistryConfig", "ServerConfig"]
