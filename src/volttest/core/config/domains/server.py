"""Domain-specific configuration for ephemeral application servers."""
from __future__ import annotations

from functools import cached_property

from volttest.core.server.models import DEFAULT_HOST, DEFAULT_PORT, ServerSettings

from ..base import BaseDomainConfig


class ServerConfig(BaseDomainConfig):
    """Accessor for the ``server`` section.

    ``repo_root`` is the application root, so an application under test can
    ship ``.volttest/config/*.yaml`` overrides next to its code.
    """

    def _config_section(self) -> str:
        return "server"

    @cached_property
    def host(self) -> str:
        return str(self.section.get("host") or DEFAULT_HOST)

    @cached_property
    def port(self) -> int:
        try:
            return int(self.section.get("port", DEFAULT_PORT))
        except (TypeError, ValueError):
            return DEFAULT_PORT

    @cached_property
    def settings(self) -> ServerSettings:
        return ServerSettings.from_raw(self.section)


__all__ = ["ServerConfig"]
