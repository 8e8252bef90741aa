"""Helpers for wiring managed servers into a test suite.

Environment toggles:
    VOLTTEST_ENABLE_SERVER_MANAGEMENT   start a managed server per test class
    VOLTTEST_DEBUG_FOR_SERVER_MANAGEMENT  debug-mode managers (lifecycle at INFO)
    VOLTTEST_DEBUG                      report each started server
    VOLTTEST_BASE_PATH                  explicit application root
    VOLTTEST_BASE_URL                   target when no server is managed
    VOLTTEST_HTTP_DEBUG                 forwarded to the load-test client
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from volttest.core.exceptions import ApplicationRootNotFound
from volttest.core.server.models import ApplicationLayout, trim_root

ENV_ENABLE_SERVER_MANAGEMENT = "VOLTTEST_ENABLE_SERVER_MANAGEMENT"
ENV_DEBUG_FOR_SERVER_MANAGEMENT = "VOLTTEST_DEBUG_FOR_SERVER_MANAGEMENT"
ENV_DEBUG = "VOLTTEST_DEBUG"
ENV_BASE_PATH = "VOLTTEST_BASE_PATH"
ENV_BASE_URL = "VOLTTEST_BASE_URL"
ENV_HTTP_DEBUG = "VOLTTEST_HTTP_DEBUG"

DEFAULT_BASE_URL = "http://localhost:8000"
MAX_ROOT_SEARCH_DEPTH = 10

_TRUTHY = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Read a boolean toggle; unset or blank means ``default``."""
    env = os.environ if environ is None else environ
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def base_url(environ: Optional[Mapping[str, str]] = None) -> str:
    """Target URL for suites that do not manage their own server."""
    env = os.environ if environ is None else environ
    return (env.get(ENV_BASE_URL) or "").strip() or DEFAULT_BASE_URL


def _has_bootstrap(path: Path, layout: ApplicationLayout) -> bool:
    return (path / layout.bootstrap_file).is_file()


def find_application_root(
    start: Path,
    layout: Optional[ApplicationLayout] = None,
    max_depth: int = MAX_ROOT_SEARCH_DEPTH,
) -> Optional[Path]:
    """Walk up from ``start`` looking for a directory holding the bootstrap file."""
    layout = layout or ApplicationLayout()
    current = start.resolve()
    if current.is_file():
        current = current.parent
    for _ in range(max_depth):
        if _has_bootstrap(current, layout):
            return current
        if current.parent == current:
            break
        current = current.parent
    return None


def resolve_application_root(
    start: Optional[Path | str] = None,
    *,
    layout: Optional[ApplicationLayout] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """Locate the application under test.

    Order: ``VOLTTEST_BASE_PATH`` (must contain the bootstrap file), then a
    bounded walk up from ``start``, then the working directory.

    Raises:
        ApplicationRootNotFound: no candidate holds the bootstrap file.
    """
    layout = layout or ApplicationLayout()
    env = os.environ if environ is None else environ

    explicit = (env.get(ENV_BASE_PATH) or "").strip()
    if explicit:
        root = trim_root(Path(explicit).expanduser())
        if not _has_bootstrap(root, layout):
            raise ApplicationRootNotFound(
                f"Path '{root}' does not contain an application ({layout.bootstrap_file} missing)",
                context={"path": str(root), "source": ENV_BASE_PATH},
            )
        return root.resolve()

    if start is not None:
        found = find_application_root(Path(start), layout)
        if found is not None:
            return found

    cwd = Path.cwd()
    if _has_bootstrap(cwd, layout):
        return cwd.resolve()

    raise ApplicationRootNotFound(
        f"Could not find the application root. Set {ENV_BASE_PATH}.",
        context={"start": str(start) if start is not None else None, "cwd": str(cwd)},
    )


__all__ = [
    "ENV_ENABLE_SERVER_MANAGEMENT",
    "ENV_DEBUG_FOR_SERVER_MANAGEMENT",
    "ENV_DEBUG",
    "ENV_BASE_PATH",
    "ENV_BASE_URL",
    "ENV_HTTP_DEBUG",
    "DEFAULT_BASE_URL",
    "env_flag",
    "base_url",
    "find_application_root",
    "resolve_application_root",
]
