from __future__ import annotations

import logging
import os
import time
from http.client import HTTPException
from pathlib import Path
from typing import Any, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import HTTPRedirectHandler, ProxyHandler, Request, build_opener

from volttest.core.exceptions import (
    ConfigError,
    HealthCheckTimeout,
    InvalidApplicationStructure,
    ProcessDiedDuringStartup,
    ProcessError,
    PublicDirectoryMissing,
    ServerStartFailed,
)
from volttest.core.logging import ensure_debug_output
from volttest.core.process import ProcessHandle

from .models import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    HEALTH_ENDPOINTS,
    ServerSettings,
    ServerStatus,
    trim_root,
)
from .ports import find_available_port

logger = logging.getLogger(__name__)

INITIAL_BACKOFF_SECONDS = 0.1
MAX_BACKOFF_SECONDS = 0.5
FORCED_KILL_REAP_SECONDS = 1.0


class _NoRedirect(HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):  # type: ignore[no-untyped-def]
        return None


# No proxies: probes always target a local listener.
_PROBE_OPENER = build_opener(ProxyHandler({}), _NoRedirect())


def probe_http(url: str, *, timeout_seconds: float) -> tuple[Optional[int], str]:
    """GET ``url`` once; return ``(status, error)``.

    Any HTTP response yields its status (redirects are not followed); a
    transport failure yields ``(None, reason)``.
    """
    req = Request(url, method="GET", headers={"User-Agent": "volttest-health-probe"})
    try:
        with _PROBE_OPENER.open(req, timeout=timeout_seconds) as resp:
            return int(resp.status), ""
    except HTTPError as exc:
        # Any HTTP response implies a server is listening.
        exc.close()
        return int(exc.code), ""
    except URLError as exc:
        return None, str(exc.reason)
    except (OSError, HTTPException) as exc:
        return None, str(exc) or exc.__class__.__name__


def is_ready_status(status: int) -> bool:
    """2xx, 3xx, 404 and 405 all prove the application is dispatching requests."""
    return 200 <= status < 400 or status in (404, 405)


class ServerManager:
    """Run and verify one ephemeral HTTP server for one application root.

    The application root is validated on construction so a misconfigured
    path fails before any process is spawned. ``start()`` may move the server
    to another port when the requested one is taken; ``get_port()`` and
    ``get_url()`` reflect the port actually bound.

    Usage:
        with ServerManager("/srv/app", debug=True) as server:
            run_load_test(server.get_url())
    """

    def __init__(
        self,
        application_root: str | os.PathLike[str],
        debug: bool = False,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        settings: Optional[ServerSettings] = None,
    ) -> None:
        # Assigned first so __del__ is safe when validation raises.
        self._handle: Optional[ProcessHandle] = None
        self.application_root: Path = trim_root(application_root)
        self.host = host
        self.port = int(port)
        self.requested_port = self.port
        self.debug = bool(debug)
        if settings is None:
            # Lazy import to avoid circular dependency
            from volttest.core.config.domains.server import ServerConfig

            settings = ServerConfig(repo_root=self.application_root).settings
        self.settings = settings

        self._validate_structure()
        if self.debug:
            ensure_debug_output()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @property
    def public_path(self) -> Path:
        return self.application_root / self.settings.layout.public_dir

    @property
    def entrypoint_path(self) -> Path:
        return self.public_path / self.settings.layout.entrypoint

    def _validate_structure(self) -> None:
        layout = self.settings.layout
        required = (
            (self.application_root / layout.bootstrap_file, "Bootstrap file"),
            (self.public_path, "Public directory"),
        )
        for path, description in required:
            if not path.exists():
                raise InvalidApplicationStructure(
                    f"Invalid application structure: {description} not found at {path}",
                    context={"path": str(path), "missing": description},
                )

        if not self.entrypoint_path.is_file():
            raise InvalidApplicationStructure(
                f"Application entrypoint not found at: {self.entrypoint_path}",
                context={"path": str(self.entrypoint_path), "missing": "Entrypoint"},
            )

    def _resolve_router(self) -> Optional[Path]:
        router_file = self.settings.layout.router_file
        if not router_file:
            return None
        router = self.application_root / router_file
        return router if router.is_file() else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _log(self, msg: str, *args: Any) -> None:
        logger.log(logging.INFO if self.debug else logging.DEBUG, msg, *args)

    def _render_command(self, *, router: Optional[Path], entrypoint: Path) -> list[str]:
        fmt = {
            "php_binary": self.settings.php_binary,
            "host": self.host,
            "port": str(self.port),
            "public_dir": str(self.public_path.resolve()),
            "application_root": str(self.application_root.resolve()),
            "router": str(router.resolve()) if router else "",
            "entrypoint": str(entrypoint.resolve()),
        }
        argv: list[str] = []
        for token in self.settings.command:
            try:
                rendered = token.format(**fmt)
            except (KeyError, IndexError, ValueError) as exc:
                raise ConfigError(
                    f"Invalid server command token {token!r}: {exc}",
                    context={"token": token, "available": sorted(fmt)},
                ) from exc
            if rendered:
                argv.append(rendered)
        return argv

    def start(self) -> None:
        """Start the server and block until it answers a health probe."""
        if self.is_running():
            return

        public_path = self.public_path
        if not public_path.is_dir():
            raise PublicDirectoryMissing(
                f"Public directory not found at: {public_path}",
                context={"path": str(public_path)},
            )

        router = self._resolve_router()
        entrypoint = router or self.entrypoint_path

        available = find_available_port(
            self.port,
            self.host,
            window=self.settings.port_scan_window,
            timeout=self.settings.port_connect_timeout_seconds,
        )
        if available != self.port:
            self._log("Port %s in use, using %s", self.port, available)
            self.port = available

        argv = self._render_command(router=router, entrypoint=entrypoint)
        self._log("Starting server with command: %s", " ".join(argv))
        self._log("Working directory: %s", self.application_root)
        self._log("Public path: %s (entrypoint %s)", public_path.resolve(), entrypoint)

        # A previous start may have left a dead handle behind for inspection.
        self._release_handle()

        handle = ProcessHandle()
        try:
            handle.start(argv, cwd=self.application_root, env=self.settings.env)
        except ProcessError as exc:
            raise ServerStartFailed(
                f"Server failed to start: {exc}",
                context={"command": argv, "kind": exc.kind.value, "port": self.port},
            ) from exc
        self._handle = handle

        # ProcessDiedDuringStartup / HealthCheckTimeout are ServerStartFailed
        # and already carry the captured output; the handle stays for stop().
        self.wait_for_server(self.settings.startup_timeout_seconds)

    def wait_for_server(
        self,
        timeout: Optional[float] = None,
        endpoints: Sequence[str] = HEALTH_ENDPOINTS,
    ) -> int:
        """Poll ``endpoints`` with exponential backoff until one answers ready.

        Returns:
            Number of failed polling rounds before the server became ready.

        Raises:
            ProcessDiedDuringStartup: the process exited while we waited.
            HealthCheckTimeout: nothing answered ready within ``timeout``.
        """
        handle = self._handle
        if handle is None or not handle.started:
            raise ServerStartFailed("No server process to wait for", context={"url": self.get_url()})

        timeout_seconds = self.settings.startup_timeout_seconds if timeout is None else float(timeout)
        deadline = time.monotonic() + timeout_seconds
        attempts = 0
        last_error = ""
        base_url = self.get_url()

        while time.monotonic() < deadline:
            if not handle.is_running():
                raise self._died(handle, attempts)

            for endpoint in endpoints:
                status, error = probe_http(
                    base_url + endpoint,
                    timeout_seconds=self.settings.probe_timeout_seconds,
                )
                if status is not None and is_ready_status(status):
                    self._log(
                        "Server is ready after %s attempts (%s answered %s)",
                        attempts,
                        endpoint,
                        status,
                    )
                    return attempts
                if error:
                    last_error = error
                elif status is not None:
                    last_error = f"{endpoint} answered HTTP {status}"

            attempts += 1
            backoff = min(INITIAL_BACKOFF_SECONDS * 2 ** (attempts - 1), MAX_BACKOFF_SECONDS)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(backoff, remaining))

        if not handle.is_running():
            raise self._died(handle, attempts)

        raise HealthCheckTimeout(
            f"Server failed to start within {timeout_seconds:g} seconds.\n"
            f"Attempts: {attempts}\n"
            f"Last error: {last_error}",
            attempts=attempts,
            last_error=last_error,
            output=handle.output(),
            context={"url": base_url, "pid": handle.pid},
        )

    def _died(self, handle: ProcessHandle, attempts: int) -> ProcessDiedDuringStartup:
        exit_code = handle.exit_code
        return ProcessDiedDuringStartup(
            f"Server process died unexpectedly (exit code {exit_code}).",
            exit_code=exit_code,
            output=handle.output(),
            context={"url": self.get_url(), "attempts": attempts},
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Terminate the server: SIGTERM, wait up to ``timeout``, then SIGKILL.

        Safe to call at any time; a manager without a live process is a no-op.
        """
        handle = self._handle
        if handle is None:
            return
        timeout_seconds = self.settings.stop_timeout_seconds if timeout is None else float(timeout)
        try:
            if handle.is_running():
                self._terminate(handle, timeout_seconds)
        finally:
            self._release_handle()

    def _terminate(self, handle: ProcessHandle, timeout_seconds: float) -> None:
        try:
            handle.terminate(graceful=True)
        except ProcessError as exc:
            logger.warning("Graceful termination of pid=%s failed: %s", handle.pid, exc)

        deadline = time.monotonic() + timeout_seconds
        while handle.is_running() and time.monotonic() < deadline:
            time.sleep(self.settings.stop_poll_interval_seconds)

        if not handle.is_running():
            return

        try:
            handle.terminate(graceful=False)
        except ProcessError as exc:
            logger.warning("Forced termination of pid=%s failed: %s", handle.pid, exc)
            return
        self._log("Server process force killed after %ss timeout", timeout_seconds)
        try:
            handle.wait(FORCED_KILL_REAP_SECONDS)
        except ProcessError as exc:
            logger.warning("pid=%s not reaped after SIGKILL: %s", handle.pid, exc)

    def _release_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def get_port(self) -> int:
        return self.port

    def is_running(self) -> bool:
        return self._handle is not None and self._handle.is_running()

    def get_output(self) -> str:
        return self._handle.output() if self._handle is not None else ""

    def get_status(self) -> ServerStatus:
        running = self.is_running()
        return {
            "running": running,
            "url": self.get_url(),
            "port": self.port,
            "pid": self._handle.pid if running and self._handle is not None else None,
        }

    def __enter__(self) -> ServerManager:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def __del__(self) -> None:
        if getattr(self, "_handle", None) is None:
            return
        try:
            self.stop()
        except Exception:  # noqa: BLE001
            # Finalizers may run during interpreter shutdown with modules torn down.
            pass

    def __repr__(self) -> str:
        state = "running" if self.is_running() else "stopped"
        return f"<ServerManager {self.get_url()} root={self.application_root} {state}>"


__all__ = ["ServerManager", "probe_http", "is_ready_status"]
