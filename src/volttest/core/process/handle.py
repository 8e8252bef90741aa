"""Ownership wrapper around one spawned OS process."""
from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import psutil

from volttest.core.exceptions import ProcessError, ProcessErrorKind

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


def _popen_kwargs() -> dict[str, Any]:
    # A new session makes the child a process-group leader so signals reach
    # any workers it forks (e.g. PHP_CLI_SERVER_WORKERS).
    if os.name == "posix":
        return {"start_new_session": True}
    if os.name == "nt":
        creationflags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", None)
        if isinstance(creationflags, int):
            return {"creationflags": creationflags}
    return {}


class ProcessHandle:
    """Own exactly one child process and its combined stdout/stderr.

    The child's output is drained continuously by a daemon thread so a chatty
    server can never block on a full pipe.
    """

    def __init__(self) -> None:
        self._proc: Optional[psutil.Popen] = None
        self._chunks: list[bytes] = []
        self._chunks_lock = threading.Lock()
        self._reader: Optional[threading.Thread] = None
        self.command: tuple[str, ...] = ()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        command: Sequence[str],
        cwd: Path | str,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Spawn ``command`` in ``cwd`` without waiting for it."""
        if self._proc is not None:
            raise ProcessError(
                ProcessErrorKind.SPAWN_FAILED,
                "process handle already owns a process",
                context={"pid": self._proc.pid},
            )
        argv = [str(part) for part in command]
        if not argv:
            raise ProcessError(ProcessErrorKind.SPAWN_FAILED, "command is empty")

        full_env = dict(os.environ)
        full_env.update(env or {})
        try:
            proc = psutil.Popen(  # noqa: S603
                argv,
                cwd=str(cwd),
                env=full_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                **_popen_kwargs(),
            )
        except (OSError, ValueError) as exc:
            raise ProcessError(
                ProcessErrorKind.SPAWN_FAILED,
                f"failed to spawn {argv[0]}: {exc}",
                context={"command": argv, "cwd": str(cwd)},
            ) from exc

        self._proc = proc
        self.command = tuple(argv)
        self._reader = threading.Thread(
            target=self._drain,
            args=(proc.stdout,),
            name=f"volttest-output-{proc.pid}",
            daemon=True,
        )
        self._reader.start()
        logger.debug("Spawned pid=%s: %s", proc.pid, " ".join(argv))

    def _drain(self, stream: Any) -> None:
        try:
            while True:
                chunk = stream.read1(_READ_CHUNK) if hasattr(stream, "read1") else stream.read(_READ_CHUNK)
                if not chunk:
                    break
                with self._chunks_lock:
                    self._chunks.append(chunk)
        except (OSError, ValueError):
            # Pipe closed underneath us by close(); nothing left to read.
            pass

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._proc is not None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    @property
    def exit_code(self) -> Optional[int]:
        if self._proc is None:
            return None
        return self._proc.poll()

    def is_running(self) -> bool:
        """Non-blocking liveness check (also reaps an exited child)."""
        return self._proc is not None and self._proc.poll() is None

    def output(self, drain_timeout: float = 0.5) -> str:
        """Combined stdout+stderr captured so far ("" if never started).

        Once the process has exited, waits up to ``drain_timeout`` for the
        reader to hit EOF so the final lines are included.
        """
        if self._reader is not None and self._reader.is_alive() and not self.is_running():
            self._reader.join(timeout=drain_timeout)
        with self._chunks_lock:
            data = b"".join(self._chunks)
        return data.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def terminate(self, graceful: bool = True) -> None:
        """Send SIGTERM (graceful) or SIGKILL (forced) to the process tree.

        Calling this on a process that already exited is a no-op.
        """
        proc = self._proc
        if proc is None or proc.poll() is not None:
            return
        sig = signal.SIGTERM if graceful else getattr(signal, "SIGKILL", signal.SIGTERM)

        if os.name == "posix":
            try:
                os.killpg(proc.pid, sig)
                return
            except ProcessLookupError:
                return
            except PermissionError:
                # Group may have been re-parented; fall back to the tree walk.
                pass

        try:
            children = proc.children(recursive=True)
        except psutil.Error:
            children = []
        for child in children:
            try:
                child.send_signal(sig)
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied as exc:
                raise ProcessError(
                    ProcessErrorKind.SIGNAL_FAILED,
                    f"permission denied signalling child pid={child.pid}",
                    context={"pid": child.pid, "signal": int(sig)},
                ) from exc
        try:
            proc.send_signal(sig)
        except psutil.NoSuchProcess:
            return
        except (psutil.AccessDenied, PermissionError) as exc:
            raise ProcessError(
                ProcessErrorKind.SIGNAL_FAILED,
                f"permission denied signalling pid={proc.pid}",
                context={"pid": proc.pid, "signal": int(sig)},
            ) from exc

    def wait(self, timeout: float) -> int:
        """Wait up to ``timeout`` seconds for the process to exit."""
        if self._proc is None:
            raise ProcessError(ProcessErrorKind.TIMEOUT, "no process was started")
        try:
            return self._proc.wait(timeout=timeout)
        except (psutil.TimeoutExpired, subprocess.TimeoutExpired) as exc:
            raise ProcessError(
                ProcessErrorKind.TIMEOUT,
                f"pid={self._proc.pid} still running after {timeout}s",
                context={"pid": self._proc.pid, "timeout": timeout},
            ) from exc

    def close(self, timeout: float = 1.0) -> None:
        """Release the output pipe once the process is gone."""
        if self._proc is None:
            return
        if self._reader is not None:
            self._reader.join(timeout=timeout)
        if self._proc.stdout is not None and (self._reader is None or not self._reader.is_alive()):
            self._proc.stdout.close()

    def __repr__(self) -> str:
        state = "running" if self.is_running() else ("exited" if self.started else "idle")
        return f"<ProcessHandle pid={self.pid} {state}>"


__all__ = ["ProcessHandle"]
