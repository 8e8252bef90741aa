from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping


class VoltTestError(Exception):
    """Base exception for VoltTest."""

    context: Dict[str, Any]
    retryable: bool = False

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "retryable": self.retryable,
            "context": self.context,
        }


class ConfigError(VoltTestError, ValueError):
    """Raised when configuration cannot be loaded or fails validation."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        VoltTestError.__init__(self, message, context=context)
        ValueError.__init__(self, message)


class ApplicationRootNotFound(VoltTestError, FileNotFoundError):
    """Raised when no application root can be located for a test run."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        VoltTestError.__init__(self, message, context=context)
        FileNotFoundError.__init__(self, message)


class ServerError(VoltTestError):
    """Base class for ephemeral server lifecycle errors."""


class InvalidApplicationStructure(ServerError, FileNotFoundError):
    """Raised at construction when the bootstrap file or public entrypoint is missing."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        ServerError.__init__(self, message, context=context)
        FileNotFoundError.__init__(self, message)


class PublicDirectoryMissing(ServerError, FileNotFoundError):
    """Raised by ``start()`` when the public directory vanished after construction."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        ServerError.__init__(self, message, context=context)
        FileNotFoundError.__init__(self, message)


class PortExhaustedError(ServerError, RuntimeError):
    """Raised when no free port exists in the scanned window(s)."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        ServerError.__init__(self, message, context=context)
        RuntimeError.__init__(self, message)


class ServerStartFailed(ServerError, RuntimeError):
    """Raised when a server process could not be spawned, bound, or verified.

    ``output`` holds whatever the process wrote to stdout/stderr before the
    failure was detected.
    """

    retryable = True

    def __init__(
        self,
        message: str = "",
        *,
        output: str = "",
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.output = output or ""
        full = f"{message}\nOutput: {self.output}" if self.output else message
        ctx = dict(context or {})
        ctx.setdefault("output", self.output)
        ServerError.__init__(self, full, context=ctx)
        RuntimeError.__init__(self, full)


class ProcessDiedDuringStartup(ServerStartFailed):
    """Raised when the server process exits before it ever answered a probe."""

    def __init__(
        self,
        message: str = "",
        *,
        exit_code: int | None = None,
        output: str = "",
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.exit_code = exit_code
        ctx = dict(context or {})
        ctx["exit_code"] = exit_code
        super().__init__(message, output=output, context=ctx)


class HealthCheckTimeout(ServerStartFailed):
    """Raised when a live server process never answered ready within the timeout."""

    def __init__(
        self,
        message: str = "",
        *,
        attempts: int = 0,
        last_error: str = "",
        output: str = "",
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        ctx = dict(context or {})
        ctx["attempts"] = attempts
        ctx["last_error"] = last_error
        super().__init__(message, output=output, context=ctx)


class ProcessErrorKind(str, Enum):
    """What went wrong while talking to an OS process."""

    SPAWN_FAILED = "spawn_failed"
    SIGNAL_FAILED = "signal_failed"
    TIMEOUT = "timeout"


class ProcessError(VoltTestError):
    """Raised by ``ProcessHandle`` for spawn, signal and wait failures."""

    def __init__(
        self,
        kind: ProcessErrorKind,
        message: str = "",
        *,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.kind = ProcessErrorKind(kind)
        ctx = dict(context or {})
        ctx["kind"] = self.kind.value
        super().__init__(message, context=ctx)


__all__ = [
    "VoltTestError",
    "ConfigError",
    "ApplicationRootNotFound",
    "ServerError",
    "InvalidApplicationStructure",
    "PublicDirectoryMissing",
    "PortExhaustedError",
    "ServerStartFailed",
    "ProcessDiedDuringStartup",
    "HealthCheckTimeout",
    "ProcessErrorKind",
    "ProcessError",
]
