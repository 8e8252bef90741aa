from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

from volttest.core.utils.io import ensure_directory

LOGGER_NAME = "volttest"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_CONFIGURED_TARGET: str | None = None
_VOLTTEST_HANDLER: logging.Handler | None = None


def _level_from_name(name: str) -> int:
    level = getattr(logging, str(name).upper(), None)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(
    *,
    level: str = "INFO",
    log_path: Optional[Path] = None,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """Attach one volttest-owned handler to the ``volttest`` logger.

    Writes to ``log_path`` when given, else to ``stream`` (stderr by default).
    Idempotent per process: reconfiguring with the same destination only
    updates the level; a new destination replaces the previous handler.
    """
    global _CONFIGURED_TARGET, _VOLTTEST_HANDLER

    if log_path is not None:
        resolved = Path(log_path).expanduser().resolve()
        target = f"file:{resolved}"
    else:
        out = stream if stream is not None else sys.stderr
        target = f"stream:{id(out)}"

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_level_from_name(level))

    if _CONFIGURED_TARGET == target and _VOLTTEST_HANDLER is not None:
        _VOLTTEST_HANDLER.setLevel(_level_from_name(level))
        return _VOLTTEST_HANDLER

    _remove_handler(logger)

    handler: logging.Handler
    if log_path is not None:
        ensure_directory(resolved.parent)
        handler = logging.FileHandler(resolved, encoding="utf-8")
    else:
        handler = logging.StreamHandler(out)
    handler.setLevel(_level_from_name(level))
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    logger.addHandler(handler)

    _VOLTTEST_HANDLER = handler
    _CONFIGURED_TARGET = target
    return handler


def configure_logging_from_config(repo_root: Optional[Path] = None, *, debug: bool = False) -> logging.Handler:
    """Configure logging from the ``logging`` config section."""
    from volttest.core.config.domains import LoggingConfig

    cfg = LoggingConfig(repo_root=repo_root)
    return configure_logging(level="DEBUG" if debug else cfg.level, log_path=cfg.log_path)


def ensure_debug_output(stream: Optional[TextIO] = None) -> None:
    """Make INFO records from the ``volttest`` logger visible.

    Installs a stream handler only when neither the ``volttest`` logger nor
    an ancestor has one; an existing setup just gets its level lowered.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.hasHandlers():
        configure_logging(level="INFO", stream=stream)
    elif logger.getEffectiveLevel() > logging.INFO:
        logger.setLevel(logging.INFO)


def _remove_handler(logger: logging.Logger) -> None:
    global _VOLTTEST_HANDLER
    if _VOLTTEST_HANDLER is None:
        return
    logger.removeHandler(_VOLTTEST_HANDLER)
    _VOLTTEST_HANDLER.close()
    _VOLTTEST_HANDLER = None


def reset_logging_for_tests() -> None:
    """Test-only: drop the volttest handler and restore the default level."""
    global _CONFIGURED_TARGET
    logger = logging.getLogger(LOGGER_NAME)
    _remove_handler(logger)
    logger.setLevel(logging.NOTSET)
    _CONFIGURED_TARGET = None


__all__ = [
    "configure_logging",
    "configure_logging_from_config",
    "ensure_debug_output",
    "reset_logging_for_tests",
    "LOGGER_NAME",
]
