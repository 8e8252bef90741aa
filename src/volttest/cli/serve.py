"""
VoltTest serve command.

SUMMARY: Start an application server and keep it running

Validates the application root, starts the server on the first free port at
or after ``--port``, prints its URL and blocks until interrupted.
"""
from __future__ import annotations

import argparse
import dataclasses
import sys
import time
from pathlib import Path

from volttest.cli._output import OutputFormatter, add_json_flag
from volttest.core.config.domains import ServerConfig
from volttest.core.exceptions import VoltTestError
from volttest.core.logging import configure_logging_from_config
from volttest.core.server import ServerManager
from volttest.testing import resolve_application_root

SUMMARY = "Start an application server and keep it running"

WATCH_INTERVAL_SECONDS = 0.5


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    parser.add_argument(
        "root",
        nargs="?",
        help="Application root (default: VOLTTEST_BASE_PATH or the nearest parent with a bootstrap file)",
    )
    parser.add_argument("--host", help="Interface to bind (default: server.host)")
    parser.add_argument("--port", type=int, help="Preferred port (default: server.port)")
    parser.add_argument("--debug", action="store_true", help="Log lifecycle details")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for the server to become ready (default: server.startup_timeout_seconds)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Start, verify readiness, then stop and exit",
    )
    add_json_flag(parser)


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        root = Path(args.root) if args.root else resolve_application_root(Path.cwd())
        configure_logging_from_config(root, debug=args.debug)
        cfg = ServerConfig(repo_root=root)
        settings = cfg.settings
        if args.timeout is not None:
            settings = dataclasses.replace(settings, startup_timeout_seconds=args.timeout)
        manager = ServerManager(
            root,
            args.debug,
            args.host or cfg.host,
            args.port if args.port is not None else cfg.port,
            settings=settings,
        )
        manager.start()
    except VoltTestError as exc:
        formatter.error(exc)
        return 1

    status = manager.get_status()
    formatter.success(
        dict(status),
        f"Server running at {status['url']} (pid {status['pid']})"
        + ("" if args.check else ". Press Ctrl+C to stop."),
    )

    exit_code = 0
    try:
        while not args.check and manager.is_running():
            time.sleep(WATCH_INTERVAL_SECONDS)
        if not args.check:
            formatter.text("Server process exited unexpectedly.")
            output = manager.get_output()
            if output:
                formatter.text(output)
            exit_code = 1
    except KeyboardInterrupt:
        formatter.text("Stopping server...")
    finally:
        manager.stop()
    return exit_code


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
