"""
VoltTest find-port command.

SUMMARY: Print a free TCP port

Plain mode scans upward from ``--start``; ``--worker`` first tries this
process's worker window, then the wide fallback range.
"""
from __future__ import annotations

import argparse
import sys

from volttest.cli._output import OutputFormatter, add_json_flag
from volttest.core.config.domains import RegistryConfig, ServerConfig
from volttest.core.exceptions import VoltTestError
from volttest.core.server import DEFAULT_HOST, find_available_port, find_available_port_for_worker

SUMMARY = "Print a free TCP port"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"Host to probe (default: {DEFAULT_HOST})")
    parser.add_argument("--start", type=int, help="First port to try (default: server.port or registry.base_port)")
    parser.add_argument("--window", type=int, help="Number of ports to scan")
    parser.add_argument("--worker", action="store_true", help="Use the per-worker port window")
    add_json_flag(parser)


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        if args.worker:
            cfg = RegistryConfig()
            port = find_available_port_for_worker(
                args.start if args.start is not None else cfg.base_port,
                args.host,
                worker_window=cfg.worker_window,
                fallback_window=args.window or cfg.fallback_window,
            )
        else:
            server_cfg = ServerConfig()
            port = find_available_port(
                args.start if args.start is not None else server_cfg.port,
                args.host,
                window=args.window or server_cfg.settings.port_scan_window,
                timeout=server_cfg.settings.port_connect_timeout_seconds,
            )
    except VoltTestError as exc:
        formatter.error(exc)
        return 1

    formatter.success({"host": args.host, "port": port}, str(port))
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
