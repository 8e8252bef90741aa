"""
VoltTest CLI.

Each command lives in its own module exposing ``SUMMARY``,
``register_args(parser)`` and ``main(args) -> int``.
"""
from __future__ import annotations

import argparse
import importlib
from typing import Any, Optional, Sequence

from ._output import OutputFormatter, add_json_flag

COMMAND_MODULES = ("serve", "find_port")


def discover_commands() -> dict[str, dict[str, Any]]:
    """Map CLI command names (dashed) to their module hooks."""
    commands: dict[str, dict[str, Any]] = {}
    for name in COMMAND_MODULES:
        module = importlib.import_module(f"volttest.cli.{name}")
        commands[name.replace("_", "-")] = {
            "summary": getattr(module, "SUMMARY", name),
            "register_args": getattr(module, "register_args", None),
            "main": module.main,
        }
    return commands


def build_parser() -> argparse.ArgumentParser:
    from volttest import __version__

    parser = argparse.ArgumentParser(
        prog="volttest",
        description="VoltTest - ephemeral application servers for load tests",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    for name, info in sorted(discover_commands().items()):
        cmd_parser = subparsers.add_parser(name, help=info["summary"], description=info["summary"])
        if info["register_args"]:
            info["register_args"](cmd_parser)
        cmd_parser.set_defaults(_func=info["main"])
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "_func", None)
    if func is None:
        parser.print_help()
        return 1
    return int(func(args) or 0)


__all__ = ["OutputFormatter", "add_json_flag", "build_parser", "discover_commands", "main"]
