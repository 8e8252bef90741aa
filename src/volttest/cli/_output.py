"""CLI output formatting (JSON or text)."""
from __future__ import annotations

import json
import sys
from typing import Any, Dict, Optional


class OutputFormatter:
    """Output formatter for CLI commands."""

    def __init__(self, json_mode: bool = False, indent: int = 2):
        self.json_mode = json_mode
        self.indent = indent

    def success(self, data: Dict[str, Any], message: str) -> None:
        """Print ``data`` as JSON in json mode, else the human ``message``."""
        if self.json_mode:
            print(json.dumps({"status": "success", **data}, indent=self.indent, default=str))
        else:
            print(message)

    def error(self, error: Exception, message: Optional[str] = None) -> None:
        msg = message or str(error)
        if self.json_mode:
            payload: Dict[str, Any]
            to_json = getattr(error, "to_json_error", None)
            payload = to_json() if callable(to_json) else {"message": msg, "code": error.__class__.__name__}
            print(json.dumps({"error": payload}, indent=self.indent, default=str), file=sys.stderr)
        else:
            print(f"Error: {msg}", file=sys.stderr)

    def text(self, message: str) -> None:
        if not self.json_mode:
            print(message, flush=True)


def add_json_flag(parser: Any) -> None:
    parser.add_argument("--json", action="store_true", help="Output as JSON")


__all__ = ["OutputFormatter", "add_json_flag"]
