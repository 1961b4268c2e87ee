# phonectl/cli/args.py
from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List, Optional, Tuple


def parse_field(token: str) -> Tuple[str, Any]:
    """
    Parse a `key=value` token for `send`.

    Values are taken as JSON scalars when they parse as such (numbers,
    true/false/null, quoted strings); anything else is kept as a plain string.
    """
    if "=" not in token:
        raise argparse.ArgumentTypeError(f"Expected key=value, got '{token}'")
    key, raw = token.split("=", 1)
    key = key.strip()
    if not key:
        raise argparse.ArgumentTypeError(f"Empty key in '{token}'")
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return key, value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="phonectl", description="AI phone remote control")
    sub = parser.add_subparsers(dest="cmd", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="Device YAML file (default: packaged device.yml).")
    common.add_argument("--host", default=None, help="Override device host.")
    common.add_argument("--port", type=int, default=None, help="Override device port.")
    common.add_argument("--path", default=None, help="Override WebSocket path.")
    common.add_argument(
        "--kiosk",
        action="store_true",
        default=None,
        help="Compact single-line rendering.",
    )
    common.add_argument("--log-file", default=None, help="Also write the app log to this file.")
    common.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")

    pw = sub.add_parser("watch", parents=[common], help="Print status changes and traffic.")
    pw.add_argument("--secs", type=float, default=None, help="Stop after N seconds (default: until Ctrl+C).")

    sub.add_parser("shell", parents=[common], help="Interactive control (led, ring, send, status, log).")

    ps = sub.add_parser("send", parents=[common], help="Connect, send one command, exit.")
    ps.add_argument("event", help="Event name, e.g. led_on, ring, stop.")
    ps.add_argument("fields", nargs="*", type=parse_field, help="Extra payload fields as key=value.")
    ps.add_argument("--wait", type=float, default=10.0, help="Seconds to wait for the connection.")

    return parser


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """CLI flags that override the YAML config; None means 'not given'."""
    return {
        "host": args.host,
        "port": args.port,
        "path": args.path,
        "kiosk": args.kiosk,
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
