# phonectl/cli/commands.py
from __future__ import annotations

import argparse
import logging
import shlex
import sys
import time
from pathlib import Path
from typing import Callable, Optional, TextIO

from phonectl.app.config import PhoneConfig
from phonectl.app.controller import PhoneController
from phonectl.cli.args import parse_field
from phonectl.runtime.state import CodecSnapshot, ConnectionStatus, LogEntry, PhoneStatus


# ---------------- Logging ----------------

def configure_logging(*, verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """
    Console logging on stderr plus an optional file handler (idempotent).
    Kept in CLI (presentation-layer concern).
    """
    root = logging.getLogger()
    level = logging.DEBUG if verbose else logging.WARNING
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if not any(getattr(h, "_phonectl", False) for h in root.handlers):
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(fmt)
        sh._phonectl = True  # type: ignore[attr-defined]
        root.addHandler(sh)

    for h in root.handlers:
        if getattr(h, "_phonectl", False):
            h.setLevel(level)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        target = str(log_file.resolve())
        if not any(
            isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target
            for h in root.handlers
        ):
            fh = logging.FileHandler(log_file, encoding="utf-8", delay=True)
            fh.setLevel(logging.INFO)
            fh.setFormatter(fmt)
            root.addHandler(fh)

    root.setLevel(min(level, logging.INFO) if log_file is not None else level)


# ---------------- Rendering ----------------

def format_entry(entry: LogEntry, *, kiosk: bool = False) -> str:
    fields = entry.fields()
    event = fields.pop("event", "?")
    fields.pop("timestamp", None)
    fields.pop("timestamp_formatted", None)
    extras = " ".join(f"{k}={v}" for k, v in fields.items())

    if kiosk:
        arrow = ">" if entry.source.value == "Client" else "<"
        return f"{arrow} {event} {extras}".rstrip()
    return f"[{entry.timestamp_formatted}] {entry.source.value:<6} {event} {extras}".rstrip()


def format_status(st: PhoneStatus, *, kiosk: bool = False) -> str:
    led = "ON" if st.device.led_on else "OFF"
    ring = "RINGING" if st.device.ringing else "idle"
    if kiosk:
        return f"{st.connection.value} | LED {led} | {ring}"

    lines = [
        f"Connection: {st.connection.value}",
        f"LED:        {led}",
        f"Ringtone:   {ring}",
        f"Log:        {len(st.log)} entries",
    ]
    if st.last_error:
        lines.append(f"Last error: {st.last_error}")
    if st.decode_errors:
        lines.append(f"Bad msgs:   {st.decode_errors}")
    return "\n".join(lines)


class EntryPrinter:
    """Prints log entries not seen before; entries arrive as full snapshots."""

    def __init__(self, *, kiosk: bool = False, out: Callable[[str], None] = print):
        self._kiosk = kiosk
        self._out = out
        self._seen: set[int] = set()

    def __call__(self, snap: CodecSnapshot) -> None:
        fresh = [e for e in snap.log if e.id not in self._seen]
        self._seen = {e.id for e in snap.log}
        for entry in sorted(fresh, key=lambda e: e.id):
            self._out(format_entry(entry, kiosk=self._kiosk))


def _print_status_change(status: ConnectionStatus) -> None:
    label = "Connecting..." if status is ConnectionStatus.CONNECTING else status.value
    print(f"* {label}")


# ---------------- Commands ----------------

def cmd_watch(cfg: PhoneConfig, *, secs: Optional[float] = None) -> int:
    controller = PhoneController(cfg)
    controller.subscribe_status(_print_status_change)
    controller.subscribe_events(EntryPrinter(kiosk=cfg.kiosk))

    print(f"Watching {cfg.url}  (Ctrl+C to quit)")
    with controller:
        t0 = time.time()
        try:
            while secs is None or time.time() - t0 < secs:
                time.sleep(0.2)
        except KeyboardInterrupt:
            pass
    return 0


def cmd_send(cfg: PhoneConfig, *, event: str, fields: dict, wait_s: float) -> int:
    controller = PhoneController(cfg)
    controller.subscribe_events(EntryPrinter(kiosk=cfg.kiosk))

    with controller:
        controller.wait_connected(wait_s)
        controller.send_command(event, fields)
        # give the reactor a moment to transmit before tearing down
        time.sleep(0.2)
    return 0


SHELL_HELP = """\
Commands:
  led                      toggle the LED
  ring                     start/stop the ringtone
  send <event> [k=v ...]   send a raw command
  status                   connection + device state
  log [N]                  last N log entries (default 10)
  help                     this text
  quit                     exit"""


def run_shell(controller: PhoneController, *, kiosk: bool = False, stdin: TextIO = sys.stdin) -> None:
    """Read commands line by line; every intent is posted onto the reactor."""
    for line in stdin:
        try:
            parts = shlex.split(line)
        except ValueError as e:
            print(f"? {e}")
            continue
        if not parts:
            continue

        cmd, rest = parts[0].lower(), parts[1:]
        if cmd in ("quit", "exit"):
            return
        if cmd == "help":
            print(SHELL_HELP)
        elif cmd == "led":
            controller.toggle_led()
        elif cmd == "ring":
            controller.toggle_ring()
        elif cmd == "send":
            if not rest:
                print("usage: send <event> [key=value ...]")
                continue
            try:
                fields = dict(parse_field(tok) for tok in rest[1:])
            except argparse.ArgumentTypeError as e:
                print(f"? {e}")
                continue
            controller.send_command(rest[0], fields)
        elif cmd == "status":
            print(format_status(controller.status(), kiosk=kiosk))
        elif cmd == "log":
            n = int(rest[0]) if rest and rest[0].isdigit() else 10
            for entry in controller.status().log[:n]:
                print(format_entry(entry, kiosk=kiosk))
        else:
            print(f"? unknown command '{cmd}' (try: help)")


def cmd_shell(cfg: PhoneConfig) -> int:
    controller = PhoneController(cfg)
    controller.subscribe_status(_print_status_change)
    controller.subscribe_events(EntryPrinter(kiosk=cfg.kiosk))

    print(f"Connecting to {cfg.url}. Type 'help' for commands.")
    with controller:
        try:
            run_shell(controller, kiosk=cfg.kiosk)
        except KeyboardInterrupt:
            pass
    return 0
