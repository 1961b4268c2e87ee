# phonectl/cli/main.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from phonectl.app.config import load_config
from phonectl.core.errors import PhoneCtlError

from phonectl.cli.args import config_overrides, parse_args
from phonectl.cli.commands import (
    cmd_send,
    cmd_shell,
    cmd_watch,
    configure_logging,
)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(
        verbose=args.verbose,
        log_file=Path(args.log_file) if args.log_file else None,
    )

    try:
        cfg = load_config(args.config, overrides=config_overrides(args))

        if args.cmd == "watch":
            return cmd_watch(cfg, secs=args.secs)
        if args.cmd == "shell":
            return cmd_shell(cfg)
        if args.cmd == "send":
            return cmd_send(cfg, event=args.event, fields=dict(args.fields), wait_s=args.wait)

        return 2
    except PhoneCtlError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
