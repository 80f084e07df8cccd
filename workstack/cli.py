"""workstack CLI: inspect and clean a session directory."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .channel import FileChannel
from .cleanup import CleanupLedger
from .coordinator import BARRIER, COMMAND, LOG, REGISTER, WORKERS
from .core.errors import ChannelError


def _channel_files(session_dir: Path) -> list[Path]:
    return sorted(p for p in session_dir.iterdir() if p.is_file() and not p.name.startswith("."))


def _cmd_status(args: argparse.Namespace) -> int:
    d = Path(args.session_dir)
    if not d.is_dir():
        print(f"No such session directory: {d}")
        return 1
    out: dict[str, int | str] = {}
    for p in _channel_files(d):
        try:
            out[p.name] = FileChannel(p).size()
        except ChannelError as e:
            out[p.name] = f"error: {e}"
    print(json.dumps(out, indent=2, sort_keys=True))
    return 0


def _cmd_clean(args: argparse.Namespace) -> int:
    d = Path(args.session_dir)
    if not d.is_dir():
        print(f"No such session directory: {d}")
        return 1
    well_known = {COMMAND, WORKERS, REGISTER}
    doomed: list[Path] = []
    for p in _channel_files(d):
        if p.name.startswith(f"{BARRIER}_"):
            doomed.append(p)
        elif args.all and (p.name in well_known or p.name.startswith(f"{LOG}_")):
            doomed.append(p)
    n = CleanupLedger().sweep(doomed)
    print(f"Removed {n} file(s) from {d}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="workstack", description="Inspect filesystem coordination sessions")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("status", help="Show entry counts of every channel file")
    sp.add_argument("session_dir")
    sp.set_defaults(func=_cmd_status)

    sp = sub.add_parser("clean", help="Remove barrier round files")
    sp.add_argument("session_dir")
    sp.add_argument("--all", action="store_true", help="Also remove well-known channel and LOG files")
    sp.set_defaults(func=_cmd_clean)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
