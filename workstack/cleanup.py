"""Best-effort removal of channel files.

Two ledgers are kept. "continuous" holds the files of the most recently
finished barrier round and is swept when the next round is scheduled, so a
round's files outlive it by exactly one round. "final" holds the session's
well-known channels and is swept at teardown.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List

from .telemetry.logging import get_logger
from .telemetry.prom import Counter


class CleanupLedger:
    def __init__(self) -> None:
        self.continuous: List[Path] = []
        self.final: List[Path] = []
        self._log = get_logger("CleanupLedger")
        self._c_removed = Counter("workstack_files_removed_total", "Channel files removed by cleanup sweeps")

    def add_final(self, path: str | os.PathLike[str]) -> None:
        p = Path(path)
        if p not in self.final:
            self.final.append(p)

    def schedule_round(self, paths: Iterable[str | os.PathLike[str]]) -> int:
        """Sweep the previous round's files, then remember ``paths``."""
        n = self.sweep(self.continuous)
        self.continuous.extend(Path(p) for p in paths)
        return n

    def sweep(self, files: List[Path]) -> int:
        """Unlink every file in ``files`` and empty the list; never raises."""
        removed = 0
        for p in files:
            try:
                p.unlink()
                removed += 1
            except FileNotFoundError:
                pass
            except OSError as e:
                self._log.debug(f"cleanup skipped {p}: {e}")
        files.clear()
        if removed:
            self._c_removed.inc(removed)
        return removed
