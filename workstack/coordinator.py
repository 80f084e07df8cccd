"""Filesystem-backed process coordination.

A :class:`Coordinator` lets independent OS processes that share nothing but a
directory (e.g. the tasks of a SLURM array job) discover their rank, register
with the rank-0 master and meet at repeated barriers:

  1) ``initialize()`` resolves the session directory and identity, creates the
     well-known channels and runs the registration protocol.
  2) ``barrier(tag)`` blocks until every registered process has arrived at the
     same ``(tag, sequence)`` point.
  3) ``teardown()`` removes the session's channel files.

Construct one handle at process entry and pass it to whatever needs it.

Registration drains REGISTER once, after a fixed settle delay. A process that
registers after that drain is not part of the quorum for the rest of the
session; this is inherent to the protocol and not detected.
"""
from __future__ import annotations

import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .channel import FileChannel
from .cleanup import CleanupLedger
from .config import WorkStackConfig
from .core.errors import WorkStackError
from .identity import ProcessIdentity, resolve_identity
from .session import WorkSession, resolve_session
from .telemetry.logging import get_logger
from .telemetry.metrics import Timer
from .telemetry.prom import Counter, Gauge, Histogram

# Well-known channel tags
LOG = "LOG"
COMMAND = "COMMAND"
WORKERS = "WORKERS"
REGISTER = "REGISTER"
BARRIER = "BARRIER"

MSG_WAIT = "WAIT"
MSG_GOON = "GOON"


class Coordinator:
    def __init__(self, config: Optional[WorkStackConfig] = None, environ: Optional[Mapping[str, str]] = None) -> None:
        self.config = config or WorkStackConfig()
        self._environ = environ
        self._session: Optional[WorkSession] = None
        self._identity: Optional[ProcessIdentity] = None
        self._channels: Dict[str, FileChannel] = {}
        self._workers: List[str] = []
        self._ledger = CleanupLedger()
        self._i_barrier = 0
        self._initialized = False
        self._log = get_logger("Coordinator")
        self._c_barriers = Counter("workstack_barriers_total", "Completed barrier rounds")
        self._h_wait = Histogram("workstack_barrier_wait_seconds", "Time spent blocked in barrier calls")
        self._g_registered = Gauge("workstack_registered_workers", "Processes registered with the master")

    # -- lifecycle -----------------------------------------------------------

    def initialize(self, temp_dir: Optional[str] = None) -> None:
        """Set up the session and register with the group.

        Raises RankResolutionError when no rank source is set and
        WorkDirectoryError when the session directory cannot be created;
        both are meant to abort the calling process's startup.
        """
        if self._initialized:
            return
        cfg = self.config
        base = temp_dir if temp_dir is not None else cfg.temp_dir
        session = resolve_session(base, cfg.job_id_sources, cfg.dir_name, self._environ)
        session.ensure(cfg.dir_mode)
        identity = resolve_identity(cfg.rank_sources, self._environ)
        self._session = session
        self._identity = identity
        self._log = get_logger("Coordinator", {"id": identity.id})
        self._log.debug(f"work_directory={session.directory}")

        self.create_channel(LOG, identity.id)
        self.create_channel(COMMAND)
        self.create_channel(WORKERS)
        self.create_channel(REGISTER)

        self.get_channel(LOG).clear()
        if identity.is_master:
            for tag in (COMMAND, WORKERS, REGISTER):
                self.get_channel(tag).clear()
            stale = self._ledger.sweep(sorted(session.directory.glob(f"{BARRIER}_*")))
            if stale:
                self._log.info(f"removed {stale} barrier file(s) left by an earlier session")
        # let directory and channel creation become visible to peers
        time.sleep(cfg.settle_delay)

        self.register_workers()
        self._initialized = True

    def teardown(self) -> None:
        """Remove this session's channel files; the directory itself stays.

        On the master this includes the last barrier round. Peers still
        waiting for its release treat the vanished cmd file as released.
        """
        removed = self._ledger.sweep(self._ledger.continuous)
        removed += self._ledger.sweep(self._ledger.final)
        self._channels.clear()
        self._initialized = False
        self._log.debug(f"teardown removed={removed}")

    def __enter__(self) -> "Coordinator":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb):  # noqa: ANN001, ANN201
        self.teardown()
        return False

    # -- registration --------------------------------------------------------

    def register_workers(self, settle: Optional[float] = None) -> bool:
        """Announce this process; the master then collects every announcement.

        Everyone pushes its id to REGISTER and sleeps ``settle`` seconds. The
        master then pops REGISTER until empty, moving ids to WORKERS.
        """
        if self._identity is None or self._session is None:
            return False
        self.get_channel(REGISTER).push(self._identity.id)
        time.sleep(self.config.register_delay if settle is None else settle)
        if self._identity.is_master:
            self._workers = []
            register = self.get_channel(REGISTER)
            workers = self.get_channel(WORKERS)
            while True:
                wid, found = register.pop()
                if not found:
                    break
                workers.push(wid)
                self._workers.append(wid)
            self._g_registered.set(len(self._workers))
            self._log.info(f"n_registered={len(self._workers)}")
        return True

    # -- barrier -------------------------------------------------------------

    def barrier_file(self, step: str, tag: str, seq: int) -> Path:
        if self._session is None:
            raise WorkStackError("not initialized: no session directory")
        return self._session.path(f"{BARRIER}_{step}_{tag}_{seq}")

    def barrier(self, tag: str) -> bool:
        """Block until every registered process reached this ``(tag, seq)``.

        Returns False without touching any file when the handle is not
        initialized. The local sequence number advances on every call.
        All processes must call barriers with the same tags in the same order.
        """
        seq = self._i_barrier
        self._i_barrier += 1
        if not self._initialized or self._identity is None:
            return False

        poll = self.config.poll
        cmd = FileChannel(self.barrier_file("cmd", tag, seq), poll)
        ack = FileChannel(self.barrier_file("ack", tag, seq), poll)
        master = self._identity.is_master

        with Timer(f"barrier:{tag}") as t:
            # arrival
            if master:
                ack.clear()
                cmd.clear()
                cmd.push(MSG_WAIT)
            cmd.poll_query(MSG_WAIT)
            ack.push(self._identity.id)
            # release
            if master:
                ack.poll_size(len(self._workers))
                cmd.push(MSG_GOON)
            # round files are only deleted after GOON, so a vanished cmd file
            # means this round was released
            cmd.poll_query(MSG_GOON, until_removed=True)

        if master:
            self._ledger.schedule_round([cmd.path, ack.path])
        self._h_wait.observe(t.elapsed)
        self._c_barriers.inc()
        self._log.debug(f"barrier tag={tag} seq={seq} waited={t.elapsed:.3f}s")
        return True

    # -- channel registry ----------------------------------------------------

    def create_channel(self, tag: str, suffix: str = "") -> bool:
        """Create a session channel named ``<tag>[_<suffix>]``.

        Returns False when the tag is already taken or no session exists yet.
        """
        if self._session is None or tag in self._channels:
            return False
        name = f"{tag}_{suffix}" if suffix else tag
        path = self._session.path(name)
        self._channels[tag] = FileChannel(path, self.config.poll, tag=tag)
        self._ledger.add_final(path)
        return True

    def get_channel(self, tag: str) -> FileChannel:
        return self._channels[tag]

    def delete_channel(self, tag: str) -> bool:
        """Forget a channel; its file is left for the final sweep."""
        return self._channels.pop(tag, None) is not None

    def channels(self) -> Dict[str, Path]:
        return {tag: ch.path for tag, ch in self._channels.items()}

    def log(self, message: str) -> bool:
        """Append a line to this process's LOG channel."""
        if not self._initialized:
            return False
        self.get_channel(LOG).push(message)
        return True

    # -- accessors -----------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def identity(self) -> Optional[ProcessIdentity]:
        return self._identity

    @property
    def rank(self) -> int:
        return self._identity.rank if self._identity is not None else -1

    @property
    def id(self) -> str:
        return self._identity.id if self._identity is not None else ""

    @property
    def is_master(self) -> bool:
        return self._identity is not None and self._identity.is_master

    @property
    def work_directory(self) -> Optional[Path]:
        return self._session.directory if self._session is not None else None

    @property
    def workers(self) -> List[str]:
        return list(self._workers)

    @property
    def n_registered(self) -> int:
        return len(self._workers)

    @property
    def barrier_sequence(self) -> int:
        return self._i_barrier

    @property
    def ledger(self) -> CleanupLedger:
        return self._ledger
