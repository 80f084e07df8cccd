"""Configuration for a coordination session.

Defaults mirror what a SLURM array job needs; every knob can be overridden
through ``WORKSTACK_*`` environment variables via :meth:`WorkStackConfig.from_env`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple
import os

from .utils.env import env_float, env_list_str, env_opt_float

DEFAULT_DIR_NAME = "lib-work-stack"
DEFAULT_JOB_ID_SOURCES: Tuple[str, ...] = ("SLURM_JOBID",)
DEFAULT_RANK_SOURCES: Tuple[str, ...] = ("SLURM_PROCID", "PARALLEL_RANK")


@dataclass(slots=True, frozen=True)
class PollPolicy:
    """Backoff schedule for blocking channel polls.

    ``timeout=None`` waits forever, which is the expected mode for a
    cooperative group where every registered process reaches every barrier.
    """

    interval: float = 0.05
    max_interval: float = 0.5
    backoff: float = 2.0
    timeout: Optional[float] = None

    def delays(self):  # noqa: ANN201
        d = max(self.interval, 1e-3)
        while True:
            yield d
            d = min(d * self.backoff, max(self.max_interval, self.interval))


@dataclass(slots=True)
class WorkStackConfig:
    temp_dir: Optional[str] = None
    dir_name: str = DEFAULT_DIR_NAME
    dir_mode: int = 0o770
    job_id_sources: Tuple[str, ...] = DEFAULT_JOB_ID_SOURCES
    rank_sources: Tuple[str, ...] = DEFAULT_RANK_SOURCES
    settle_delay: float = 1.0
    register_delay: float = 1.0
    poll: PollPolicy = field(default_factory=PollPolicy)

    @classmethod
    def from_env(cls, temp_dir: Optional[str] = None) -> "WorkStackConfig":
        poll = PollPolicy(
            interval=env_float("WORKSTACK_POLL_S", 0.05, minimum=0.001),
            max_interval=env_float("WORKSTACK_POLL_MAX_S", 0.5, minimum=0.001),
            timeout=env_opt_float("WORKSTACK_POLL_TIMEOUT_S"),
        )
        return cls(
            temp_dir=temp_dir or os.getenv("WORKSTACK_TMPDIR") or None,
            rank_sources=tuple(env_list_str("WORKSTACK_RANK_VARS", DEFAULT_RANK_SOURCES)),
            settle_delay=env_float("WORKSTACK_SETTLE_S", 1.0, minimum=0.0),
            register_delay=env_float("WORKSTACK_REGISTER_S", 1.0, minimum=0.0),
            poll=poll,
        )
