"""Rank and role discovery.

The rank comes from the first environment variable in an ordered source list
that is present (``SLURM_PROCID`` before ``PARALLEL_RANK`` by default). Rank 0
is the master; every other rank is a worker.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from .core.errors import RankResolutionError
from .utils.env import first_present


class Role(str, enum.Enum):
    MASTER = "master"
    WORKER = "worker"


@dataclass(slots=True, frozen=True)
class ProcessIdentity:
    rank: int
    id: str
    role: Role

    @property
    def is_master(self) -> bool:
        return self.role is Role.MASTER

    @classmethod
    def from_rank(cls, rank: int) -> "ProcessIdentity":
        if rank < 0:
            raise RankResolutionError(f"rank must be non-negative, got {rank}")
        role = Role.MASTER if rank == 0 else Role.WORKER
        return cls(rank=rank, id=f"rank_{rank}", role=role)


def resolve_identity(sources: Iterable[str], environ: Optional[Mapping[str, str]] = None) -> ProcessIdentity:
    """Resolve this process's identity; first present source wins.

    Raises RankResolutionError when no source is set or the value is not a
    non-negative integer. A present-but-invalid value does not fall through to
    later sources.
    """
    names = list(sources)
    hit = first_present(names, environ)
    if hit is None:
        raise RankResolutionError(
            "could not determine the parallel rank; set it via one of the "
            f"environment variables {', '.join(names)}"
        )
    name, raw = hit
    try:
        rank = int(raw.strip())
    except ValueError:
        raise RankResolutionError(f"{name}={raw!r} is not an integer rank") from None
    return ProcessIdentity.from_rank(rank)
