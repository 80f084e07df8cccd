"""Work directory management.

All channel files of one coordination session live in a single directory,
``<base>/lib-work-stack[_<jobid>]``. The job suffix keeps concurrent sessions
that share a scratch root apart.
"""
from __future__ import annotations

import errno
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional

from .config import DEFAULT_DIR_NAME
from .core.errors import WorkDirectoryError
from .utils.env import first_present


@dataclass(slots=True, frozen=True)
class WorkSession:
    base_directory: Path
    job_suffix: Optional[str] = None
    dir_name: str = DEFAULT_DIR_NAME

    @property
    def directory(self) -> Path:
        name = self.dir_name
        if self.job_suffix:
            name = f"{name}_{self.job_suffix}"
        return self.base_directory / name

    def path(self, file_name: str) -> Path:
        return self.directory / file_name

    def ensure(self, mode: int = 0o770) -> Path:
        """Create the session directory; an existing one is reused."""
        d = self.directory
        try:
            os.mkdir(d, mode)
        except FileExistsError:
            if not d.is_dir():
                raise WorkDirectoryError(str(d), "path exists and is not a directory") from None
        except OSError as e:
            raise WorkDirectoryError(str(d), os.strerror(e.errno or errno.EIO)) from e
        return d


def resolve_session(
    temp_dir: Optional[str | os.PathLike[str]] = None,
    job_id_sources: Iterable[str] = ("SLURM_JOBID",),
    dir_name: str = DEFAULT_DIR_NAME,
    environ: Optional[Mapping[str, str]] = None,
) -> WorkSession:
    base = Path(temp_dir) if temp_dir else Path.cwd()
    hit = first_present(job_id_sources, environ)
    suffix = hit[1].strip() if hit is not None and hit[1].strip() else None
    return WorkSession(base_directory=base, job_suffix=suffix, dir_name=dir_name)
