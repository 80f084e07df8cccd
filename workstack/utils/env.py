"""Environment parsing helpers.

Small helpers to consistently parse env vars with sane defaults.
"""
from __future__ import annotations

from typing import Iterable, List, Mapping, Optional
import os


def env_float(name: str, default: float, minimum: float | None = None) -> float:
    try:
        v = float(os.getenv(name, str(default)))
    except Exception:
        v = float(default)
    if minimum is not None:
        v = max(minimum, v)
    return v


def env_opt_float(name: str, default: float | None = None) -> float | None:
    s = os.getenv(name, "")
    if not s:
        return default
    try:
        v = float(s)
    except Exception:
        return default
    # non-positive means "no limit"
    return v if v > 0 else None


def env_list_str(name: str, default: Iterable[str]) -> List[str]:
    s = os.getenv(name, "")
    out = [tok.strip() for tok in s.split(",") if tok.strip()]
    return out or list(default)


def first_present(names: Iterable[str], environ: Optional[Mapping[str, str]] = None) -> tuple[str, str] | None:
    """Return ``(name, value)`` for the first variable set in ``environ``."""
    env = os.environ if environ is None else environ
    for name in names:
        val = env.get(name)
        if val is not None:
            return name, val
    return None
