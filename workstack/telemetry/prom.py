"""Prometheus integration.

Thin wrappers over prometheus_client that tolerate repeated construction:
several coordination handles in one interpreter (tests, re-initialization)
share the same underlying collectors.
"""
from __future__ import annotations

from typing import Optional

from prometheus_client import Counter as _PCounter, Gauge as _PGauge, Histogram as _PHist

_COUNTERS: dict[str, _PCounter] = {}
_GAUGES: dict[str, _PGauge] = {}
_HISTS: dict[str, _PHist] = {}


class Counter:
    def __init__(self, name: str, desc: str = "") -> None:
        self._name = name
        if name not in _COUNTERS:
            _COUNTERS[name] = _PCounter(name, desc)
        self._c = _COUNTERS[name]

    def inc(self, amt: float = 1.0) -> None:
        self._c.inc(amt)


class Gauge:
    def __init__(self, name: str, desc: str = "") -> None:
        self._name = name
        if name not in _GAUGES:
            _GAUGES[name] = _PGauge(name, desc)
        self._g = _GAUGES[name]

    def set(self, val: float) -> None:
        self._g.set(val)


class Histogram:
    def __init__(self, name: str, desc: str = "", buckets: Optional[list[float]] = None) -> None:
        self._name = name
        if name not in _HISTS:
            if buckets is not None:
                _HISTS[name] = _PHist(name, desc, buckets=buckets)
            else:
                _HISTS[name] = _PHist(name, desc)
        self._h = _HISTS[name]

    def observe(self, val: float) -> None:
        self._h.observe(val)
