from __future__ import annotations

import multiprocessing as mp
import queue
import time
from pathlib import Path

import pytest

from workstack.channel import FileChannel
from workstack.config import PollPolicy, WorkStackConfig
from workstack.coordinator import REGISTER, Coordinator
from workstack.core.errors import ChannelTimeout

ctx = mp.get_context("fork")

N = 4
ROUNDS = 3


def _cfg(timeout: float | None = None) -> WorkStackConfig:
    return WorkStackConfig(
        settle_delay=0.5,
        register_delay=1.0,
        poll=PollPolicy(interval=0.01, max_interval=0.05, timeout=timeout),
    )


def _handle(rank: int, timeout: float | None = None) -> Coordinator:
    return Coordinator(_cfg(timeout), environ={"PARALLEL_RANK": str(rank)})


def _drain(q, n: int, wait: float = 60.0) -> list:  # noqa: ANN001
    out = []
    deadline = time.monotonic() + wait
    while len(out) < n:
        out.append(q.get(timeout=max(0.1, deadline - time.monotonic())))
    return out


def _stop(procs) -> None:  # noqa: ANN001
    for p in procs:
        if p.is_alive():
            p.terminate()
        p.join(5)


def _barrier_rank(rank: int, base: str, q) -> None:  # noqa: ANN001
    c = _handle(rank)
    c.initialize(base)
    q.put(("init", rank, c.is_master, c.n_registered, sorted(c.workers)))
    for r in range(ROUNDS):
        if rank == N - 1:
            time.sleep(0.3)  # straggler
        enter = time.monotonic()
        ok = c.barrier("step")
        leave = time.monotonic()
        q.put(("round", rank, r, ok, enter, leave, c.barrier_sequence))
    c.teardown()
    q.put(("done", rank))


def test_barrier_holds_everyone_until_all_arrive(tmp_path: Path):
    q = ctx.Queue()
    procs = [ctx.Process(target=_barrier_rank, args=(r, str(tmp_path), q)) for r in range(N)]
    for p in procs:
        p.start()
    try:
        msgs = _drain(q, N * (ROUNDS + 2))
        for p in procs:
            p.join(30)
            assert p.exitcode == 0
    finally:
        _stop(procs)

    inits = [m for m in msgs if m[0] == "init"]
    masters = [m for m in inits if m[2]]
    assert len(masters) == 1
    assert masters[0][1] == 0
    assert masters[0][3] == N
    assert masters[0][4] == sorted(f"rank_{r}" for r in range(N))
    assert all(m[3] == 0 for m in inits if not m[2])

    rounds = [m for m in msgs if m[0] == "round"]
    assert all(m[3] is True for m in rounds)
    for r in range(ROUNDS):
        mine = [m for m in rounds if m[2] == r]
        assert len(mine) == N
        last_arrival = max(m[4] for m in mine)
        first_release = min(m[5] for m in mine)
        assert first_release >= last_arrival
        assert {m[6] for m in mine} == {r + 1}

    d = tmp_path / "lib-work-stack"
    for name in ["COMMAND", "WORKERS", "REGISTER"] + [f"LOG_rank_{r}" for r in range(N)]:
        assert not (d / name).exists()
    # every round, the last included, was swept by the master
    assert sorted(d.glob("BARRIER_*")) == []


def _late_rank(rank: int, base: str, delay: float, q) -> None:  # noqa: ANN001
    time.sleep(delay)
    c = _handle(rank)
    c.initialize(base)
    q.put((rank, c.n_registered, c.workers))


def test_late_registration_is_excluded(tmp_path: Path):
    q = ctx.Queue()
    plan = [(0, 0.0), (1, 0.0), (2, 2.5)]
    procs = [ctx.Process(target=_late_rank, args=(r, str(tmp_path), d, q)) for r, d in plan]
    for p in procs:
        p.start()
    try:
        msgs = {m[0]: m for m in _drain(q, 3)}
        for p in procs:
            p.join(30)
    finally:
        _stop(procs)

    assert msgs[0][1] == 2
    assert sorted(msgs[0][2]) == ["rank_0", "rank_1"]
    # the late announcement is never drained
    assert FileChannel(tmp_path / "lib-work-stack" / REGISTER).entries() == ["rank_2"]


def _idle_rank(rank: int, base: str, q, hold: float) -> None:  # noqa: ANN001
    c = _handle(rank)
    c.initialize(base)
    q.put(("ready", rank))
    time.sleep(hold)


def _master_rank(base: str, q, timeout: float | None) -> None:  # noqa: ANN001
    c = _handle(0, timeout)
    c.initialize(base)
    q.put(("registered", c.n_registered))
    try:
        c.barrier("never")
    except ChannelTimeout:
        q.put(("timeout", None))
        return
    q.put(("released", None))


def test_missing_peer_blocks_master_indefinitely(tmp_path: Path):
    q = ctx.Queue()
    procs = [
        ctx.Process(target=_master_rank, args=(str(tmp_path), q, None)),
        ctx.Process(target=_idle_rank, args=(1, str(tmp_path), q, 30.0)),
    ]
    for p in procs:
        p.start()
    try:
        msgs = dict(_drain(q, 2))
        assert msgs["registered"] == 2
        time.sleep(2.0)
        assert procs[0].is_alive()
        with pytest.raises(queue.Empty):
            q.get(timeout=0.5)
        ack = tmp_path / "lib-work-stack" / "BARRIER_ack_never_0"
        assert ack.read_text().split() == ['"rank_0"']
    finally:
        _stop(procs)


def test_missing_peer_with_poll_timeout_raises(tmp_path: Path):
    q = ctx.Queue()
    procs = [
        ctx.Process(target=_master_rank, args=(str(tmp_path), q, 1.0)),
        ctx.Process(target=_idle_rank, args=(1, str(tmp_path), q, 10.0)),
    ]
    for p in procs:
        p.start()
    try:
        msgs = _drain(q, 3)
        kinds = [m[0] for m in msgs]
        assert "timeout" in kinds
        assert "released" not in kinds
        procs[0].join(10)
        assert procs[0].exitcode == 0
    finally:
        _stop(procs)
