from __future__ import annotations

import pytest

from workstack.core.errors import ConfigurationError, RankResolutionError
from workstack.identity import ProcessIdentity, Role, resolve_identity

SOURCES = ("SLURM_PROCID", "PARALLEL_RANK")


def test_first_present_source_wins():
    ident = resolve_identity(SOURCES, {"SLURM_PROCID": "3", "PARALLEL_RANK": "0"})
    assert ident.rank == 3
    assert ident.id == "rank_3"
    assert ident.role is Role.WORKER
    assert not ident.is_master


def test_fallback_source():
    ident = resolve_identity(SOURCES, {"PARALLEL_RANK": "0"})
    assert ident.rank == 0
    assert ident.is_master


def test_missing_rank_names_every_source():
    with pytest.raises(RankResolutionError) as ei:
        resolve_identity(SOURCES, {})
    msg = str(ei.value)
    assert "SLURM_PROCID" in msg and "PARALLEL_RANK" in msg
    assert isinstance(ei.value, ConfigurationError)


@pytest.mark.parametrize("raw", ["abc", "", "-1", "1.5"])
def test_invalid_rank_values(raw):
    with pytest.raises(RankResolutionError):
        resolve_identity(SOURCES, {"SLURM_PROCID": raw, "PARALLEL_RANK": "2"})


def test_exactly_one_master_among_ranks():
    idents = [resolve_identity(SOURCES, {"PARALLEL_RANK": str(r)}) for r in range(6)]
    masters = [i for i in idents if i.is_master]
    assert len(masters) == 1
    assert masters[0].rank == 0
    assert len({i.id for i in idents}) == 6


def test_identity_is_immutable():
    ident = ProcessIdentity.from_rank(1)
    with pytest.raises(AttributeError):
        ident.rank = 0  # type: ignore[misc]
