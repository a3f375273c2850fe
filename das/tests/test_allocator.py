"""
Stake-weighted share allocation (largest remainder).
"""

import random
from fractions import Fraction

import pytest

from das.allocator import allocate, holders_of, owner_of, quotas, seat_counts, stake_fraction
from das.errors import StakeWeightUnavailable

SEED = 1234


def _covered(alloc):
    out = []
    for rid in sorted(alloc):
        out.extend(alloc[rid])
    return out


def test_partition_is_exact_and_contiguous():
    rng = random.Random(SEED)
    for _ in range(50):
        weights = {f"v{i:02d}": rng.randint(1, 1000) for i in range(rng.randint(1, 30))}
        total = rng.randint(0, 256)
        alloc = allocate(total, weights)
        assert set(alloc) == set(weights)
        assert _covered(alloc) == list(range(total))


def test_counts_within_one_of_quota_when_no_repair_needed():
    rng = random.Random(SEED + 1)
    for _ in range(50):
        weights = {f"v{i:02d}": rng.randint(50, 100) for i in range(rng.randint(2, 20))}
        # every quota >= 1, so nobody needs the minimum-one repair
        total = rng.randint(2 * len(weights), 200)
        q = quotas(total, weights)
        for rid, r in allocate(total, weights).items():
            assert abs(len(r) - q[rid]) < 1


def test_deterministic():
    weights = {"b": 3, "a": 5, "c": 2}
    assert allocate(30, weights) == allocate(30, dict(reversed(list(weights.items()))))


def test_equal_weights_ties_go_to_lowest_ids():
    weights = {f"r{i:02d}": 1 for i in range(10)}
    seats = seat_counts(9, weights)
    assert [seats[f"r{i:02d}"] for i in range(10)] == [1] * 9 + [0]
    alloc = allocate(9, weights)
    assert alloc["r00"] == range(0, 1)
    assert alloc["r08"] == range(8, 9)
    assert len(alloc["r09"]) == 0


def test_proportional_split():
    alloc = allocate(12, {"a": 1, "b": 1, "c": 2})
    assert alloc == {"a": range(0, 3), "b": range(3, 6), "c": range(6, 12)}


def test_minimum_one_repair():
    # quotas a≈2.94, b≈0.03, c≈0.03: plain rounding would give a all three
    seats = seat_counts(3, {"a": 100, "b": 1, "c": 1})
    assert seats == {"a": 1, "b": 1, "c": 1}


def test_no_repair_when_shares_are_scarce():
    seats = seat_counts(2, {"a": 100, "b": 1, "c": 1})
    assert sum(seats.values()) == 2
    assert seats["a"] == 2


def test_zero_weight_recipient_gets_nothing():
    alloc = allocate(10, {"a": 1, "b": 0, "c": 1})
    assert len(alloc["b"]) == 0
    assert len(alloc["a"]) == len(alloc["c"]) == 5


def test_fraction_and_float_weights():
    assert seat_counts(4, {"a": Fraction(1, 4), "b": 0.75}) == {"a": 1, "b": 3}


@pytest.mark.parametrize("weights", [None, {}, {"a": 0, "b": 0}])
def test_missing_weights_unavailable(weights):
    with pytest.raises(StakeWeightUnavailable):
        allocate(9, weights)


def test_negative_weight_rejected():
    with pytest.raises(ValueError):
        allocate(9, {"a": 1, "b": -1})


def test_lookup_helpers():
    weights = {"a": 1, "b": 1, "c": 1}
    alloc = allocate(9, weights)
    assert owner_of(alloc, 4) == "b"
    assert owner_of(alloc, 99) is None
    assert holders_of(alloc, [0, 8]) == ["a", "c"]
    assert stake_fraction(weights, ["a"]) == Fraction(1, 3)
    assert stake_fraction({"a": 2, "b": 1}, ["a", "zz"]) == Fraction(2, 3)
