"""
DAS • Allocator

Deterministic, stake-proportional assignment of share indices to recipients
(largest-remainder apportionment). Any observer holding the same
`(total_shares, stake_weights)` recomputes the same assignment, so "who should
have received what" is publicly checkable.

Rules
-----
1. quota_i = total_shares · w_i / Σw (exact rationals).
2. Every recipient gets floor(quota_i) seats.
3. Leftover seats go to the largest remainders; ties broken by recipient id
   (ascending).
4. When total_shares ≥ the number of positive-weight recipients, a
   positive-weight recipient left with zero seats takes one from the
   recipient with the largest surplus (seats − quota) that holds at least
   two. Without this step every count is within 1 of its quota.
5. Seats become contiguous index ranges, recipients in ascending id order.
"""

from __future__ import annotations

import math
from fractions import Fraction
from typing import Dict, List, Mapping, Optional, Union

from .errors import StakeWeightUnavailable

Weight = Union[int, Fraction, float]


def _normalize(stake_weights: Optional[Mapping[str, Weight]]) -> Dict[str, Fraction]:
    if not stake_weights:
        raise StakeWeightUnavailable("no stake weights supplied")
    out: Dict[str, Fraction] = {}
    for rid, w in stake_weights.items():
        fw = Fraction(w)
        if fw < 0:
            raise ValueError(f"negative stake weight for {rid!r}")
        out[str(rid)] = fw
    if sum(out.values()) == 0:
        raise StakeWeightUnavailable("total stake weight is zero")
    return out


def quotas(total_shares: int, stake_weights: Mapping[str, Weight]) -> Dict[str, Fraction]:
    """Exact proportional share count per recipient."""
    weights = _normalize(stake_weights)
    total = sum(weights.values())
    return {rid: total_shares * w / total for rid, w in weights.items()}


def seat_counts(total_shares: int, stake_weights: Mapping[str, Weight]) -> Dict[str, int]:
    if total_shares < 0:
        raise ValueError("total_shares must be >= 0")
    q = quotas(total_shares, stake_weights)
    ids = sorted(q)
    seats = {rid: math.floor(q[rid]) for rid in ids}

    leftover = total_shares - sum(seats.values())
    by_remainder = sorted(ids, key=lambda rid: (-(q[rid] - seats[rid]), rid))
    for rid in by_remainder[:leftover]:
        seats[rid] += 1

    positive = [rid for rid in ids if q[rid] > 0]
    if total_shares >= len(positive):
        for rid in positive:
            if seats[rid] > 0:
                continue
            donors = [d for d in ids if seats[d] >= 2]
            # largest surplus first, then lowest id
            donor = min(donors, key=lambda d: (-(seats[d] - q[d]), d))
            seats[donor] -= 1
            seats[rid] += 1
    return seats


def allocate(total_shares: int, stake_weights: Mapping[str, Weight]) -> Dict[str, range]:
    """
    Map each recipient to its (possibly empty) contiguous range of share
    indices. The ranges partition [0, total_shares) exactly.

    Raises:
        StakeWeightUnavailable: weights missing, empty, or all zero.
    """
    seats = seat_counts(total_shares, stake_weights)
    out: Dict[str, range] = {}
    cursor = 0
    for rid in sorted(seats):
        out[rid] = range(cursor, cursor + seats[rid])
        cursor += seats[rid]
    return out


def owner_of(allocation: Mapping[str, range], index: int) -> Optional[str]:
    for rid, r in allocation.items():
        if index in r:
            return rid
    return None


def stake_fraction(stake_weights: Mapping[str, Weight], recipients) -> Fraction:
    """Fraction of total stake held by `recipients`."""
    weights = _normalize(stake_weights)
    chosen = set(recipients)
    return sum((w for rid, w in weights.items() if rid in chosen), Fraction(0)) / sum(weights.values())


def holders_of(allocation: Mapping[str, range], indices) -> List[str]:
    wanted = set(indices)
    return sorted(rid for rid, r in allocation.items() if wanted.intersection(r))


__all__ = [
    "quotas",
    "seat_counts",
    "allocate",
    "owner_of",
    "holders_of",
    "stake_fraction",
]
