"""
Complaint accumulation: idempotence inside the recency window, expiry, and
the stake-weighted ratio.
"""

import threading
from fractions import Fraction

import pytest
from prometheus_client import CollectorRegistry

from das.complaints import ComplaintLedger
from das.errors import StakeWeightUnavailable
from das.metrics import DASMetrics

SHARER = "0x" + "ab" * 32
WINDOW = 100


def _ledger(weights=None, window=WINDOW):
    registry = CollectorRegistry()
    weights = weights if weights is not None else {f"r{i}": 1 for i in range(6)}
    cl = ComplaintLedger(lambda epoch: weights, window, metrics=DASMetrics(registry))
    return cl, registry


def test_duplicate_inside_window_is_ignored():
    cl, registry = _ledger()
    assert cl.record_complaint(SHARER, 0, "r0", now=10)
    assert not cl.record_complaint(SHARER, 0, "r0", now=50)
    assert not cl.record_complaint(SHARER, 0, "r0", now=10 + WINDOW)
    assert len(cl.records(SHARER, 0)) == 1
    assert registry.get_sample_value("das_complaints_total", {"outcome": "recorded"}) == 1
    assert registry.get_sample_value("das_complaints_total", {"outcome": "duplicate"}) == 2


def test_recomplaint_after_expiry_is_appended():
    cl, _ = _ledger()
    cl.record_complaint(SHARER, 0, "r0", now=0)
    assert cl.record_complaint(SHARER, 0, "r0", now=WINDOW + 1)
    history = cl.records(SHARER, 0)
    assert [c.timestamp for c in history] == [0, WINDOW + 1]
    assert cl.active_complainers(SHARER, 0, now=WINDOW + 1) == ["r0"]


def test_ratio_is_exact_stake_fraction():
    cl, _ = _ledger({"a": 1, "b": 2, "c": 3})
    assert cl.complaint_ratio(SHARER, 0, now=0) == 0
    cl.record_complaint(SHARER, 0, "b", now=0)
    assert cl.complaint_ratio(SHARER, 0, now=0) == Fraction(1, 3)
    cl.record_complaint(SHARER, 0, "a", now=5)
    assert cl.complaint_ratio(SHARER, 0, now=5) == Fraction(1, 2)


def test_expired_complaints_stop_counting_but_stay_in_history():
    cl, _ = _ledger({"a": 1, "b": 1})
    cl.record_complaint(SHARER, 0, "a", now=0)
    cl.record_complaint(SHARER, 0, "b", now=60)
    assert cl.complaint_ratio(SHARER, 0, now=WINDOW) == 1
    assert cl.complaint_ratio(SHARER, 0, now=WINDOW + 1) == Fraction(1, 2)
    assert cl.complaint_ratio(SHARER, 0, now=500) == 0
    assert len(cl.records(SHARER, 0)) == 2


def test_epochs_and_sharers_are_separate():
    cl, _ = _ledger({"a": 1, "b": 1})
    cl.record_complaint(SHARER, 0, "a", now=0)
    assert cl.complaint_ratio(SHARER, 1, now=0) == 0
    assert cl.complaint_ratio("0x" + "cd" * 32, 0, now=0) == 0
    assert cl.records(SHARER, 1) == []


def test_unknown_recipient_carries_no_weight():
    cl, _ = _ledger({"a": 1})
    cl.record_complaint(SHARER, 0, "stranger", now=0)
    assert cl.complaint_ratio(SHARER, 0, now=0) == 0


@pytest.mark.parametrize("weights", [{}, {"a": 0}])
def test_missing_stake_weights(weights):
    cl, _ = _ledger(weights)
    with pytest.raises(StakeWeightUnavailable):
        cl.complaint_ratio(SHARER, 0, now=0)


def test_concurrent_complaints_are_not_lost():
    ids = [f"r{i}" for i in range(64)]
    cl, _ = _ledger({rid: 1 for rid in ids})
    barrier = threading.Barrier(16)

    def worker(chunk):
        barrier.wait()
        for rid in chunk:
            cl.record_complaint(SHARER, 7, rid, now=1)
            cl.record_complaint(SHARER, 7, rid, now=2)

    threads = [threading.Thread(target=worker, args=(ids[i::16],)) for i in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(cl.records(SHARER, 7)) == 64
    assert cl.complaint_ratio(SHARER, 7, now=2) == 1


def test_negative_window_rejected():
    with pytest.raises(ValueError):
        ComplaintLedger(lambda e: {"a": 1}, -1, metrics=DASMetrics(CollectorRegistry()))
