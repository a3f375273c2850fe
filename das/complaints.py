"""
DAS • Complaint ledger adapter

Per-(sharer, epoch) accumulators of non-receipt complaints.

- `record_complaint` is idempotent while the recipient's previous complaint is
  still inside the recency window; after it expires a fresh complaint is
  appended and counts again.
- Expired records are never deleted; `records()` returns the full audit trail.
- `complaint_ratio` is the stake weight of recipients with an unexpired
  complaint over total stake, as an exact `Fraction`.

Each accumulator has its own lock, so recipients complaining about different
epochs never contend. The registry lock is only held to create accumulators.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .allocator import Weight
from .errors import StakeWeightUnavailable
from .metrics import DASMetrics, get_metrics
from .protocol.types import ComplaintRecord

log = logging.getLogger(__name__)

StakeProvider = Callable[[int], Optional[Mapping[str, Weight]]]


@dataclass
class _EpochComplaints:
    lock: threading.Lock = field(default_factory=threading.Lock)
    history: List[ComplaintRecord] = field(default_factory=list)
    latest: Dict[str, ComplaintRecord] = field(default_factory=dict)


class ComplaintLedger:
    """
    Complaint accumulators keyed by (sharer, epoch).

    Args:
        stake_provider: epoch -> stake weight mapping (None if unknown)
        recency_window: a complaint counts while `now - timestamp <= window`
    """

    def __init__(
        self,
        stake_provider: StakeProvider,
        recency_window: int,
        *,
        metrics: Optional[DASMetrics] = None,
    ) -> None:
        if recency_window < 0:
            raise ValueError("recency_window must be >= 0")
        self._stake = stake_provider
        self.recency_window = recency_window
        self._metrics = metrics or get_metrics()
        self._registry: Dict[Tuple[str, int], _EpochComplaints] = {}
        self._registry_lock = threading.Lock()

    # -- accumulators -------------------------------------------------------

    def _acc(self, sharer: str, epoch: int) -> _EpochComplaints:
        key = (sharer, epoch)
        acc = self._registry.get(key)
        if acc is None:
            with self._registry_lock:
                acc = self._registry.setdefault(key, _EpochComplaints())
        return acc

    def _expired(self, rec: ComplaintRecord, now: int) -> bool:
        return rec.age(now) > self.recency_window

    # -- writes -------------------------------------------------------------

    def record_complaint(self, sharer: str, epoch: int, recipient: str, now: int) -> bool:
        """
        Append a complaint unless `recipient` already has an unexpired one.
        Returns True if a record was appended.
        """
        acc = self._acc(sharer, epoch)
        with acc.lock:
            prior = acc.latest.get(recipient)
            if prior is not None and not self._expired(prior, now):
                self._metrics.complaints_total.labels(outcome="duplicate").inc()
                return False
            rec = ComplaintRecord(sharer=sharer, epoch=epoch, recipient=recipient, timestamp=now)
            acc.history.append(rec)
            acc.latest[recipient] = rec
        self._metrics.complaints_total.labels(outcome="recorded").inc()
        log.info("complaint recorded sharer=%s epoch=%d recipient=%s t=%d", sharer, epoch, recipient, now)
        return True

    # -- reads --------------------------------------------------------------

    def active_complainers(self, sharer: str, epoch: int, now: int) -> List[str]:
        acc = self._registry.get((sharer, epoch))
        if acc is None:
            return []
        with acc.lock:
            return sorted(r for r, rec in acc.latest.items() if not self._expired(rec, now))

    def complaint_ratio(self, sharer: str, epoch: int, now: int) -> Fraction:
        weights = self._stake(epoch)
        if not weights:
            raise StakeWeightUnavailable(f"no stake weights for epoch {epoch}", data={"epoch": epoch})
        stake = {rid: Fraction(w) for rid, w in weights.items()}
        total = sum(stake.values(), Fraction(0))
        if total == 0:
            raise StakeWeightUnavailable(f"zero total stake for epoch {epoch}", data={"epoch": epoch})
        complained = sum((stake.get(r, Fraction(0)) for r in self.active_complainers(sharer, epoch, now)), Fraction(0))
        return complained / total

    def records(self, sharer: str, epoch: int) -> List[ComplaintRecord]:
        """Every complaint ever appended for (sharer, epoch), expired or not."""
        acc = self._registry.get((sharer, epoch))
        if acc is None:
            return []
        with acc.lock:
            return list(acc.history)


__all__ = ["ComplaintLedger", "StakeProvider"]
