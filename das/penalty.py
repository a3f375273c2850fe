"""
DAS • Penalty Evaluator

State machine per (sharer, epoch):

    Active ──valid mismatch proof before deadline──▶ PenalizedForCorruption
      │
      └──close at deadline──▶ PenalizedForWithholding   if ratio ≥ threshold
                                                        and no verified CommitmentMatch
                              Clean                     otherwise

Terminal verdicts are immutable: any further write raises `AlreadyFinalized`.
Events after the deadline raise `EpochClosed`. The complaint ratio is read at
the deadline itself, so closing late yields the same verdict as closing on
time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, List, Optional, Tuple

from .complaints import ComplaintLedger
from .constants import COMPLAINT_THRESHOLD_DEFAULT, EPOCH_DURATION_DEFAULT
from .errors import AlreadyFinalized, EpochClosed, StakeWeightUnavailable, UnknownEpoch
from .metrics import DASMetrics, get_metrics
from .mismatch import verify_commitment_match, verify_mismatch_proof
from .protocol.types import (
    CommitmentMatchEvent,
    CommitmentMismatchEvent,
    MismatchProof,
    PenaltyVerdict,
)

log = logging.getLogger(__name__)


@dataclass
class EpochState:
    sharer: str
    epoch: int
    commitment: bytes
    opened_at: int
    deadline: int
    verdict: PenaltyVerdict = PenaltyVerdict.ACTIVE
    matched: bool = False
    mismatches_seen: int = 0
    proof: Optional[MismatchProof] = None
    finalized_at: Optional[int] = None
    ratio_at_close: Optional[Fraction] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class PenaltyEvaluator:
    def __init__(
        self,
        complaints: ComplaintLedger,
        *,
        threshold: Fraction = COMPLAINT_THRESHOLD_DEFAULT,
        epoch_duration: int = EPOCH_DURATION_DEFAULT,
        metrics: Optional[DASMetrics] = None,
    ) -> None:
        if not (0 < threshold <= 1):
            raise ValueError("threshold must be in (0, 1]")
        if epoch_duration <= 0:
            raise ValueError("epoch_duration must be > 0")
        self.complaints = complaints
        self.threshold = Fraction(threshold)
        self.epoch_duration = epoch_duration
        self._metrics = metrics or get_metrics()
        self._epochs: Dict[Tuple[str, int], EpochState] = {}
        self._registry_lock = threading.Lock()

    # -- lookup -------------------------------------------------------------

    def state(self, sharer: str, epoch: int) -> EpochState:
        st = self._epochs.get((sharer, epoch))
        if st is None:
            raise UnknownEpoch(f"no commitment posted for {sharer} epoch {epoch}", data={"epoch": epoch})
        return st

    def verdict(self, sharer: str, epoch: int) -> PenaltyVerdict:
        return self.state(sharer, epoch).verdict

    def epochs(self) -> List[EpochState]:
        return list(self._epochs.values())

    # -- transitions --------------------------------------------------------

    def open_epoch(self, sharer: str, epoch: int, commitment: bytes, now: int) -> EpochState:
        """Start the window; re-posting the same commitment is a no-op."""
        key = (sharer, epoch)
        with self._registry_lock:
            st = self._epochs.get(key)
            if st is None:
                st = EpochState(
                    sharer=sharer,
                    epoch=epoch,
                    commitment=bytes(commitment),
                    opened_at=now,
                    deadline=now + self.epoch_duration,
                )
                self._epochs[key] = st
                log.info("epoch opened sharer=%s epoch=%d deadline=%d", sharer, epoch, st.deadline)
                return st
        if st.verdict.is_terminal:
            raise AlreadyFinalized(f"{sharer} epoch {epoch} is {st.verdict.value}")
        if st.commitment != commitment:
            raise ValueError(f"a different commitment is already posted for {sharer} epoch {epoch}")
        return st

    def _writable(self, st: EpochState, now: int) -> None:
        if st.verdict.is_terminal:
            raise AlreadyFinalized(
                f"{st.sharer} epoch {st.epoch} is {st.verdict.value}",
                data={"verdict": st.verdict.value},
            )
        if now > st.deadline:
            raise EpochClosed(
                f"{st.sharer} epoch {st.epoch} closed at {st.deadline}",
                data={"deadline": st.deadline, "now": now},
            )

    def ensure_open(self, sharer: str, epoch: int, now: int) -> EpochState:
        """Raise unless (sharer, epoch) still accepts events at `now`."""
        st = self.state(sharer, epoch)
        with st.lock:
            self._writable(st, now)
        return st

    def on_reconstruction(self, event: object, now: int) -> None:
        """
        Record a CommitmentMatch / CommitmentMismatch event. A match only
        counts once its shares decode to the posted commitment.

        Raises:
            UnknownEpoch, AlreadyFinalized, EpochClosed, MalformedProof
        """
        if not isinstance(event, (CommitmentMatchEvent, CommitmentMismatchEvent)):
            raise TypeError(f"unexpected event {type(event).__name__}")
        st = self.state(event.sharer, event.epoch)
        with st.lock:
            self._writable(st, now)
            if isinstance(event, CommitmentMatchEvent):
                verify_commitment_match(event, st.commitment)
                st.matched = True
            else:
                st.mismatches_seen += 1

    def submit_mismatch_proof(self, proof: MismatchProof, now: int) -> PenaltyVerdict:
        """
        Verify `proof` and finalize `PenalizedForCorruption`.

        Raises:
            UnknownEpoch, AlreadyFinalized, EpochClosed, MalformedProof
        """
        st = self.state(proof.sharer, proof.epoch)
        with st.lock:
            self._writable(st, now)
            verify_mismatch_proof(proof, st.commitment)
            st.proof = proof
            self._finalize(st, PenaltyVerdict.PENALIZED_FOR_CORRUPTION, now)
            return st.verdict

    def close_epoch(self, sharer: str, epoch: int, now: int) -> PenaltyVerdict:
        st = self.state(sharer, epoch)
        with st.lock:
            if st.verdict.is_terminal:
                raise AlreadyFinalized(f"{sharer} epoch {epoch} is {st.verdict.value}")
            if now < st.deadline:
                raise ValueError(f"epoch open until {st.deadline}")
            ratio = self.complaints.complaint_ratio(sharer, epoch, st.deadline)
            st.ratio_at_close = ratio
            if ratio >= self.threshold and not st.matched:
                verdict = PenaltyVerdict.PENALIZED_FOR_WITHHOLDING
            else:
                verdict = PenaltyVerdict.CLEAN
            self._finalize(st, verdict, now)
            return verdict

    def tick(self, now: int) -> List[Tuple[str, int, PenaltyVerdict]]:
        """
        Close every active epoch whose deadline has passed. An epoch whose
        stake weights are missing stays Active and is retried on the next
        tick; the others still close.
        """
        closed: List[Tuple[str, int, PenaltyVerdict]] = []
        for st in sorted(self._epochs.values(), key=lambda s: (s.deadline, s.sharer, s.epoch)):
            if st.verdict.is_terminal or now < st.deadline:
                continue
            try:
                verdict = self.close_epoch(st.sharer, st.epoch, now)
            except StakeWeightUnavailable as e:
                log.warning("cannot close sharer=%s epoch=%d: %s", st.sharer, st.epoch, e)
                continue
            closed.append((st.sharer, st.epoch, verdict))
        return closed

    def _finalize(self, st: EpochState, verdict: PenaltyVerdict, now: int) -> None:
        st.verdict = verdict
        st.finalized_at = now
        self._metrics.verdicts_total.labels(verdict=verdict.value).inc()
        level = logging.WARNING if verdict.is_penalty else logging.INFO
        log.log(level, "verdict sharer=%s epoch=%d verdict=%s", st.sharer, st.epoch, verdict.value)


__all__ = ["PenaltyEvaluator", "EpochState"]
