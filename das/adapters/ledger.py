"""
DAS • Ledger adapter

The external ledger orders and finalizes everything the protocol posts. The
engine consumes it through `LedgerAdapter`; `InMemoryLedger` is a complete
single-process reference that runs the complaint ledger and penalty
evaluator itself, driven by a manual logical clock.

Protocol-relevant time is only ever `ledger.now`. Advancing the clock closes
epochs whose deadline has passed.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from ..allocator import Weight
from ..complaints import ComplaintLedger
from ..config import ProtocolConfig
from ..errors import MalformedProof, StakeWeightUnavailable, UnknownEpoch
from ..metrics import DASMetrics, get_metrics
from ..penalty import PenaltyEvaluator
from ..protocol.types import MismatchProof, PenaltyVerdict

log = logging.getLogger(__name__)


class LedgerAdapter(Protocol):
    async def post_commitment(self, sharer: str, epoch: int, commitment: bytes) -> None: ...

    async def post_complaint(self, sharer: str, epoch: int, recipient: str) -> bool: ...

    async def post_mismatch_proof(self, sharer: str, epoch: int, proof: MismatchProof) -> PenaltyVerdict: ...

    async def post_reconstruction(self, event: object) -> None: ...

    async def read_verdict(self, sharer: str, epoch: int) -> PenaltyVerdict: ...

    async def read_stake_weights(self, epoch: int) -> Dict[str, Weight]: ...

    def commitment_of(self, sharer: str, epoch: int) -> Optional[bytes]: ...

    def set_stake_weights(self, weights: Mapping[str, Weight], epoch: Optional[int] = None) -> None: ...


class InMemoryLedger:
    """
    Reference ledger: ordered, idempotent posts over a logical clock.

    Stake weights are set per epoch with `set_stake_weights(weights, epoch)`;
    weights set with `epoch=None` apply to every epoch without its own.
    """

    def __init__(
        self,
        config: Optional[ProtocolConfig] = None,
        *,
        start_time: int = 0,
        metrics: Optional[DASMetrics] = None,
    ) -> None:
        self.config = config or ProtocolConfig()
        self.config.validate()
        self._now = start_time
        self._stake: Dict[Optional[int], Dict[str, Weight]] = {}
        metrics = metrics or get_metrics()
        self.complaints = ComplaintLedger(self._stake_for, self.config.recency_window, metrics=metrics)
        self.evaluator = PenaltyEvaluator(
            self.complaints,
            threshold=self.config.complaint_threshold,
            epoch_duration=self.config.epoch_duration,
            metrics=metrics,
        )
        self.log: List[Tuple[int, str, Dict[str, object]]] = []

    # -- clock --------------------------------------------------------------

    @property
    def now(self) -> int:
        return self._now

    def advance(self, dt: int) -> List[Tuple[str, int, PenaltyVerdict]]:
        """Move the clock forward and close epochs that are due."""
        if dt < 0:
            raise ValueError("ledger time is monotonic")
        self._now += dt
        closed = self.evaluator.tick(self._now)
        for sharer, epoch, verdict in closed:
            self._append("verdict", sharer=sharer, epoch=epoch, verdict=verdict.value)
        return closed

    def deadline_of(self, sharer: str, epoch: int) -> int:
        return self.evaluator.state(sharer, epoch).deadline

    def _append(self, entry: str, **data: object) -> None:
        self.log.append((self._now, entry, data))

    # -- stake --------------------------------------------------------------

    def set_stake_weights(self, weights: Mapping[str, Weight], epoch: Optional[int] = None) -> None:
        self._stake[epoch] = dict(weights)

    def _stake_for(self, epoch: int) -> Optional[Dict[str, Weight]]:
        return self._stake.get(epoch) or self._stake.get(None)

    async def read_stake_weights(self, epoch: int) -> Dict[str, Weight]:
        weights = self._stake_for(epoch)
        if not weights:
            raise StakeWeightUnavailable(f"no stake weights for epoch {epoch}", data={"epoch": epoch})
        return dict(weights)

    # -- posts --------------------------------------------------------------

    async def post_commitment(self, sharer: str, epoch: int, commitment: bytes) -> None:
        self.evaluator.open_epoch(sharer, epoch, commitment, self._now)
        self._append("commitment", sharer=sharer, epoch=epoch, commitment=commitment.hex())

    def commitment_of(self, sharer: str, epoch: int) -> Optional[bytes]:
        try:
            return self.evaluator.state(sharer, epoch).commitment
        except UnknownEpoch:
            return None

    async def post_complaint(self, sharer: str, epoch: int, recipient: str) -> bool:
        """
        Record a complaint at the current ledger time. Returns False for a
        duplicate inside the recency window.
        """
        self.evaluator.ensure_open(sharer, epoch, self._now)
        appended = self.complaints.record_complaint(sharer, epoch, recipient, self._now)
        if appended:
            self._append("complaint", sharer=sharer, epoch=epoch, recipient=recipient)
        return appended

    async def post_reconstruction(self, event: object) -> None:
        self.evaluator.on_reconstruction(event, self._now)
        self._append(
            "reconstruction",
            sharer=event.sharer,
            epoch=event.epoch,
            kind=getattr(event, "kind", type(event).__name__),
        )

    async def post_mismatch_proof(self, sharer: str, epoch: int, proof: MismatchProof) -> PenaltyVerdict:
        if proof.sharer != sharer or proof.epoch != epoch:
            raise MalformedProof("proof is for a different (sharer, epoch)")
        st = self.evaluator.state(sharer, epoch)
        if st.proof is not None and st.proof == proof:
            return st.verdict
        verdict = self.evaluator.submit_mismatch_proof(proof, self._now)
        self._append("mismatch_proof", sharer=sharer, epoch=epoch, kind=proof.kind.value)
        return verdict

    async def read_verdict(self, sharer: str, epoch: int) -> PenaltyVerdict:
        return self.evaluator.verdict(sharer, epoch)

    def close_epoch(self, sharer: str, epoch: int) -> PenaltyVerdict:
        verdict = self.evaluator.close_epoch(sharer, epoch, self._now)
        self._append("verdict", sharer=sharer, epoch=epoch, verdict=verdict.value)
        return verdict


__all__ = ["LedgerAdapter", "InMemoryLedger"]
