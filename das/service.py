"""
DAS • Availability service (rollup-facing)

    handle = await service.request_availability_attestation(data, stake_weights)
    status = await service.attestation_status(handle)

`request_availability_attestation` runs the sharer side of one epoch
(prepare, post, distribute) and returns as soon as distribution has been
attempted; the verdict arrives later from the ledger. The stake weights are
registered on the ledger for the new epoch, so recipients and the penalty
evaluator read the same mapping through `read_stake_weights`.

Status mapping:
    Active                    → Pending
    Clean                     → Attested
    PenalizedForWithholding   → Failed("PenalizedForWithholding")
    PenalizedForCorruption    → Failed("PenalizedForCorruption")
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from .allocator import Weight
from .config import DASConfig, get_config
from .metrics import DASMetrics, get_metrics
from .protocol.signing import Signer
from .protocol.types import AttestationState, AttestationStatus, EpochHandle, PenaltyVerdict
from .sharer import DistributionReport, PreparedEpoch, Sharer

log = logging.getLogger(__name__)


def status_for(verdict: PenaltyVerdict) -> AttestationStatus:
    if verdict is PenaltyVerdict.ACTIVE:
        return AttestationStatus(AttestationState.PENDING)
    if verdict is PenaltyVerdict.CLEAN:
        return AttestationStatus(AttestationState.ATTESTED)
    return AttestationStatus(AttestationState.FAILED, reason=verdict.value)


class AvailabilityService:
    def __init__(
        self,
        signer: Signer,
        ledger,
        transport,
        config: Optional[DASConfig] = None,
        *,
        metrics: Optional[DASMetrics] = None,
    ) -> None:
        self.config = config or get_config()
        self.ledger = ledger
        self.sharer = Sharer(signer, ledger, transport, self.config, metrics=metrics or get_metrics())
        self._prepared: Dict[EpochHandle, PreparedEpoch] = {}
        self._reports: Dict[EpochHandle, DistributionReport] = {}

    async def request_availability_attestation(
        self,
        data: bytes,
        stake_weights: Mapping[str, Weight],
    ) -> EpochHandle:
        epoch = self.sharer.next_epoch()
        self.ledger.set_stake_weights(stake_weights, epoch)
        prepared, report = await self.sharer.run_epoch(data, stake_weights, epoch=epoch)
        handle = EpochHandle(sharer=self.sharer.sharer_id, epoch=epoch)
        self._prepared[handle] = prepared
        self._reports[handle] = report
        log.info("attestation requested sharer=%s epoch=%d size=%d", handle.sharer, epoch, len(data))
        return handle

    async def attestation_status(self, handle: EpochHandle) -> AttestationStatus:
        verdict = await self.ledger.read_verdict(handle.sharer, handle.epoch)
        return status_for(verdict)

    def report(self, handle: EpochHandle) -> DistributionReport:
        return self._reports[handle]

    def prepared(self, handle: EpochHandle) -> PreparedEpoch:
        return self._prepared[handle]


__all__ = ["AvailabilityService", "status_for"]
