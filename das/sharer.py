"""
DAS • Sharer

The party that makes an object available for one epoch:

    prepare   encode the strategy payload, build the share root, sign the
              manifest, attach inclusion paths
    post      post the object commitment to the ledger (opens the epoch)
    distribute allocate shares by stake and send them concurrently, one task
              per recipient, with per-send timeout and exponential backoff

Partial delivery is expected; failures are reported in the
`DistributionReport`, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, Iterable, List, Mapping, Optional

from .allocator import Weight, allocate, stake_fraction
from .commitment.builder import commit, share_tree
from .commitment.strategy import get_strategy
from .config import DASConfig, get_config
from .erasure.codec import encode
from .metrics import DASMetrics, get_metrics
from .protocol.signing import Signer
from .protocol.types import Share, ShareManifest

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedEpoch:
    manifest: ShareManifest
    signature: bytes
    shares: List[Share]

    @property
    def epoch(self) -> int:
        return self.manifest.epoch

    @property
    def commitment(self) -> bytes:
        return self.manifest.commitment


@dataclass
class DeliveryResult:
    recipient: str
    assigned: List[int]
    delivered: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    last_error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return len(self.delivered) == len(self.assigned)


@dataclass
class DistributionReport:
    sharer: str
    epoch: int
    results: Dict[str, DeliveryResult]
    stake_weights: Dict[str, Weight]

    @property
    def complete_recipients(self) -> List[str]:
        return sorted(r for r, res in self.results.items() if res.assigned and res.complete)

    @property
    def incomplete_recipients(self) -> List[str]:
        return sorted(r for r, res in self.results.items() if res.assigned and not res.complete)

    @property
    def delivered_shares(self) -> int:
        return sum(len(res.delivered) for res in self.results.values())

    def delivered_stake(self) -> Fraction:
        return stake_fraction(self.stake_weights, self.complete_recipients)


class Sharer:
    def __init__(
        self,
        signer: Signer,
        ledger,
        transport,
        config: Optional[DASConfig] = None,
        *,
        metrics: Optional[DASMetrics] = None,
    ) -> None:
        self.signer = signer
        self.ledger = ledger
        self.transport = transport
        self.config = config or get_config()
        self.config.validate()
        self._metrics = metrics or get_metrics()
        self._next_epoch = 0

    @property
    def sharer_id(self) -> str:
        return self.signer.sharer_id

    def next_epoch(self) -> int:
        epoch = self._next_epoch
        self._next_epoch += 1
        return epoch

    # -- preparation --------------------------------------------------------

    def prepare(self, data: bytes, epoch: int) -> PreparedEpoch:
        codec = self.config.codec
        strategy = get_strategy(codec.strategy)
        commitment = commit(data, codec.unit_size)
        payload = strategy.payload_for(data, codec.unit_size)
        return self.seal(epoch, commitment, len(data), payload)

    def seal(self, epoch: int, commitment: bytes, object_size: int, payload: bytes) -> PreparedEpoch:
        """
        Erasure-code `payload` and sign it as the shares for `commitment`.
        `prepare` is the honest path; calling this directly with any other
        payload produces shares that do not encode the commitment.
        """
        codec = self.config.codec
        strategy = get_strategy(codec.strategy)
        with self._metrics.time_encode():
            params, shards = encode(payload, codec.redundancy_factor, strategy.coding_unit(codec.unit_size))
            tree = share_tree(shards)
        manifest = ShareManifest(
            sharer=self.sharer_id,
            epoch=epoch,
            commitment=commitment,
            share_root=tree.root,
            object_size=object_size,
            unit_size=codec.unit_size,
            data_shares=params.data_shards,
            total_shares=params.total_shards,
            strategy=codec.strategy,
        )
        signature = self.signer.sign_manifest(manifest)
        shares = [
            Share(manifest=manifest, signature=signature, index=i, payload=s, path=tuple(tree.proof(i)))
            for i, s in enumerate(shards)
        ]
        self._metrics.shares_encoded_total.inc(len(shares))
        log.info(
            "prepared epoch=%d k=%d n=%d strategy=%s", epoch, params.data_shards, params.total_shards, codec.strategy
        )
        return PreparedEpoch(manifest=manifest, signature=signature, shares=shares)

    # -- ledger -------------------------------------------------------------

    async def post(self, prepared: PreparedEpoch) -> None:
        await self.ledger.post_commitment(self.sharer_id, prepared.epoch, prepared.commitment)

    # -- distribution -------------------------------------------------------

    async def _send_one(self, recipient: str, share: Share) -> Optional[str]:
        t = self.config.transport
        err: Optional[str] = None
        for attempt in range(t.send_retries + 1):
            try:
                await asyncio.wait_for(self.transport.send_share(recipient, share), timeout=t.send_timeout)
                self._metrics.shares_sent_total.labels(outcome="ok").inc()
                return None
            except (ConnectionError, OSError, asyncio.TimeoutError) as e:
                err = f"{type(e).__name__}: {e}"
                self._metrics.shares_sent_total.labels(outcome="retry").inc()
                if attempt < t.send_retries:
                    await asyncio.sleep(t.backoff(attempt))
        self._metrics.shares_sent_total.labels(outcome="failed").inc()
        return err

    async def _deliver(self, recipient: str, shares: List[Share], result: DeliveryResult) -> None:
        for share in shares:
            err = await self._send_one(recipient, share)
            if err is None:
                result.delivered.append(share.index)
            else:
                result.failed.append(share.index)
                result.last_error = err
        if result.failed:
            log.warning("delivery incomplete recipient=%s failed=%s err=%s", recipient, result.failed, result.last_error)

    async def distribute(
        self,
        prepared: PreparedEpoch,
        stake_weights: Optional[Mapping[str, Weight]] = None,
        *,
        withhold: Iterable[str] = (),
    ) -> DistributionReport:
        """
        Send every recipient its allocated shares. Recipients in `withhold`
        are skipped entirely (used to simulate a withholding sharer).
        """
        if stake_weights is None:
            stake_weights = await self.ledger.read_stake_weights(prepared.epoch)
        allocation = allocate(len(prepared.shares), stake_weights)
        skipped = set(withhold)
        results: Dict[str, DeliveryResult] = {}
        tasks = []
        for recipient, indices in allocation.items():
            result = DeliveryResult(recipient=recipient, assigned=list(indices))
            results[recipient] = result
            if recipient in skipped or not indices:
                continue
            shares = [prepared.shares[i] for i in indices]
            tasks.append(asyncio.create_task(self._deliver(recipient, shares, result)))
        if tasks:
            await asyncio.gather(*tasks)
        report = DistributionReport(
            sharer=self.sharer_id,
            epoch=prepared.epoch,
            results=results,
            stake_weights=dict(stake_weights),
        )
        log.info(
            "distributed epoch=%d delivered=%d/%d complete=%d incomplete=%d",
            prepared.epoch,
            report.delivered_shares,
            len(prepared.shares),
            len(report.complete_recipients),
            len(report.incomplete_recipients),
        )
        return report

    async def run_epoch(
        self,
        data: bytes,
        stake_weights: Optional[Mapping[str, Weight]] = None,
        *,
        epoch: Optional[int] = None,
        withhold: Iterable[str] = (),
    ) -> tuple:
        """prepare → post → distribute. Returns (prepared, report)."""
        epoch = self.next_epoch() if epoch is None else epoch
        prepared = self.prepare(data, epoch)
        await self.post(prepared)
        report = await self.distribute(prepared, stake_weights, withhold=withhold)
        return prepared, report


__all__ = ["Sharer", "PreparedEpoch", "DeliveryResult", "DistributionReport"]
