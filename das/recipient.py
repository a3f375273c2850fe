"""
DAS • Recipient / validator node

A recipient drains its transport mailbox, keeps the valid shares it was sent,
complains on the ledger when its allocation did not arrive, and (as a
validator) pools shares to reconstruct an epoch's object. A reconstruction
that contradicts the posted commitment is turned into a mismatch proof and
posted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .allocator import allocate
from .config import DASConfig, get_config
from .errors import AlreadyFinalized, EpochClosed, InvalidShare
from .metrics import DASMetrics, get_metrics
from .mismatch import build_mismatch_proof
from .protocol.types import (
    MismatchProof,
    ReconstructionOutcome,
    ReconstructionStatus,
    Share,
)
from .protocol.validate import verify_share
from .reconstruct import Reconstructor

log = logging.getLogger(__name__)

EpochKey = Tuple[str, int]


class Recipient:
    def __init__(
        self,
        recipient_id: str,
        ledger,
        transport,
        config: Optional[DASConfig] = None,
        *,
        metrics: Optional[DASMetrics] = None,
    ) -> None:
        self.recipient_id = recipient_id
        self.ledger = ledger
        self.transport = transport
        self.config = config or get_config()
        self._metrics = metrics or get_metrics()
        self.reconstructor = Reconstructor(ledger.commitment_of, metrics=self._metrics)
        self.received: Dict[EpochKey, Dict[int, Share]] = {}
        self.rejected: List[Tuple[Share, InvalidShare]] = []
        self.proofs: List[MismatchProof] = []
        self._cursor = 0

    def __repr__(self) -> str:
        return f"Recipient({self.recipient_id!r})"

    # -- receiving ----------------------------------------------------------

    async def sync(self, *, follow: bool = False) -> int:
        """
        Pull new shares from the mailbox, resuming from the last cursor.
        Returns the number of valid shares stored.
        """
        stored = 0
        async for share in self.transport.receive_shares(self.recipient_id, self._cursor, follow=follow):
            self._cursor += 1
            try:
                verify_share(share, commitment=self.ledger.commitment_of(share.sharer, share.epoch))
            except InvalidShare as e:
                log.warning("rejected share recipient=%s index=%d: %s", self.recipient_id, share.index, e)
                self.rejected.append((share, e))
                continue
            self.received.setdefault((share.sharer, share.epoch), {})[share.index] = share
            stored += 1
        return stored

    def shares_for(self, sharer: str, epoch: int) -> List[Share]:
        box = self.received.get((sharer, epoch), {})
        return [box[i] for i in sorted(box)]

    # -- complaints ---------------------------------------------------------

    async def missing_indices(self, sharer: str, epoch: int, total_shares: Optional[int] = None) -> List[int]:
        """
        Indices allocated to this recipient that have not arrived. Without a
        received share (and no `total_shares`) the share count is unknown;
        receiving nothing at all is then reported as missing index -1.
        """
        have = self.received.get((sharer, epoch), {})
        if total_shares is None:
            if not have:
                return [-1]
            total_shares = next(iter(have.values())).manifest.total_shares
        weights = await self.ledger.read_stake_weights(epoch)
        mine = allocate(total_shares, weights).get(self.recipient_id, range(0))
        return [i for i in mine if i not in have]

    async def complain_if_missing(self, sharer: str, epoch: int, total_shares: Optional[int] = None) -> bool:
        missing = await self.missing_indices(sharer, epoch, total_shares)
        if not missing:
            return False
        log.info("complaining recipient=%s sharer=%s epoch=%d missing=%s", self.recipient_id, sharer, epoch, missing)
        return await self.ledger.post_complaint(sharer, epoch, self.recipient_id)

    # -- reconstruction -----------------------------------------------------

    async def _post_event(self, event: object) -> None:
        try:
            await self.ledger.post_reconstruction(event)
        except (EpochClosed, AlreadyFinalized) as e:
            log.info("reconstruction event not recorded: %s", e)

    async def reconstruct(self, sharer: str, epoch: int, pool: Iterable[Share] = ()) -> ReconstructionOutcome:
        """
        Reconstruct from held shares plus `pool`. Posts the resulting event
        and, on a mismatch, a mismatch proof.
        """
        shares = {s.index: s for s in self.shares_for(sharer, epoch)}
        for s in pool:
            shares.setdefault(s.index, s)
        outcome = self.reconstructor.try_reconstruct(sharer, epoch, shares.values())
        if outcome.event is not None:
            await self._post_event(outcome.event)
        if outcome.status is ReconstructionStatus.FAILED:
            posted = self.ledger.commitment_of(sharer, epoch)
            proof = build_mismatch_proof(posted, outcome.evidence)
            self.proofs.append(proof)
            log.warning(
                "posting mismatch proof sharer=%s epoch=%d kind=%s nodes=%d",
                sharer, epoch, proof.kind.value, len(proof.nodes),
            )
            try:
                await self.ledger.post_mismatch_proof(sharer, epoch, proof)
            except (EpochClosed, AlreadyFinalized) as e:
                log.info("mismatch proof not recorded: %s", e)
        return outcome

    async def reconstruct_with_retry(
        self,
        sharer: str,
        epoch: int,
        gather: Callable[[], Awaitable[Iterable[Share]]],
    ) -> ReconstructionOutcome:
        """
        Retry with exponential backoff while the outcome is Pending and the
        epoch is still open on the ledger. `gather` fetches more shares from
        peers on every attempt.
        """
        t = self.config.transport
        attempt = 0
        while True:
            pool = await gather()
            outcome = await self.reconstruct(sharer, epoch, pool)
            if outcome.status is not ReconstructionStatus.PENDING:
                return outcome
            if self.ledger.now > self.ledger.deadline_of(sharer, epoch) or attempt >= t.send_retries:
                return outcome
            await asyncio.sleep(t.backoff(attempt))
            attempt += 1


async def gather_from(transport, peers: Iterable[str]) -> List[Share]:
    """Fetch every share currently held in the given peers' mailboxes."""
    out: List[Share] = []
    for peer in peers:
        async for share in transport.receive_shares(peer, 0):
            out.append(share)
    return out


__all__ = ["Recipient", "gather_from"]
