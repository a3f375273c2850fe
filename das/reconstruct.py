"""
DAS • Reconstructor

Collects shares per (sharer, epoch) and, once a quorum of mutually consistent
shares is present, rebuilds the object and compares its commitment with the
posted one.

Outcomes
--------
Success(object)  quorum decoded, reproduces the signed share set, and matches
                 the commitment → emits `CommitmentMatchEvent`.
Pending          below threshold, or the held shares decode but do not yet
                 reproduce the signed share root (more shares needed to tell
                 which side is wrong).
Failed           shares decode to something other than the commitment, or
                 signed shares are not one codeword → emits
                 `CommitmentMismatchEvent`; `outcome.evidence` feeds
                 `das.mismatch.build_mismatch_proof`.

Invalid shares (bad signature, path, or a manifest for another commitment)
raise `InvalidShare` immediately.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .commitment.builder import commit, commit_shares
from .commitment.strategy import (
    Divergence,
    claimed_root,
    find_divergence,
    get_strategy,
    leaves_from_records,
    tree_width,
)
from .constants import STRATEGY_TREE
from .erasure.codec import decode_units
from .erasure.reedsolomon import rs_encode
from .errors import CommitmentMismatch, DASError, InconsistentShares, InsufficientShares
from .metrics import DASMetrics, get_metrics
from .protocol.types import (
    CommitmentMatchEvent,
    CommitmentMismatchEvent,
    ProofNode,
    ReconstructionOutcome,
    ReconstructionStatus,
    Share,
    ShareManifest,
)
from .protocol.validate import coding_unit, verify_share

log = logging.getLogger(__name__)

Listener = Callable[[object], None]


@dataclass
class Evidence:
    """What a reconstruction attempt saw, kept for proofs and match events."""

    manifest: ShareManifest
    signature: bytes
    shares: Dict[int, Share]
    payload: Optional[bytes] = None
    codeword: Optional[List[bytes]] = None
    divergence: Optional[Divergence] = None
    reconstructed_commitment: Optional[bytes] = None
    inconsistent: bool = False


@dataclass
class _EpochShares:
    lock: threading.Lock = field(default_factory=threading.Lock)
    shares: Dict[int, Share] = field(default_factory=dict)
    last: Optional[ReconstructionOutcome] = None


class Reconstructor:
    """
    Event-driven reconstruction. Call `offer()` as shares arrive, or
    `try_reconstruct()` with an explicit collection.

    Args:
        commitment_lookup: (sharer, epoch) -> posted commitment, or None if
            nothing was posted (shares are then checked only for internal
            consistency).
    """

    def __init__(
        self,
        commitment_lookup: Optional[Callable[[str, int], Optional[bytes]]] = None,
        *,
        metrics: Optional[DASMetrics] = None,
    ) -> None:
        self._lookup = commitment_lookup
        self._metrics = metrics or get_metrics()
        self._listeners: List[Listener] = []
        self._epochs: Dict[Tuple[str, int], _EpochShares] = {}
        self._registry_lock = threading.Lock()

    def add_listener(self, fn: Listener) -> None:
        self._listeners.append(fn)

    def _emit(self, event: object) -> None:
        for fn in self._listeners:
            fn(event)

    def _acc(self, sharer: str, epoch: int) -> _EpochShares:
        key = (sharer, epoch)
        acc = self._epochs.get(key)
        if acc is None:
            with self._registry_lock:
                acc = self._epochs.setdefault(key, _EpochShares())
        return acc

    def collected(self, sharer: str, epoch: int) -> List[Share]:
        acc = self._epochs.get((sharer, epoch))
        if acc is None:
            return []
        with acc.lock:
            return [acc.shares[i] for i in sorted(acc.shares)]

    # -- event-driven path ---------------------------------------------------

    def offer(self, share: Share) -> ReconstructionOutcome:
        """
        Add one share to its (sharer, epoch) accumulator and attempt
        reconstruction once the threshold is reached. After a terminal
        outcome further offers return it unchanged.
        """
        posted = self._posted(share.sharer, share.epoch)
        verify_share(share, commitment=posted)
        acc = self._acc(share.sharer, share.epoch)
        with acc.lock:
            if acc.last is not None and acc.last.status is not ReconstructionStatus.PENDING:
                return acc.last
            prior = acc.shares.get(share.index)
            if prior is not None and prior.payload != share.payload:
                raise InconsistentShares(
                    f"conflicting payloads for share {share.index}",
                    data={"sharer": share.sharer, "epoch": share.epoch, "index": share.index},
                )
            acc.shares[share.index] = share
            held = list(acc.shares.values())
        outcome = self.try_reconstruct(share.sharer, share.epoch, held, verify=False)
        with acc.lock:
            if acc.last is None or acc.last.status is ReconstructionStatus.PENDING:
                acc.last = outcome
            return acc.last

    # -- explicit path -------------------------------------------------------

    def _posted(self, sharer: str, epoch: int) -> Optional[bytes]:
        return self._lookup(sharer, epoch) if self._lookup is not None else None

    def try_reconstruct(
        self,
        sharer: str,
        epoch: int,
        collected_shares: Iterable[Share],
        *,
        verify: bool = True,
    ) -> ReconstructionOutcome:
        posted = self._posted(sharer, epoch)
        shares: Dict[int, Share] = {}
        manifest: Optional[ShareManifest] = None
        signature = b""
        pairs: List[Tuple[int, bytes]] = []
        for s in collected_shares:
            if s.sharer != sharer or s.epoch != epoch:
                raise ValueError("share belongs to a different (sharer, epoch)")
            if verify:
                verify_share(s, commitment=posted)
            if manifest is None:
                manifest, signature = s.manifest, s.signature
            elif s.manifest != manifest:
                raise InconsistentShares(
                    "sharer signed two different manifests for one epoch",
                    data={"sharer": sharer, "epoch": epoch},
                )
            pairs.append((s.index, s.payload))
            shares.setdefault(s.index, s)

        if manifest is None:
            return self._pending(sharer, epoch, "no shares collected", InsufficientShares("no shares"))

        claimed = manifest.commitment
        strategy = get_strategy(manifest.strategy)
        params = manifest.codec_params(coding_unit(manifest))
        size = strategy.payload_size(manifest.object_size, manifest.unit_size)
        evidence = Evidence(manifest=manifest, signature=signature, shares=shares)

        try:
            units = decode_units(pairs, params)
        except InsufficientShares as e:
            return self._pending(sharer, epoch, str(e), e)
        except InconsistentShares as e:
            log.warning("signed shares are not one codeword sharer=%s epoch=%d: %s", sharer, epoch, e)
            evidence.inconsistent = True
            return self._failed(sharer, epoch, claimed, None, "inconsistent shares", evidence, e)

        codeword = rs_encode(units, params.total_shards)
        payload = b"".join(units)[:size]
        if commit_shares(codeword) != manifest.share_root:
            return self._pending(
                sharer,
                epoch,
                "decoded shares do not reproduce the signed share root",
                InsufficientShares("need more shares to localize the fault"),
            )
        evidence.payload = payload
        evidence.codeword = codeword

        if manifest.strategy == STRATEGY_TREE:
            width = tree_width(manifest.object_size, manifest.unit_size)
            records = units
            div = find_divergence(records, claimed, width)
            if div is None:
                obj = b"".join(leaves_from_records(records, width))[: manifest.object_size]
                return self._matched(evidence, obj)
            evidence.divergence = div
            evidence.reconstructed_commitment = claimed_root(records, width)
            log.warning(
                "node stream diverges sharer=%s epoch=%d node=%s: %s",
                sharer, epoch, div.nodes, div.reason,
            )
            return self._failed(
                sharer, epoch, claimed, evidence.reconstructed_commitment, div.reason, evidence, None
            )

        recomputed = commit(payload, manifest.unit_size)
        if recomputed == claimed:
            return self._matched(evidence, payload)
        evidence.reconstructed_commitment = recomputed
        log.warning("reconstructed object does not match commitment sharer=%s epoch=%d", sharer, epoch)
        return self._failed(sharer, epoch, claimed, recomputed, "commitment mismatch", evidence, None)

    def require_match(self, sharer: str, epoch: int, collected_shares: Iterable[Share]) -> bytes:
        """
        Strict form of `try_reconstruct` for callers that need the object.

        Raises:
            InsufficientShares: still Pending.
            CommitmentMismatch: the shares do not encode the commitment.
                `try_reconstruct` keeps the evidence a proof is built from.
        """
        outcome = self.try_reconstruct(sharer, epoch, collected_shares)
        if outcome.status is ReconstructionStatus.SUCCESS:
            return outcome.object
        if outcome.status is ReconstructionStatus.PENDING:
            if isinstance(outcome.error, DASError):
                raise outcome.error
            raise InsufficientShares(outcome.reason or "reconstruction pending")
        event = outcome.event
        raise CommitmentMismatch(
            f"shares for {sharer} epoch {epoch} do not encode the commitment: {outcome.reason}",
            data={
                "claimed": event.claimed.hex(),
                "reconstructed": event.reconstructed.hex() if event.reconstructed else None,
            },
        ) from outcome.error

    # -- outcome helpers -----------------------------------------------------

    def _pending(self, sharer: str, epoch: int, reason: str, error: Exception) -> ReconstructionOutcome:
        self._metrics.reconstructions_total.labels(outcome="pending").inc()
        return ReconstructionOutcome(
            status=ReconstructionStatus.PENDING, sharer=sharer, epoch=epoch, reason=reason, error=error
        )

    def _matched(self, evidence: Evidence, obj: bytes) -> ReconstructionOutcome:
        m = evidence.manifest
        sharer, epoch = m.sharer, m.epoch
        # the k lowest shares are enough for anyone to repeat the decode
        quorum = sorted(evidence.shares)[: m.data_shares]
        event = CommitmentMatchEvent(
            manifest=m,
            signature=evidence.signature,
            nodes=tuple(
                ProofNode(index=i, payload=evidence.shares[i].payload, path=tuple(evidence.shares[i].path))
                for i in quorum
            ),
        )
        self._metrics.reconstructions_total.labels(outcome="match").inc()
        log.info("reconstruction matches commitment sharer=%s epoch=%d", sharer, epoch)
        self._emit(event)
        return ReconstructionOutcome(
            status=ReconstructionStatus.SUCCESS, sharer=sharer, epoch=epoch, object=obj, event=event
        )

    def _failed(
        self,
        sharer: str,
        epoch: int,
        claimed: bytes,
        reconstructed: Optional[bytes],
        reason: str,
        evidence: Evidence,
        error: Optional[Exception],
    ) -> ReconstructionOutcome:
        event = CommitmentMismatchEvent(sharer=sharer, epoch=epoch, claimed=claimed, reconstructed=reconstructed)
        self._metrics.reconstructions_total.labels(outcome="mismatch").inc()
        self._emit(event)
        return ReconstructionOutcome(
            status=ReconstructionStatus.FAILED,
            sharer=sharer,
            epoch=epoch,
            event=event,
            reason=reason,
            error=error,
            evidence=evidence,
        )


__all__ = ["Reconstructor", "Evidence"]
