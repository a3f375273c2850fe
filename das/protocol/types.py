"""
DAS • Protocol records
======================

Immutable records exchanged between the sharer, recipients, validators and
the ledger. Byte encodings live in :mod:`das.protocol.encoding`.

Conventions
-----------
- `commitment` / `share_root` are 32-byte Merkle roots (bytes).
- `sharer` is the self-certifying id "0x" + hex(Ed25519 public key); see
  :mod:`das.protocol.signing`.
- `epoch` is a non-negative int, monotonically increasing per sharer.
- Times (`timestamp`, `now`) are ledger-clock ints, never wall clock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..constants import HASH_BYTES, STRATEGIES
from ..erasure.params import CodecParams
from ..utils.merkle import ProofStep

# =============================================================================
# Helpers
# =============================================================================


def _expect_hash(name: str, b: bytes) -> None:
    if not isinstance(b, (bytes, bytearray)) or len(b) != HASH_BYTES:
        raise ValueError(f"{name} must be {HASH_BYTES} bytes")


def _expect_nonneg(name: str, v: int) -> None:
    if not isinstance(v, int) or v < 0:
        raise ValueError(f"{name} must be a non-negative int")


Path = Tuple[ProofStep, ...]


# =============================================================================
# Shares
# =============================================================================


@dataclass(frozen=True)
class ShareManifest:
    """
    Everything a share needs to be checked against, signed once per epoch.

    `data_shares` / `total_shares` describe the erasure code over the
    strategy's payload (the object itself or its node stream).
    """

    sharer: str
    epoch: int
    commitment: bytes
    share_root: bytes
    object_size: int
    unit_size: int
    data_shares: int
    total_shares: int
    strategy: str

    def __post_init__(self) -> None:
        _expect_nonneg("epoch", self.epoch)
        _expect_hash("commitment", self.commitment)
        _expect_hash("share_root", self.share_root)
        _expect_nonneg("object_size", self.object_size)
        if self.unit_size <= 0:
            raise ValueError("unit_size must be > 0")
        if not (1 <= self.data_shares <= self.total_shares):
            raise ValueError("need 1 <= data_shares <= total_shares")
        if self.strategy not in STRATEGIES:
            raise ValueError(f"unknown strategy {self.strategy!r}")

    def codec_params(self, coding_unit: int) -> CodecParams:
        return CodecParams(self.data_shares, self.total_shares, coding_unit)


@dataclass(frozen=True)
class Share:
    """
    One erasure-coded fragment. `path` proves `payload` sits at `index` under
    `manifest.share_root`; `signature` covers the manifest.
    """

    manifest: ShareManifest
    signature: bytes
    index: int
    payload: bytes
    path: Path = ()

    def __post_init__(self) -> None:
        _expect_nonneg("index", self.index)
        if self.index >= self.manifest.total_shares:
            raise ValueError("share index out of range")

    @property
    def sharer(self) -> str:
        return self.manifest.sharer

    @property
    def epoch(self) -> int:
        return self.manifest.epoch

    @property
    def commitment(self) -> bytes:
        return self.manifest.commitment


# =============================================================================
# Complaints & proofs
# =============================================================================


@dataclass(frozen=True)
class ComplaintRecord:
    sharer: str
    epoch: int
    recipient: str
    timestamp: int

    def age(self, now: int) -> int:
        return now - self.timestamp


@dataclass(frozen=True)
class ProofNode:
    """A signed share carried inside a mismatch proof or a match event."""

    index: int
    payload: bytes
    path: Path


class ProofKind(str, Enum):
    #: k shares decoding to an object with a different commitment (O(M))
    OBJECT = "object"
    #: one or two tree nodes that contradict the commitment (O(log M))
    TREE = "tree"
    #: shares under one share root that are not a single codeword
    CODEWORD = "codeword"


@dataclass(frozen=True)
class MismatchProof:
    """
    Evidence that the shares a sharer signed do not encode the posted
    commitment. `reconstructed_commitment` is informational for TREE and
    CODEWORD proofs.
    """

    kind: ProofKind
    manifest: ShareManifest
    signature: bytes
    claimed_commitment: bytes
    reconstructed_commitment: Optional[bytes]
    nodes: Tuple[ProofNode, ...]

    @property
    def sharer(self) -> str:
        return self.manifest.sharer

    @property
    def epoch(self) -> int:
        return self.manifest.epoch

    @property
    def hash_count(self) -> int:
        """Sibling hashes carried across all inclusion paths."""
        return sum(len(n.path) for n in self.nodes)


# =============================================================================
# Verdicts & reconstruction
# =============================================================================


class PenaltyVerdict(str, Enum):
    ACTIVE = "Active"
    CLEAN = "Clean"
    PENALIZED_FOR_WITHHOLDING = "PenalizedForWithholding"
    PENALIZED_FOR_CORRUPTION = "PenalizedForCorruption"

    @property
    def is_terminal(self) -> bool:
        return self is not PenaltyVerdict.ACTIVE

    @property
    def is_penalty(self) -> bool:
        return self in (
            PenaltyVerdict.PENALIZED_FOR_WITHHOLDING,
            PenaltyVerdict.PENALIZED_FOR_CORRUPTION,
        )


@dataclass(frozen=True)
class CommitmentMatchEvent:
    """
    A quorum of signed shares that decodes to the committed object. The
    shares travel with the event so whoever records it can decode them again.
    """

    manifest: ShareManifest
    signature: bytes
    nodes: Tuple[ProofNode, ...] = field(repr=False)
    kind: str = field(default="CommitmentMatch", init=False)

    @property
    def sharer(self) -> str:
        return self.manifest.sharer

    @property
    def epoch(self) -> int:
        return self.manifest.epoch

    @property
    def commitment(self) -> bytes:
        return self.manifest.commitment


@dataclass(frozen=True)
class CommitmentMismatchEvent:
    sharer: str
    epoch: int
    claimed: bytes
    reconstructed: Optional[bytes]
    kind: str = field(default="CommitmentMismatch", init=False)


class ReconstructionStatus(str, Enum):
    SUCCESS = "Success"
    PENDING = "Pending"
    FAILED = "Failed"


@dataclass(frozen=True)
class ReconstructionOutcome:
    status: ReconstructionStatus
    sharer: str
    epoch: int
    object: Optional[bytes] = None
    event: Optional[object] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None
    #: material a mismatch proof is built from (see das.reconstruct.Evidence)
    evidence: Optional[object] = None

    @property
    def ok(self) -> bool:
        return self.status is ReconstructionStatus.SUCCESS


# =============================================================================
# Rollup-facing handles
# =============================================================================


@dataclass(frozen=True)
class EpochHandle:
    sharer: str
    epoch: int


class AttestationState(str, Enum):
    PENDING = "Pending"
    ATTESTED = "Attested"
    FAILED = "Failed"


@dataclass(frozen=True)
class AttestationStatus:
    state: AttestationState
    reason: Optional[str] = None


__all__ = [
    "ShareManifest",
    "Share",
    "ComplaintRecord",
    "ProofNode",
    "ProofKind",
    "MismatchProof",
    "PenaltyVerdict",
    "CommitmentMatchEvent",
    "CommitmentMismatchEvent",
    "ReconstructionStatus",
    "ReconstructionOutcome",
    "EpochHandle",
    "AttestationState",
    "AttestationStatus",
]
