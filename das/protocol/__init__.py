"""
DAS • Protocol records, encodings and signatures.

types     — Share, ShareManifest, ComplaintRecord, MismatchProof, verdicts
encoding  — canonical CBOR (cbor2) for every record
signing   — Ed25519 manifest signatures (cryptography)
validate  — share checks (signature, shape, inclusion path)
"""

from __future__ import annotations

from .types import (
    AttestationState,
    AttestationStatus,
    CommitmentMatchEvent,
    CommitmentMismatchEvent,
    ComplaintRecord,
    EpochHandle,
    MismatchProof,
    PenaltyVerdict,
    ProofKind,
    ProofNode,
    ReconstructionOutcome,
    ReconstructionStatus,
    Share,
    ShareManifest,
)

__all__ = [
    "AttestationState",
    "AttestationStatus",
    "CommitmentMatchEvent",
    "CommitmentMismatchEvent",
    "ComplaintRecord",
    "EpochHandle",
    "MismatchProof",
    "PenaltyVerdict",
    "ProofKind",
    "ProofNode",
    "ReconstructionOutcome",
    "ReconstructionStatus",
    "Share",
    "ShareManifest",
]
