"""
DAS errors.

Typed exception hierarchy with structured metadata, shaped so ledger/RPC
layers can render them directly.

Usage:

    from das.errors import InsufficientShares, InconsistentShares

    raise InsufficientShares("need more shares", data={"have": 2, "need": 3})

All errors expose:
- .code       : stable machine-readable code (snake_case)
- .retryable  : whether waiting (for shares, for the ledger) can resolve it
- .data       : optional structured payload (dict-like)
- .to_problem() : RFC 7807-compatible dict

Propagation policy
------------------
Structural / cryptographic errors (`InconsistentShares`, `InvalidShare`,
`MalformedProof`) are evidence of adversarial behaviour and are always raised
to the caller. `InsufficientShares` is the only transient error; callers retry
it with backoff until the epoch deadline.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class DASError(Exception):
    """
    Base class for DAS errors.

    Subclasses set `default_code` and `retryable`.
    """
    default_code = "das_error"
    retryable = False

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.data: Dict[str, Any] = dict(data) if data else {}

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.message:
            return f"{self.code}: {self.message}"
        return self.code

    def to_problem(self) -> Dict[str, Any]:
        """
        Render as an RFC 7807 "problem detail" object.
        """
        return {
            "type": f"urn:das:{self.code}",
            "title": self.code.replace("_", " ").title(),
            "detail": self.message or None,
            "retryable": self.retryable,
            "data": self.data or None,
        }


class InsufficientShares(DASError):
    """
    Fewer than the reconstruction threshold of shares are available. Recoverable:
    wait for more shares.
    """
    default_code = "insufficient_shares"
    retryable = True


class InconsistentShares(DASError):
    """
    Supplied shares contradict each other (same index with different content,
    or shares that are not a single codeword). Signals a forging attempt.
    """
    default_code = "inconsistent_shares"


class InvalidShare(DASError):
    """
    A share failed signature, inclusion-path or epoch-binding checks.
    """
    default_code = "invalid_share"


class CommitmentMismatch(DASError):
    """
    Reconstructed content does not match the posted commitment. Raised by
    `Reconstructor.require_match`; the event-driven path reports it as a
    `CommitmentMismatchEvent` instead.
    """
    default_code = "commitment_mismatch"


class AlreadyFinalized(DASError):
    """
    A verdict for this (sharer, epoch) is terminal; further writes are rejected.
    """
    default_code = "already_finalized"


class EpochClosed(DASError):
    """
    An event arrived after the epoch deadline.
    """
    default_code = "epoch_closed"


class UnknownEpoch(DASError):
    """
    No commitment was posted for the referenced (sharer, epoch).
    """
    default_code = "unknown_epoch"


class StakeWeightUnavailable(DASError):
    """
    Stake weights for the epoch are missing or empty; allocation cannot proceed.
    """
    default_code = "stake_weight_unavailable"


class MalformedProof(DASError):
    """
    A mismatch proof failed local re-verification.
    """
    default_code = "malformed_proof"


__all__ = [
    "DASError",
    "InsufficientShares",
    "InconsistentShares",
    "InvalidShare",
    "CommitmentMismatch",
    "AlreadyFinalized",
    "EpochClosed",
    "UnknownEpoch",
    "StakeWeightUnavailable",
    "MalformedProof",
]
