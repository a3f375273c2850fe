"""
Data Availability Sampling (DAS) protocol core.

A sharer proves to a ledger that a large object was made available to a
stake-weighted quorum of peers without posting the object itself:

- erasure-code the object (any 1/r of the shares reconstructs it)
- commit to it with a Merkle root and sign the share set
- allocate shares by stake and distribute them
- aggregate non-receipt complaints over a recency window
- reconstruct, and prove corruption with a compact mismatch proof
- decide Clean / PenalizedForWithholding / PenalizedForCorruption per epoch

Importing `das` is cheap; the public names below load their submodules on
first access.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Tuple

from .version import __version__, get_version

_EXPORTS: Dict[str, Tuple[str, str]] = {
    # codec / commitments
    "Codec": ("das.erasure.codec", "Codec"),
    "encode": ("das.erasure.codec", "encode"),
    "decode": ("das.erasure.codec", "decode"),
    "commit": ("das.commitment.builder", "commit"),
    "commit_shares": ("das.commitment.builder", "commit_shares"),
    "verify_leaf": ("das.commitment.builder", "verify_leaf"),
    # protocol
    "allocate": ("das.allocator", "allocate"),
    "ComplaintLedger": ("das.complaints", "ComplaintLedger"),
    "Reconstructor": ("das.reconstruct", "Reconstructor"),
    "build_mismatch_proof": ("das.mismatch", "build_mismatch_proof"),
    "verify_mismatch_proof": ("das.mismatch", "verify_mismatch_proof"),
    "PenaltyEvaluator": ("das.penalty", "PenaltyEvaluator"),
    # roles
    "Sharer": ("das.sharer", "Sharer"),
    "Recipient": ("das.recipient", "Recipient"),
    "AvailabilityService": ("das.service", "AvailabilityService"),
    # adapters
    "InMemoryLedger": ("das.adapters.ledger", "InMemoryLedger"),
    "LocalShareBus": ("das.adapters.transport", "LocalShareBus"),
    # config
    "DASConfig": ("das.config", "DASConfig"),
    "get_config": ("das.config", "get_config"),
}

__all__ = tuple(sorted(_EXPORTS)) + ("__version__", "get_version")


def __getattr__(name: str) -> Any:
    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module 'das' has no attribute {name!r}")
    mod_path, attr_name = target
    module = __import__(mod_path, fromlist=[attr_name])
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


if TYPE_CHECKING:
    from .adapters.ledger import InMemoryLedger
    from .adapters.transport import LocalShareBus
    from .allocator import allocate
    from .commitment.builder import commit, commit_shares, verify_leaf
    from .complaints import ComplaintLedger
    from .config import DASConfig, get_config
    from .erasure.codec import Codec, decode, encode
    from .mismatch import build_mismatch_proof, verify_mismatch_proof
    from .penalty import PenaltyEvaluator
    from .recipient import Recipient
    from .reconstruct import Reconstructor
    from .service import AvailabilityService
    from .sharer import Sharer
