"""
DAS utilities: hashing with domain tags and binary Merkle helpers.
"""

from .hash import hash_domain, inner_hash, leaf_hash
from .merkle import (
    EMPTY_LEAF,
    ProofStep,
    build_layers,
    build_proof,
    heap_order,
    merkle_root,
    padded_width,
    verify_proof,
)

__all__ = [
    "hash_domain",
    "inner_hash",
    "leaf_hash",
    "EMPTY_LEAF",
    "ProofStep",
    "build_layers",
    "build_proof",
    "heap_order",
    "merkle_root",
    "padded_width",
    "verify_proof",
]
