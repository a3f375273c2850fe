"""
DAS • Commitment Builder

Binary Merkle commitments over fixed-size chunks of an object, and over the
ordered sequence of erasure-coded share payloads.

    commit(data, unit_size)            -> 32-byte root over the object's chunks
    commit_shares(payloads)            -> 32-byte root over share payloads
    verify_leaf(root, index, leaf, p)  -> inclusion check in O(log n) hashes

Chunking is order-sensitive: leaf i is always bytes [i·unit, (i+1)·unit).
An empty object has exactly one (empty) leaf.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from ..utils.hash import leaf_hash
from ..utils.merkle import Hash, ProofStep, build_layers, build_proof, heap_order, verify_proof


def chunk_object(data: bytes, unit_size: int) -> List[bytes]:
    """Split `data` into `unit_size` chunks; the last may be short."""
    if unit_size <= 0:
        raise ValueError("unit_size must be > 0")
    if not data:
        return [b""]
    return [bytes(data[i : i + unit_size]) for i in range(0, len(data), unit_size)]


@dataclass(frozen=True)
class MerkleTree:
    """A built commitment tree (leaf layer first)."""

    layers: List[List[Hash]]
    leaf_count: int

    @property
    def root(self) -> Hash:
        return self.layers[-1][0]

    @property
    def width(self) -> int:
        return len(self.layers[0])

    def proof(self, index: int) -> List[ProofStep]:
        if not (0 <= index < self.leaf_count):
            raise IndexError("leaf index out of range")
        return build_proof(self.layers, index)

    def heap_nodes(self) -> List[Hash]:
        return heap_order(self.layers)


def build_tree(chunks: Sequence[bytes]) -> MerkleTree:
    """Tree whose leaves are `leaf_hash(chunk)` for each chunk, in order."""
    return MerkleTree(build_layers([leaf_hash(c) for c in chunks]), len(chunks))


def object_tree(data: bytes, unit_size: int) -> MerkleTree:
    return build_tree(chunk_object(data, unit_size))


def commit(data: bytes, unit_size: int) -> Hash:
    """Commitment (Merkle root) of an object under `unit_size` chunking."""
    return object_tree(data, unit_size).root


def share_tree(payloads: Sequence[bytes]) -> MerkleTree:
    if not payloads:
        raise ValueError("no share payloads to commit")
    return build_tree(payloads)


def commit_shares(payloads: Sequence[bytes]) -> Hash:
    """Share root: the same construction over share payloads in index order."""
    return share_tree(payloads).root


def verify_leaf(commitment: Hash, index: int, leaf: bytes, proof: Sequence[ProofStep]) -> bool:
    """
    True iff `leaf` (raw chunk or share payload bytes) sits at `index` under
    `commitment`.
    """
    return verify_proof(leaf_hash(leaf), index, proof, commitment)


__all__ = [
    "MerkleTree",
    "chunk_object",
    "build_tree",
    "object_tree",
    "commit",
    "share_tree",
    "commit_shares",
    "verify_leaf",
]
