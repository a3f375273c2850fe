"""
DAS utilities — Binary Merkle helpers

Small, dependency-free helpers for the commitment trees used by the protocol.

Design choices
--------------
• Leaves are provided as *already-hashed* 32-byte digests; callers decide how
  to hash leaves (see `das.utils.hash.leaf_hash`).
• The leaf layer is right-padded to a power of two with `EMPTY_LEAF`
  (the hash of an empty chunk). Unlike last-node duplication this keeps
  `[a, b, c]` and `[a, b, c, c]` on different roots.
• Proof steps carry a direction bit; verification checks that the
  direction bits spell out the claimed index, so a valid path pins the leaf
  to exactly one position.

Key functions
-------------
- merkle_root(leaf_hashes)
- build_layers(leaf_hashes)          (leaf layer first, root layer last)
- build_proof(layers_or_leaves, index)
- verify_proof(leaf_hash, index, proof, root)
- heap_order(layers)                 (root first, children of i at 2i+1, 2i+2)
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Sequence

from .hash import inner_hash, leaf_hash

Hash = bytes

EMPTY_LEAF: Hash = leaf_hash(b"")


# --------------------------------------------------------------------------- #
# Proof step data structures
# --------------------------------------------------------------------------- #

@dataclass(frozen=True)
class ProofStep:
    """
    One hop in an inclusion proof.

    dir: 0 if the current hash was on the left (sibling is right),
         1 if the current hash was on the right (sibling is left).
    sibling: the sibling node's hash bytes.
    """
    dir: int  # 0 = current-left, 1 = current-right
    sibling: Hash

    def __post_init__(self) -> None:
        if self.dir not in (0, 1):
            raise ValueError("ProofStep.dir must be 0 or 1")
        if not isinstance(self.sibling, (bytes, bytearray)):
            raise TypeError("ProofStep.sibling must be bytes")


# --------------------------------------------------------------------------- #
# Tree building
# --------------------------------------------------------------------------- #

def padded_width(count: int) -> int:
    """Smallest power of two >= max(1, count)."""
    width = 1
    while width < count:
        width <<= 1
    return width


def build_layers(
    leaf_hashes: Sequence[Hash],
    *,
    combine: Callable[[Hash, Hash], Hash] = inner_hash,
) -> List[List[Hash]]:
    """
    Build every layer of the padded tree. `layers[0]` is the (padded) leaf
    layer and `layers[-1] == [root]`.
    """
    if not leaf_hashes:
        raise ValueError("cannot build a tree over an empty leaf set")
    layer: List[Hash] = list(leaf_hashes)
    layer.extend([EMPTY_LEAF] * (padded_width(len(layer)) - len(layer)))
    layers = [layer]
    while len(layer) > 1:
        layer = [combine(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]
        layers.append(layer)
    return layers


def merkle_root(leaf_hashes: Sequence[Hash]) -> Hash:
    """Root of the padded tree over `leaf_hashes`."""
    return build_layers(leaf_hashes)[-1][0]


def heap_order(layers: Sequence[Sequence[Hash]]) -> List[Hash]:
    """
    Flatten layers root-first, so node i has children 2i+1 and 2i+2.
    """
    out: List[Hash] = []
    for layer in reversed(layers):
        out.extend(layer)
    return out


# --------------------------------------------------------------------------- #
# Inclusion proofs
# --------------------------------------------------------------------------- #

def build_proof(layers: Sequence[Sequence[Hash]], index: int) -> List[ProofStep]:
    """
    Build an inclusion proof for leaf `index` from prebuilt `layers`.

    Returns:
        List of ProofStep from the leaf layer up towards the root (excluding root).
    """
    width = len(layers[0])
    if not (0 <= index < width):
        raise IndexError("index out of range")
    proof: List[ProofStep] = []
    idx = index
    for layer in layers[:-1]:
        if idx % 2 == 0:
            proof.append(ProofStep(dir=0, sibling=layer[idx + 1]))
        else:
            proof.append(ProofStep(dir=1, sibling=layer[idx - 1]))
        idx //= 2
    return proof


def verify_proof(
    leaf: Hash,
    index: int,
    proof: Sequence[ProofStep],
    root: Hash,
    *,
    combine: Callable[[Hash, Hash], Hash] = inner_hash,
) -> bool:
    """
    Verify an inclusion proof for a leaf hash at `index` in O(len(proof)) hashes.
    """
    if index < 0 or index >= (1 << len(proof)):
        return False
    acc = leaf
    idx = index
    for step in proof:
        if step.dir != idx & 1:
            return False
        if step.dir == 0:
            acc = combine(acc, bytes(step.sibling))
        else:
            acc = combine(bytes(step.sibling), acc)
        idx >>= 1
    return acc == root


__all__ = [
    "Hash",
    "EMPTY_LEAF",
    "ProofStep",
    "padded_width",
    "build_layers",
    "merkle_root",
    "heap_order",
    "build_proof",
    "verify_proof",
]
