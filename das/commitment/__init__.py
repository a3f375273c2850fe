"""
DAS • Commitments

builder   — Merkle commitments over object chunks and share payloads
strategy  — raw-object vs tree-node share layouts and the divergence walk
"""

from __future__ import annotations

from .builder import (
    MerkleTree,
    build_tree,
    chunk_object,
    commit,
    commit_shares,
    object_tree,
    share_tree,
    verify_leaf,
)
from .strategy import Divergence, RawStrategy, TreeStrategy, find_divergence, get_strategy

__all__ = [
    "MerkleTree",
    "build_tree",
    "chunk_object",
    "commit",
    "commit_shares",
    "object_tree",
    "share_tree",
    "verify_leaf",
    "Divergence",
    "RawStrategy",
    "TreeStrategy",
    "find_divergence",
    "get_strategy",
]
