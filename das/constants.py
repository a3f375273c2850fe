"""
DAS constants.

Protocol-level bounds and canonical defaults. Runtime configuration lives in
`das.config`; these values define the defaults and guard rails it validates
against. Safe to import from anywhere.
"""

from __future__ import annotations

from fractions import Fraction

# ------------------------------ codec & units -------------------------------

#: Default leaf/unit size in bytes.
UNIT_SIZE_DEFAULT: int = 4096
#: Smallest unit accepted (the tree-node strategy stores two 32-byte hashes per node).
UNIT_SIZE_MIN: int = 64
#: Guard-rail upper bound for a unit.
UNIT_SIZE_MAX: int = 64 * 1024 * 1024  # 64 MiB

#: Reference protocol redundancy: any 1/3 of the shares reconstructs.
REDUNDANCY_DEFAULT: int = 3
REDUNDANCY_MIN: int = 2

#: Reed–Solomon over GF(2^8) needs distinct evaluation points per shard.
FIELD_SIZE: int = 256
MAX_TOTAL_SHARES: int = FIELD_SIZE

# ------------------------------ commitments ---------------------------------

HASH_BYTES: int = 32

#: Tree-node records: kind(1) | len(u32 BE).
NODE_HEADER_BYTES: int = 5
NODE_KIND_LEAF: int = 0x00
NODE_KIND_INNER: int = 0x01

STRATEGY_RAW: str = "raw"
STRATEGY_TREE: str = "tree"
STRATEGIES = (STRATEGY_RAW, STRATEGY_TREE)

# ------------------------------ protocol timing -----------------------------

#: Complaint ratio at or above which a sharer is penalized for withholding.
COMPLAINT_THRESHOLD_DEFAULT: Fraction = Fraction(1, 3)
#: Ledger-time units a complaint keeps counting toward the ratio.
RECENCY_WINDOW_DEFAULT: int = 600
#: Ledger-time units between commitment post and epoch close.
EPOCH_DURATION_DEFAULT: int = 3600

# ------------------------------ domain tags ---------------------------------

TAG_LEAF = "das.leaf"
TAG_NODE = "das.node"
TAG_MANIFEST = "das_manifest_v1"


__all__ = [
    "UNIT_SIZE_DEFAULT",
    "UNIT_SIZE_MIN",
    "UNIT_SIZE_MAX",
    "REDUNDANCY_DEFAULT",
    "REDUNDANCY_MIN",
    "FIELD_SIZE",
    "MAX_TOTAL_SHARES",
    "HASH_BYTES",
    "NODE_HEADER_BYTES",
    "NODE_KIND_LEAF",
    "NODE_KIND_INNER",
    "STRATEGY_RAW",
    "STRATEGY_TREE",
    "STRATEGIES",
    "COMPLAINT_THRESHOLD_DEFAULT",
    "RECENCY_WINDOW_DEFAULT",
    "EPOCH_DURATION_DEFAULT",
    "TAG_LEAF",
    "TAG_NODE",
    "TAG_MANIFEST",
]
