"""
DAS utilities — Hashing helpers (SHA3 + domain tags)

This module provides:

  • Domain-separated SHA3-256 (`hash_domain`) that length-prefixes parts
  • Leaf / inner-node hashes for the commitment trees

Every hash used by the protocol is domain separated, so a leaf preimage can
never be replayed as an inner-node preimage and vice versa:

  preimage = b"DAS|DS|" || tag || b"|" || 0x00 ||
             for part in parts: varuint(len(part)) || part

All functions return raw 32-byte digests.
"""

from __future__ import annotations

from hashlib import sha3_256 as _sha3_256
from typing import Union

from ..constants import TAG_LEAF, TAG_NODE

BytesLike = Union[bytes, bytearray, memoryview]

_DS_PREFIX = b"DAS|DS|"


def hash_domain(tag: Union[str, bytes], *parts: BytesLike) -> bytes:
    """
    Domain-separated SHA3-256 with length-framed parts.

    Args:
        tag:   short human-readable tag (e.g., "das.leaf") or bytes.
        parts: byte-like segments to frame and hash.
    """
    tag_b = tag.encode("ascii") if isinstance(tag, str) else bytes(tag)
    h = _sha3_256()
    h.update(_DS_PREFIX)
    h.update(tag_b + b"|\x00")
    for p in parts:
        pb = _b(p)
        h.update(_varuint(len(pb)))
        h.update(pb)
    return h.digest()


def leaf_hash(chunk: BytesLike) -> bytes:
    """Hash of a commitment-tree leaf (raw chunk bytes)."""
    return hash_domain(TAG_LEAF, chunk)


def inner_hash(left: BytesLike, right: BytesLike) -> bytes:
    """Hash of a commitment-tree inner node."""
    return hash_domain(TAG_NODE, left, right)


# ------------------------------- Misc helpers --------------------------------


def _b(x: BytesLike) -> bytes:
    if isinstance(x, bytes):
        return x
    if isinstance(x, memoryview):
        return x.tobytes()
    return bytes(x)


def _varuint(n: int) -> bytes:
    """Unsigned LEB128 (little-endian base-128) encoding."""
    if n < 0:
        raise ValueError("varuint requires a non-negative integer")
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            break
    return bytes(out)


__all__ = [
    "BytesLike",
    "hash_domain",
    "leaf_hash",
    "inner_hash",
]
