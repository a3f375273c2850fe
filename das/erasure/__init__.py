"""
DAS • Erasure Coding

Submodules
----------
params       — (k, n, unit) shape of one encoded payload
reedsolomon  — systematic MDS Reed–Solomon primitives over GF(256)
codec        — payload → shards and any-k shards → payload
"""

from __future__ import annotations

from .codec import Codec, decode, encode, split_units
from .params import CodecParams
from .reedsolomon import rs_decode, rs_encode

__all__ = [
    "Codec",
    "CodecParams",
    "encode",
    "decode",
    "split_units",
    "rs_encode",
    "rs_decode",
]
