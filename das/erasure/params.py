"""
DAS • Erasure Coding — Parameters

Defines the shape of one encoded payload:
  • k data shards of `unit_size` bytes (the payload, right-padded with zeros)
  • n - k parity shards, n = redundancy_factor · k

Design notes
------------
• The whole payload is a single codeword: *any* k of the n shards recover it,
  which is what the protocol's "any 1/r fraction reconstructs" guarantee
  needs. The price is n <= 256, the number of distinct evaluation points in
  GF(2^8). Larger objects need a larger unit.
• The exact payload length is carried separately (in the share manifest);
  padding bytes have no meaning and are never returned to callers.

This module is pure math & validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from ..constants import MAX_TOTAL_SHARES

# Utility --------------------------------------------------------------------


def ceil_div(a: int, b: int) -> int:
    if b <= 0:
        raise ValueError("b must be positive")
    if a < 0:
        raise ValueError("a must be non-negative")
    return (a + b - 1) // b


# Model ----------------------------------------------------------------------


@dataclass(frozen=True)
class CodecParams:
    """
    Erasure coding shape for one payload.

    Args:
        data_shards: k — shards needed to reconstruct (k >= 1)
        total_shards: n — shards produced (k <= n <= 256)
        unit_size: bytes per shard

    Derived:
        parity_shards = total_shards - data_shards
        capacity = data_shards * unit_size
    """

    data_shards: int
    total_shards: int
    unit_size: int

    def __post_init__(self) -> None:
        if self.data_shards <= 0:
            raise ValueError("data_shards (k) must be >= 1")
        if self.total_shards < self.data_shards:
            raise ValueError("total_shards (n) must be >= data_shards (k)")
        if self.total_shards > MAX_TOTAL_SHARES:
            raise ValueError(
                f"total_shards {self.total_shards} exceeds GF(256) limit {MAX_TOTAL_SHARES}; "
                "use a larger unit_size"
            )
        if self.unit_size <= 0:
            raise ValueError("unit_size must be >= 1")

    @classmethod
    def for_payload(cls, payload_bytes: int, unit_size: int, redundancy_factor: int) -> "CodecParams":
        """
        k = max(1, ceil(payload_bytes / unit_size)), n = r · k.
        """
        if redundancy_factor < 1:
            raise ValueError("redundancy_factor must be >= 1")
        k = max(1, ceil_div(payload_bytes, unit_size))
        return cls(data_shards=k, total_shards=redundancy_factor * k, unit_size=unit_size)

    @property
    def parity_shards(self) -> int:
        return self.total_shards - self.data_shards

    @property
    def capacity(self) -> int:
        """Usable payload bytes before padding."""
        return self.data_shards * self.unit_size

    @property
    def threshold(self) -> int:
        """Shards required to reconstruct."""
        return self.data_shards

    def to_dict(self) -> Dict[str, int]:
        return {
            "data_shards": self.data_shards,
            "total_shards": self.total_shards,
            "parity_shards": self.parity_shards,
            "unit_size": self.unit_size,
        }


__all__ = ["CodecParams", "ceil_div"]
