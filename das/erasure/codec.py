"""
DAS • Erasure — Codec

Object-level wrapper around the RS primitives:

    encode(payload, redundancy_factor, unit_size) -> (params, shards)
    decode(shards, params, size)                  -> payload

`shards` given to `decode` may be a mapping {index: bytes} or any iterable of
(index, bytes) pairs. Pairs make it possible to pass two copies of one index;
if they differ the input is contradictory and `InconsistentShares` is raised.
Extra shards beyond the k used for decoding are checked against the
re-encoded codeword, so decoding a superset of a valid subset either returns
the same object or fails loudly.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Tuple, Union

from ..errors import InconsistentShares, InsufficientShares
from .params import CodecParams
from .reedsolomon import rs_decode, rs_encode

ShardInput = Union[Mapping[int, bytes], Iterable[Tuple[int, bytes]]]


def split_units(payload: bytes, params: CodecParams) -> List[bytes]:
    """Cut `payload` into k zero-padded units of `params.unit_size` bytes."""
    if len(payload) > params.capacity:
        raise ValueError("payload does not fit the codec parameters")
    u = params.unit_size
    units = [payload[i * u : (i + 1) * u] for i in range(params.data_shards)]
    return [x if len(x) == u else x + bytes(u - len(x)) for x in units]


def encode(payload: bytes, redundancy_factor: int, unit_size: int) -> Tuple[CodecParams, List[bytes]]:
    """
    Erasure-code `payload` into r·k shards of `unit_size` bytes. Any k of
    them reconstruct the payload.
    """
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise TypeError("payload must be bytes-like")
    data = bytes(payload)
    params = CodecParams.for_payload(len(data), unit_size, redundancy_factor)
    return params, rs_encode(split_units(data, params), params.total_shards)


def _collect(shards: ShardInput, params: CodecParams) -> Dict[int, bytes]:
    items = shards.items() if isinstance(shards, Mapping) else shards
    out: Dict[int, bytes] = {}
    for idx, buf in items:
        idx = int(idx)
        if not (0 <= idx < params.total_shards):
            raise ValueError(f"shard index out of range: {idx}")
        buf = bytes(buf)
        if len(buf) != params.unit_size:
            raise ValueError(f"shard {idx} has length {len(buf)}, expected {params.unit_size}")
        prior = out.get(idx)
        if prior is not None and prior != buf:
            raise InconsistentShares(
                f"two different payloads supplied for shard {idx}",
                data={"index": idx},
            )
        out[idx] = buf
    return out


def decode(shards: ShardInput, params: CodecParams, size: int) -> bytes:
    """
    Reconstruct the original payload (first `size` bytes of the data units).

    Raises:
        InsufficientShares: fewer than k distinct shard indices supplied.
        InconsistentShares: supplied shards do not lie on one codeword.
    """
    if not (0 <= size <= params.capacity):
        raise ValueError("size outside codec capacity")
    return b"".join(decode_units(shards, params))[:size]


def decode_units(shards: ShardInput, params: CodecParams) -> List[bytes]:
    """
    Reconstruct all k data units, padding included. Same errors as `decode`.
    """
    have = _collect(shards, params)
    k = params.data_shards
    if len(have) < k:
        raise InsufficientShares(
            f"have {len(have)} distinct shards, need {k}",
            data={"have": len(have), "need": k},
        )
    data_units = rs_decode(have, k, params.total_shards)

    if len(have) > k:
        codeword = rs_encode(data_units, params.total_shards)
        bad = sorted(i for i, buf in have.items() if codeword[i] != buf)
        if bad:
            raise InconsistentShares(
                f"{len(bad)} shard(s) disagree with the decoded codeword",
                data={"indices": bad},
            )
    return data_units


class Codec:
    """
    Codec bound to a unit size and redundancy factor.
    """

    def __init__(self, unit_size: int, redundancy_factor: int) -> None:
        if unit_size <= 0:
            raise ValueError("unit_size must be > 0")
        if redundancy_factor < 1:
            raise ValueError("redundancy_factor must be >= 1")
        self.unit_size = unit_size
        self.redundancy_factor = redundancy_factor

    def params_for(self, size: int) -> CodecParams:
        return CodecParams.for_payload(size, self.unit_size, self.redundancy_factor)

    def encode(self, payload: bytes) -> Tuple[CodecParams, List[bytes]]:
        return encode(payload, self.redundancy_factor, self.unit_size)

    def decode(self, shards: ShardInput, params: CodecParams, size: int) -> bytes:
        return decode(shards, params, size)

    def __repr__(self) -> str:
        return f"Codec(unit_size={self.unit_size}, r={self.redundancy_factor})"


__all__ = ["Codec", "encode", "decode", "decode_units", "split_units", "ShardInput"]
