"""
DAS • Erasure — Reed–Solomon (GF(2^8)) encoder/decoder.

A *systematic*, maximum-distance-separable RS(k, n) code over GF(256). Any k
of the n shards reconstruct the k data shards exactly.

Design
------
• Field: GF(2^8) with primitive polynomial 0x11D and generator α = 0x02.
• Let V be the n×k Vandermonde matrix over the distinct points 0..n-1
  (row i = [1, i, i^2, …, i^{k-1}]) and V_top its first k rows. The
  generator is

        G = V · V_top^{-1}          (shape n×k)

  Its top k rows are I_k (systematic), and any k rows G_S = V_S · V_top^{-1}
  are invertible because V_S is a Vandermonde matrix over distinct points.
  Plain "identity on top of Vandermonde" does not have this property.
• Encoding: shard_i = Σ_j G[i][j] · data_j.
• Decoding: pick k shards S, then data = (G_S)^{-1} · C_S. The inverse is
  computed once per selection and applied to whole shards.

Vector arithmetic
-----------------
Scalar × shard uses `bytes.translate` with a precomputed multiplication row,
and shard + shard is XOR on Python ints; both run at C speed, so multi-MiB
shards are practical without numpy.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Sequence, Tuple

# =============================================================================
# GF(256) arithmetic (poly 0x11D, generator 0x02)
# =============================================================================

_PRIMITIVE_POLY = 0x11D
_GF_EXP: List[int] = [0] * 512  # exp table (repeat to avoid mod 255 on lookups)
_GF_LOG: List[int] = [0] * 256  # log table (log(0) unused)


def _gf_init() -> None:
    x = 1
    for i in range(255):
        _GF_EXP[i] = x
        _GF_LOG[x] = i
        x <<= 1
        if x & 0x100:
            x ^= _PRIMITIVE_POLY
    for i in range(255, 512):
        _GF_EXP[i] = _GF_EXP[i - 255]


def gf_add(a: int, b: int) -> int:
    return a ^ b


def gf_mul(a: int, b: int) -> int:
    if a == 0 or b == 0:
        return 0
    return _GF_EXP[_GF_LOG[a] + _GF_LOG[b]]


def gf_inv(a: int) -> int:
    if a == 0:
        raise ZeroDivisionError("inverse of zero")
    return _GF_EXP[255 - _GF_LOG[a]]


def gf_pow(a: int, e: int) -> int:
    if e == 0:
        return 1
    if a == 0:
        return 0
    return _GF_EXP[(_GF_LOG[a] * e) % 255]


_gf_init()

# 256 translation tables; _MUL_TABLE[c][b] == gf_mul(c, b)
_MUL_TABLE: List[bytes] = [bytes(gf_mul(a, b) for b in range(256)) for a in range(256)]


def _combine(coeffs: Sequence[int], rows: Sequence[bytes], width: int) -> bytes:
    """Σ coeffs[j] · rows[j] over GF(256), each row `width` bytes."""
    acc = 0
    for c, row in zip(coeffs, rows):
        if c == 0:
            continue
        prod = row if c == 1 else row.translate(_MUL_TABLE[c])
        acc ^= int.from_bytes(prod, "big")
    return acc.to_bytes(width, "big")


# =============================================================================
# Matrix ops over GF(256)
# =============================================================================

Matrix = Tuple[Tuple[int, ...], ...]


def _mat_mul(a: Sequence[Sequence[int]], b: Sequence[Sequence[int]]) -> List[List[int]]:
    rows, inner, cols = len(a), len(b), len(b[0])
    out = [[0] * cols for _ in range(rows)]
    for i in range(rows):
        ai = a[i]
        oi = out[i]
        for t in range(inner):
            f = ai[t]
            if f == 0:
                continue
            bt = b[t]
            for j in range(cols):
                oi[j] ^= gf_mul(f, bt[j])
    return out


def _mat_inv(a: Sequence[Sequence[int]]) -> List[List[int]]:
    """
    Invert a k×k matrix over GF(256) using Gauss–Jordan elimination.
    Works on a copy; leaves input `a` untouched.
    """
    k = len(a)
    A = [list(row) for row in a]
    I = [[1 if i == j else 0 for j in range(k)] for i in range(k)]

    for col in range(k):
        pivot = col
        while pivot < k and A[pivot][col] == 0:
            pivot += 1
        if pivot == k:
            raise ValueError("singular matrix in RS decode")
        if pivot != col:
            A[col], A[pivot] = A[pivot], A[col]
            I[col], I[pivot] = I[pivot], I[col]
        inv_piv = gf_inv(A[col][col])
        for j in range(k):
            A[col][j] = gf_mul(A[col][j], inv_piv)
            I[col][j] = gf_mul(I[col][j], inv_piv)
        for r in range(k):
            if r == col:
                continue
            factor = A[r][col]
            if factor == 0:
                continue
            for j in range(k):
                A[r][j] ^= gf_mul(factor, A[col][j])
                I[r][j] ^= gf_mul(factor, I[col][j])
    return I


def _vandermonde(points: Sequence[int], k: int) -> List[List[int]]:
    return [[gf_pow(x, j) for j in range(k)] for x in points]


@lru_cache(maxsize=64)
def generator_matrix(k: int, n: int) -> Matrix:
    """
    Systematic MDS generator G (n×k); rows 0..k-1 form the identity.
    """
    if not (1 <= k <= n <= 256):
        raise ValueError(f"invalid RS shape k={k} n={n}")
    v = _vandermonde(range(n), k)
    g = _mat_mul(v, _mat_inv(v[:k]))
    return tuple(tuple(row) for row in g)


@lru_cache(maxsize=256)
def _decode_matrix(k: int, n: int, selection: Tuple[int, ...]) -> Matrix:
    g = generator_matrix(k, n)
    inv = _mat_inv([g[i] for i in selection])
    return tuple(tuple(row) for row in inv)


# =============================================================================
# Public API
# =============================================================================


def rs_encode(data_shards: Sequence[bytes], n: int) -> List[bytes]:
    """
    Encode k equal-length data shards into the full codeword of n shards.
    The first k returned shards are the inputs (systematic).
    """
    k = len(data_shards)
    if k == 0:
        raise ValueError("need at least one data shard")
    width = len(data_shards[0])
    for s in data_shards:
        if len(s) != width:
            raise ValueError("data shard has wrong length")
    g = generator_matrix(k, n)
    rows = [bytes(s) for s in data_shards]
    return rows + [_combine(g[i], rows, width) for i in range(k, n)]


def rs_decode(shards: Dict[int, bytes], k: int, n: int) -> List[bytes]:
    """
    Reconstruct the k data shards from a mapping {shard_index: bytes} holding
    at least k entries. The lowest k indices are used; callers that want the
    remaining entries checked re-encode and compare (see `das.erasure.codec`).
    """
    if len(shards) < k:
        raise ValueError("need at least k shards to decode")
    width = None
    for idx, buf in shards.items():
        if not (0 <= idx < n):
            raise ValueError(f"shard index out of range: {idx}")
        if width is None:
            width = len(buf)
        elif len(buf) != width:
            raise ValueError("shard length mismatch")

    sel = tuple(sorted(shards)[:k])
    if sel == tuple(range(k)):
        return [bytes(shards[i]) for i in sel]
    inv = _decode_matrix(k, n, sel)
    rows = [bytes(shards[i]) for i in sel]
    return [_combine(inv[i], rows, width or 0) for i in range(k)]


__all__ = [
    "gf_add",
    "gf_mul",
    "gf_inv",
    "gf_pow",
    "generator_matrix",
    "rs_encode",
    "rs_decode",
]
