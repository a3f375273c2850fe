"""
DAS • Protocol Encoding
=======================

Canonical CBOR (`cbor2`, canonical=True) for every record the protocol hands
to the ledger or the transport. Records are int-keyed maps so encodings stay
short and stable:

  ShareManifest   {1: tag, 2: sharer, 3: epoch, 4: commitment, 5: share_root,
                   6: object_size, 7: unit_size, 8: data_shares,
                   9: total_shares, 10: strategy}
  Share           {1: manifest, 2: signature, 3: index, 4: payload, 5: path}
  ComplaintRecord {1: sharer, 2: epoch, 3: recipient, 4: timestamp}
  MismatchProof   {1: kind, 2: manifest, 3: signature, 4: claimed,
                   5: reconstructed | null, 6: [[index, payload, path], ...]}

Paths are lists of [dir, sibling] pairs.

`manifest_signbytes` is the byte string the sharer signs: the manifest map
with the domain tag under key 1.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import cbor2

from ..constants import TAG_MANIFEST
from ..utils.merkle import ProofStep
from .types import ComplaintRecord, MismatchProof, ProofKind, ProofNode, Share, ShareManifest


def dumps(obj: Any) -> bytes:
    return cbor2.dumps(obj, canonical=True)


def loads(buf: bytes) -> Any:
    try:
        return cbor2.loads(buf)
    except cbor2.CBORDecodeError as e:
        raise ValueError(f"invalid CBOR: {e}") from e


def _map(obj: Any) -> Dict[int, Any]:
    if not isinstance(obj, dict):
        raise ValueError(f"expected a CBOR map, got {type(obj).__name__}")
    return obj


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def _path_out(path: Sequence[ProofStep]) -> List[List[Any]]:
    return [[s.dir, bytes(s.sibling)] for s in path]


def _path_in(raw: Sequence[Sequence[Any]]) -> tuple:
    return tuple(ProofStep(dir=int(d), sibling=bytes(sib)) for d, sib in raw)


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


def _manifest_map(m: ShareManifest) -> Dict[int, Any]:
    return {
        1: TAG_MANIFEST,
        2: m.sharer,
        3: int(m.epoch),
        4: bytes(m.commitment),
        5: bytes(m.share_root),
        6: int(m.object_size),
        7: int(m.unit_size),
        8: int(m.data_shares),
        9: int(m.total_shares),
        10: m.strategy,
    }


def _manifest_from_map(d: Dict[int, Any]) -> ShareManifest:
    if _map(d).get(1) != TAG_MANIFEST:
        raise ValueError("manifest domain tag mismatch")
    return ShareManifest(
        sharer=str(d[2]),
        epoch=int(d[3]),
        commitment=bytes(d[4]),
        share_root=bytes(d[5]),
        object_size=int(d[6]),
        unit_size=int(d[7]),
        data_shares=int(d[8]),
        total_shares=int(d[9]),
        strategy=str(d[10]),
    )


def manifest_signbytes(m: ShareManifest) -> bytes:
    """Canonical bytes covered by the sharer's signature."""
    return dumps(_manifest_map(m))


def encode_manifest(m: ShareManifest) -> bytes:
    return dumps(_manifest_map(m))


def decode_manifest(buf: bytes) -> ShareManifest:
    return _manifest_from_map(loads(buf))


# ---------------------------------------------------------------------------
# Shares
# ---------------------------------------------------------------------------


def encode_share(s: Share) -> bytes:
    return dumps(
        {
            1: _manifest_map(s.manifest),
            2: bytes(s.signature),
            3: int(s.index),
            4: bytes(s.payload),
            5: _path_out(s.path),
        }
    )


def decode_share(buf: bytes) -> Share:
    d = _map(loads(buf))
    try:
        return Share(
            manifest=_manifest_from_map(d[1]),
            signature=bytes(d[2]),
            index=int(d[3]),
            payload=bytes(d[4]),
            path=_path_in(d[5]),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed share record: {e}") from e


# ---------------------------------------------------------------------------
# Complaints
# ---------------------------------------------------------------------------


def encode_complaint(c: ComplaintRecord) -> bytes:
    return dumps({1: c.sharer, 2: int(c.epoch), 3: c.recipient, 4: int(c.timestamp)})


def decode_complaint(buf: bytes) -> ComplaintRecord:
    d = _map(loads(buf))
    return ComplaintRecord(sharer=str(d[1]), epoch=int(d[2]), recipient=str(d[3]), timestamp=int(d[4]))


# ---------------------------------------------------------------------------
# Mismatch proofs
# ---------------------------------------------------------------------------


def encode_proof(p: MismatchProof) -> bytes:
    return dumps(
        {
            1: p.kind.value,
            2: _manifest_map(p.manifest),
            3: bytes(p.signature),
            4: bytes(p.claimed_commitment),
            5: bytes(p.reconstructed_commitment) if p.reconstructed_commitment is not None else None,
            6: [[int(n.index), bytes(n.payload), _path_out(n.path)] for n in p.nodes],
        }
    )


def decode_proof(buf: bytes) -> MismatchProof:
    d = _map(loads(buf))
    try:
        return MismatchProof(
            kind=ProofKind(d[1]),
            manifest=_manifest_from_map(d[2]),
            signature=bytes(d[3]),
            claimed_commitment=bytes(d[4]),
            reconstructed_commitment=bytes(d[5]) if d[5] is not None else None,
            nodes=tuple(
                ProofNode(index=int(i), payload=bytes(p), path=_path_in(path)) for i, p, path in d[6]
            ),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed proof record: {e}") from e


__all__ = [
    "dumps",
    "loads",
    "manifest_signbytes",
    "encode_manifest",
    "decode_manifest",
    "encode_share",
    "decode_share",
    "encode_complaint",
    "decode_complaint",
    "encode_proof",
    "decode_proof",
]
