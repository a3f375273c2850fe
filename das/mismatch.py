"""
DAS • Mismatch Prover

Turns a failed reconstruction into a self-contained proof that the sharer
signed shares which do not encode its posted commitment, and re-verifies
proofs before they are forwarded to the ledger.

Every node in a proof is a signed share: it carries an inclusion path under
the manifest's `share_root`, and the manifest signature binds that root to
the sharer, epoch and commitment. What the nodes must show depends on kind:

OBJECT    (raw strategy) exactly k shares whose decoding commits to
          something other than the commitment. O(M) bytes.
TREE      (tree strategy) the root node alone, when it does not hash to the
          commitment, or a parent and one child, when the child does not hash
          to what the parent records for it. Each node is one share with an
          O(log n) path, so the proof is independent of M.
CODEWORD  more than k shares that do not lie on a single codeword.

An honest sharer can never be the subject of a valid proof of any kind.

The opposite claim, a `CommitmentMatchEvent`, is checked the same way by
`verify_commitment_match`: k signed shares that decode to the commitment.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .commitment.builder import commit, commit_shares, share_tree, verify_leaf
from .commitment.strategy import (
    check_child,
    check_root,
    find_divergence,
    get_strategy,
    leaves_from_records,
    tree_width,
)
from .constants import STRATEGY_RAW, STRATEGY_TREE
from .erasure.codec import decode, decode_units
from .erasure.reedsolomon import rs_encode
from .errors import InconsistentShares, InvalidShare, MalformedProof
from .protocol.signing import verify_manifest
from .protocol.types import CommitmentMatchEvent, MismatchProof, ProofKind, ProofNode, ShareManifest
from .protocol.validate import check_manifest_shape, coding_unit
from .reconstruct import Evidence

# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


def _node(share) -> ProofNode:
    return ProofNode(index=share.index, payload=share.payload, path=tuple(share.path))


def build_mismatch_proof(posted_commitment: bytes, evidence: Evidence) -> MismatchProof:
    """
    Build the smallest proof the evidence supports and check it locally.

    Raises:
        MalformedProof: the evidence does not prove a mismatch against
            `posted_commitment`.
    """
    m = evidence.manifest
    if m.commitment != posted_commitment:
        raise MalformedProof("evidence is for a different commitment")

    if evidence.inconsistent:
        nodes = [_node(evidence.shares[i]) for i in sorted(evidence.shares)]
        kind = ProofKind.CODEWORD
        reconstructed: Optional[bytes] = None
    elif m.strategy == STRATEGY_TREE:
        if evidence.divergence is None or evidence.codeword is None:
            raise MalformedProof("no divergence recorded for this reconstruction")
        tree = share_tree(evidence.codeword)
        nodes = [
            ProofNode(index=i, payload=evidence.codeword[i], path=tuple(tree.proof(i)))
            for i in evidence.divergence.nodes
        ]
        kind = ProofKind.TREE
        reconstructed = evidence.reconstructed_commitment
    else:
        k = m.data_shares
        if len(evidence.shares) < k:
            raise MalformedProof("fewer than k shares in evidence")
        nodes = [_node(evidence.shares[i]) for i in sorted(evidence.shares)[:k]]
        kind = ProofKind.OBJECT
        reconstructed = evidence.reconstructed_commitment

    proof = MismatchProof(
        kind=kind,
        manifest=m,
        signature=evidence.signature,
        claimed_commitment=posted_commitment,
        reconstructed_commitment=reconstructed,
        nodes=tuple(nodes),
    )
    verify_mismatch_proof(proof, posted_commitment)
    return proof


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


def _fail(msg: str, **data) -> MalformedProof:
    return MalformedProof(msg, data=data or None)


def _signed_nodes(
    m: ShareManifest,
    signature: bytes,
    nodes: Sequence[ProofNode],
    posted_commitment: Optional[bytes],
) -> Dict[int, bytes]:
    """Check the manifest and every node's path; return index -> payload."""
    if posted_commitment is not None and posted_commitment != m.commitment:
        raise _fail("manifest names a commitment that was not posted")
    try:
        check_manifest_shape(m)
    except InvalidShare as e:
        raise _fail(f"manifest shape: {e.message}") from e
    if not verify_manifest(m, signature):
        raise _fail("bad manifest signature")

    unit = coding_unit(m)
    seen: Dict[int, bytes] = {}
    for n in nodes:
        if not (0 <= n.index < m.total_shares):
            raise _fail("node index out of range", index=n.index)
        if n.index in seen:
            raise _fail("duplicate node index", index=n.index)
        if len(n.payload) != unit:
            raise _fail("node payload has wrong length", index=n.index)
        if not verify_leaf(m.share_root, n.index, n.payload, n.path):
            raise _fail("node is not under the signed share root", index=n.index)
        seen[n.index] = n.payload
    return seen


def verify_mismatch_proof(proof: MismatchProof, posted_commitment: Optional[bytes] = None) -> None:
    """
    Raise `MalformedProof` unless `proof` demonstrates corruption by the
    sharer named in its manifest.
    """
    m = proof.manifest
    if proof.claimed_commitment != m.commitment:
        raise _fail("claimed commitment differs from the signed manifest")
    seen = _signed_nodes(m, proof.signature, proof.nodes, posted_commitment)
    unit = coding_unit(m)

    if proof.kind is ProofKind.TREE:
        _verify_tree(proof, seen)
    elif proof.kind is ProofKind.OBJECT:
        _verify_object(proof, seen, unit)
    elif proof.kind is ProofKind.CODEWORD:
        _verify_codeword(proof, seen, unit)
    else:  # pragma: no cover - enum is closed
        raise _fail(f"unknown proof kind {proof.kind!r}")


def _verify_tree(proof: MismatchProof, nodes: Dict[int, bytes]) -> None:
    m = proof.manifest
    if m.strategy != STRATEGY_TREE:
        raise _fail("tree proof for a manifest without tree layout")
    width = tree_width(m.object_size, m.unit_size)
    order: List[int] = [n.index for n in proof.nodes]
    if len(order) == 1:
        if order[0] != 0:
            raise _fail("single-node proof must be the root")
        if check_root(nodes[0], m.commitment, width) is None:
            raise _fail("root node agrees with the commitment")
        return
    if len(order) != 2:
        raise _fail("tree proof must carry one or two nodes")
    parent, child = order
    if child not in (2 * parent + 1, 2 * parent + 2) or parent >= width - 1:
        raise _fail("nodes are not parent and child", parent=parent, child=child)
    try:
        reason = check_child(nodes[parent], child, nodes[child], width)
    except ValueError as e:
        raise _fail(f"parent node unusable: {e}") from e
    if reason is None:
        raise _fail("child agrees with its parent", parent=parent, child=child)


def _verify_object(proof: MismatchProof, nodes: Dict[int, bytes], unit: int) -> None:
    m = proof.manifest
    if m.strategy != STRATEGY_RAW:
        raise _fail("object proof for a manifest without raw layout")
    if len(nodes) != m.data_shares:
        raise _fail("object proof must carry exactly k shares")
    params = m.codec_params(unit)
    obj = decode(nodes, params, m.object_size)
    recomputed = commit(obj, m.unit_size)
    if recomputed == m.commitment:
        raise _fail("shares reconstruct the committed object")
    if proof.reconstructed_commitment is not None and proof.reconstructed_commitment != recomputed:
        raise _fail("reconstructed commitment does not match the shares")


def _verify_codeword(proof: MismatchProof, nodes: Dict[int, bytes], unit: int) -> None:
    m = proof.manifest
    if len(nodes) <= m.data_shares:
        raise _fail("codeword proof needs more than k shares")
    params = m.codec_params(unit)
    size = get_strategy(m.strategy).payload_size(m.object_size, m.unit_size)
    try:
        decode(nodes, params, size)
    except InconsistentShares:
        return
    raise _fail("shares lie on a single codeword")


def is_valid_mismatch_proof(proof: MismatchProof, posted_commitment: Optional[bytes] = None) -> bool:
    try:
        verify_mismatch_proof(proof, posted_commitment)
    except MalformedProof:
        return False
    return True


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


def verify_commitment_match(event: CommitmentMatchEvent, posted_commitment: Optional[bytes] = None) -> bytes:
    """
    Decode the signed shares a match event carries and check that they
    encode the committed object. Returns the object.

    A match countervails complaints, so it is only accepted with the shares
    that back it: at least k of them, all on the codeword the sharer signed,
    decoding to `posted_commitment`.

    Raises:
        MalformedProof
    """
    m = event.manifest
    seen = _signed_nodes(m, event.signature, event.nodes, posted_commitment)
    if len(seen) < m.data_shares:
        raise _fail("match carries fewer than k shares", have=len(seen), need=m.data_shares)
    params = m.codec_params(coding_unit(m))
    try:
        units = decode_units(seen, params)
    except InconsistentShares as e:
        raise _fail("match shares are not one codeword") from e
    if commit_shares(rs_encode(units, params.total_shards)) != m.share_root:
        raise _fail("match shares do not reproduce the signed share root")

    if m.strategy == STRATEGY_TREE:
        width = tree_width(m.object_size, m.unit_size)
        div = find_divergence(units, m.commitment, width)
        if div is not None:
            raise _fail(f"node stream diverges at {div.nodes}: {div.reason}")
        return b"".join(leaves_from_records(units, width))[: m.object_size]

    obj = b"".join(units)[: m.object_size]
    if commit(obj, m.unit_size) != m.commitment:
        raise _fail("match shares do not reconstruct the committed object")
    return obj


__all__ = [
    "build_mismatch_proof",
    "verify_mismatch_proof",
    "is_valid_mismatch_proof",
    "verify_commitment_match",
]
