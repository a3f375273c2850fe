"""
DAS • Commitment strategies

What the sharer erasure-codes is selected at configuration time:

raw
    The object itself, cut into `unit_size` units. Shares are small, but a
    mismatch proof has to carry k shares (the whole object).

tree
    The nodes of the object's padded Merkle tree, in heap order (root 0,
    children of i at 2i+1 and 2i+2). Every node is one fixed-size record

        kind (1 byte) | body length (u32 BE) | body | zero padding

    padded to `unit_size + 5` bytes, where a leaf body is the raw chunk and an
    inner body is `left_hash || right_hash`. The node stream is coded with
    unit = node size, so data share i is node i and a mismatch proof needs at
    most two nodes.

The divergence walk below is what makes the tree variant useful: it finds
the shallowest node whose content disagrees with the hash its parent (or the
posted commitment, for the root) records.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..constants import (
    HASH_BYTES,
    NODE_HEADER_BYTES,
    NODE_KIND_INNER,
    NODE_KIND_LEAF,
    STRATEGY_RAW,
    STRATEGY_TREE,
)
from ..utils.hash import inner_hash, leaf_hash
from ..utils.merkle import padded_width
from .builder import chunk_object, object_tree

_HDR = struct.Struct(">BI")


# ---------------------------------------------------------------------------
# Node records
# ---------------------------------------------------------------------------


def node_size(unit_size: int) -> int:
    return unit_size + NODE_HEADER_BYTES


def encode_node(kind: int, body: bytes, size: int) -> bytes:
    rec = _HDR.pack(kind, len(body)) + body
    if len(rec) > size:
        raise ValueError("node body larger than node size")
    return rec + bytes(size - len(rec))


def parse_node(record: bytes) -> Tuple[int, bytes]:
    """
    Parse one node record. Raises ValueError if the record is malformed.
    """
    if len(record) < NODE_HEADER_BYTES:
        raise ValueError("node record shorter than header")
    kind, length = _HDR.unpack_from(record, 0)
    if kind not in (NODE_KIND_LEAF, NODE_KIND_INNER):
        raise ValueError(f"unknown node kind {kind}")
    end = NODE_HEADER_BYTES + length
    if end > len(record):
        raise ValueError("node body overruns record")
    if any(record[end:]):
        raise ValueError("non-zero node padding")
    body = bytes(record[NODE_HEADER_BYTES:end])
    if kind == NODE_KIND_INNER and len(body) != 2 * HASH_BYTES:
        raise ValueError("inner node body must be two hashes")
    return kind, body


def node_hash(kind: int, body: bytes) -> bytes:
    if kind == NODE_KIND_LEAF:
        return leaf_hash(body)
    return inner_hash(body[:HASH_BYTES], body[HASH_BYTES:])


def tree_width(object_size: int, unit_size: int) -> int:
    """Padded leaf count of the object tree."""
    count = max(1, -(-object_size // unit_size))
    return padded_width(count)


def build_node_records(data: bytes, unit_size: int) -> List[bytes]:
    """All nodes of the padded object tree as records, heap order."""
    chunks = chunk_object(data, unit_size)
    tree = object_tree(data, unit_size)
    size = node_size(unit_size)
    width = tree.width
    records: List[bytes] = []
    # inner nodes: heap index i has layer-local children at 2i+1, 2i+2
    heap = tree.heap_nodes()
    for i in range(width - 1):
        body = heap[2 * i + 1] + heap[2 * i + 2]
        records.append(encode_node(NODE_KIND_INNER, body, size))
    for j in range(width):
        body = chunks[j] if j < len(chunks) else b""
        records.append(encode_node(NODE_KIND_LEAF, body, size))
    return records


# ---------------------------------------------------------------------------
# Divergence walk
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Divergence:
    """
    Where a node stream first disagrees with the posted commitment.

    `parent` is None when the root itself is wrong.
    """

    child: int
    parent: Optional[int]
    reason: str

    @property
    def nodes(self) -> Tuple[int, ...]:
        return (self.child,) if self.parent is None else (self.parent, self.child)

    @property
    def depth(self) -> int:
        return (self.child + 1).bit_length() - 1


def expected_kind(index: int, width: int) -> int:
    return NODE_KIND_INNER if index < width - 1 else NODE_KIND_LEAF


def check_root(record: bytes, commitment: bytes, width: int) -> Optional[str]:
    """Reason the root record contradicts `commitment`, or None."""
    try:
        kind, body = parse_node(record)
    except ValueError as e:
        return f"malformed root: {e}"
    if kind != expected_kind(0, width):
        return "root has wrong node kind"
    if node_hash(kind, body) != commitment:
        return "root hash differs from commitment"
    return None


def check_child(parent_record: bytes, child: int, child_record: bytes, width: int) -> Optional[str]:
    """
    Reason `child_record` contradicts the hash recorded for it in its
    (parsed, inner) parent, or None. Raises ValueError if the parent itself
    is not a well-formed inner node.
    """
    kind, body = parse_node(parent_record)
    if kind != NODE_KIND_INNER:
        raise ValueError("parent is not an inner node")
    want = body[:HASH_BYTES] if child % 2 == 1 else body[HASH_BYTES:]
    try:
        ckind, cbody = parse_node(child_record)
    except ValueError as e:
        return f"malformed node: {e}"
    if ckind != expected_kind(child, width):
        return "node has wrong kind for its position"
    if node_hash(ckind, cbody) != want:
        return "node hash differs from parent"
    return None


def find_divergence(records: Sequence[bytes], commitment: bytes, width: int) -> Optional[Divergence]:
    """
    Breadth-first walk from the root. Heap order is breadth-first order, so
    the first failure found is the shallowest one and, among equally deep
    failures, the one with the lowest heap index.
    """
    if len(records) != 2 * width - 1:
        raise ValueError("record count does not match tree width")
    reason = check_root(records[0], commitment, width)
    if reason is not None:
        return Divergence(child=0, parent=None, reason=reason)
    for parent in range(width - 1):
        for child in (2 * parent + 1, 2 * parent + 2):
            reason = check_child(records[parent], child, records[child], width)
            if reason is not None:
                return Divergence(child=child, parent=parent, reason=reason)
    return None


def leaves_from_records(records: Sequence[bytes], width: int) -> List[bytes]:
    """Leaf bodies of a consistent node stream, in order."""
    out: List[bytes] = []
    for rec in records[width - 1 :]:
        _, body = parse_node(rec)
        out.append(body)
    return out


def claimed_root(records: Sequence[bytes], width: int) -> bytes:
    """
    Root recomputed bottom-up from the leaf records, whatever the inner
    records say. Malformed leaves hash as raw bytes.
    """
    layer: List[bytes] = []
    for rec in records[width - 1 :]:
        try:
            kind, body = parse_node(rec)
            layer.append(node_hash(NODE_KIND_LEAF, body) if kind == NODE_KIND_LEAF else leaf_hash(rec))
        except ValueError:
            layer.append(leaf_hash(rec))
    while len(layer) > 1:
        layer = [inner_hash(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]
    return layer[0]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class RawStrategy:
    name = STRATEGY_RAW

    def coding_unit(self, unit_size: int) -> int:
        return unit_size

    def payload_for(self, data: bytes, unit_size: int) -> bytes:
        return bytes(data)

    def data_shares(self, object_size: int, unit_size: int) -> int:
        return max(1, -(-object_size // unit_size))

    def payload_size(self, object_size: int, unit_size: int) -> int:
        return object_size


class TreeStrategy:
    name = STRATEGY_TREE

    def coding_unit(self, unit_size: int) -> int:
        return node_size(unit_size)

    def payload_for(self, data: bytes, unit_size: int) -> bytes:
        return b"".join(build_node_records(data, unit_size))

    def data_shares(self, object_size: int, unit_size: int) -> int:
        return 2 * tree_width(object_size, unit_size) - 1

    def payload_size(self, object_size: int, unit_size: int) -> int:
        return self.data_shares(object_size, unit_size) * node_size(unit_size)


_STRATEGIES: Dict[str, object] = {
    STRATEGY_RAW: RawStrategy(),
    STRATEGY_TREE: TreeStrategy(),
}


def get_strategy(name: str):
    try:
        return _STRATEGIES[name]
    except KeyError:
        raise ValueError(f"unknown commitment strategy {name!r}") from None


__all__ = [
    "Divergence",
    "RawStrategy",
    "TreeStrategy",
    "get_strategy",
    "node_size",
    "encode_node",
    "parse_node",
    "node_hash",
    "tree_width",
    "build_node_records",
    "expected_kind",
    "check_root",
    "check_child",
    "find_divergence",
    "leaves_from_records",
    "claimed_root",
]
