"""
Tree-node strategy: node records, heap layout and the divergence walk.
"""

import random

import pytest

from das.commitment.builder import commit, object_tree
from das.commitment.strategy import (
    build_node_records,
    check_root,
    claimed_root,
    encode_node,
    find_divergence,
    get_strategy,
    leaves_from_records,
    node_hash,
    node_size,
    parse_node,
    tree_width,
)
from das.constants import NODE_KIND_INNER, NODE_KIND_LEAF, STRATEGY_RAW, STRATEGY_TREE

UNIT = 64


def _obj(n: int, seed: int = 3) -> bytes:
    return random.Random(seed).randbytes(n)


def _leaf(body: bytes) -> bytes:
    return encode_node(NODE_KIND_LEAF, body, node_size(UNIT))


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def test_records_follow_heap_order():
    data = _obj(5 * UNIT + 9)
    records = build_node_records(data, UNIT)
    width = tree_width(len(data), UNIT)
    assert width == 8
    assert len(records) == 2 * width - 1
    assert all(len(r) == node_size(UNIT) for r in records)

    heap = object_tree(data, UNIT).heap_nodes()
    for i, rec in enumerate(records):
        kind, body = parse_node(rec)
        assert kind == (NODE_KIND_INNER if i < width - 1 else NODE_KIND_LEAF)
        assert node_hash(kind, body) == heap[i]


def test_honest_records_have_no_divergence():
    data = _obj(3 * UNIT)
    records = build_node_records(data, UNIT)
    width = tree_width(len(data), UNIT)
    assert find_divergence(records, commit(data, UNIT), width) is None
    assert b"".join(leaves_from_records(records, width)) == data
    assert claimed_root(records, width) == commit(data, UNIT)


def test_single_chunk_tree_is_one_leaf():
    data = b"tiny"
    records = build_node_records(data, UNIT)
    assert len(records) == 1
    assert check_root(records[0], commit(data, UNIT), 1) is None


def test_parse_node_rejects_malformed_records():
    good = _leaf(b"abc")
    with pytest.raises(ValueError):
        parse_node(good[:3])
    with pytest.raises(ValueError):
        parse_node(bytes([7]) + good[1:])
    with pytest.raises(ValueError):
        parse_node(good[:-1] + b"\x01")
    with pytest.raises(ValueError):
        parse_node(encode_node(NODE_KIND_INNER, b"\x00" * 10, node_size(UNIT)))
    overrun = bytearray(good)
    overrun[1:5] = (UNIT + 1).to_bytes(4, "big")
    with pytest.raises(ValueError):
        parse_node(bytes(overrun))


def test_encode_node_rejects_oversized_body():
    with pytest.raises(ValueError):
        encode_node(NODE_KIND_LEAF, b"x" * (UNIT + 1), node_size(UNIT))


# ---------------------------------------------------------------------------
# Divergence walk
# ---------------------------------------------------------------------------


def test_wrong_root_diverges_at_root():
    honest = _obj(4 * UNIT, seed=4)
    other = _obj(4 * UNIT, seed=5)
    records = build_node_records(other, UNIT)
    div = find_divergence(records, commit(honest, UNIT), 4)
    assert div is not None
    assert div.child == 0 and div.parent is None
    assert div.nodes == (0,)
    assert div.depth == 0


def test_tampered_leaf_diverges_below_its_parent():
    data = _obj(4 * UNIT, seed=6)
    records = build_node_records(data, UNIT)
    # leaf 2 lives at heap index 3 + 2 = 5, parent (5 - 1) // 2 = 2
    records[5] = _leaf(b"forged leaf")
    div = find_divergence(records, commit(data, UNIT), 4)
    assert (div.parent, div.child) == (2, 5)
    assert div.nodes == (2, 5)
    assert div.depth == 2


def test_shallowest_divergence_wins():
    data = _obj(8 * UNIT, seed=7)
    records = build_node_records(data, UNIT)
    width = 8
    records[width - 1 + 6] = _leaf(b"deep")
    # replace inner node 1 with a well-formed record that hashes differently
    records[1] = encode_node(NODE_KIND_INNER, b"\x11" * 64, node_size(UNIT))
    div = find_divergence(records, commit(data, UNIT), width)
    assert (div.parent, div.child) == (0, 1)


def test_lowest_index_breaks_ties_at_equal_depth():
    data = _obj(4 * UNIT, seed=8)
    records = build_node_records(data, UNIT)
    records[6] = _leaf(b"right")
    records[4] = _leaf(b"left")
    div = find_divergence(records, commit(data, UNIT), 4)
    assert div.child == 4 and div.parent == 1


def test_leaf_in_inner_position_is_divergence():
    data = _obj(4 * UNIT, seed=9)
    records = build_node_records(data, UNIT)
    records[2] = _leaf(b"not an inner node")
    div = find_divergence(records, commit(data, UNIT), 4)
    assert div.nodes == (0, 2)
    assert "kind" in div.reason


def test_record_count_must_match_width():
    data = _obj(4 * UNIT)
    with pytest.raises(ValueError):
        find_divergence(build_node_records(data, UNIT)[:-1], commit(data, UNIT), 4)


# ---------------------------------------------------------------------------
# Strategy objects
# ---------------------------------------------------------------------------


def test_strategy_shapes():
    raw, tree = get_strategy(STRATEGY_RAW), get_strategy(STRATEGY_TREE)
    assert raw.coding_unit(UNIT) == UNIT
    assert raw.data_shares(5 * UNIT + 1, UNIT) == 6
    assert raw.data_shares(0, UNIT) == 1
    assert tree.coding_unit(UNIT) == UNIT + 5
    assert tree.data_shares(5 * UNIT + 1, UNIT) == 15
    assert tree.payload_size(5 * UNIT + 1, UNIT) == 15 * (UNIT + 5)
    assert len(tree.payload_for(_obj(5 * UNIT + 1), UNIT)) == 15 * (UNIT + 5)


def test_unknown_strategy():
    with pytest.raises(ValueError):
        get_strategy("kzg")
