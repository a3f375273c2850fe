"""
Manifest signatures, self-certifying sharer ids and share validation.
"""

import dataclasses
import random

import pytest
from prometheus_client import CollectorRegistry

from das.config import CodecConfig, DASConfig
from das.errors import InvalidShare
from das.metrics import DASMetrics
from das.protocol.encoding import (
    decode_complaint,
    decode_manifest,
    encode_complaint,
    encode_manifest,
    manifest_signbytes,
)
from das.protocol.signing import Signer, public_key_from_sharer_id, verify_manifest
from das.protocol.types import ComplaintRecord, Share
from das.protocol.validate import is_valid_share, verify_share
from das.sharer import Sharer

UNIT = 64


def _prep(seed=31, strategy="raw"):
    cfg = DASConfig(codec=CodecConfig(unit_size=UNIT, redundancy_factor=2, strategy=strategy))
    signer = Signer.from_seed(random.Random(seed).randbytes(32))
    sharer = Sharer(signer, None, None, cfg, metrics=DASMetrics(CollectorRegistry()))
    return signer, sharer.prepare(random.Random(seed + 1).randbytes(5 * UNIT), 2)


def test_sharer_id_is_the_public_key():
    signer = Signer.from_seed(bytes(32))
    assert signer.sharer_id.startswith("0x") and len(signer.sharer_id) == 66
    assert Signer.from_seed(bytes(32)).sharer_id == signer.sharer_id
    public_key_from_sharer_id(signer.sharer_id)
    with pytest.raises(ValueError):
        public_key_from_sharer_id("abc")
    with pytest.raises(ValueError):
        public_key_from_sharer_id("0x1234")


def test_signature_binds_every_manifest_field():
    signer, prep = _prep()
    m = prep.manifest
    assert verify_manifest(m, prep.signature)
    for change in (
        {"epoch": m.epoch + 1},
        {"object_size": m.object_size - 1},
        {"share_root": bytes(32)},
        {"strategy": "tree"},
    ):
        assert not verify_manifest(dataclasses.replace(m, **change), prep.signature)
    other = Signer.from_seed(bytes(range(32)))
    assert not verify_manifest(dataclasses.replace(m, sharer=other.sharer_id), prep.signature)


def test_signer_refuses_foreign_manifest():
    _, prep = _prep()
    with pytest.raises(ValueError):
        Signer.from_seed(bytes(32)).sign_manifest(prep.manifest)


def test_signbytes_are_canonical():
    _, prep = _prep()
    m = prep.manifest
    assert manifest_signbytes(m) == manifest_signbytes(decode_manifest(encode_manifest(m)))
    assert decode_manifest(encode_manifest(m)) == m


def test_complaint_record_roundtrip():
    c = ComplaintRecord(sharer="0x" + "aa" * 32, epoch=3, recipient="r1", timestamp=77)
    assert decode_complaint(encode_complaint(c)) == c
    assert c.age(100) == 23


@pytest.mark.parametrize("strategy", ["raw", "tree"])
def test_every_prepared_share_is_valid(strategy):
    _, prep = _prep(strategy=strategy)
    for s in prep.shares:
        verify_share(s, commitment=prep.commitment)


def test_share_checks():
    _, prep = _prep()
    s = prep.shares[3]
    moved = Share(s.manifest, s.signature, 4, s.payload, s.path)
    short = Share(s.manifest, s.signature, s.index, s.payload[:-1], s.path)
    assert not is_valid_share(moved)
    assert not is_valid_share(short)
    # a manifest whose share count does not fit its object size
    bad_shape = dataclasses.replace(s.manifest, data_shares=s.manifest.data_shares + 1)
    with pytest.raises(InvalidShare) as ei:
        verify_share(Share(bad_shape, s.signature, s.index, s.payload, s.path))
    assert ei.value.to_problem()["type"] == "urn:das:invalid_share"
