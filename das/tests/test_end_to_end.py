"""
End-to-end epochs: sharer → ledger → recipients → validator → verdict, all in
memory over `InMemoryLedger` and `LocalShareBus`.

Complaints and reconstruction happen shortly before the deadline; the clock
is then advanced onto the deadline, which closes the epoch.
"""

import random
from fractions import Fraction

import pytest
from prometheus_client import CollectorRegistry

from das.adapters.ledger import InMemoryLedger
from das.adapters.transport import LocalShareBus
from das.commitment.builder import commit
from das.commitment.strategy import get_strategy
from das.config import CodecConfig, DASConfig, ProtocolConfig, TransportConfig
from das.metrics import DASMetrics
from das.protocol.signing import Signer
from das.protocol.types import AttestationState, EpochHandle, PenaltyVerdict, ProofKind, ReconstructionStatus
from das.recipient import Recipient, gather_from
from das.service import AvailabilityService

MiB = 1024 * 1024
DURATION = 3600
LATE = DURATION - 10


class Net:
    """One sharer, one ledger, one bus, equal-stake recipients."""

    def __init__(self, n_recipients, *, unit, strategy="raw", redundancy=3, seed=0):
        metrics = DASMetrics(CollectorRegistry())
        self.cfg = DASConfig(
            codec=CodecConfig(unit_size=unit, redundancy_factor=redundancy, strategy=strategy),
            protocol=ProtocolConfig(recency_window=600, epoch_duration=DURATION),
            transport=TransportConfig(send_timeout_ms=5000, send_retries=1, backoff_base=0.0),
        )
        self.ids = [f"r{i:02d}" for i in range(n_recipients)]
        self.weights = {rid: 1 for rid in self.ids}
        self.ledger = InMemoryLedger(self.cfg.protocol, metrics=metrics)
        self.ledger.set_stake_weights(self.weights)
        self.bus = LocalShareBus()
        self.signer = Signer.from_seed(random.Random(seed).randbytes(32))
        self.service = AvailabilityService(self.signer, self.ledger, self.bus, self.cfg, metrics=metrics)
        self.recipients = [Recipient(rid, self.ledger, self.bus, self.cfg, metrics=metrics) for rid in self.ids]

    async def sync_all(self):
        for r in self.recipients:
            await r.sync()

    async def complain_all(self, epoch):
        count = 0
        for r in self.recipients:
            if await r.complain_if_missing(self.signer.sharer_id, epoch):
                count += 1
        return count

    async def validate(self, epoch, validator=-1):
        pool = await gather_from(self.bus, self.ids)
        return await self.recipients[validator].reconstruct(self.signer.sharer_id, epoch, pool)

    def ratio(self, epoch):
        return self.ledger.evaluator.state(self.signer.sharer_id, epoch).ratio_at_close


# ---------------------------------------------------------------------------
# Honest sharer
# ---------------------------------------------------------------------------


@pytest.mark.slow
@pytest.mark.asyncio
async def test_nine_megabyte_object_ten_recipients_is_clean():
    net = Net(10, unit=3 * MiB)
    data = random.Random(9).randbytes(9 * MiB)
    handle = await net.service.request_availability_attestation(data, net.weights)

    prepared = net.service.prepared(handle)
    assert (prepared.manifest.data_shares, prepared.manifest.total_shares) == (3, 9)
    report = net.service.report(handle)
    assert report.delivered_shares == 9
    assert report.complete_recipients == net.ids[:9]
    assert report.results["r09"].assigned == []

    await net.sync_all()
    net.ledger.advance(LATE)
    assert await net.complain_all(handle.epoch) == 1
    assert net.ledger.complaints.active_complainers(handle.sharer, handle.epoch, net.ledger.now) == ["r09"]

    outcome = await net.validate(handle.epoch, validator=0)
    assert outcome.status is ReconstructionStatus.SUCCESS
    assert outcome.object == data

    assert (await net.service.attestation_status(handle)).state is AttestationState.PENDING
    net.ledger.advance(DURATION - LATE)
    assert await net.ledger.read_verdict(handle.sharer, handle.epoch) is PenaltyVerdict.CLEAN
    assert net.ratio(handle.epoch) == Fraction(1, 10)
    assert (await net.service.attestation_status(handle)).state is AttestationState.ATTESTED


@pytest.mark.asyncio
async def test_small_object_same_shape_is_clean_without_reconstruction():
    net = Net(10, unit=64)
    data = random.Random(10).randbytes(3 * 64)
    handle = await net.service.request_availability_attestation(data, net.weights)
    assert await net.ledger.read_stake_weights(handle.epoch) == net.weights
    await net.sync_all()
    net.ledger.advance(LATE)
    assert await net.complain_all(handle.epoch) == 1
    net.ledger.advance(DURATION - LATE)
    assert await net.ledger.read_verdict(handle.sharer, handle.epoch) is PenaltyVerdict.CLEAN
    assert net.ratio(handle.epoch) == Fraction(1, 10)


@pytest.mark.asyncio
async def test_delivery_to_one_third_of_stake_suffices():
    net = Net(9, unit=64)
    data = random.Random(11).randbytes(6 * 64)
    sharer = net.service.sharer
    prep, report = await sharer.run_epoch(data, net.weights, withhold=net.ids[:6])
    assert report.delivered_shares == prep.manifest.data_shares
    assert report.delivered_stake() == Fraction(1, 3)

    await net.sync_all()
    net.ledger.advance(LATE)
    assert await net.complain_all(prep.epoch) == 6
    outcome = await net.validate(prep.epoch, validator=0)
    assert outcome.ok and outcome.object == data

    net.ledger.advance(DURATION - LATE)
    assert net.ratio(prep.epoch) == Fraction(2, 3)
    # complaints cross the threshold, but the matching reconstruction wins
    assert await net.ledger.read_verdict(sharer.sharer_id, prep.epoch) is PenaltyVerdict.CLEAN


# ---------------------------------------------------------------------------
# Withholding
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_withholding_sharer_is_penalized():
    net = Net(9, unit=64)
    data = random.Random(12).randbytes(6 * 64)
    sharer = net.service.sharer
    prep, report = await sharer.run_epoch(data, net.weights, withhold=net.ids[:7])
    assert report.delivered_shares < prep.manifest.data_shares

    await net.sync_all()
    net.ledger.advance(LATE)
    assert await net.complain_all(prep.epoch) == 7
    outcome = await net.validate(prep.epoch)
    assert outcome.status is ReconstructionStatus.PENDING

    net.ledger.advance(DURATION - LATE)
    handle = EpochHandle(sharer.sharer_id, prep.epoch)
    status = await net.service.attestation_status(handle)
    assert status.state is AttestationState.FAILED
    assert status.reason == "PenalizedForWithholding"


@pytest.mark.asyncio
async def test_early_complaints_expire_before_close():
    net = Net(9, unit=64)
    data = random.Random(13).randbytes(6 * 64)
    prep, _ = await net.service.sharer.run_epoch(data, net.weights, withhold=net.ids)
    await net.sync_all()
    assert await net.complain_all(prep.epoch) == 9
    net.ledger.advance(DURATION)
    assert net.ratio(prep.epoch) == 0
    assert await net.ledger.read_verdict(net.signer.sharer_id, prep.epoch) is PenaltyVerdict.CLEAN


# ---------------------------------------------------------------------------
# Corruption
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("strategy, kind", [("tree", ProofKind.TREE), ("raw", ProofKind.OBJECT)])
@pytest.mark.asyncio
async def test_corrupt_sharer_is_penalized(strategy, kind):
    unit = 64
    net = Net(10, unit=unit, strategy=strategy)
    x = random.Random(14).randbytes(16 * unit)
    y = random.Random(15).randbytes(16 * unit)
    sharer = net.service.sharer
    epoch = sharer.next_epoch()
    payload = get_strategy(strategy).payload_for(y, unit)
    prep = sharer.seal(epoch, commit(x, unit), len(x), payload)
    await sharer.post(prep)
    await sharer.distribute(prep, net.weights)

    await net.sync_all()
    assert all(not r.rejected for r in net.recipients)
    outcome = await net.validate(epoch)
    assert outcome.status is ReconstructionStatus.FAILED

    proof = net.recipients[-1].proofs[-1]
    assert proof.kind is kind
    if kind is ProofKind.TREE:
        # root alone: one share with a log2(n)-deep path
        assert len(proof.nodes) == 1
        assert proof.hash_count == (prep.manifest.total_shares - 1).bit_length()
    verdict = await net.ledger.read_verdict(sharer.sharer_id, epoch)
    assert verdict is PenaltyVerdict.PENALIZED_FOR_CORRUPTION

    status = await net.service.attestation_status(EpochHandle(sharer.sharer_id, epoch))
    assert status.state is AttestationState.FAILED
    assert status.reason == "PenalizedForCorruption"

    # closing later changes nothing
    assert net.ledger.advance(DURATION) == []
