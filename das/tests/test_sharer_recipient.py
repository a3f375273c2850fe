"""
Sharer distribution (timeouts, retries, partial delivery) and the recipient
side (mailbox sync, missing-share complaints, reconstruction with retry).
"""

import random
from fractions import Fraction

import pytest
from prometheus_client import CollectorRegistry

from das.adapters.ledger import InMemoryLedger
from das.adapters.transport import LocalShareBus
from das.commitment.builder import commit
from das.config import CodecConfig, DASConfig, ProtocolConfig, TransportConfig
from das.metrics import DASMetrics
from das.protocol.signing import Signer
from das.protocol.types import PenaltyVerdict, ReconstructionStatus
from das.recipient import Recipient, gather_from
from das.sharer import Sharer

UNIT = 64
IDS = [f"r{i}" for i in range(6)]
WEIGHTS = {rid: 1 for rid in IDS}


def _setup(*, retries=2, timeout_ms=1000, delay=0.0):
    registry = CollectorRegistry()
    metrics = DASMetrics(registry)
    cfg = DASConfig(
        codec=CodecConfig(unit_size=UNIT, redundancy_factor=3),
        protocol=ProtocolConfig(recency_window=100, epoch_duration=1000),
        transport=TransportConfig(send_timeout_ms=timeout_ms, send_retries=retries, backoff_base=0.0),
    )
    ledger = InMemoryLedger(cfg.protocol, metrics=metrics)
    ledger.set_stake_weights(WEIGHTS)
    bus = LocalShareBus(delay=delay)
    signer = Signer.from_seed(random.Random(21).randbytes(32))
    sharer = Sharer(signer, ledger, bus, cfg, metrics=metrics)
    recipients = {rid: Recipient(rid, ledger, bus, cfg, metrics=metrics) for rid in IDS}
    return sharer, ledger, bus, recipients, registry


DATA = random.Random(22).randbytes(4 * UNIT)


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    sharer, ledger, bus, _, registry = _setup(retries=2)
    bus.fail_next("r1", 2)
    prep, report = await sharer.run_epoch(DATA)
    assert prep.manifest.total_shares == 12
    assert report.delivered_shares == 12
    assert report.incomplete_recipients == []
    assert report.results["r1"].assigned == [2, 3]
    assert report.delivered_stake() == 1
    assert registry.get_sample_value("das_shares_sent_total", {"outcome": "retry"}) == 2
    assert registry.get_sample_value("das_shares_sent_total", {"outcome": "ok"}) == 12
    assert registry.get_sample_value("das_shares_encoded_total") == 12


@pytest.mark.asyncio
async def test_unreachable_recipient_is_reported_not_raised():
    sharer, ledger, bus, _, registry = _setup(retries=1)
    bus.block("r3")
    _, report = await sharer.run_epoch(DATA)
    res = report.results["r3"]
    assert res.assigned == [6, 7]
    assert res.delivered == [] and res.failed == [6, 7]
    assert "ConnectionError" in res.last_error
    assert report.incomplete_recipients == ["r3"]
    assert report.delivered_stake() == Fraction(5, 6)
    assert registry.get_sample_value("das_shares_sent_total", {"outcome": "failed"}) == 2


@pytest.mark.asyncio
async def test_slow_link_times_out():
    sharer, ledger, bus, _, _ = _setup(retries=0, timeout_ms=20, delay=0.5)
    _, report = await sharer.run_epoch(DATA)
    assert report.delivered_shares == 0
    assert all("TimeoutError" in r.last_error for r in report.results.values())


@pytest.mark.asyncio
async def test_withheld_recipients_get_nothing():
    sharer, ledger, bus, _, _ = _setup()
    prep, report = await sharer.run_epoch(DATA, withhold=["r0", "r5"])
    assert bus.delivered("r0") == bus.delivered("r5") == 0
    assert bus.delivered("r2") == 2
    assert report.incomplete_recipients == ["r0", "r5"]
    assert ledger.commitment_of(sharer.sharer_id, prep.epoch) == commit(DATA, UNIT)


@pytest.mark.asyncio
async def test_epochs_are_sequential():
    sharer, ledger, _, _, _ = _setup()
    a, _ = await sharer.run_epoch(DATA)
    b, _ = await sharer.run_epoch(DATA[::-1])
    assert (a.epoch, b.epoch) == (0, 1)


# ---------------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_recipient_complains_only_when_short():
    sharer, ledger, bus, recipients, _ = _setup()
    bus.block("r4")
    prep, _ = await sharer.run_epoch(DATA)
    s, e = sharer.sharer_id, prep.epoch
    for r in recipients.values():
        await r.sync()

    assert [x.index for x in recipients["r1"].shares_for(s, e)] == [2, 3]
    assert await recipients["r1"].missing_indices(s, e) == []
    assert not await recipients["r1"].complain_if_missing(s, e)

    assert await recipients["r4"].missing_indices(s, e) == [-1]
    assert await recipients["r4"].missing_indices(s, e, total_shares=12) == [8, 9]
    assert await recipients["r4"].complain_if_missing(s, e, 12)
    assert ledger.complaints.active_complainers(s, e, ledger.now) == ["r4"]


@pytest.mark.asyncio
async def test_sync_resumes_and_rejects_foreign_shares():
    sharer, ledger, bus, recipients, _ = _setup()
    prep, _ = await sharer.run_epoch(DATA)
    r = recipients["r0"]
    assert await r.sync() == 2
    assert await r.sync() == 0

    # shares signed for a commitment other than the one posted
    bogus = sharer.seal(prep.epoch, commit(b"not posted", UNIT), len(DATA), DATA)
    await bus.send_share("r0", bogus.shares[0])
    assert await r.sync() == 0
    assert len(r.rejected) == 1
    assert len(r.shares_for(sharer.sharer_id, prep.epoch)) == 2


@pytest.mark.asyncio
async def test_validator_reconstructs_from_peers():
    sharer, ledger, bus, recipients, _ = _setup()
    prep, _ = await sharer.run_epoch(DATA, withhold=["r0", "r1", "r2", "r3"])
    v = recipients["r0"]
    outcome = await v.reconstruct(sharer.sharer_id, prep.epoch, await gather_from(bus, IDS))
    assert outcome.status is ReconstructionStatus.SUCCESS
    assert outcome.object == DATA
    assert ledger.evaluator.state(sharer.sharer_id, prep.epoch).matched


@pytest.mark.asyncio
async def test_reconstruct_with_retry_waits_for_more_shares():
    sharer, ledger, bus, recipients, _ = _setup(retries=3)
    prep, _ = await sharer.run_epoch(DATA)
    pools = [prep.shares[:1], prep.shares[:2], prep.shares[4:8]]
    calls = []

    async def gather():
        calls.append(1)
        return pools[min(len(calls), len(pools)) - 1]

    outcome = await recipients["r5"].reconstruct_with_retry(sharer.sharer_id, prep.epoch, gather)
    assert outcome.status is ReconstructionStatus.SUCCESS
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_reconstruct_with_retry_gives_up():
    sharer, ledger, bus, recipients, _ = _setup(retries=1)
    prep, _ = await sharer.run_epoch(DATA)

    async def gather():
        return prep.shares[:1]

    outcome = await recipients["r5"].reconstruct_with_retry(sharer.sharer_id, prep.epoch, gather)
    assert outcome.status is ReconstructionStatus.PENDING
    assert await ledger.read_verdict(sharer.sharer_id, prep.epoch) is PenaltyVerdict.ACTIVE
