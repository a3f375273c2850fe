"""
DAS • sim_epoch
===============

Simulate one protocol epoch end to end in memory: a sharer encodes and
commits to a random object, posts the commitment to an `InMemoryLedger`,
distributes stake-allocated shares over a `LocalShareBus`, recipients sync
and complain about missing shares shortly before the deadline, one validator
reconstructs from every mailbox (posting a mismatch proof if the shares do
not encode the commitment), and the clock is advanced onto the deadline.

Prints the closing complaint ratio, the reconstruction outcome, the verdict
and the rollup-facing attestation status.

Recipients have equal stake. `--withhold N` makes the sharer skip the first N
recipients; `--complain N` caps how many of the short recipients complain;
`--corrupt` signs shares of a different object under the real commitment.

Examples
--------
# The reference scenario: 9 MiB object, 3 MiB units, 10 recipients → Clean
python -m das.cli.sim_epoch --size 9MiB --unit 3MiB --recipients 10

# Withholding from 7 of 9 recipients → PenalizedForWithholding
python -m das.cli.sim_epoch --size 4KiB --unit 1KiB --recipients 9 --withhold 7

# Corrupt sharer with the tree-node layout (O(log M) proof) → PenalizedForCorruption
python -m das.cli.sim_epoch --size 16KiB --unit 1KiB --strategy tree --corrupt --json

Exit codes: 0 on a completed simulation, 2 on invalid arguments.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from typing import Any, Dict, List, Optional

from das.adapters.ledger import InMemoryLedger
from das.adapters.transport import LocalShareBus
from das.commitment.strategy import get_strategy
from das.config import CodecConfig, DASConfig, ProtocolConfig, TransportConfig, parse_size
from das.constants import STRATEGIES, STRATEGY_RAW
from das.protocol.signing import Signer
from das.protocol.types import EpochHandle
from das.recipient import Recipient, gather_from
from das.service import AvailabilityService


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="DAS • simulate one epoch in memory and print the verdict"
    )
    p.add_argument("--size", default="9MiB", help="object size (default: %(default)s)")
    p.add_argument("--unit", default="3MiB", help="unit size (default: %(default)s)")
    p.add_argument("--redundancy", type=int, default=3, help="redundancy factor r (default: %(default)s)")
    p.add_argument("--strategy", choices=STRATEGIES, default=STRATEGY_RAW, help="commitment strategy")
    p.add_argument("--recipients", type=int, default=10, help="equal-stake recipients (default: %(default)s)")
    p.add_argument("--withhold", type=int, default=0, help="recipients the sharer skips")
    p.add_argument(
        "--complain",
        type=int,
        default=None,
        help="cap on recipients that complain (default: every recipient missing shares)",
    )
    p.add_argument("--corrupt", action="store_true", help="distribute shares of a different object")
    p.add_argument("--seed", type=int, default=7, help="PRNG seed for object bytes and keys")
    p.add_argument("--json", action="store_true", help="print JSON output")
    p.add_argument("--log-level", default="WARNING", help="logging level (default: %(default)s)")
    return p.parse_args(argv)


async def _simulate(args: argparse.Namespace) -> Dict[str, Any]:
    size = parse_size(args.size, default=0)
    unit = parse_size(args.unit, default=0)
    cfg = DASConfig(
        codec=CodecConfig(unit_size=unit, redundancy_factor=args.redundancy, strategy=args.strategy),
        protocol=ProtocolConfig(),
        transport=TransportConfig(send_timeout_ms=5000, send_retries=1, backoff_base=0.0),
    )
    cfg.validate()

    rng = random.Random(args.seed)
    data = rng.randbytes(size)
    signer = Signer.from_seed(rng.randbytes(32))
    ledger = InMemoryLedger(cfg.protocol)
    bus = LocalShareBus()
    ids = [f"r{i:02d}" for i in range(args.recipients)]
    weights = {rid: 1 for rid in ids}
    withheld = ids[: args.withhold]

    service = AvailabilityService(signer, ledger, bus, cfg)
    sharer = service.sharer
    epoch = sharer.next_epoch()
    ledger.set_stake_weights(weights, epoch)
    prepared = sharer.prepare(data, epoch)
    if args.corrupt:
        # same size, first byte flipped
        other = bytes([data[0] ^ 0xFF]) + data[1:] if data else b""
        payload = get_strategy(cfg.codec.strategy).payload_for(other, unit)
        prepared = sharer.seal(epoch, prepared.commitment, len(data), payload)
    await sharer.post(prepared)
    report = await sharer.distribute(prepared, weights, withhold=withheld)

    recipients = [Recipient(rid, ledger, bus, cfg) for rid in ids]
    for r in recipients:
        await r.sync()
    # complaints and reconstruction happen just before the deadline
    ledger.advance(cfg.protocol.epoch_duration - 1)
    complaints = 0
    for r in recipients:
        if args.complain is not None and complaints >= args.complain:
            break
        if await r.complain_if_missing(signer.sharer_id, epoch):
            complaints += 1

    validator = recipients[-1]
    outcome = await validator.reconstruct(signer.sharer_id, epoch, await gather_from(bus, ids))

    ledger.advance(1)
    verdict = await ledger.read_verdict(signer.sharer_id, epoch)
    status = await service.attestation_status(EpochHandle(signer.sharer_id, epoch))
    st = ledger.evaluator.state(signer.sharer_id, epoch)
    return {
        "sharer": signer.sharer_id,
        "epoch": epoch,
        "commitment": "0x" + prepared.commitment.hex(),
        "data_shares": prepared.manifest.data_shares,
        "total_shares": prepared.manifest.total_shares,
        "delivered_shares": report.delivered_shares,
        "complaints": complaints,
        "complaint_ratio": str(st.ratio_at_close) if st.ratio_at_close is not None else None,
        "reconstruction": outcome.status.value,
        "proof": validator.proofs[-1].kind.value if validator.proofs else None,
        "verdict": verdict.value,
        "attestation": status.state.value,
        "reason": status.reason,
    }


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))
    if args.recipients <= 0:
        print("error: --recipients must be > 0", file=sys.stderr)
        return 2
    try:
        result = asyncio.run(_simulate(args))
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        for k, v in result.items():
            print(f"{k:18s} {v}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
