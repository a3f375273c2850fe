"""
Prometheus metrics for the DAS engine.

This module centralizes counters and histograms for:
- erasure encoding (shares produced, encode latency)
- share distribution outcomes per send
- complaints recorded / deduplicated
- reconstruction outcomes
- final verdicts per kind

Typical usage:

    from das.metrics import get_metrics

    METRICS = get_metrics()

    with METRICS.time_encode():
        shards = codec.encode(payload)
    METRICS.shares_encoded_total.inc(len(shards))

Tests (or embedders running several engines in one process) should pass a
private `CollectorRegistry` to `DASMetrics(...)` to avoid duplicate
registration on the global registry.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


class DASMetrics:
    """
    Concrete metrics backed by prometheus_client.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        reg = registry or REGISTRY

        self.shares_encoded_total = Counter(
            "das_shares_encoded_total",
            "Total erasure-coded shares produced",
            registry=reg,
        )
        self.encode_duration = Histogram(
            "das_encode_duration_seconds",
            "Erasure encode + commitment duration (seconds)",
            registry=reg,
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )
        self.shares_sent_total = Counter(
            "das_shares_sent_total",
            "Share deliveries grouped by outcome",
            ["outcome"],
            registry=reg,
        )
        self.complaints_total = Counter(
            "das_complaints_total",
            "Complaints grouped by outcome (recorded|duplicate)",
            ["outcome"],
            registry=reg,
        )
        self.reconstructions_total = Counter(
            "das_reconstructions_total",
            "Reconstruction attempts grouped by outcome",
            ["outcome"],
            registry=reg,
        )
        self.verdicts_total = Counter(
            "das_verdicts_total",
            "Finalized verdicts grouped by kind",
            ["verdict"],
            registry=reg,
        )

    @contextmanager
    def time_encode(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.encode_duration.observe(time.perf_counter() - start)


_METRICS: Optional[DASMetrics] = None


def get_metrics() -> DASMetrics:
    """
    Process-wide metrics bound to the default prometheus registry.
    """
    global _METRICS
    if _METRICS is None:
        _METRICS = DASMetrics()
    return _METRICS


__all__ = ["DASMetrics", "get_metrics"]
