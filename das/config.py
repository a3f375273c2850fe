"""
Data Availability Sampling (DAS) configuration.

This module defines the configuration surface for the DAS engine:
- Codec parameters (unit size, redundancy factor, commitment strategy)
- Protocol timing (complaint recency window, epoch duration, threshold)
- Share transport pacing (timeouts, retries, backoff)

All fields have sensible defaults and can be overridden via environment
variables. Nothing here imports heavy dependencies.

Environment variables (all optional):

  # Codec
  DAS_UNIT_SIZE=4096                # bytes (supports KiB/MiB suffixes too)
  DAS_REDUNDANCY=3                  # any 1/r of the shares reconstructs
  DAS_COMMITMENT_STRATEGY=raw       # raw | tree

  # Protocol (ledger-time units)
  DAS_RECENCY_WINDOW=600
  DAS_EPOCH_DURATION=3600
  DAS_COMPLAINT_THRESHOLD=1/3       # fraction or float

  # Transport
  DAS_SEND_TIMEOUT_MS=2000
  DAS_SEND_RETRIES=3
  DAS_BACKOFF_BASE=0.05             # seconds; backoff = base * 2**attempt
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass, field
from fractions import Fraction
from functools import lru_cache
from typing import Dict, List

from .constants import (
    COMPLAINT_THRESHOLD_DEFAULT,
    EPOCH_DURATION_DEFAULT,
    RECENCY_WINDOW_DEFAULT,
    REDUNDANCY_DEFAULT,
    REDUNDANCY_MIN,
    STRATEGIES,
    STRATEGY_RAW,
    UNIT_SIZE_DEFAULT,
    UNIT_SIZE_MAX,
    UNIT_SIZE_MIN,
)


# ------------------------------- helpers ------------------------------------


_SIZE_RE = re.compile(
    r"^\s*(?P<num>(?:\d+)(?:\.\d+)?)\s*(?P<unit>bytes?|b|kb|kib|mb|mib|gb|gib)?\s*$",
    re.IGNORECASE,
)

_UNIT_MULT = {
    "b": 1,
    "byte": 1,
    "bytes": 1,
    "kb": 1000,
    "kib": 1024,
    "mb": 1000**2,
    "mib": 1024**2,
    "gb": 1000**3,
    "gib": 1024**3,
}


def parse_size(value: str, *, default: int) -> int:
    """Parse human sizes like '4096', '4KiB', '3MiB' → bytes."""
    if not value:
        return default
    m = _SIZE_RE.match(value)
    if not m:
        v = value.strip().lower()
        if v.startswith("0x"):
            return int(v, 16)
        raise ValueError(f"Invalid size: {value!r}")
    num = float(m.group("num"))
    unit = (m.group("unit") or "b").lower()
    return int(num * _UNIT_MULT[unit])


def parse_fraction(value: str, *, default: Fraction) -> Fraction:
    """
    Parse '1/3', '0.5' or '2' into an exact Fraction.
    """
    if not value:
        return default
    try:
        return Fraction(value.strip())
    except (ValueError, ZeroDivisionError) as e:
        raise ValueError(f"Invalid fraction: {value!r}") from e


def _getenv(key: str, default: str | None = None) -> str | None:
    v = os.environ.get(key)
    return v if v is not None and v.strip() != "" else default


def _getenv_int(key: str, default: int) -> int:
    v = _getenv(key)
    if v is None:
        return default
    try:
        return int(v.strip(), 0)
    except ValueError as e:
        raise ValueError(f"Invalid int for {key}: {v!r}") from e


def _getenv_float(key: str, default: float) -> float:
    v = _getenv(key)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError as e:
        raise ValueError(f"Invalid float for {key}: {v!r}") from e


# ------------------------------- config -------------------------------------


@dataclass(frozen=True)
class CodecConfig:
    """
    Erasure coding and commitment layout.

    - unit_size: leaf chunk size in bytes; raw-strategy shares are this size
    - redundancy_factor: r; the codec emits r shares per data unit
    - strategy: "raw" encodes the object itself, "tree" encodes the nodes of
      the object's Merkle tree so mismatch proofs stay O(log M)
    """
    unit_size: int = UNIT_SIZE_DEFAULT
    redundancy_factor: int = REDUNDANCY_DEFAULT
    strategy: str = STRATEGY_RAW

    def validate(self) -> None:
        if not (UNIT_SIZE_MIN <= self.unit_size <= UNIT_SIZE_MAX):
            raise ValueError(f"unit_size must be in {UNIT_SIZE_MIN}..{UNIT_SIZE_MAX}")
        if self.redundancy_factor < REDUNDANCY_MIN:
            raise ValueError(f"redundancy_factor must be >= {REDUNDANCY_MIN}")
        if self.strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of {STRATEGIES}")


@dataclass(frozen=True)
class ProtocolConfig:
    """
    Epoch and complaint timing, in ledger-time units.

    - recency_window: a complaint counts while its age is <= this window
    - epoch_duration: time from commitment post to epoch close
    - complaint_threshold: stake fraction of complaints that proves withholding
    """
    recency_window: int = RECENCY_WINDOW_DEFAULT
    epoch_duration: int = EPOCH_DURATION_DEFAULT
    complaint_threshold: Fraction = COMPLAINT_THRESHOLD_DEFAULT

    def validate(self) -> None:
        if self.recency_window < 0:
            raise ValueError("recency_window must be >= 0")
        if self.epoch_duration <= 0:
            raise ValueError("epoch_duration must be > 0")
        if not (0 < self.complaint_threshold <= 1):
            raise ValueError("complaint_threshold must be in (0, 1]")


@dataclass(frozen=True)
class TransportConfig:
    """
    Share delivery pacing. Wall-clock values; they never influence verdicts.
    """
    send_timeout_ms: int = 2000
    send_retries: int = 3
    backoff_base: float = 0.05

    def validate(self) -> None:
        if self.send_timeout_ms <= 0:
            raise ValueError("send_timeout_ms must be > 0")
        if self.send_retries < 0:
            raise ValueError("send_retries must be >= 0")
        if self.backoff_base < 0:
            raise ValueError("backoff_base must be >= 0")

    @property
    def send_timeout(self) -> float:
        return self.send_timeout_ms / 1000.0

    def backoff(self, attempt: int) -> float:
        # attempt: 0,1,2,… -> base * 2^attempt
        return self.backoff_base * (2 ** attempt)


@dataclass(frozen=True)
class DASConfig:
    """
    Top-level DAS configuration.
    """
    codec: CodecConfig = field(default_factory=CodecConfig)
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)

    def validate(self) -> None:
        self.codec.validate()
        self.protocol.validate()
        self.transport.validate()

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


# ------------------------------- loader -------------------------------------


def _load_from_env() -> DASConfig:
    codec_cfg = CodecConfig(
        unit_size=parse_size(_getenv("DAS_UNIT_SIZE", ""), default=UNIT_SIZE_DEFAULT),
        redundancy_factor=_getenv_int("DAS_REDUNDANCY", REDUNDANCY_DEFAULT),
        strategy=(_getenv("DAS_COMMITMENT_STRATEGY", STRATEGY_RAW) or STRATEGY_RAW).lower(),
    )
    protocol_cfg = ProtocolConfig(
        recency_window=_getenv_int("DAS_RECENCY_WINDOW", RECENCY_WINDOW_DEFAULT),
        epoch_duration=_getenv_int("DAS_EPOCH_DURATION", EPOCH_DURATION_DEFAULT),
        complaint_threshold=parse_fraction(
            _getenv("DAS_COMPLAINT_THRESHOLD", "") or "", default=COMPLAINT_THRESHOLD_DEFAULT
        ),
    )
    transport_cfg = TransportConfig(
        send_timeout_ms=_getenv_int("DAS_SEND_TIMEOUT_MS", 2000),
        send_retries=_getenv_int("DAS_SEND_RETRIES", 3),
        backoff_base=_getenv_float("DAS_BACKOFF_BASE", 0.05),
    )
    cfg = DASConfig(codec=codec_cfg, protocol=protocol_cfg, transport=transport_cfg)
    cfg.validate()
    return cfg


@lru_cache(maxsize=1)
def get_config() -> DASConfig:
    """
    Load and validate configuration (cached). Clear the cache in tests
    via `get_config.cache_clear()` to observe env changes.
    """
    return _load_from_env()


def format_config(cfg: DASConfig | None = None) -> str:
    cfg = cfg or get_config()
    lines: List[str] = []
    for section, values in cfg.to_dict().items():
        for k, v in values.items():  # type: ignore[union-attr]
            lines.append(f"{section}.{k}: {v}")
    return "\n".join(lines)


__all__ = [
    "CodecConfig",
    "ProtocolConfig",
    "TransportConfig",
    "DASConfig",
    "get_config",
    "format_config",
    "parse_size",
    "parse_fraction",
]
