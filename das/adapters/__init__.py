"""
DAS • Adapters to external collaborators.

ledger     — LedgerAdapter protocol + InMemoryLedger reference
transport  — ShareTransport protocol + LocalShareBus
"""

from __future__ import annotations

from .ledger import InMemoryLedger, LedgerAdapter
from .transport import LocalShareBus, ShareTransport

__all__ = ["InMemoryLedger", "LedgerAdapter", "LocalShareBus", "ShareTransport"]
