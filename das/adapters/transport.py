"""
DAS • Transport adapter

The engine needs two things from the network:

- `send_share(recipient, share)`: deliver one share (may fail or time out;
  the sharer retries with backoff)
- `receive_shares(recipient, start=0)`: an async iterator over the shares a
  recipient has been sent, resumable from a cursor after a reconnect

`LocalShareBus` is an in-memory implementation for tests, simulations and
single-process deployments. Shares travel as canonical CBOR bytes, exactly as
they would over a real link.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional, Protocol, Set

from ..protocol.encoding import decode_share, encode_share
from ..protocol.types import Share

log = logging.getLogger(__name__)


class ShareTransport(Protocol):
    async def send_share(self, recipient: str, share: Share) -> None: ...

    def receive_shares(self, recipient: str, start: int = 0, *, follow: bool = False) -> AsyncIterator[Share]: ...


class LocalShareBus:
    """
    Per-recipient mailboxes of encoded shares.

    Failure injection for tests:
      - `block(recipient)`: every send to it raises ConnectionError
      - `fail_next(recipient, n)`: the next n sends raise ConnectionError
      - `delay`: seconds each send sleeps before delivering
    """

    def __init__(self, *, delay: float = 0.0) -> None:
        self.delay = delay
        self._boxes: Dict[str, List[bytes]] = {}
        self._blocked: Set[str] = set()
        self._fail_budget: Dict[str, int] = {}
        self._cond: Optional[asyncio.Condition] = None
        self._closed = False

    def _condition(self) -> asyncio.Condition:
        if self._cond is None:
            self._cond = asyncio.Condition()
        return self._cond

    # -- failure injection ----------------------------------------------------

    def block(self, recipient: str) -> None:
        self._blocked.add(recipient)

    def unblock(self, recipient: str) -> None:
        self._blocked.discard(recipient)

    def fail_next(self, recipient: str, n: int = 1) -> None:
        self._fail_budget[recipient] = self._fail_budget.get(recipient, 0) + n

    # -- sending ------------------------------------------------------------

    async def send_share(self, recipient: str, share: Share) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if recipient in self._blocked:
            raise ConnectionError(f"recipient {recipient} unreachable")
        budget = self._fail_budget.get(recipient, 0)
        if budget > 0:
            self._fail_budget[recipient] = budget - 1
            raise ConnectionError(f"transient failure sending to {recipient}")
        cond = self._condition()
        async with cond:
            self._boxes.setdefault(recipient, []).append(encode_share(share))
            cond.notify_all()

    def delivered(self, recipient: str) -> int:
        return len(self._boxes.get(recipient, ()))

    # -- receiving ----------------------------------------------------------

    async def receive_shares(
        self,
        recipient: str,
        start: int = 0,
        *,
        follow: bool = False,
    ) -> AsyncIterator[Share]:
        """
        Yield shares sent to `recipient` from position `start`. With
        `follow=True` wait for new arrivals until `close()`; otherwise stop at
        the end of the mailbox. Restart with the count already consumed to
        resume.
        """
        cursor = start
        cond = self._condition()
        while True:
            async with cond:
                box = self._boxes.get(recipient, [])
                while follow and cursor >= len(box) and not self._closed:
                    await cond.wait()
                    box = self._boxes.get(recipient, [])
                batch = box[cursor:]
            if not batch:
                return
            for raw in batch:
                cursor += 1
                yield decode_share(raw)
            if not follow:
                return

    async def close(self) -> None:
        cond = self._condition()
        async with cond:
            self._closed = True
            cond.notify_all()


__all__ = ["ShareTransport", "LocalShareBus"]
