"""
DAS • Share validation

Checks a received share before it is stored, counted toward a quorum, or
used in a proof:

- the manifest's code shape matches its strategy, object size and unit
- the manifest signature verifies for the named sharer
- the payload has the coding-unit length
- the inclusion path places the payload at `index` under `share_root`
- optionally, the manifest names the commitment posted on the ledger

Every failure raises `InvalidShare`.
"""

from __future__ import annotations

from typing import Optional

from ..commitment.builder import verify_leaf
from ..commitment.strategy import get_strategy
from ..constants import MAX_TOTAL_SHARES
from ..errors import InvalidShare
from .signing import verify_manifest
from .types import Share, ShareManifest


def check_manifest_shape(manifest: ShareManifest) -> None:
    strategy = get_strategy(manifest.strategy)
    want = strategy.data_shares(manifest.object_size, manifest.unit_size)
    if manifest.data_shares != want:
        raise InvalidShare(
            f"manifest declares {manifest.data_shares} data shares, layout needs {want}",
            data={"declared": manifest.data_shares, "expected": want},
        )
    if manifest.total_shares > MAX_TOTAL_SHARES:
        raise InvalidShare("manifest declares more shares than the field allows")


def coding_unit(manifest: ShareManifest) -> int:
    return get_strategy(manifest.strategy).coding_unit(manifest.unit_size)


def verify_share(share: Share, *, commitment: Optional[bytes] = None) -> None:
    m = share.manifest
    if commitment is not None and m.commitment != commitment:
        raise InvalidShare(
            "share manifest names a different commitment",
            data={"sharer": m.sharer, "epoch": m.epoch, "index": share.index},
        )
    check_manifest_shape(m)
    if not verify_manifest(m, share.signature):
        raise InvalidShare("bad manifest signature", data={"sharer": m.sharer, "epoch": m.epoch})
    if len(share.payload) != coding_unit(m):
        raise InvalidShare("share payload has wrong length", data={"index": share.index})
    if not verify_leaf(m.share_root, share.index, share.payload, share.path):
        raise InvalidShare("share inclusion path does not verify", data={"index": share.index})


def is_valid_share(share: Share, *, commitment: Optional[bytes] = None) -> bool:
    try:
        verify_share(share, commitment=commitment)
    except InvalidShare:
        return False
    return True


__all__ = ["check_manifest_shape", "coding_unit", "verify_share", "is_valid_share"]
