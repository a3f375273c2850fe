"""
DAS • Manifest signatures (Ed25519 via `cryptography`)

A sharer's identity is its public key: `sharer_id = "0x" + hex(raw 32-byte
Ed25519 public key)`. Anyone can therefore check a manifest signature from
the manifest alone, with no key registry.
"""

from __future__ import annotations

from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .encoding import manifest_signbytes
from .types import ShareManifest


def sharer_id_from_public_bytes(raw: bytes) -> str:
    if len(raw) != 32:
        raise ValueError("Ed25519 public key must be 32 bytes")
    return "0x" + raw.hex()


def public_key_from_sharer_id(sharer: str) -> ed25519.Ed25519PublicKey:
    if not sharer.startswith("0x"):
        raise ValueError("sharer id must be 0x-prefixed hex")
    try:
        raw = bytes.fromhex(sharer[2:])
    except ValueError as e:
        raise ValueError(f"sharer id is not hex: {sharer!r}") from e
    if len(raw) != 32:
        raise ValueError("sharer id must encode a 32-byte public key")
    return ed25519.Ed25519PublicKey.from_public_bytes(raw)


class Signer:
    """Holds a sharer's Ed25519 key and signs manifests."""

    def __init__(self, private_key: Optional[ed25519.Ed25519PrivateKey] = None) -> None:
        self._key = private_key or ed25519.Ed25519PrivateKey.generate()
        raw = self._key.public_key().public_bytes(
            serialization.Encoding.Raw,
            serialization.PublicFormat.Raw,
        )
        self.sharer_id = sharer_id_from_public_bytes(raw)

    @classmethod
    def from_seed(cls, seed: bytes) -> "Signer":
        """Deterministic key from a 32-byte seed (tests, simulations)."""
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(seed))

    def sign_manifest(self, manifest: ShareManifest) -> bytes:
        if manifest.sharer != self.sharer_id:
            raise ValueError("manifest names a different sharer")
        return self._key.sign(manifest_signbytes(manifest))

    def __repr__(self) -> str:
        return f"Signer({self.sharer_id[:18]}…)"


def verify_manifest(manifest: ShareManifest, signature: bytes) -> bool:
    try:
        pub = public_key_from_sharer_id(manifest.sharer)
    except ValueError:
        return False
    try:
        pub.verify(bytes(signature), manifest_signbytes(manifest))
    except InvalidSignature:
        return False
    return True


__all__ = [
    "Signer",
    "verify_manifest",
    "sharer_id_from_public_bytes",
    "public_key_from_sharer_id",
]
