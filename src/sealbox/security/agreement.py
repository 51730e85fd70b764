"""Key agreement (ECDH over P-256, X25519) and one-shot ephemeral keys.

The registry hands out X25519 public keys to peers. Each private half lives in
an injected store, keyed by the public key id, and is consumed by the first
agreement that names it.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import ec, x25519

from sealbox.core.exceptions import EphemeralKeyNotFound, KeyTypeMismatch
from sealbox.core.models import Algorithm, KeyMaterial
from sealbox.core.storage import KeyValueStore, MemoryStore
from .keys import (
    export_private_pem,
    export_public_pem,
    generate_x25519_keypair,
    load_private_pem,
    load_public_pem,
    public_key_id,
)

logger = logging.getLogger(__name__)

DEFAULT_EPHEMERAL_TTL = 60


def shared_secret(private_key, peer_public_key) -> bytes:
    """Raw ECDH output. Both keys must be P-256, or both X25519."""
    if isinstance(private_key, x25519.X25519PrivateKey):
        if not isinstance(peer_public_key, x25519.X25519PublicKey):
            raise KeyTypeMismatch("X25519 agreement needs an X25519 peer key")
        return private_key.exchange(peer_public_key)

    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        if not isinstance(private_key.curve, ec.SECP256R1):
            raise KeyTypeMismatch(f"unsupported curve for agreement: {private_key.curve.name}")
        if not (isinstance(peer_public_key, ec.EllipticCurvePublicKey)
                and isinstance(peer_public_key.curve, ec.SECP256R1)):
            raise KeyTypeMismatch("P-256 agreement needs a P-256 peer key")
        return private_key.exchange(ec.ECDH(), peer_public_key)

    raise KeyTypeMismatch(f"no key agreement for {type(private_key).__name__}")


def derive_shared_key(private_key, peer_public_key, salt: bytes = b"") -> KeyMaterial:
    """AES-256-GCM key = SHA-256(shared secret || salt)."""
    secret = shared_secret(private_key, peer_public_key)
    digest = hashlib.sha256(secret + bytes(salt)).digest()
    return KeyMaterial(digest, Algorithm.AES_256_GCM)


class EphemeralKeyRegistry:
    """Issue single-use X25519 key pairs and agree on keys with them."""

    def __init__(self, store: Optional[KeyValueStore] = None, ttl_seconds: float = DEFAULT_EPHEMERAL_TTL):
        self.store = store if store is not None else MemoryStore()
        self.ttl_seconds = ttl_seconds

    def issue(self) -> Tuple[str, bytes]:
        """Return ``(key_id, public_pem)`` for a fresh key pair."""
        private_key, public_key = generate_x25519_keypair()
        key_id = public_key_id(public_key)
        self.store.put(
            key_id,
            {"private_key": export_private_pem(private_key).decode("ascii")},
            ttl_seconds=self.ttl_seconds,
        )
        logger.debug("issued ephemeral key %s", key_id)
        return key_id, export_public_pem(public_key)

    def agree(self, key_id: str, peer_public_key, salt: bytes = b"") -> KeyMaterial:
        """
        Consume ``key_id`` and derive the shared key with the peer.

        ``peer_public_key`` may be a key object or SPKI PEM. Raises
        EphemeralKeyNotFound if the id is unknown, expired or already used.
        """
        entry = self.store.pop(key_id)
        if entry is None:
            logger.info("ephemeral key %s not available", key_id)
            raise EphemeralKeyNotFound(f"no ephemeral key with id {key_id!r}")

        if isinstance(peer_public_key, (bytes, str)):
            peer_public_key = load_public_pem(peer_public_key)
        private_key = load_private_pem(entry["private_key"])
        return derive_shared_key(private_key, peer_public_key, salt)

    def __contains__(self, key_id: str) -> bool:
        return key_id in self.store
