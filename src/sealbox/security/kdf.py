import logging
import os
from typing import Tuple

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw

from sealbox.core.exceptions import DerivationFailed
from sealbox.core.models import (
    Algorithm,
    DerivationParams,
    KeyMaterial,
    KeyUsage,
    KEY_SIZES,
    SALT_LENGTH,
)
from .primitives import Kdf

logger = logging.getLogger(__name__)


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def _to_bytes(passphrase) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return bytes(passphrase)


class Argon2idKdf(Kdf):
    """Argon2id through argon2-cffi's raw interface."""

    name = "argon2id"

    def derive(self, secret: bytes, salt: bytes, params: DerivationParams) -> bytes:
        # Every parameter is passed, version included: a changed library
        # default must never change the output for data already stored.
        return hash_secret_raw(
            secret=secret,
            salt=salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=params.output_length,
            type=Type.ID,
            version=params.version,
        )


_default_kdf = Argon2idKdf()


def derive_bytes(passphrase, salt: bytes, params: DerivationParams, kdf: Kdf = _default_kdf) -> bytes:
    """
    Derive ``params.output_length`` raw bytes from a passphrase.

    Raises DerivationFailed if the primitive fails; the caller never sees a
    partial or empty result.
    """
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"salt must be exactly {SALT_LENGTH} bytes")
    if not isinstance(params, DerivationParams):
        raise TypeError("params must be a DerivationParams instance")

    try:
        out = kdf.derive(_to_bytes(passphrase), bytes(salt), params)
    except (HashingError, MemoryError, ValueError) as exc:
        logger.warning("key derivation failed (%s, m=%d KiB, t=%d)", kdf.name, params.memory_cost, params.time_cost)
        raise DerivationFailed(f"{kdf.name} derivation failed") from exc

    if len(out) != params.output_length:
        raise DerivationFailed(f"{kdf.name} returned {len(out)} bytes, expected {params.output_length}")
    return out


def derive_key(
    passphrase,
    salt: bytes,
    params: DerivationParams,
    algorithm: Algorithm = Algorithm.AES_256_GCM,
    usages=None,
    kdf: Kdf = _default_kdf,
) -> KeyMaterial:
    """Derive a single key whose length is exactly ``params.output_length``."""
    algorithm = Algorithm(algorithm)
    if params.output_length != KEY_SIZES[algorithm]:
        raise ValueError(
            f"{algorithm.value} needs output_length={KEY_SIZES[algorithm]}, got {params.output_length}"
        )
    return KeyMaterial(derive_bytes(passphrase, salt, params, kdf), algorithm, usages)


def split_derived(derived: bytes, key_length: int = 32) -> Tuple[bytes, bytes]:
    """Split KDF output positionally: first ``key_length`` bytes key, rest verifier."""
    if len(derived) <= key_length:
        raise ValueError("derived output leaves no room for a verifier")
    return derived[:key_length], derived[key_length:]


def derive_key_and_verifier(
    passphrase,
    salt: bytes,
    params: DerivationParams,
    key_length: int = 32,
    kdf: Kdf = _default_kdf,
) -> Tuple[KeyMaterial, bytes]:
    """
    Derive a wrapping key and a passphrase verifier in one KDF run.

    With the usual 64-byte output the first 32 bytes become an AES-256-KW
    key and the last 32 bytes the verifier stored in the profile. The split
    point is not recorded in the output; both sides must agree on it.
    """
    algorithm = {16: Algorithm.AES_128_KW, 32: Algorithm.AES_256_KW}.get(key_length)
    if algorithm is None:
        raise ValueError("key_length must be 16 or 32")
    derived = derive_bytes(passphrase, salt, params, kdf)
    key_bytes, verifier = split_derived(derived, key_length)
    kek = KeyMaterial(key_bytes, algorithm, {KeyUsage.WRAP, KeyUsage.UNWRAP})
    return kek, verifier

