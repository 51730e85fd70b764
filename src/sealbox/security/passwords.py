"""Password hashing for storage: scrypt and Argon2id encoded hashes.

These are one-way verifiers, unrelated to key derivation. Use
:mod:`sealbox.security.kdf` when the passphrase has to produce a key.
"""

from __future__ import annotations

import base64
import binascii
import os

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt


SCRYPT_SALT_LENGTH = 16
SCRYPT_HASH_LENGTH = 32
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1


def _to_bytes(passphrase) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return bytes(passphrase)


def _scrypt(salt: bytes) -> Scrypt:
    return Scrypt(salt=salt, length=SCRYPT_HASH_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)


def scrypt_hash(passphrase) -> str:
    """Return ``base64(salt || hash)`` for storage."""
    salt = os.urandom(SCRYPT_SALT_LENGTH)
    hashed = _scrypt(salt).derive(_to_bytes(passphrase))
    return base64.b64encode(salt + hashed).decode("ascii")


def scrypt_verify(stored: str, passphrase) -> bool:
    try:
        raw = base64.b64decode(stored, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("stored scrypt hash is not valid base64") from exc
    if len(raw) != SCRYPT_SALT_LENGTH + SCRYPT_HASH_LENGTH:
        raise ValueError(f"stored scrypt hash must decode to {SCRYPT_SALT_LENGTH + SCRYPT_HASH_LENGTH} bytes")
    salt, expected = raw[:SCRYPT_SALT_LENGTH], raw[SCRYPT_SALT_LENGTH:]
    try:
        # Scrypt.verify compares in constant time
        _scrypt(salt).verify(_to_bytes(passphrase), expected)
    except InvalidKey:
        return False
    return True


# Parameters pinned for new hashes.
_hasher = PasswordHasher(time_cost=3, memory_cost=4096, parallelism=1, hash_len=32, salt_len=16)


def argon2_hash(passphrase) -> str:
    """Return an encoded ``$argon2id$...`` string."""
    return _hasher.hash(_to_bytes(passphrase))


def argon2_verify(encoded: str, passphrase) -> bool:
    """
    True if passphrase matches. A malformed hash raises
    ``argon2.exceptions.InvalidHashError`` (a ValueError).
    """
    try:
        return _hasher.verify(encoded, _to_bytes(passphrase))
    except VerifyMismatchError:
        return False
    except VerificationError as exc:
        # argon2 reports undecodable hashes as a generic verification error
        raise InvalidHashError(str(exc)) from exc


def argon2_needs_rehash(encoded: str) -> bool:
    return _hasher.check_needs_rehash(encoded)
