"""Key wrapping under a passphrase-derived KEK or an asymmetric key pair.

Wrapped keys are plain bytes with no embedded metadata: the algorithm of the
wrapped key and the identity of the wrapping key travel in a separate record
(see :class:`PassphraseWrap` and :class:`sealbox.core.models.UserProfile`).

The KEK source is always chosen by the caller; nothing is auto-detected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
import hmac
import logging

from cryptography.hazmat.primitives.keywrap import InvalidUnwrap

from sealbox.core.exceptions import InvalidPassphrase, KeyTypeMismatch, UnwrapFailed
from sealbox.core.models import Algorithm, DerivationParams, KeyMaterial, KeyUsage
from .kdf import Argon2idKdf, derive_key_and_verifier, generate_salt
from .primitives import (
    AesKeyWrapCipher,
    AsymmetricCipher,
    Kdf,
    KeyWrapCipher,
    RsaOaepCipher,
)

logger = logging.getLogger(__name__)

WRAP_KEY_LENGTH = 32


def generate_cek(algorithm: Algorithm = Algorithm.AES_256_GCM, usages=None) -> KeyMaterial:
    """Return a fresh random content-encryption key."""
    return KeyMaterial.generate(algorithm, usages)


def _as_key(raw: bytes, algorithm, usages) -> KeyMaterial:
    # Length and usage disagreement with the declared algorithm -> KeyTypeMismatch
    return KeyMaterial(raw, Algorithm(algorithm), usages)


class KeyWrapper:
    """Wrap keys under a symmetric KEK (AES-KW by default)."""

    def __init__(self, cipher: Optional[KeyWrapCipher] = None):
        self.cipher = cipher if cipher is not None else AesKeyWrapCipher()

    def _check_kek(self, kek: KeyMaterial, usage: KeyUsage) -> bytes:
        if kek.algorithm not in self.cipher.kek_algorithms:
            raise KeyTypeMismatch(f"{kek.algorithm.value} key cannot be used as a KEK here")
        kek.require(usage=usage)
        return kek.raw

    def wrap(self, kek: KeyMaterial, key: KeyMaterial) -> bytes:
        raw_kek = self._check_kek(kek, KeyUsage.WRAP)
        try:
            return self.cipher.wrap(raw_kek, key.raw)
        except ValueError as exc:
            raise KeyTypeMismatch(f"cannot wrap a {len(key)}-byte key: {exc}") from exc

    def unwrap(self, kek: KeyMaterial, wrapped: bytes, algorithm, usages=None) -> KeyMaterial:
        raw_kek = self._check_kek(kek, KeyUsage.UNWRAP)
        try:
            raw = self.cipher.unwrap(raw_kek, bytes(wrapped))
        except (InvalidUnwrap, ValueError) as exc:
            logger.info("key unwrap failed integrity check")
            raise UnwrapFailed() from exc
        return _as_key(raw, algorithm, usages)


class AsymmetricKeyWrapper:
    """Wrap keys to a public key, unwrap with the matching private key.

    Padding and hash choices are fixed by the cipher instance and must stay
    fixed for the lifetime of stored data.
    """

    def __init__(self, cipher: Optional[AsymmetricCipher] = None):
        self.cipher = cipher if cipher is not None else RsaOaepCipher()

    @property
    def name(self) -> str:
        return self.cipher.name

    def wrap(self, public_key, key: KeyMaterial) -> bytes:
        try:
            return self.cipher.encrypt(public_key, key.raw)
        except TypeError as exc:
            raise KeyTypeMismatch(str(exc)) from exc
        except ValueError as exc:
            raise KeyTypeMismatch(f"{self.cipher.name} cannot wrap this key: {exc}") from exc

    def unwrap(self, private_key, wrapped: bytes, algorithm, usages=None) -> KeyMaterial:
        try:
            raw = self.cipher.decrypt(private_key, bytes(wrapped))
        except TypeError as exc:
            raise KeyTypeMismatch(str(exc)) from exc
        except (InvalidUnwrap, ValueError) as exc:
            logger.info("%s unwrap failed", self.cipher.name)
            raise UnwrapFailed() from exc
        return _as_key(raw, algorithm, usages)


@dataclass(frozen=True)
class PassphraseWrap:
    """Everything needed to recover a passphrase-wrapped key, except the passphrase."""

    salt: bytes
    wrapped_key: bytes
    verifier: bytes
    params: DerivationParams

    def to_dict(self) -> Dict[str, Any]:
        return {
            "salt": self.salt.hex(),
            "wrapped_key": self.wrapped_key.hex(),
            "verifier": self.verifier.hex(),
            "params": self.params.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PassphraseWrap":
        return cls(
            salt=bytes.fromhex(data["salt"]),
            wrapped_key=bytes.fromhex(data["wrapped_key"]),
            verifier=bytes.fromhex(data["verifier"]),
            params=DerivationParams.from_dict(data["params"]),
        )


class PassphraseKeyWrapper:
    """
    Wrap a key under a KEK stretched from a passphrase.

    One Argon2id run yields ``params.output_length`` bytes: the first 32 are
    the AES-256-KW KEK, the remainder is a verifier stored with the wrapped
    key. Unwrapping re-derives with the *stored* params, compares verifiers
    in constant time and only then runs the unwrap cipher.
    """

    MIN_VERIFIER_LENGTH = 16

    def __init__(
        self,
        params: DerivationParams,
        key_wrapper: Optional[KeyWrapper] = None,
        kdf: Optional[Kdf] = None,
    ):
        self._check_params(params)
        self.params = params
        self.key_wrapper = key_wrapper if key_wrapper is not None else KeyWrapper()
        self.kdf = kdf if kdf is not None else Argon2idKdf()

    @classmethod
    def _check_params(cls, params: DerivationParams) -> None:
        if params.output_length < WRAP_KEY_LENGTH + cls.MIN_VERIFIER_LENGTH:
            raise ValueError(
                f"output_length must be >= {WRAP_KEY_LENGTH + cls.MIN_VERIFIER_LENGTH} "
                "to carry both a KEK and a verifier"
            )

    def wrap(self, passphrase, key: KeyMaterial, salt: Optional[bytes] = None) -> PassphraseWrap:
        salt = salt if salt is not None else generate_salt()
        kek, verifier = derive_key_and_verifier(passphrase, salt, self.params, WRAP_KEY_LENGTH, self.kdf)
        with kek:
            wrapped = self.key_wrapper.wrap(kek, key)
        return PassphraseWrap(salt=salt, wrapped_key=wrapped, verifier=verifier, params=self.params)

    def unwrap(self, passphrase, record: PassphraseWrap, algorithm, usages=None) -> KeyMaterial:
        self._check_params(record.params)
        kek, verifier = derive_key_and_verifier(passphrase, record.salt, record.params, WRAP_KEY_LENGTH, self.kdf)
        with kek:
            if not hmac.compare_digest(verifier, record.verifier):
                logger.info("passphrase verifier mismatch")
                raise InvalidPassphrase()
            return self.key_wrapper.unwrap(kek, record.wrapped_key, algorithm, usages)

    def verify(self, passphrase, record: PassphraseWrap) -> bool:
        """Check a passphrase against the record without unwrapping anything."""
        self._check_params(record.params)
        kek, verifier = derive_key_and_verifier(passphrase, record.salt, record.params, WRAP_KEY_LENGTH, self.kdf)
        kek.wipe()
        return hmac.compare_digest(verifier, record.verifier)
