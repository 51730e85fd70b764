"""Digital signatures: RSA-PSS, ECDSA P-256 and Ed25519.

``verify`` answers with a boolean; a bad signature is an expected outcome,
not an error. A key of the wrong type is a KeyTypeMismatch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from sealbox.core.exceptions import IOFailure, KeyTypeMismatch
from sealbox.core.hashing import iter_chunks


def _to_bytes(message) -> bytes:
    if isinstance(message, str):
        return message.encode("utf-8")
    return bytes(message)


class Signer(ABC):
    name: str
    private_type: type
    public_type: type

    def _check(self, key, expected: type) -> None:
        if not isinstance(key, expected):
            raise KeyTypeMismatch(f"{self.name} cannot use a {type(key).__name__}")

    def sign(self, private_key, message) -> bytes:
        self._check(private_key, self.private_type)
        return self._sign(private_key, _to_bytes(message))

    def verify(self, public_key, message, signature: bytes) -> bool:
        self._check(public_key, self.public_type)
        try:
            self._verify(public_key, _to_bytes(message), bytes(signature))
        except InvalidSignature:
            return False
        return True

    @abstractmethod
    def _sign(self, private_key, message: bytes) -> bytes: ...

    @abstractmethod
    def _verify(self, public_key, message: bytes, signature: bytes) -> None: ...


class _HashThenSign(Signer):
    """Signers whose message can be hashed incrementally before signing."""

    hash_algorithm = hashes.SHA256

    def _digest_stream(self, source: Iterable[bytes]) -> bytes:
        h = hashes.Hash(self.hash_algorithm())
        try:
            for chunk in iter_chunks(source):
                h.update(chunk)
        except OSError as exc:
            raise IOFailure(f"failed reading message stream: {exc}") from exc
        return h.finalize()

    def sign_stream(self, private_key, source) -> bytes:
        self._check(private_key, self.private_type)
        digest = self._digest_stream(source)
        return self._sign_digest(private_key, digest)

    def verify_stream(self, public_key, source, signature: bytes) -> bool:
        self._check(public_key, self.public_type)
        digest = self._digest_stream(source)
        try:
            self._verify_digest(public_key, digest, bytes(signature))
        except InvalidSignature:
            return False
        return True

    @abstractmethod
    def _sign_digest(self, private_key, digest: bytes) -> bytes: ...

    @abstractmethod
    def _verify_digest(self, public_key, digest: bytes, signature: bytes) -> None: ...


class RsaPssSigner(_HashThenSign):
    """RSA-PSS with SHA-256, MGF1-SHA-256 and the maximum salt length."""

    name = "RSA-PSS-SHA256"
    private_type = rsa.RSAPrivateKey
    public_type = rsa.RSAPublicKey

    def _padding(self):
        return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.MAX_LENGTH)

    def _sign(self, private_key, message):
        return private_key.sign(message, self._padding(), hashes.SHA256())

    def _verify(self, public_key, message, signature):
        public_key.verify(signature, message, self._padding(), hashes.SHA256())

    def _sign_digest(self, private_key, digest):
        return private_key.sign(digest, self._padding(), Prehashed(hashes.SHA256()))

    def _verify_digest(self, public_key, digest, signature):
        public_key.verify(signature, digest, self._padding(), Prehashed(hashes.SHA256()))


class EcdsaP256Signer(_HashThenSign):
    """ECDSA over P-256 with SHA-256, DER-encoded signatures."""

    name = "ECDSA-P256-SHA256"
    private_type = ec.EllipticCurvePrivateKey
    public_type = ec.EllipticCurvePublicKey

    def _check(self, key, expected):
        super()._check(key, expected)
        if not isinstance(key.curve, ec.SECP256R1):
            raise KeyTypeMismatch(f"{self.name} needs a P-256 key, got {key.curve.name}")

    def _sign(self, private_key, message):
        return private_key.sign(message, ec.ECDSA(hashes.SHA256()))

    def _verify(self, public_key, message, signature):
        public_key.verify(signature, message, ec.ECDSA(hashes.SHA256()))

    def _sign_digest(self, private_key, digest):
        return private_key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))

    def _verify_digest(self, public_key, digest, signature):
        public_key.verify(signature, digest, ec.ECDSA(Prehashed(hashes.SHA256())))


class Ed25519Signer(Signer):
    """Ed25519 (pure). Hashes internally, so there is no streaming variant."""

    name = "Ed25519"
    private_type = ed25519.Ed25519PrivateKey
    public_type = ed25519.Ed25519PublicKey

    def _sign(self, private_key, message):
        return private_key.sign(message)

    def _verify(self, public_key, message, signature):
        public_key.verify(signature, message)


_SIGNERS = (RsaPssSigner(), EcdsaP256Signer(), Ed25519Signer())


def signer_for(key) -> Signer:
    """Pick the signer matching a private or public key object."""
    for signer in _SIGNERS:
        if isinstance(key, (signer.private_type, signer.public_type)):
            return signer
    raise KeyTypeMismatch(f"no signature scheme for {type(key).__name__}")


def sign(private_key, message) -> bytes:
    return signer_for(private_key).sign(private_key, message)


def verify(public_key, message, signature: bytes) -> bool:
    return signer_for(public_key).verify(public_key, message, signature)
