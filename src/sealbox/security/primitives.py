"""Capability interfaces over the externally supplied primitives.

Components depend on these small interfaces, never on a specific algorithm
object, so a variant can be swapped at construction time:

- ``SymmetricCipher`` / ``AeadCipher``: AES-GCM (authenticated) and AES-CBC
- ``KeyWrapCipher``: AES-KW (RFC 3394)
- ``AsymmetricCipher``: RSA-OAEP and ephemeral-ECDH key transport
- ``Kdf``: passphrase stretching (see :mod:`sealbox.security.kdf`)

Nothing here implements a primitive; every call goes to ``cryptography``.
Errors raised by ``cryptography`` pass through unchanged and are translated
by the calling component.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Tuple

from cryptography.hazmat.primitives import hashes, padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import ec, rsa, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.keywrap import aes_key_wrap, aes_key_unwrap
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from sealbox.core.models import Algorithm, KEY_SIZES


class SymmetricCipher(ABC):
    """A block cipher mode with a fixed per-scheme header layout."""

    algorithm: Algorithm
    nonce_size: int
    tag_size: int
    authenticated: bool

    @property
    def header_size(self) -> int:
        return self.nonce_size + self.tag_size

    @property
    def key_size(self) -> int:
        return KEY_SIZES[self.algorithm]

    @abstractmethod
    def encrypt(self, key: bytes, nonce: bytes, plaintext: bytes,
                associated_data: Optional[bytes] = None) -> Tuple[bytes, bytes]:
        """Return ``(ciphertext, tag)``; tag is empty for unauthenticated modes."""

    @abstractmethod
    def decrypt(self, key: bytes, nonce: bytes, ciphertext: bytes, tag: bytes,
                associated_data: Optional[bytes] = None) -> bytes:
        """Return the plaintext or raise the library's error."""

    @abstractmethod
    def encryptor(self, key: bytes, nonce: bytes, associated_data: Optional[bytes] = None):
        """Incremental context with ``update``, ``finalize`` and ``tag``."""

    @abstractmethod
    def decryptor(self, key: bytes, nonce: bytes, tag: bytes,
                  associated_data: Optional[bytes] = None):
        """Incremental context with ``update`` and ``finalize``."""


class AeadCipher(SymmetricCipher):
    authenticated = True


class AesGcmCipher(AeadCipher):
    """AES-GCM with a 96-bit nonce and a 128-bit tag."""

    nonce_size = 12
    tag_size = 16

    def __init__(self, algorithm: Algorithm = Algorithm.AES_256_GCM):
        if algorithm not in (Algorithm.AES_128_GCM, Algorithm.AES_256_GCM):
            raise ValueError(f"AesGcmCipher cannot use {algorithm}")
        self.algorithm = algorithm

    def encrypt(self, key, nonce, plaintext, associated_data=None):
        sealed = AESGCM(key).encrypt(nonce, plaintext, associated_data)
        # AESGCM appends the tag; callers want it separately
        return sealed[:-self.tag_size], sealed[-self.tag_size:]

    def decrypt(self, key, nonce, ciphertext, tag, associated_data=None):
        return AESGCM(key).decrypt(nonce, ciphertext + tag, associated_data)

    def encryptor(self, key, nonce, associated_data=None):
        ctx = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
        if associated_data:
            ctx.authenticate_additional_data(associated_data)
        return ctx

    def decryptor(self, key, nonce, tag, associated_data=None):
        ctx = Cipher(algorithms.AES(key), modes.GCM(nonce, tag)).decryptor()
        if associated_data:
            ctx.authenticate_additional_data(associated_data)
        return ctx


class _PaddedContext:
    # CBC context that applies PKCS7 on the way in or strips it on the way out

    def __init__(self, ctx, pad_ctx):
        self._ctx = ctx
        self._pad = pad_ctx
        self.tag = b""

    def update(self, data: bytes) -> bytes:
        return self._step(data)

    def finalize(self) -> bytes:
        return self._finish()


class _CbcEncryptContext(_PaddedContext):
    def _step(self, data):
        return self._ctx.update(self._pad.update(data))

    def _finish(self):
        return self._ctx.update(self._pad.finalize()) + self._ctx.finalize()


class _CbcDecryptContext(_PaddedContext):
    def _step(self, data):
        return self._pad.update(self._ctx.update(data))

    def _finish(self):
        return self._pad.update(self._ctx.finalize()) + self._pad.finalize()


class AesCbcCipher(SymmetricCipher):
    """AES-256-CBC with PKCS7 padding: ``iv(16) || ciphertext``, no tag.

    Kept for interoperability only; nothing detects tampering.
    """

    algorithm = Algorithm.AES_256_CBC
    nonce_size = 16
    tag_size = 0
    authenticated = False

    def _cipher(self, key, iv):
        return Cipher(algorithms.AES(key), modes.CBC(iv))

    def encrypt(self, key, nonce, plaintext, associated_data=None):
        if associated_data:
            raise ValueError("AES-CBC cannot authenticate associated data")
        ctx = self.encryptor(key, nonce)
        return ctx.update(plaintext) + ctx.finalize(), b""

    def decrypt(self, key, nonce, ciphertext, tag, associated_data=None):
        if associated_data:
            raise ValueError("AES-CBC cannot authenticate associated data")
        ctx = self.decryptor(key, nonce, tag)
        return ctx.update(ciphertext) + ctx.finalize()

    def encryptor(self, key, nonce, associated_data=None):
        pad = sym_padding.PKCS7(algorithms.AES.block_size).padder()
        return _CbcEncryptContext(self._cipher(key, nonce).encryptor(), pad)

    def decryptor(self, key, nonce, tag, associated_data=None):
        unpad = sym_padding.PKCS7(algorithms.AES.block_size).unpadder()
        return _CbcDecryptContext(self._cipher(key, nonce).decryptor(), unpad)


class KeyWrapCipher(ABC):
    """Deterministic wrapping of key bytes under a KEK."""

    kek_algorithms: Tuple[Algorithm, ...]

    @abstractmethod
    def wrap(self, kek: bytes, key: bytes) -> bytes: ...

    @abstractmethod
    def unwrap(self, kek: bytes, wrapped: bytes) -> bytes: ...


class AesKeyWrapCipher(KeyWrapCipher):
    """AES-KW per RFC 3394 (fixed IV ``A6A6A6A6A6A6A6A6``)."""

    kek_algorithms = (Algorithm.AES_128_KW, Algorithm.AES_256_KW)

    def wrap(self, kek, key):
        return aes_key_wrap(kek, key)

    def unwrap(self, kek, wrapped):
        return aes_key_unwrap(kek, wrapped)


class AsymmetricCipher(ABC):
    """Public-key encryption of short secrets (symmetric keys)."""

    name: str

    @abstractmethod
    def encrypt(self, public_key, plaintext: bytes) -> bytes: ...

    @abstractmethod
    def decrypt(self, private_key, ciphertext: bytes) -> bytes: ...


class RsaOaepCipher(AsymmetricCipher):
    """RSA-OAEP with SHA-256 and MGF1-SHA-256.

    The hash choice is part of every stored WrappedKey's meaning and must not
    change for the lifetime of the data.
    """

    name = "RSA-OAEP-256"

    def _padding(self):
        return padding.OAEP(
            mgf=padding.MGF1(algorithm=hashes.SHA256()),
            algorithm=hashes.SHA256(),
            label=None,
        )

    def encrypt(self, public_key, plaintext):
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise TypeError("RsaOaepCipher needs an RSA public key")
        return public_key.encrypt(plaintext, self._padding())

    def decrypt(self, private_key, ciphertext):
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise TypeError("RsaOaepCipher needs an RSA private key")
        return private_key.decrypt(ciphertext, self._padding())


class EcdhP256Cipher(AsymmetricCipher):
    """Ephemeral-static ECDH on P-256, HKDF-SHA256 to a KEK, then AES-KW.

    Output layout: ``ephemeral_public(65, uncompressed point) || wrapped``.
    Only key-sized plaintexts (multiples of 8 bytes, at least 16) fit.
    """

    name = "ECDH-ES-P256+A256KW"
    POINT_SIZE = 65
    HKDF_INFO = b"sealbox-ecdh-es-key-wrap"

    def _kek(self, shared_secret: bytes, ephemeral_point: bytes) -> bytes:
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=ephemeral_point,
            info=self.HKDF_INFO,
        )
        return hkdf.derive(shared_secret)

    def encrypt(self, public_key, plaintext):
        if not isinstance(public_key, ec.EllipticCurvePublicKey) or not isinstance(
            public_key.curve, ec.SECP256R1
        ):
            raise TypeError("EcdhP256Cipher needs a P-256 public key")
        ephemeral = ec.generate_private_key(ec.SECP256R1())
        point = ephemeral.public_key().public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
        shared = ephemeral.exchange(ec.ECDH(), public_key)
        return point + aes_key_wrap(self._kek(shared, point), plaintext)

    def decrypt(self, private_key, ciphertext):
        if not isinstance(private_key, ec.EllipticCurvePrivateKey) or not isinstance(
            private_key.curve, ec.SECP256R1
        ):
            raise TypeError("EcdhP256Cipher needs a P-256 private key")
        if len(ciphertext) <= self.POINT_SIZE:
            raise ValueError("ciphertext too short to contain an ephemeral key")
        point, wrapped = ciphertext[:self.POINT_SIZE], ciphertext[self.POINT_SIZE:]
        ephemeral_public = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), point)
        shared = private_key.exchange(ec.ECDH(), ephemeral_public)
        return aes_key_unwrap(self._kek(shared, point), wrapped)


class Kdf(ABC):
    """Passphrase-based key derivation with explicit parameters."""

    name: str

    @abstractmethod
    def derive(self, secret: bytes, salt: bytes, params) -> bytes: ...
