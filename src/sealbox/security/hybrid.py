"""Hybrid encryption: a fresh data key per message, wrapped to a public key.

The sealed payload and the wrapped key are two separate artefacts and must be
stored or transmitted together; losing the wrapped key makes the payload
unrecoverable. Opening unwraps first and only then touches the payload; any
failure in either step is reported as one opaque HybridDecryptionFailed.
"""

from __future__ import annotations

from typing import Any, BinaryIO, Dict, NamedTuple, Optional
import base64
import logging

from sealbox.core.exceptions import HybridDecryptionFailed, IOFailure, SealboxError
from sealbox.core.models import Algorithm, KeyMaterial
from .envelope import Envelope, open_stream as _open_stream, seal_stream as _seal_stream
from .keywrap import AsymmetricKeyWrapper

logger = logging.getLogger(__name__)


class HybridMessage(NamedTuple):
    """``(blob, wrapped_key)``; unpacks like the plain tuple.

    The field order is the reverse of :func:`hybrid_open`, which takes
    ``wrapped_key`` first. Pass the fields by name rather than ``*message``.
    """

    blob: bytes
    wrapped_key: bytes

    def to_dict(self) -> Dict[str, Any]:
        # two fields, never one concatenated value
        return {
            "encrypted": base64.b64encode(self.blob).decode("ascii"),
            "wrapped_key": base64.b64encode(self.wrapped_key).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HybridMessage":
        return cls(
            blob=base64.b64decode(data["encrypted"]),
            wrapped_key=base64.b64decode(data["wrapped_key"]),
        )


class HybridEnvelope:
    """Compose an asymmetric key wrapper with a symmetric envelope."""

    def __init__(
        self,
        key_wrapper: Optional[AsymmetricKeyWrapper] = None,
        envelope: Optional[Envelope] = None,
    ):
        self.key_wrapper = key_wrapper if key_wrapper is not None else AsymmetricKeyWrapper()
        self.envelope = envelope if envelope is not None else Envelope()

    @property
    def data_algorithm(self) -> Algorithm:
        return self.envelope.cipher.algorithm

    def _new_data_key(self) -> KeyMaterial:
        # one key per message, never reused
        return KeyMaterial.generate(self.data_algorithm)

    def seal(self, public_key, plaintext: bytes, associated_data: Optional[bytes] = None) -> HybridMessage:
        with self._new_data_key() as data_key:
            blob = self.envelope.seal(data_key, plaintext, associated_data)
            wrapped = self.key_wrapper.wrap(public_key, data_key)
        return HybridMessage(blob, wrapped)

    def _unwrap(self, private_key, wrapped_key: bytes) -> KeyMaterial:
        try:
            return self.key_wrapper.unwrap(private_key, wrapped_key, self.data_algorithm)
        except SealboxError as exc:
            logger.warning("hybrid open failed at key unwrap: %s", type(exc).__name__)
            raise HybridDecryptionFailed("unable to decrypt message") from None

    def open(self, private_key, wrapped_key: bytes, blob: bytes,
             associated_data: Optional[bytes] = None) -> bytes:
        data_key = self._unwrap(private_key, wrapped_key)
        with data_key:
            try:
                return self.envelope.open(data_key, blob, associated_data)
            except SealboxError as exc:
                logger.warning("hybrid open failed at envelope: %s", type(exc).__name__)
                raise HybridDecryptionFailed("unable to decrypt message") from None

    def seal_stream(self, public_key, source, destination: BinaryIO,
                    associated_data: Optional[bytes] = None) -> bytes:
        """Seal a stream into ``destination`` and return the wrapped key."""
        with self._new_data_key() as data_key:
            wrapped = self.key_wrapper.wrap(public_key, data_key)
            _seal_stream(data_key, source, destination, self.envelope.cipher, associated_data)
        return wrapped

    def open_stream(self, private_key, wrapped_key: bytes, source, destination: BinaryIO,
                    associated_data: Optional[bytes] = None) -> int:
        """Open a sealed stream; the destination is invalid if this raises."""
        data_key = self._unwrap(private_key, wrapped_key)
        with data_key:
            try:
                return _open_stream(data_key, source, destination, self.envelope.cipher, associated_data)
            except IOFailure:
                raise
            except SealboxError as exc:
                logger.warning("hybrid stream open failed: %s", type(exc).__name__)
                raise HybridDecryptionFailed("unable to decrypt message") from None


_default_hybrid = HybridEnvelope()


def hybrid_seal(public_key, plaintext: bytes) -> HybridMessage:
    """RSA-OAEP-256 + AES-256-GCM hybrid seal."""
    return _default_hybrid.seal(public_key, plaintext)


def hybrid_open(private_key, wrapped_key: bytes, blob: bytes) -> bytes:
    return _default_hybrid.open(private_key, wrapped_key, blob)
