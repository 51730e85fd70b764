"""Symmetric envelope: self-describing ``nonce || tag || ciphertext`` blobs.

The header layout is fixed per cipher scheme:

- AES-GCM: ``nonce(12) || tag(16) || ciphertext``
- AES-CBC: ``iv(16) || ciphertext`` (no tag, no tamper detection)

Streaming uses the same layout. The sealer reserves the tag slot right after
the nonce and back-fills it once the source is exhausted, so the destination
must be seekable. The opener reads the tag up front and only reports success
from ``finish()``; plaintext it has already written is unverified until then
and must be discarded by the caller if ``finish()`` raises.
"""

from __future__ import annotations

import io
import logging
import os
from typing import BinaryIO, Iterable, Optional, Tuple

from cryptography.exceptions import InvalidTag

from sealbox.core.exceptions import (
    AuthenticationFailed,
    IOFailure,
    MalformedEnvelope,
)
from sealbox.core.hashing import CHUNK_SIZE, iter_chunks
from sealbox.core.models import KeyMaterial, KeyUsage
from .primitives import AesGcmCipher, SymmetricCipher

logger = logging.getLogger(__name__)


def _check_key(cipher: SymmetricCipher, key: KeyMaterial, usage: KeyUsage) -> bytes:
    if not isinstance(key, KeyMaterial):
        raise TypeError("key must be KeyMaterial")
    key.require(algorithm=cipher.algorithm, usage=usage)
    return key.raw


class Envelope:
    """Seal and open whole payloads under one cipher scheme."""

    def __init__(self, cipher: Optional[SymmetricCipher] = None):
        self.cipher = cipher if cipher is not None else AesGcmCipher()

    @property
    def header_size(self) -> int:
        return self.cipher.header_size

    def seal(self, key: KeyMaterial, plaintext: bytes, associated_data: Optional[bytes] = None) -> bytes:
        raw = _check_key(self.cipher, key, KeyUsage.ENCRYPT)
        # fresh nonce every call; never a counter
        nonce = os.urandom(self.cipher.nonce_size)
        ciphertext, tag = self.cipher.encrypt(raw, nonce, bytes(plaintext), associated_data)
        return nonce + tag + ciphertext

    def split(self, blob: bytes) -> Tuple[bytes, bytes, bytes]:
        """Return ``(nonce, tag, ciphertext)`` or raise MalformedEnvelope."""
        n, t = self.cipher.nonce_size, self.cipher.tag_size
        if len(blob) < n + t:
            raise MalformedEnvelope(
                f"envelope is {len(blob)} bytes, shorter than the {n + t}-byte header"
            )
        return blob[:n], blob[n:n + t], blob[n + t:]

    def open(self, key: KeyMaterial, blob: bytes, associated_data: Optional[bytes] = None) -> bytes:
        raw = _check_key(self.cipher, key, KeyUsage.DECRYPT)
        nonce, tag, ciphertext = self.split(bytes(blob))
        try:
            return self.cipher.decrypt(raw, nonce, ciphertext, tag, associated_data)
        except InvalidTag as exc:
            raise AuthenticationFailed("envelope authentication failed") from exc
        except ValueError as exc:
            # unauthenticated modes surface corruption as padding errors
            raise MalformedEnvelope(f"envelope could not be decoded: {exc}") from exc

    def sealer(self, key: KeyMaterial, associated_data: Optional[bytes] = None) -> "StreamSealer":
        return StreamSealer(key, self.cipher, associated_data)

    def opener(self, key: KeyMaterial, associated_data: Optional[bytes] = None) -> "StreamOpener":
        return StreamOpener(key, self.cipher, associated_data)


class StreamSealer:
    """Incremental sealing: ``update(chunk)`` repeatedly, then ``finish()`` once."""

    def __init__(self, key: KeyMaterial, cipher: Optional[SymmetricCipher] = None,
                 associated_data: Optional[bytes] = None):
        self.cipher = cipher if cipher is not None else AesGcmCipher()
        raw = _check_key(self.cipher, key, KeyUsage.ENCRYPT)
        self.nonce = os.urandom(self.cipher.nonce_size)
        self._ctx = self.cipher.encryptor(raw, self.nonce, associated_data)
        self._done = False

    def update(self, chunk: bytes) -> bytes:
        if self._done:
            raise RuntimeError("sealer already finished")
        return self._ctx.update(chunk)

    def finish(self) -> Tuple[bytes, bytes]:
        """Return ``(trailing ciphertext, tag)``."""
        if self._done:
            raise RuntimeError("sealer already finished")
        self._done = True
        tail = self._ctx.finalize()
        return tail, self._ctx.tag if self.cipher.authenticated else b""


class StreamOpener:
    """Incremental opening of an envelope fed as arbitrary chunks.

    The header is buffered from the first chunks; everything after it is
    decrypted as it arrives. Authentication is only settled by finish().
    """

    def __init__(self, key: KeyMaterial, cipher: Optional[SymmetricCipher] = None,
                 associated_data: Optional[bytes] = None):
        self.cipher = cipher if cipher is not None else AesGcmCipher()
        self._raw = _check_key(self.cipher, key, KeyUsage.DECRYPT)
        self._aad = associated_data
        self._header = bytearray()
        self._ctx = None
        self._done = False

    def update(self, chunk: bytes) -> bytes:
        if self._done:
            raise RuntimeError("opener already finished")
        if self._ctx is None:
            need = self.cipher.header_size - len(self._header)
            self._header += chunk[:need]
            chunk = chunk[need:]
            if len(self._header) < self.cipher.header_size:
                return b""
            n = self.cipher.nonce_size
            nonce, tag = bytes(self._header[:n]), bytes(self._header[n:])
            self._ctx = self.cipher.decryptor(self._raw, nonce, tag, self._aad)
        if not chunk:
            return b""
        return self._ctx.update(chunk)

    def finish(self) -> bytes:
        if self._done:
            raise RuntimeError("opener already finished")
        self._done = True
        if self._ctx is None:
            raise MalformedEnvelope(
                f"stream ended after {len(self._header)} bytes, "
                f"shorter than the {self.cipher.header_size}-byte header"
            )
        try:
            return self._ctx.finalize()
        except InvalidTag as exc:
            raise AuthenticationFailed("stream authentication failed") from exc
        except ValueError as exc:
            raise MalformedEnvelope(f"stream could not be decoded: {exc}") from exc


def _read_source(source, chunk_size: int):
    # Anything the source raises while being consumed is an I/O failure.
    chunks = iter(iter_chunks(source, chunk_size))
    while True:
        try:
            chunk = next(chunks)
        except StopIteration:
            return
        except Exception as exc:
            raise IOFailure(f"failed reading source stream: {exc}") from exc
        yield chunk


def _write(destination: BinaryIO, data: bytes) -> None:
    if not data:
        return
    try:
        destination.write(data)
    except (OSError, ValueError) as exc:
        raise IOFailure(f"failed writing destination stream: {exc}") from exc


def seal_stream(
    key: KeyMaterial,
    source,
    destination: BinaryIO,
    cipher: Optional[SymmetricCipher] = None,
    associated_data: Optional[bytes] = None,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """
    Seal ``source`` (readable or iterable of chunks) into ``destination``.

    Returns the number of bytes written. On any failure no tag is written and
    whatever reached ``destination`` is invalid.
    """
    sealer = StreamSealer(key, cipher, associated_data)
    tag_size = sealer.cipher.tag_size

    try:
        seekable = destination.seekable()
    except (AttributeError, io.UnsupportedOperation):
        seekable = False
    except (OSError, ValueError) as exc:
        raise IOFailure(f"destination stream unusable: {exc}") from exc
    if tag_size and not seekable:
        raise IOFailure("destination must be seekable to back-fill the tag")

    try:
        start = destination.tell() if seekable else 0
    except (OSError, ValueError) as exc:
        raise IOFailure(f"failed positioning destination stream: {exc}") from exc

    written = 0
    _write(destination, sealer.nonce)
    _write(destination, b"\x00" * tag_size)
    written += len(sealer.nonce) + tag_size

    for chunk in _read_source(source, chunk_size):
        out = sealer.update(chunk)
        _write(destination, out)
        written += len(out)

    tail, tag = sealer.finish()
    _write(destination, tail)
    written += len(tail)

    if tag_size:
        try:
            end = destination.tell()
            destination.seek(start + len(sealer.nonce))
            destination.write(tag)
            destination.seek(end)
        except (OSError, ValueError) as exc:
            raise IOFailure(f"failed writing tag: {exc}") from exc
    logger.debug("sealed stream: %d bytes written", written)
    return written


def open_stream(
    key: KeyMaterial,
    source,
    destination: BinaryIO,
    cipher: Optional[SymmetricCipher] = None,
    associated_data: Optional[bytes] = None,
    chunk_size: int = CHUNK_SIZE,
) -> int:
    """
    Open an envelope read from ``source`` into ``destination``.

    Returns the number of plaintext bytes written. Raises MalformedEnvelope,
    AuthenticationFailed or IOFailure; after any of them the destination
    content must be discarded.
    """
    opener = StreamOpener(key, cipher, associated_data)
    written = 0
    for chunk in _read_source(source, chunk_size):
        out = opener.update(chunk)
        _write(destination, out)
        written += len(out)
    tail = opener.finish()
    _write(destination, tail)
    return written + len(tail)


_default_envelope = Envelope()


def seal(key: KeyMaterial, plaintext: bytes, associated_data: Optional[bytes] = None) -> bytes:
    """Seal with the default AES-256-GCM scheme."""
    return _default_envelope.seal(key, plaintext, associated_data)


def open_(key: KeyMaterial, blob: bytes, associated_data: Optional[bytes] = None) -> bytes:
    """Open a blob produced by :func:`seal`."""
    return _default_envelope.open(key, blob, associated_data)
