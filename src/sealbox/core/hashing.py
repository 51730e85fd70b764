""" Utility for SHA-2 hashing of bytes, files and streams. """

import base64
import hashlib
from pathlib import Path
from typing import Iterable, Optional, Union

from .exceptions import IOFailure


CHUNK_SIZE = 65536  # 64KB

SUPPORTED_ALGORITHMS = ("sha256", "sha384", "sha512")


def _new(algorithm: str):
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"unsupported hash algorithm: {algorithm!r}")
    return hashlib.new(algorithm)


def _render(raw: bytes, encoding: Optional[str]) -> Union[bytes, str]:
    if encoding is None:
        return raw
    if encoding == "hex":
        return raw.hex()
    if encoding == "base64":
        return base64.b64encode(raw).decode("ascii")
    if encoding == "base64url":
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
    raise ValueError(f"unsupported encoding: {encoding!r}")


def iter_chunks(source, chunk_size: int = CHUNK_SIZE):
    """Yield chunks from a readable object or pass an iterable of chunks through."""
    if hasattr(source, "read"):
        while True:
            data = source.read(chunk_size)
            if not data:
                break
            yield data
    else:
        yield from source


def digest(data: bytes, algorithm: str = "sha256", encoding: Optional[str] = None):
    h = _new(algorithm)
    h.update(data)
    return _render(h.digest(), encoding)


def sha256_stream(source: Iterable[bytes], encoding: Optional[str] = None, algorithm: str = "sha256"):
    """
    Hash a readable stream or an iterable of byte chunks incrementally.

    Read errors are re-raised as IOFailure; nothing is returned for a
    partially consumed source.
    """
    h = _new(algorithm)
    try:
        for chunk in iter_chunks(source):
            h.update(chunk)
    except OSError as exc:
        raise IOFailure(f"failed reading source while hashing: {exc}") from exc
    return _render(h.digest(), encoding)


def calculate_sha256(file_path: Path) -> str:

    # Calculates the SHA-256 hash of a file.

    try:
        with open(file_path, 'rb') as f:
            return sha256_stream(f, encoding="hex")
    except OSError as exc:
        raise IOFailure(f"failed to open {file_path}: {exc}") from exc


def calculate_sha256_bytes(data: bytes) -> str:
    return digest(data, "sha256", encoding="hex")
