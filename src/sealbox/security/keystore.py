"""OS keystore integration using keyring.

Binary keys are stored base64-encoded under a service/account pair; the
:class:`KeyringStore` adapter stores JSON documents the same way so profile
records can live in the OS keystore instead of on disk. Do not assume keyring
provides hardware-backed security on all platforms.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Iterator, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from sealbox.core.exceptions import IOFailure, KeyFormatError
from sealbox.core.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_SERVICE = "sealbox"


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because keyring exposes different backends across
    platforms.
    """
    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File", "Null", "Fail")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


def save_key(service: str, account: str, key_bytes: bytes) -> None:
    """Persist binary key_bytes in the OS keystore under (service, account)."""
    secret = base64.b64encode(bytes(key_bytes)).decode("ascii")
    try:
        keyring.set_password(service, account, secret)
    except KeyringError as exc:
        raise IOFailure(f"failed to write key to OS keystore: {exc}") from exc


def load_key(service: str, account: str) -> Optional[bytes]:
    """Load a persisted key; returns raw bytes or None if nothing is stored."""
    try:
        secret = keyring.get_password(service, account)
    except KeyringError as exc:
        raise IOFailure(f"failed to read key from OS keystore: {exc}") from exc
    if secret is None:
        return None
    try:
        return base64.b64decode(secret, validate=True)
    except binascii.Error as exc:
        raise KeyFormatError(f"stored key for {service}/{account} is not valid base64") from exc


def delete_key(service: str, account: str) -> bool:
    """Remove the key; return False if there was nothing to remove."""
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        return False
    except KeyringError as exc:
        raise IOFailure(f"failed to delete key from OS keystore: {exc}") from exc
    return True


class KeyringStore(KeyValueStore):
    """
    KeyValueStore over the OS keystore, one JSON document per account.

    keyring cannot enumerate accounts, so the store keeps its own index of
    keys under a reserved account. Refuses backends that look insecure
    unless ``force`` is set.
    """

    INDEX_ACCOUNT = "__sealbox_index__"

    def __init__(self, service: str = DEFAULT_SERVICE, force: bool = False):
        secure, msg = assess_keyring_backend()
        if not secure:
            if not force:
                raise IOFailure(
                    f"refusing to use OS keystore: {msg}; "
                    "pass force=True to override if you understand the risk"
                )
            logger.warning("using OS keystore despite backend check: %s", msg)
        self.service = service

    def _read(self, account: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service, account)
        except KeyringError as exc:
            raise IOFailure(f"failed to read {account} from OS keystore: {exc}") from exc

    def _write(self, account: str, value: str) -> None:
        try:
            keyring.set_password(self.service, account, value)
        except KeyringError as exc:
            raise IOFailure(f"failed to write {account} to OS keystore: {exc}") from exc

    def _index(self) -> list:
        raw = self._read(self.INDEX_ACCOUNT)
        return json.loads(raw) if raw else []

    def _check_key(self, key: str) -> None:
        if not key or key == self.INDEX_ACCOUNT:
            raise ValueError(f"invalid store key: {key!r}")

    def get(self, key: str) -> Optional[Any]:
        self._check_key(key)
        raw = self._read(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise IOFailure(f"stored value for {key} is not JSON: {exc}") from exc

    def put(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is not None:
            raise ValueError("KeyringStore does not support expiring entries")
        self._check_key(key)
        self._write(key, json.dumps(value))
        index = self._index()
        if key not in index:
            index.append(key)
            self._write(self.INDEX_ACCOUNT, json.dumps(sorted(index)))

    def delete(self, key: str) -> bool:
        self._check_key(key)
        removed = delete_key(self.service, key)
        index = self._index()
        if key in index:
            index.remove(key)
            self._write(self.INDEX_ACCOUNT, json.dumps(index))
        return removed

    def keys(self) -> Iterator[str]:
        return iter(self._index())
