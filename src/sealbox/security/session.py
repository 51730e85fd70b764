"""In-memory session holding one unlocked key with auto-lock.

get_key() returns the key while the session is unlocked and not expired;
otherwise it raises SessionLockedError. An expired session locks itself on the
next access. lock() wipes the held key. Sessions are plain objects, one per
caller; nothing here is process-wide.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from sealbox.core.exceptions import IOFailure, SessionLockedError
from sealbox.core.models import Algorithm, KeyMaterial
from .keystore import assess_keyring_backend, delete_key, load_key, save_key

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 300


class SessionManager:
    def __init__(self, ttl_seconds: float = DEFAULT_SESSION_TTL):
        self.ttl_seconds = ttl_seconds
        self._key: Optional[KeyMaterial] = None
        self._expires_at: Optional[float] = None
        self.user_id: Optional[str] = None

    @property
    def unlocked(self) -> bool:
        return self._key is not None and not self._expired()

    def _expired(self) -> bool:
        return self._expires_at is not None and time.time() > self._expires_at

    def unlock_with_key(self, key: KeyMaterial, ttl_seconds: Optional[float] = None) -> None:
        """Unlock with an already-recovered key, replacing any held key."""
        if not isinstance(key, KeyMaterial):
            raise TypeError("key must be KeyMaterial")
        if self._key is not None and self._key is not key:
            self._key.wipe()
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        self._key = key
        self._expires_at = time.time() + float(ttl)

    def unlock_with_profile(self, manager, user_id: str, passphrase,
                            ttl_seconds: Optional[float] = None) -> None:
        """Unlock with the key recovered from ``manager``'s profile for user_id."""
        key = manager.unlock(user_id, passphrase)
        self.unlock_with_key(key, ttl_seconds)
        self.user_id = user_id
        logger.info("session unlocked for %s", user_id)

    def get_key(self) -> KeyMaterial:
        if self._key is None:
            raise SessionLockedError("session is locked")
        if self._expired():
            # auto-lock on expiry
            self.lock()
            raise SessionLockedError("session expired and was locked")
        return self._key

    def extend(self, extra_seconds: float) -> None:
        """Push the expiry back by extra_seconds."""
        self.get_key()
        self._expires_at = (self._expires_at or time.time()) + float(extra_seconds)

    def lock(self) -> None:
        """Wipe the held key and lock the session."""
        try:
            if self._key is not None:
                self._key.wipe()
        finally:
            self._key = None
            self._expires_at = None
            self.user_id = None

    def persist_to_keyring(self, service: str, account: str, force: bool = False) -> None:
        """Store the held key in the OS keystore, refusing insecure backends unless forced."""
        key = self.get_key()
        if not force:
            secure, msg = assess_keyring_backend()
            if not secure:
                raise IOFailure(
                    f"refusing to persist key to OS keystore: {msg}; "
                    "pass force=True to override if you understand the risk"
                )
        save_key(service, account, key.raw)

    def load_from_keyring(self, service: str, account: str,
                          algorithm=Algorithm.AES_256_GCM,
                          ttl_seconds: Optional[float] = None) -> None:
        """Unlock with a key previously persisted to the OS keystore."""
        raw = load_key(service, account)
        if raw is None:
            raise SessionLockedError("no key found in OS keystore for given service/account")
        self.unlock_with_key(KeyMaterial(raw, algorithm), ttl_seconds)

    def delete_from_keyring(self, service: str, account: str) -> bool:
        return delete_key(service, account)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.lock()
        return False
