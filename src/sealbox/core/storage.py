"""
Key-value stores injected into profile and key-agreement components

Structure Map for JsonFileStore:
==============================
 - <root>/
      - {key}.json
==============================

MemoryStore keeps entries in-process and can expire them; it is what the
ephemeral key registry uses. JsonFileStore persists JSON documents, one file
per key, and is meant for profile records. Neither holds any state outside
its own instance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple
import json
import os
import re
import threading
import time

from .exceptions import IOFailure


_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]{1,128}$")


class KeyValueStore(ABC):
    """Minimal store interface: string keys, JSON-friendly values."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value or None."""

    @abstractmethod
    def put(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key; return whether something was removed."""

    @abstractmethod
    def keys(self) -> Iterator[str]:
        """Iterate over live keys."""

    def pop(self, key: str) -> Optional[Any]:
        value = self.get(key)
        if value is not None:
            self.delete(key)
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStore(KeyValueStore):
    """In-process store with optional per-entry expiry.

    Expired entries are dropped on access to them, on every put() and by
    purge(), so entries that are never read again do not accumulate.
    """

    def __init__(self, default_ttl: Optional[float] = None):
        self.default_ttl = default_ttl
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and time.time() > expires_at

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._expired(expires_at):
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        expires_at = time.time() + float(ttl) if ttl is not None else None
        with self._lock:
            self._sweep()
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def pop(self, key: str) -> Optional[Any]:
        # atomic, so two callers can't both consume one entry
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            return None
        return value

    def keys(self) -> Iterator[str]:
        with self._lock:
            live = [k for k, (_, exp) in self._entries.items() if not self._expired(exp)]
        return iter(live)

    def purge(self) -> int:
        """Drop every expired entry; return how many were removed."""
        with self._lock:
            return self._sweep()

    def _sweep(self) -> int:
        # caller holds the lock
        dead = [k for k, (_, exp) in self._entries.items() if self._expired(exp)]
        for k in dead:
            del self._entries[k]
        return len(dead)

    def __len__(self):
        return sum(1 for _ in self.keys())


class JsonFileStore(KeyValueStore):
    """Persist JSON documents as ``<root>/<key>.json``.

    TTLs are not supported; profiles live until explicitly deleted.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        # Keys become file names, so keep them to a safe alphabet.
        if not _KEY_PATTERN.match(key) or key in (".", ".."):
            raise ValueError(f"invalid store key: {key!r}")
        return self.root / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise IOFailure(f"failed to read {path}: {exc}") from exc

    def put(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is not None:
            raise ValueError("JsonFileStore does not support expiring entries")
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as exc:
            raise IOFailure(f"failed to write {path}: {exc}") from exc

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            raise IOFailure(f"failed to delete {path}: {exc}") from exc
        return True

    def keys(self) -> Iterator[str]:
        return iter(sorted(p.stem for p in self.root.glob("*.json")))
