"""
Base data models for key material, derivation parameters and user profiles
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Iterable, Optional
import hmac
import os

from .exceptions import KeyTypeMismatch


PROFILE_VERSION = 1
ARGON2_VERSION = 0x13
SALT_LENGTH = 16


class Algorithm(Enum):
    # Algorithms a piece of KeyMaterial may be bound to
    AES_128_GCM = "AES-128-GCM"
    AES_256_GCM = "AES-256-GCM"
    AES_256_CBC = "AES-256-CBC"
    AES_128_KW = "AES-128-KW"
    AES_256_KW = "AES-256-KW"


class KeyUsage(Enum):
    # Capabilities a key is scoped to
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"
    WRAP = "wrap"
    UNWRAP = "unwrap"
    SIGN = "sign"
    VERIFY = "verify"


KEY_SIZES = {
    Algorithm.AES_128_GCM: 16,
    Algorithm.AES_256_GCM: 32,
    Algorithm.AES_256_CBC: 32,
    Algorithm.AES_128_KW: 16,
    Algorithm.AES_256_KW: 32,
}

_DATA_USAGES = frozenset({KeyUsage.ENCRYPT, KeyUsage.DECRYPT})
_WRAP_USAGES = frozenset({KeyUsage.WRAP, KeyUsage.UNWRAP})

ALLOWED_USAGES = {
    Algorithm.AES_128_GCM: _DATA_USAGES,
    Algorithm.AES_256_GCM: _DATA_USAGES,
    Algorithm.AES_256_CBC: _DATA_USAGES,
    Algorithm.AES_128_KW: _WRAP_USAGES,
    Algorithm.AES_256_KW: _WRAP_USAGES,
}


def _utcnow():
    return datetime.now(timezone.utc)


class KeyMaterial:
    """
    Fixed-length symmetric key bound to one algorithm and a usage set.

    The bytes live in a private ``bytearray`` so :meth:`wipe` can zero them;
    use the instance as a context manager to wipe on exit. ``raw`` returns a
    copy, so callers that keep it are responsible for it.
    """

    __slots__ = ("algorithm", "usages", "_buffer", "_wiped")

    def __init__(self, key_bytes, algorithm, usages: Optional[Iterable] = None):
        algorithm = Algorithm(algorithm)
        expected = KEY_SIZES[algorithm]
        if len(key_bytes) != expected:
            raise KeyTypeMismatch(
                f"{algorithm.value} needs a {expected}-byte key, got {len(key_bytes)} bytes"
            )

        allowed = ALLOWED_USAGES[algorithm]
        if usages is None:
            usages = allowed
        usages = frozenset(KeyUsage(u) for u in usages)
        if not usages:
            raise ValueError("key material needs at least one usage")
        disallowed = usages - allowed
        if disallowed:
            names = ", ".join(sorted(u.value for u in disallowed))
            raise KeyTypeMismatch(f"{algorithm.value} keys cannot be used to {names}")

        self.algorithm = algorithm
        self.usages = usages
        self._buffer = bytearray(key_bytes)
        self._wiped = False

    @classmethod
    def generate(cls, algorithm=Algorithm.AES_256_GCM, usages=None) -> "KeyMaterial":
        """Return fresh random key material from the OS CSPRNG."""
        algorithm = Algorithm(algorithm)
        return cls(os.urandom(KEY_SIZES[algorithm]), algorithm, usages)

    @property
    def raw(self) -> bytes:
        if self._wiped:
            raise ValueError("key material has been wiped")
        return bytes(self._buffer)

    @property
    def wiped(self) -> bool:
        return self._wiped

    def require(self, algorithm=None, usage=None) -> "KeyMaterial":
        """Raise KeyTypeMismatch unless this key fits ``algorithm`` and ``usage``."""
        if algorithm is not None and self.algorithm is not Algorithm(algorithm):
            raise KeyTypeMismatch(
                f"expected a {Algorithm(algorithm).value} key, got {self.algorithm.value}"
            )
        if usage is not None and KeyUsage(usage) not in self.usages:
            raise KeyTypeMismatch(
                f"{self.algorithm.value} key is not allowed to {KeyUsage(usage).value}"
            )
        return self

    def wipe(self) -> None:
        """Overwrite the key bytes with zeros."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._wiped = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.wipe()
        return False

    def __len__(self):
        return len(self._buffer)

    def __eq__(self, other):
        if not isinstance(other, KeyMaterial):
            return NotImplemented
        return self.algorithm is other.algorithm and hmac.compare_digest(
            bytes(self._buffer), bytes(other._buffer)
        )

    __hash__ = None

    def __repr__(self):
        usages = ",".join(sorted(u.value for u in self.usages))
        state = " wiped" if self._wiped else ""
        return f"KeyMaterial(algorithm={self.algorithm.value!r}, usages={usages!r}{state})"


@dataclass(frozen=True)
class DerivationParams:
    """
    Explicit Argon2id parameters.

    Every field must be stored next to whatever consumes the derived key:
    re-deriving with different values gives a different key, so nothing here
    is ever defaulted at decrypt time.
    """

    time_cost: int
    memory_cost: int
    parallelism: int
    output_length: int
    version: int
    kdf: str = "argon2id"

    MIN_TIME_COST = 3
    MIN_MEMORY_COST = 4096
    MIN_PARALLELISM = 1
    MIN_OUTPUT_LENGTH = 16

    def __post_init__(self):
        if self.kdf != "argon2id":
            raise ValueError(f"unsupported kdf: {self.kdf!r}")
        if self.time_cost < self.MIN_TIME_COST:
            raise ValueError(f"time_cost must be >= {self.MIN_TIME_COST}")
        if self.memory_cost < self.MIN_MEMORY_COST:
            raise ValueError(f"memory_cost must be >= {self.MIN_MEMORY_COST} KiB")
        if self.parallelism < self.MIN_PARALLELISM:
            raise ValueError(f"parallelism must be >= {self.MIN_PARALLELISM}")
        if self.output_length < self.MIN_OUTPUT_LENGTH:
            raise ValueError(f"output_length must be >= {self.MIN_OUTPUT_LENGTH}")
        if self.version not in (0x10, 0x13):
            raise ValueError(f"unsupported argon2 version: {self.version:#x}")

    def with_output_length(self, output_length: int) -> "DerivationParams":
        return DerivationParams(
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            output_length=output_length,
            version=self.version,
            kdf=self.kdf,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kdf": self.kdf,
            "time": self.time_cost,
            "memory": self.memory_cost,
            "parallelism": self.parallelism,
            "length": self.output_length,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DerivationParams":
        # No .get() fallbacks: a missing field is corrupt data, not a default.
        missing = [k for k in ("kdf", "time", "memory", "parallelism", "length", "version") if k not in data]
        if missing:
            raise ValueError(f"derivation params missing fields: {', '.join(missing)}")
        return cls(
            time_cost=int(data["time"]),
            memory_cost=int(data["memory"]),
            parallelism=int(data["parallelism"]),
            output_length=int(data["length"]),
            version=int(data["version"]),
            kdf=data["kdf"],
        )


class UserProfile:
    """
        Persisted record needed to recover a user's working key
    """

    __slots__ = (
        "user_id",
        "salt",
        "wrapped_key",
        "verifier",
        "params",
        "key_algorithm",
        "version",
        "created_at",
        "rotated_at",
    )

    def __init__(
        self,
        user_id,
        salt,
        wrapped_key,
        verifier,
        params,
        key_algorithm=Algorithm.AES_256_GCM,
        version=PROFILE_VERSION,
        created_at=None,
        rotated_at=None,
    ):
        """
            Initialize UserProfile
        """
        if len(salt) != SALT_LENGTH:
            raise ValueError(f"salt must be {SALT_LENGTH} bytes")
        self.user_id = user_id
        self.salt = bytes(salt)
        self.wrapped_key = bytes(wrapped_key)
        self.verifier = bytes(verifier)
        self.params = params
        self.key_algorithm = Algorithm(key_algorithm)
        self.version = version
        self.created_at = created_at if created_at is not None else _utcnow()
        self.rotated_at = rotated_at

    def to_dict(self):
        """
            Convert profile to dict
        """
        return {
            "version": self.version,
            "user_id": self.user_id,
            "salt": self.salt.hex(),
            "wrapped_key": self.wrapped_key.hex(),
            "verifier": self.verifier.hex(),
            "params": self.params.to_dict(),
            "key_algorithm": self.key_algorithm.value,
            "created_at": self.created_at.isoformat(),
            "rotated_at": self.rotated_at.isoformat() if self.rotated_at else None,
        }

    @classmethod
    def from_dict(cls, data):
        """
            Create profile from dict
        """
        version = data.get("version")
        if version != PROFILE_VERSION:
            raise ValueError(f"unsupported profile version: {version!r}")

        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        rotated_at = data.get("rotated_at")
        if isinstance(rotated_at, str):
            rotated_at = datetime.fromisoformat(rotated_at)

        return cls(
            user_id=data["user_id"],
            salt=bytes.fromhex(data["salt"]),
            wrapped_key=bytes.fromhex(data["wrapped_key"]),
            verifier=bytes.fromhex(data["verifier"]),
            params=DerivationParams.from_dict(data["params"]),
            key_algorithm=Algorithm(data["key_algorithm"]),
            version=version,
            created_at=created_at,
            rotated_at=rotated_at,
        )

    def __repr__(self):
        """
            String representation
        """
        return f"UserProfile(user_id={self.user_id!r}, version={self.version})"
