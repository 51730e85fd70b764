"""Runtime settings for Sealbox, read from the environment."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import os

from .models import DerivationParams, ARGON2_VERSION


ENV_PREFIX = "SEALBOX_"


@dataclass(frozen=True)
class Settings:
    """
    Tunables for key derivation, sessions and stores.

    Only new profiles pick up the Argon2 costs from here; existing profiles
    always re-derive with the parameters persisted alongside them.
    """

    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536
    argon2_parallelism: int = 1
    session_ttl: int = 300
    ephemeral_ttl: int = 60
    store_path: Path = Path.home() / ".sealbox"
    log_level: str = "INFO"

    def derivation_params(self, output_length: int = 64) -> DerivationParams:
        return DerivationParams(
            time_cost=self.argon2_time_cost,
            memory_cost=self.argon2_memory_cost,
            parallelism=self.argon2_parallelism,
            output_length=output_length,
            version=ARGON2_VERSION,
        )


def _int_from_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from ``SEALBOX_*`` environment variables.

    Recognised variables: ``SEALBOX_ARGON2_TIME_COST``,
    ``SEALBOX_ARGON2_MEMORY_COST``, ``SEALBOX_ARGON2_PARALLELISM``,
    ``SEALBOX_SESSION_TTL``, ``SEALBOX_EPHEMERAL_TTL``,
    ``SEALBOX_STORE_PATH`` and ``SEALBOX_LOG_LEVEL``.
    """
    if environ is None:
        environ = os.environ
    defaults = Settings()

    store_path = environ.get(ENV_PREFIX + "STORE_PATH")
    settings = Settings(
        argon2_time_cost=_int_from_env(environ, "ARGON2_TIME_COST", defaults.argon2_time_cost),
        argon2_memory_cost=_int_from_env(environ, "ARGON2_MEMORY_COST", defaults.argon2_memory_cost),
        argon2_parallelism=_int_from_env(environ, "ARGON2_PARALLELISM", defaults.argon2_parallelism),
        session_ttl=_int_from_env(environ, "SESSION_TTL", defaults.session_ttl),
        ephemeral_ttl=_int_from_env(environ, "EPHEMERAL_TTL", defaults.ephemeral_ttl),
        store_path=Path(store_path).expanduser() if store_path else defaults.store_path,
        log_level=environ.get(ENV_PREFIX + "LOG_LEVEL", defaults.log_level),
    )
    # Fail at load time rather than at first signup.
    settings.derivation_params()
    return settings
