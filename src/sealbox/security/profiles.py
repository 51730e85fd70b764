"""User profiles: a per-user data key wrapped under the user's passphrase.

A profile stores the salt, wrapped key, verifier and the exact derivation
parameters used. Unlocking always re-derives with the stored parameters;
new parameters only take effect on create or rotate.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterator, Optional

from sealbox.core.config import load_settings
from sealbox.core.exceptions import MalformedEnvelope, ProfileExistsError, ProfileNotFoundError
from sealbox.core.models import Algorithm, DerivationParams, KeyMaterial, UserProfile
from sealbox.core.storage import KeyValueStore
from .keywrap import PassphraseKeyWrapper, PassphraseWrap

logger = logging.getLogger(__name__)


class ProfileManager:
    def __init__(
        self,
        store: KeyValueStore,
        params: Optional[DerivationParams] = None,
        wrapper: Optional[PassphraseKeyWrapper] = None,
    ):
        self.store = store
        self.params = params if params is not None else load_settings().derivation_params()
        self.wrapper = wrapper if wrapper is not None else PassphraseKeyWrapper(self.params)

    def exists(self, user_id: str) -> bool:
        return user_id in self.store

    def users(self) -> Iterator[str]:
        return self.store.keys()

    def load_profile(self, user_id: str) -> UserProfile:
        data = self.store.get(user_id)
        if data is None:
            raise ProfileNotFoundError(f"no profile for user {user_id!r}")
        try:
            return UserProfile.from_dict(data)
        except (KeyError, ValueError, TypeError) as exc:
            raise MalformedEnvelope(f"profile record for {user_id!r} is corrupt: {exc}") from exc

    def _save(self, profile: UserProfile) -> None:
        self.store.put(profile.user_id, profile.to_dict())

    def create(self, user_id: str, passphrase, algorithm=Algorithm.AES_256_GCM) -> KeyMaterial:
        """Create a profile with a fresh random key and return that key."""
        if self.exists(user_id):
            raise ProfileExistsError(f"profile for user {user_id!r} already exists")

        key = KeyMaterial.generate(algorithm)
        record = self.wrapper.wrap(passphrase, key)
        profile = UserProfile(
            user_id=user_id,
            salt=record.salt,
            wrapped_key=record.wrapped_key,
            verifier=record.verifier,
            params=record.params,
            key_algorithm=key.algorithm,
        )
        self._save(profile)
        logger.info("created profile for %s", user_id)
        return key

    def unlock(self, user_id: str, passphrase) -> KeyMaterial:
        """Recover the user's key; InvalidPassphrase on a wrong passphrase."""
        profile = self.load_profile(user_id)
        record = PassphraseWrap(
            salt=profile.salt,
            wrapped_key=profile.wrapped_key,
            verifier=profile.verifier,
            params=profile.params,
        )
        return self.wrapper.unwrap(passphrase, record, profile.key_algorithm)

    def rotate_passphrase(self, user_id: str, old_passphrase, new_passphrase) -> None:
        """Re-wrap the same key under a new passphrase, fresh salt and current params."""
        profile = self.load_profile(user_id)
        with self.unlock(user_id, old_passphrase) as key:
            record = self.wrapper.wrap(new_passphrase, key)

        profile.salt = record.salt
        profile.wrapped_key = record.wrapped_key
        profile.verifier = record.verifier
        profile.params = record.params
        profile.rotated_at = datetime.now(timezone.utc)
        self._save(profile)
        logger.info("rotated passphrase for %s", user_id)

    def delete(self, user_id: str) -> None:
        if not self.store.delete(user_id):
            raise ProfileNotFoundError(f"no profile for user {user_id!r}")
        logger.info("deleted profile for %s", user_id)
