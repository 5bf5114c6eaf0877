"""
SecureShare - User Registry

Keeps one record per user in a key-value store:

    user:<id> -> {"id": ..., "public_key": <base64 SPKI>,
                  "vault_entry": {"ciphertext": ..., "iv": ...}}

The private key only ever exists here in its sealed form. Password changes
re-seal it and replace the record with a single put.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterable

from . import crypto
from .crypto import EncryptedBlob, SymmetricKey
from .errors import InvalidInputKind

logger = logging.getLogger(__name__)

USER_KEY_PREFIX = "user:"


@dataclass
class User:
    id: str
    public_key: str
    vault_entry: EncryptedBlob

    def to_json(self) -> str:
        return json.dumps({
            "id": self.id,
            "public_key": self.public_key,
            "vault_entry": self.vault_entry.to_dict(),
        }, sort_keys=True)

    @classmethod
    def from_json(cls, text) -> "User":
        if isinstance(text, bytes):
            text = text.decode('utf-8')
        try:
            data = json.loads(text)
            return cls(
                id=data["id"],
                public_key=data["public_key"],
                vault_entry=EncryptedBlob.from_dict(data["vault_entry"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidInputKind(f"Invalid user record: {e}") from e


class UserRegistry:
    """
    Registry of users, their public keys and sealed private keys.

    Usage:
        registry = UserRegistry(MemoryKeyStore())
        key = crypto.derive_key_from_password("hunter2", "salt")
        alice = registry.register_user("alice", key)
        private_key_raw = registry.unlock_private_key("alice", key)
    """

    def __init__(self, store):
        self.store = store

    def register_user(self, user_id: str, derived_key: SymmetricKey) -> User:
        """
        Provision a key pair for a new user and store the sealed private key.

        Raises:
            ValueError: If the user already exists
        """
        if not user_id or not user_id.strip():
            raise ValueError("User id is required")
        if self.store.get(self._key(user_id)) is not None:
            raise ValueError(f"User {user_id} already exists")

        pair = crypto.generate_key_pair()
        user = User(
            id=user_id,
            public_key=pair.public_key,
            vault_entry=crypto.seal_private_key(pair.private_key_raw, derived_key),
        )
        self.store.put(self._key(user_id), user.to_json())
        logger.debug("Registered user %s", user_id)
        return user

    def get_user(self, user_id: str) -> User:
        raw = self.store.get(self._key(user_id))
        if raw is None:
            raise KeyError(f"User {user_id} not found")
        return User.from_json(raw)

    def public_keys(self, user_ids: Iterable[str]) -> Dict[str, str]:
        """Map each user id to its base64 SPKI public key."""
        return {uid: self.get_user(uid).public_key for uid in user_ids}

    def unlock_private_key(self, user_id: str, derived_key: SymmetricKey) -> bytes:
        """Open the user's vault entry (AuthenticationFailure on wrong password)."""
        return crypto.open_private_key(self.get_user(user_id).vault_entry, derived_key)

    def change_password(
        self,
        user_id: str,
        old_key: SymmetricKey,
        new_key: SymmetricKey
    ) -> User:
        """
        Re-seal a user's private key under a new derived key.

        The stored record is only replaced after the re-seal succeeded.
        Callers must not run two changes for the same user at once.
        """
        user = self.get_user(user_id)
        user.vault_entry = crypto.rekey_private_key(user.vault_entry, old_key, new_key)
        self.store.put(self._key(user_id), user.to_json())
        logger.info("Re-keyed vault entry for user %s", user_id)
        return user

    @staticmethod
    def _key(user_id: str) -> str:
        return USER_KEY_PREFIX + user_id
