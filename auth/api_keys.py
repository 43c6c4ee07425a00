"""
auth/api_keys.py -- API key minting, validation and revocation (ApiKeyRegistry).

Key format: "<prefix><64 hex chars>", e.g. sk_3f9a... secrets.token_hex(32)
gives 256 bits of entropy. The recognizable prefix lets secret scanners and
humans spot a leaked key.

Storage:
  - key_hash: bcrypt digest via CredentialVault, same primitive as passwords.
  - key_prefix: first 12 chars of the raw key, display only.
  - The raw key is returned ONCE from create() and never again.

Validation:
  In-memory backend -- O(1) through the plaintext index (store.lookup_secret).
  Durable backends -- no plaintext index; candidates sharing the 12-char
  prefix are bcrypt-verified one by one.
  Either way the key must still be active and, if it has expires_at, not past
  it. Expiry is evaluated lazily here; nothing sweeps expired keys.

IDOR guard: revoke() refuses keys owned by another account and reports it
exactly like a missing key.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from auth.activity import ActivityLedger, utcnow
from auth.errors import ValidationError
from auth.models import ApiKey
from auth.store import Storage
from auth.vault import CredentialVault

logger = logging.getLogger("authguard.api_keys")

DEFAULT_PREFIX = "sk_"
PREFIX_LENGTH = 12
NAME_MAX_LENGTH = 100


class ApiKeyRegistry:
    def __init__(
        self,
        store: Storage,
        vault: CredentialVault,
        ledger: ActivityLedger,
        key_prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._vault = vault
        self._ledger = ledger
        self._key_prefix = key_prefix
        self._clock = clock
        self._lock = threading.Lock()

    def generate_secret(self) -> str:
        return f"{self._key_prefix}{secrets.token_hex(32)}"

    def create(self, account_id: str, name: str, expires_at: datetime | None = None) -> tuple[ApiKey, str]:
        """Mint a key for account_id. Returns (record, raw_key); raw_key is shown once.

        Raises:
            ValidationError: name is empty or longer than 100 characters.
        """
        if not isinstance(name, str) or not name:
            raise ValidationError("API key name is required")
        if len(name) > NAME_MAX_LENGTH:
            raise ValidationError("Name too long", detail=f"max {NAME_MAX_LENGTH} characters")
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)

        raw_key = self.generate_secret()
        api_key = ApiKey(
            id=str(uuid.uuid4()),
            account_id=account_id,
            name=name,
            key_hash=self._vault.hash(raw_key),
            key_prefix=raw_key[:PREFIX_LENGTH],
            created_at=self._clock(),
            expires_at=expires_at,
            last_used=None,
            is_active=True,
        )
        self._store.add_api_key(api_key)
        self._store.index_secret(raw_key, account_id, api_key.id)
        self._ledger.append(account_id, f'API key "{name}" created')
        logger.info("API key created account=%s key=%s prefix=%s", account_id, api_key.id, api_key.key_prefix)
        return api_key, raw_key

    def list(self, account_id: str) -> list[ApiKey]:
        """Active keys only, newest first."""
        return self._store.list_active_api_keys(account_id)

    def revoke(self, account_id: str, key_id: str) -> bool:
        """Deactivate a key and forget its plaintext index entry.

        Returns False if the key does not exist, belongs to another account,
        or is already revoked.
        """
        with self._lock:
            api_key = self._store.get_api_key(key_id)
            if api_key is None or api_key.account_id != account_id or not api_key.is_active:
                return False
            self._store.update_api_key(key_id, is_active=False)
            self._store.unindex_key(key_id)
        self._ledger.append(account_id, f'API key "{api_key.name}" revoked')
        logger.info("API key revoked account=%s key=%s", account_id, key_id)
        return True

    def validate(self, raw_key: str) -> tuple[str, str] | None:
        """Resolve a presented key to (account_id, key_id), or None.

        Repeatable: validating does not consume the key. A successful call
        stamps last_used.
        """
        if not isinstance(raw_key, str) or not raw_key.startswith(self._key_prefix):
            return None
        api_key = self._resolve(raw_key)
        if api_key is None or not api_key.is_active:
            return None
        now = self._clock()
        if api_key.expires_at is not None and api_key.expires_at < now:
            logger.info("Expired API key presented key=%s", api_key.id)
            return None
        with self._lock:
            self._store.update_api_key(api_key.id, last_used=now)
        return api_key.account_id, api_key.id

    def _resolve(self, raw_key: str) -> ApiKey | None:
        if self._store.supports_secret_index:
            mapping = self._store.lookup_secret(raw_key)
            if mapping is None:
                return None
            return self._store.get_api_key(mapping[1])
        for candidate in self._store.find_api_keys_by_prefix(raw_key[:PREFIX_LENGTH]):
            if self._vault.verify(raw_key, candidate.key_hash):
                return candidate
        return None
