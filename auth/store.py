"""
auth/store.py -- Storage contract and the in-memory backend.

Pattern: Repository. Storage is the abstract contract every backend honours;
InMemoryStorage keeps four dict-backed collections plus the plaintext API key
index. auth/sql_store.py implements the same contract on SQLAlchemy Core.
Registries and the directory never know which backend they are talking to.

Contract notes:
  - Records are copied on the way in and on the way out, so callers cannot
    mutate stored state by holding on to a returned dataclass.
  - Listing methods own their ordering: active sessions most-recently-active
    first, active API keys newest first, activity newest first with ties in
    reverse insertion order.
  - add_account() raises ConflictError when username or email is taken. The
    directory checks first; this is the backend's backstop.
  - The secret index (plaintext API key -> owner) exists only when
    supports_secret_index is True. Durable backends must not persist it and
    instead resolve keys by prefix + bcrypt verification.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import abc
import threading
from dataclasses import replace

from auth.errors import ConflictError
from auth.models import Account, ActivityEntry, ApiKey, Session


class Storage(abc.ABC):
    """Backend-agnostic persistence contract for the auth entities."""

    supports_secret_index: bool = False

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def add_account(self, account: Account) -> None: ...

    @abc.abstractmethod
    def get_account(self, account_id: str) -> Account | None: ...

    @abc.abstractmethod
    def get_account_by_email(self, email: str) -> Account | None: ...

    @abc.abstractmethod
    def get_account_by_username(self, username: str) -> Account | None: ...

    @abc.abstractmethod
    def update_account(self, account_id: str, **fields) -> bool:
        """Update mutable account fields. Returns False if the id is unknown."""

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def add_session(self, session: Session) -> None: ...

    @abc.abstractmethod
    def get_session(self, session_id: str) -> Session | None: ...

    @abc.abstractmethod
    def update_session(self, session_id: str, **fields) -> bool: ...

    @abc.abstractmethod
    def list_active_sessions(self, account_id: str) -> list[Session]: ...

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def add_api_key(self, api_key: ApiKey) -> None: ...

    @abc.abstractmethod
    def get_api_key(self, key_id: str) -> ApiKey | None: ...

    @abc.abstractmethod
    def update_api_key(self, key_id: str, **fields) -> bool: ...

    @abc.abstractmethod
    def list_active_api_keys(self, account_id: str) -> list[ApiKey]: ...

    @abc.abstractmethod
    def find_api_keys_by_prefix(self, key_prefix: str) -> list[ApiKey]:
        """Return active keys whose display prefix matches. Candidate narrowing only."""

    def index_secret(self, secret: str, account_id: str, key_id: str) -> None:
        """Record plaintext -> owner. No-op on backends without a secret index."""

    def lookup_secret(self, secret: str) -> tuple[str, str] | None:
        return None

    def unindex_key(self, key_id: str) -> None:
        """Drop every index entry pointing at key_id."""

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def add_activity(self, entry: ActivityEntry) -> None: ...

    @abc.abstractmethod
    def list_activity(self, account_id: str, limit: int | None = None) -> list[ActivityEntry]: ...

    def close(self) -> None:
        """Release backend resources. Nothing to do for in-process stores."""


class InMemoryStorage(Storage):
    """Dict-backed Storage for the reference deployment and the test suite.

    Usage:
        store = InMemoryStorage()
        store.add_account(account)
        store.get_account_by_email("alice@example.com")
    """

    supports_secret_index = True

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._accounts: dict[str, Account] = {}
        self._sessions: dict[str, Session] = {}
        self._api_keys: dict[str, ApiKey] = {}
        # Insertion-ordered; ordering ties in list_activity rely on it.
        self._activity: list[ActivityEntry] = []
        self._secret_index: dict[str, tuple[str, str]] = {}

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def add_account(self, account: Account) -> None:
        with self._lock:
            if any(existing.email == account.email for existing in self._accounts.values()):
                raise ConflictError("email")
            if any(existing.username == account.username for existing in self._accounts.values()):
                raise ConflictError("username")
            self._accounts[account.id] = replace(account)

    def get_account(self, account_id: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return replace(account) if account is not None else None

    def get_account_by_email(self, email: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.email == email:
                    return replace(account)
        return None

    def get_account_by_username(self, username: str) -> Account | None:
        with self._lock:
            for account in self._accounts.values():
                if account.username == username:
                    return replace(account)
        return None

    def update_account(self, account_id: str, **fields) -> bool:
        return _update(self._lock, self._accounts, account_id, fields)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def add_session(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = replace(session)

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session is not None else None

    def update_session(self, session_id: str, **fields) -> bool:
        return _update(self._lock, self._sessions, session_id, fields)

    def list_active_sessions(self, account_id: str) -> list[Session]:
        with self._lock:
            rows = [replace(s) for s in self._sessions.values() if s.account_id == account_id and s.is_active]
        return sorted(rows, key=lambda s: s.last_activity, reverse=True)

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------

    def add_api_key(self, api_key: ApiKey) -> None:
        with self._lock:
            self._api_keys[api_key.id] = replace(api_key)

    def get_api_key(self, key_id: str) -> ApiKey | None:
        with self._lock:
            key = self._api_keys.get(key_id)
            return replace(key) if key is not None else None

    def update_api_key(self, key_id: str, **fields) -> bool:
        return _update(self._lock, self._api_keys, key_id, fields)

    def list_active_api_keys(self, account_id: str) -> list[ApiKey]:
        with self._lock:
            rows = [replace(k) for k in self._api_keys.values() if k.account_id == account_id and k.is_active]
        return sorted(rows, key=lambda k: k.created_at, reverse=True)

    def find_api_keys_by_prefix(self, key_prefix: str) -> list[ApiKey]:
        with self._lock:
            return [replace(k) for k in self._api_keys.values() if k.key_prefix == key_prefix and k.is_active]

    def index_secret(self, secret: str, account_id: str, key_id: str) -> None:
        with self._lock:
            self._secret_index[secret] = (account_id, key_id)

    def lookup_secret(self, secret: str) -> tuple[str, str] | None:
        with self._lock:
            return self._secret_index.get(secret)

    def unindex_key(self, key_id: str) -> None:
        with self._lock:
            stale = [secret for secret, (_, kid) in self._secret_index.items() if kid == key_id]
            for secret in stale:
                del self._secret_index[secret]

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def add_activity(self, entry: ActivityEntry) -> None:
        with self._lock:
            self._activity.append(replace(entry))

    def list_activity(self, account_id: str, limit: int | None = None) -> list[ActivityEntry]:
        with self._lock:
            rows = [replace(e) for e in reversed(self._activity) if e.account_id == account_id]
        # sorted() is stable, so equal timestamps keep reverse insertion order.
        rows.sort(key=lambda e: e.timestamp, reverse=True)
        return rows if limit is None else rows[:limit]


def _update(lock: threading.RLock, table: dict, record_id: str, fields: dict) -> bool:
    with lock:
        current = table.get(record_id)
        if current is None:
            return False
        table[record_id] = replace(current, **fields)
        return True
