"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and registries
do the work; these dataclasses only own the domain shape.

Every entity below Account is owned by exactly one Account through account_id.
Timestamps are timezone-aware UTC datetimes. The SQL backend serializes them
to ISO 8601 strings and parses them back in its row mappers.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Account:
    """A registered identity.

    password_hash is None on every Account handed out by AccountDirectory
    (redacted copies). Only the store and the directory ever see the digest.

    strong_password is recorded once at registration because the length of
    the source password cannot be recovered from a bcrypt digest. It feeds
    the +15 term of the security score.
    """

    id: str
    username: str
    email: str
    password_hash: str | None
    created_at: datetime
    role: str = "user"
    last_login: datetime | None = None
    strong_password: bool = False


@dataclass
class Session:
    """One authenticated login. Deactivated on revoke, never deleted."""

    id: str
    account_id: str
    created_at: datetime
    last_activity: datetime
    device_info: str | None = None
    ip_address: str | None = None
    location: str | None = None
    is_active: bool = True


@dataclass
class ApiKey:
    """A long-lived credential for programmatic access.

    Security design:
    - key_hash is a bcrypt digest of the raw key, produced by CredentialVault.
    - key_prefix (first 12 chars of the raw key) is kept for display and, on
      backends without an in-memory secret index, to narrow the candidates
      that have to be bcrypt-verified during validation.
    - The raw key is returned ONCE at creation and is then unrecoverable.
    """

    id: str
    account_id: str
    name: str
    key_hash: str
    key_prefix: str
    created_at: datetime
    expires_at: datetime | None = None
    last_used: datetime | None = None
    is_active: bool = True


@dataclass
class ActivityEntry:
    """One append-only audit record."""

    id: str
    account_id: str
    activity: str
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    location: str | None = None


@dataclass
class AccountStats:
    """Dashboard summary derived from current state by SecurityScorer.stats()."""

    total_logins: int
    active_sessions: int
    api_keys_count: int
    security_score: int
    account_age_days: int
