"""
auth/scoring.py -- Account hygiene score and dashboard stats (SecurityScorer).

Score rules (0-100, clamped):
  base                                    50
  strong password (>= 12 chars at signup) +15
  at least one active API key             +10
  any activity in the trailing 7 days     +15
  more than 3 active sessions             -10

The password signal is the strong_password flag recorded at registration. A
bcrypt digest does not reveal the source length, so it cannot be derived
later.

Both score() and stats() are recomputed from current state on every call --
no caching, no side effects.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from auth.activity import utcnow
from auth.errors import InternalError
from auth.models import Account, AccountStats
from auth.store import Storage

BASE_SCORE = 50
STRONG_PASSWORD_BONUS = 15
API_KEY_BONUS = 10
RECENT_ACTIVITY_BONUS = 15
RECENT_ACTIVITY_WINDOW = timedelta(days=7)
SESSION_SPRAWL_THRESHOLD = 3
SESSION_SPRAWL_PENALTY = 10


class SecurityScorer:
    def __init__(self, store: Storage, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def score(self, account_id: str) -> int:
        """Return the current security score for account_id.

        Raises:
            InternalError: the account does not exist. Callers only score
                accounts they have already authenticated.
        """
        account = self._require_account(account_id)
        return self._score(
            account,
            api_keys_count=len(self._store.list_active_api_keys(account_id)),
            active_sessions=len(self._store.list_active_sessions(account_id)),
        )

    def stats(self, account_id: str) -> AccountStats:
        """Dashboard summary: logins, active sessions, keys, score and account age."""
        account = self._require_account(account_id)
        api_keys_count = len(self._store.list_active_api_keys(account_id))
        active_sessions = len(self._store.list_active_sessions(account_id))
        total_logins = sum(1 for e in self._store.list_activity(account_id) if "login" in e.activity)
        age = self._clock() - account.created_at
        return AccountStats(
            total_logins=total_logins,
            active_sessions=active_sessions,
            api_keys_count=api_keys_count,
            security_score=self._score(account, api_keys_count=api_keys_count, active_sessions=active_sessions),
            account_age_days=max(0, age.days),
        )

    def _score(self, account: Account, api_keys_count: int, active_sessions: int) -> int:
        score = BASE_SCORE
        if account.strong_password:
            score += STRONG_PASSWORD_BONUS
        if api_keys_count > 0:
            score += API_KEY_BONUS
        if self._has_recent_activity(account.id):
            score += RECENT_ACTIVITY_BONUS
        if active_sessions > SESSION_SPRAWL_THRESHOLD:
            score -= SESSION_SPRAWL_PENALTY
        return max(0, min(100, score))

    def _has_recent_activity(self, account_id: str) -> bool:
        cutoff = self._clock() - RECENT_ACTIVITY_WINDOW
        # Newest first, so the head entry decides.
        latest = self._store.list_activity(account_id, limit=1)
        return bool(latest) and latest[0].timestamp > cutoff

    def _require_account(self, account_id: str) -> Account:
        account = self._store.get_account(account_id)
        if account is None:
            raise InternalError("Cannot score a nonexistent account", detail=f"account_id={account_id}")
        return account
