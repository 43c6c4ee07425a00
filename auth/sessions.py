"""
auth/sessions.py -- Login session tracking (SessionRegistry).

A session records one successful login: which device, from where, and when it
was last used. Sessions are never physically deleted; revoke() and
revoke_all() flip is_active to False and the session drops out of every
"active" query for good.

IDOR guard: revoke() and touch() take the caller's account_id and refuse to
act on a session owned by anyone else. The refusal looks exactly like
"session does not exist" so callers learn nothing about other accounts.

Concurrency: read-modify-write on a session runs under the registry lock, so
two concurrent revokes of the same session cannot both report success.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime

from auth.activity import ActivityLedger, utcnow
from auth.models import Session
from auth.store import Storage

logger = logging.getLogger("authguard.sessions")


class SessionRegistry:
    def __init__(self, store: Storage, ledger: ActivityLedger, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._ledger = ledger
        self._clock = clock
        self._lock = threading.Lock()

    def create(
        self,
        account_id: str,
        device_info: str | None = None,
        ip_address: str | None = None,
        location: str | None = None,
    ) -> Session:
        """Open a new active session. Always succeeds."""
        now = self._clock()
        session = Session(
            id=str(uuid.uuid4()),
            account_id=account_id,
            device_info=device_info or None,
            ip_address=ip_address or None,
            location=location or None,
            is_active=True,
            last_activity=now,
            created_at=now,
        )
        self._store.add_session(session)
        self._ledger.append(account_id, "New session created", ip_address=ip_address, location=location)
        logger.info("Session created account=%s session=%s", account_id, session.id)
        return session

    def list(self, account_id: str) -> list[Session]:
        """Active sessions only, most recently active first."""
        return self._store.list_active_sessions(account_id)

    def get(self, account_id: str, session_id: str) -> Session | None:
        session = self._store.get_session(session_id)
        if session is None or session.account_id != account_id:
            return None
        return session

    def revoke(self, account_id: str, session_id: str) -> bool:
        """Deactivate one session.

        Returns False if the session does not exist, belongs to another
        account, or is already inactive.
        """
        with self._lock:
            session = self.get(account_id, session_id)
            if session is None or not session.is_active:
                return False
            self._store.update_session(session_id, is_active=False)
        self._ledger.append(account_id, "Session revoked")
        logger.info("Session revoked account=%s session=%s", account_id, session_id)
        return True

    def revoke_all(self, account_id: str) -> int:
        """Deactivate every active session of the account. Returns how many were revoked."""
        with self._lock:
            active = self._store.list_active_sessions(account_id)
            for session in active:
                self._store.update_session(session.id, is_active=False)
        count = len(active)
        self._ledger.append(account_id, f"All sessions revoked ({count} sessions)")
        logger.info("All sessions revoked account=%s count=%d", account_id, count)
        return count

    def touch(self, account_id: str, session_id: str) -> bool:
        """Refresh last_activity on an active session owned by account_id."""
        with self._lock:
            session = self.get(account_id, session_id)
            if session is None or not session.is_active:
                return False
            return self._store.update_session(session_id, last_activity=self._clock())
