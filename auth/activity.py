"""
auth/activity.py -- Append-only security activity log (ActivityLedger).

Every security-relevant event (account created, login, session and key
lifecycle) lands here with an optional origin address, user agent and
location. Entries are never mutated or deleted. SecurityScorer reads the
ledger to decide whether the account has been active recently.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from auth.errors import ValidationError
from auth.models import ActivityEntry
from auth.store import Storage

logger = logging.getLogger("authguard.activity")

DEFAULT_LIMIT = 50


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityLedger:
    def __init__(
        self,
        store: Storage,
        clock: Callable[[], datetime] = utcnow,
        default_limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._store = store
        self._clock = clock
        self.default_limit = default_limit

    def append(
        self,
        account_id: str,
        activity: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        location: str | None = None,
    ) -> ActivityEntry:
        """Record one event for account_id, timestamped now."""
        entry = ActivityEntry(
            id=str(uuid.uuid4()),
            account_id=account_id,
            activity=activity,
            timestamp=self._clock(),
            ip_address=ip_address or None,
            user_agent=user_agent or None,
            location=location or None,
        )
        self._store.add_activity(entry)
        logger.debug("activity account=%s event=%r", account_id, activity)
        return entry

    def list_recent(self, account_id: str, limit: int | None = None) -> list[ActivityEntry]:
        """Newest entries first, ties in reverse insertion order, at most `limit` of them."""
        if limit is None:
            limit = self.default_limit
        if limit < 0:
            raise ValidationError("limit must not be negative", detail=f"limit={limit}")
        return self._store.list_activity(account_id, limit=limit)

    def list_all(self, account_id: str) -> list[ActivityEntry]:
        return self._store.list_activity(account_id)
