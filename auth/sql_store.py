"""
auth/sql_store.py -- SQLAlchemy Core persistence backend for auth entities.

Pattern: Repository + Data Mapper. SqlStorage implements the Storage contract
from auth/store.py; the _row_to_* functions are the mappers. Registries never
touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  The plaintext API key index is NOT persisted (supports_secret_index is
  False). ApiKeyRegistry resolves a presented key by its 12-char display
  prefix and bcrypt-verifies each candidate instead. That trades one bcrypt
  round per candidate for never writing a usable secret to disk.

  UNIQUE(username) and UNIQUE(email) back up the directory's own check. An
  IntegrityError on insert is translated to ConflictError naming the field.

Timestamps are stored as ISO 8601 strings with fixed microsecond precision,
so lexical ORDER BY equals chronological order.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError
from auth.models import Account, ActivityEntry, ApiKey, Session
from auth.store import Storage

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
    Column("strong_password", Integer, nullable=False, server_default="0"),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), nullable=False, index=True),
    Column("device_info", Text),
    Column("ip_address", String(64)),
    Column("location", Text),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_activity", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

_api_keys = Table(
    "api_keys",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), nullable=False, index=True),
    Column("name", String(100), nullable=False),
    Column("key_hash", Text, nullable=False),  # bcrypt digest
    Column("key_prefix", String(12), nullable=False, index=True),  # display + candidate narrowing
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32)),
    Column("last_used", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

# seq is the insertion order tiebreaker for equal timestamps.
_activity = Table(
    "security_activities",
    _metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), nullable=False, unique=True),
    Column("account_id", String(36), nullable=False, index=True),
    Column("activity", Text, nullable=False),
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("location", Text),
    Column("timestamp", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _to_columns(fields: dict) -> dict:
    """Convert dataclass field values to their column representation."""
    converted = {}
    for name, value in fields.items():
        if isinstance(value, bool):
            converted[name] = 1 if value else 0
        elif isinstance(value, datetime):
            converted[name] = _iso(value)
        else:
            converted[name] = value
    return converted


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlStorage(Storage):
    """Storage backed by any SQLAlchemy-supported database.

    Usage:
        store = SqlStorage("sqlite:///authguard.db")
        store.add_account(account)
        store.close()
    """

    supports_secret_index = False

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def add_account(self, account: Account) -> None:
        """Insert an account. Raises ConflictError if username or email is taken."""
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _accounts.insert().values(
                        id=account.id,
                        username=account.username,
                        email=account.email,
                        password_hash=account.password_hash,
                        role=account.role,
                        created_at=_iso(account.created_at),
                        last_login=_iso(account.last_login),
                        strong_password=1 if account.strong_password else 0,
                    )
                )
        except IntegrityError as exc:
            field = "email" if self.get_account_by_email(account.email) is not None else "username"
            raise ConflictError(field) from exc

    def get_account(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_email(self, email: str) -> Account | None:
        """Exact (case-sensitive) match."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_username(self, username: str) -> Account | None:
        """Exact (case-sensitive) match."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_account(self, account_id: str, **fields) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(**_to_columns(fields))
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def add_session(self, session: Session) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    account_id=session.account_id,
                    device_info=session.device_info,
                    ip_address=session.ip_address,
                    location=session.location,
                    is_active=1 if session.is_active else 0,
                    last_activity=_iso(session.last_activity),
                    created_at=_iso(session.created_at),
                )
            )

    def get_session(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def update_session(self, session_id: str, **fields) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update().where(_sessions.c.id == session_id).values(**_to_columns(fields))
            )
        return result.rowcount > 0

    def list_active_sessions(self, account_id: str) -> list[Session]:
        """Active sessions for an account, most recently active first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where((_sessions.c.account_id == account_id) & (_sessions.c.is_active == 1))
                .order_by(_sessions.c.last_activity.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------

    def add_api_key(self, api_key: ApiKey) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _api_keys.insert().values(
                    id=api_key.id,
                    account_id=api_key.account_id,
                    name=api_key.name,
                    key_hash=api_key.key_hash,
                    key_prefix=api_key.key_prefix,
                    created_at=_iso(api_key.created_at),
                    expires_at=_iso(api_key.expires_at),
                    last_used=_iso(api_key.last_used),
                    is_active=1 if api_key.is_active else 0,
                )
            )

    def get_api_key(self, key_id: str) -> ApiKey | None:
        with self.engine.connect() as conn:
            row = conn.execute(_api_keys.select().where(_api_keys.c.id == key_id)).fetchone()
        return _row_to_api_key(row) if row is not None else None

    def update_api_key(self, key_id: str, **fields) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_api_keys.update().where(_api_keys.c.id == key_id).values(**_to_columns(fields)))
        return result.rowcount > 0

    def list_active_api_keys(self, account_id: str) -> list[ApiKey]:
        """Active keys for an account, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _api_keys.select()
                .where((_api_keys.c.account_id == account_id) & (_api_keys.c.is_active == 1))
                .order_by(_api_keys.c.created_at.desc())
            ).fetchall()
        return [_row_to_api_key(r) for r in rows]

    def find_api_keys_by_prefix(self, key_prefix: str) -> list[ApiKey]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _api_keys.select().where((_api_keys.c.key_prefix == key_prefix) & (_api_keys.c.is_active == 1))
            ).fetchall()
        return [_row_to_api_key(r) for r in rows]

    # ------------------------------------------------------------------
    # Activity
    # ------------------------------------------------------------------

    def add_activity(self, entry: ActivityEntry) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _activity.insert().values(
                    id=entry.id,
                    account_id=entry.account_id,
                    activity=entry.activity,
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                    location=entry.location,
                    timestamp=_iso(entry.timestamp),
                )
            )

    def list_activity(self, account_id: str, limit: int | None = None) -> list[ActivityEntry]:
        """Entries for an account, newest first; equal timestamps newest-inserted first."""
        query = (
            _activity.select()
            .where(_activity.c.account_id == account_id)
            .order_by(_activity.c.timestamp.desc(), _activity.c.seq.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_activity(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        created_at=_parse(row.created_at),
        last_login=_parse(row.last_login),
        strong_password=bool(row.strong_password),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        account_id=row.account_id,
        device_info=row.device_info,
        ip_address=row.ip_address,
        location=row.location,
        is_active=bool(row.is_active),
        last_activity=_parse(row.last_activity),
        created_at=_parse(row.created_at),
    )


def _row_to_api_key(row) -> ApiKey:
    return ApiKey(
        id=row.id,
        account_id=row.account_id,
        name=row.name,
        key_hash=row.key_hash,
        key_prefix=row.key_prefix,
        created_at=_parse(row.created_at),
        expires_at=_parse(row.expires_at),
        last_used=_parse(row.last_used),
        is_active=bool(row.is_active),
    )


def _row_to_activity(row) -> ActivityEntry:
    return ActivityEntry(
        id=row.id,
        account_id=row.account_id,
        activity=row.activity,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        location=row.location,
        timestamp=_parse(row.timestamp),
    )
