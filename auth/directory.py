"""
auth/directory.py -- Account store front and orchestrator (AccountDirectory).

AccountDirectory owns account identity (registration, authentication, lookup)
and composes every other component into the login flow:

    register -> validate -> vault.hash -> [lock: uniqueness check + insert] -> ledger
    login    -> email syntax -> authenticate (vault.verify) -> sessions.create -> tokens.issue

Security:
  [C1] authenticate() always runs bcrypt, against the stored digest or a dummy
       one, and raises the same AuthenticationError for "no such email" and
       "wrong password". Response time and message reveal nothing.

  [C2] Uniqueness check and insert form one critical section guarded by
       _register_lock. bcrypt runs before the lock is taken so concurrent
       registrations do not queue behind each other's hashing. The storage
       backend rejects duplicates a second time (ConflictError) as a backstop.

  Every Account returned from this module is a redacted copy
  (password_hash=None).

build_directory() is the single composition root: it builds one store and
hands it to every component. Nothing in auth/ holds module-level state.

Layer rule: no imports from api/. Import from core/ is allowed only in
build_directory().
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from auth.activity import ActivityLedger, utcnow
from auth.api_keys import ApiKeyRegistry
from auth.errors import AuthenticationError, ConflictError, ValidationError
from auth.models import Account, Session
from auth.scoring import SecurityScorer
from auth.sessions import SessionRegistry
from auth.store import InMemoryStorage, Storage
from auth.tokens import TokenIssuer
from auth.vault import CredentialVault

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authguard.auth")

STRONG_PASSWORD_LENGTH = 12
_BCRYPT_MAX_BYTES = 72
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]")


# ---------------------------------------------------------------------------
# Input contract
# ---------------------------------------------------------------------------


class RegistrationInput(BaseModel):
    """Registration policy. Checked before anything is hashed or stored."""

    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8)

    @field_validator("password")
    @classmethod
    def check_password_policy(cls, value: str) -> str:
        if len(value.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise ValueError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes")
        if not _PASSWORD_RE.match(value):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase letter, "
                "one number, and one special character"
            )
        return value


def _validate_registration(username: str, email: str, password: str) -> None:
    try:
        RegistrationInput(username=username, email=email, password=password)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        # Never echo the password value back in the error.
        raise ValidationError("Validation failed", detail=f"{field}: {first.get('msg', 'invalid')}") from exc


class LoginInput(BaseModel):
    """Login shape. A malformed email is a 400, not a failed login."""

    email: EmailStr


def _validate_login(email: str) -> None:
    try:
        LoginInput(email=email)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        raise ValidationError("Validation failed", detail=f"email: {first.get('msg', 'invalid')}") from exc


def _redact(account: Account) -> Account:
    return replace(account, password_hash=None)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


@dataclass
class LoginResult:
    account: Account
    token: str
    session: Session
    expires_in: int


class AccountDirectory:
    """Top-level entry point of the credential and session authority.

    Usage:
        directory = build_directory(get_settings())
        account = directory.register("alice", "alice@example.com", "Str0ng!Pass")
        result = directory.login("alice@example.com", "Str0ng!Pass")
        directory.tokens.verify(result.token)
    """

    def __init__(
        self,
        store: Storage,
        vault: CredentialVault,
        tokens: TokenIssuer,
        clock: Callable[[], datetime] = utcnow,
        api_key_prefix: str = "sk_",
        activity_page_size: int = 50,
    ) -> None:
        self.store = store
        self.vault = vault
        self.tokens = tokens
        self._clock = clock
        self._register_lock = threading.Lock()
        self.activity = ActivityLedger(store, clock=clock, default_limit=activity_page_size)
        self.sessions = SessionRegistry(store, self.activity, clock=clock)
        self.api_keys = ApiKeyRegistry(store, vault, self.activity, key_prefix=api_key_prefix, clock=clock)
        self.scorer = SecurityScorer(store, clock=clock)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def register(
        self,
        username: str,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Account:
        """Create an account and return it redacted.

        Raises:
            ValidationError: username/email/password break the input contract.
            ConflictError: email or username already registered (email checked first).
        """
        _validate_registration(username, email, password)
        password_hash = self.vault.hash(password)

        with self._register_lock:  # [C2]
            if self.store.get_account_by_email(email) is not None:
                logger.warning("Registration rejected: duplicate email")
                raise ConflictError("email")
            if self.store.get_account_by_username(username) is not None:
                logger.warning("Registration rejected: duplicate username %r", username)
                raise ConflictError("username")
            account = Account(
                id=str(uuid.uuid4()),
                username=username,
                email=email,
                password_hash=password_hash,
                role="user",
                created_at=self._clock(),
                last_login=None,
                strong_password=len(password) >= STRONG_PASSWORD_LENGTH,
            )
            self.store.add_account(account)

        self.activity.append(account.id, "Account created", ip_address=ip_address, user_agent=user_agent)
        logger.info("Account created: %s (%s)", account.username, account.id)
        return _redact(account)

    def authenticate(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Account:
        """Check email + password. Returns the redacted account with last_login stamped.

        Raises:
            AuthenticationError: unknown email or wrong password, indistinguishably [C1].
        """
        account = self.store.get_account_by_email(email) if isinstance(email, str) else None
        if account is None or not account.password_hash:
            self.vault.verify_dummy(password or "")
            logger.warning("Failed login attempt (unknown email)")
            raise AuthenticationError()
        if not self.vault.verify(password or "", account.password_hash):
            logger.warning("Failed login attempt for account %s", account.id)
            raise AuthenticationError()

        now = self._clock()
        self.store.update_account(account.id, last_login=now)
        self.activity.append(account.id, "Successful login", ip_address=ip_address, user_agent=user_agent)
        logger.info("Successful login: %s", account.username)
        return _redact(replace(account, last_login=now))

    def login(
        self,
        email: str,
        password: str,
        device_info: str | None = None,
        ip_address: str | None = None,
        location: str | None = None,
    ) -> LoginResult:
        """Authenticate, open a session and issue a bearer token.

        device_info doubles as the user agent recorded on the login activity.

        Raises:
            ValidationError: email is not a syntactically valid address.
            AuthenticationError: see authenticate().
        """
        _validate_login(email)
        account = self.authenticate(email, password, ip_address=ip_address, user_agent=device_info)
        session = self.sessions.create(account.id, device_info=device_info, ip_address=ip_address, location=location)
        token = self.issue_token(account)
        return LoginResult(account=account, token=token, session=session, expires_in=self.tokens.expire_seconds)

    def issue_token(self, account: Account) -> str:
        return self.tokens.issue(
            {"id": account.id, "email": account.email, "username": account.username, "role": account.role}
        )

    def get_by_id(self, account_id: str) -> Account | None:
        account = self.store.get_account(account_id)
        return _redact(account) if account is not None else None

    def close(self) -> None:
        self.store.close()


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------


def build_storage(database_url: str) -> Storage:
    """Empty URL selects the in-memory backend; anything else is a SQLAlchemy URL."""
    if not database_url:
        return InMemoryStorage()
    from auth.sql_store import SqlStorage

    return SqlStorage(database_url)


def build_directory(settings: Settings) -> AccountDirectory:
    """Wire the whole credential authority from configuration. Call once per process."""
    store = build_storage(settings.database_url)
    directory = AccountDirectory(
        store=store,
        vault=CredentialVault(rounds=settings.bcrypt_rounds),
        tokens=TokenIssuer(settings.secret_key, expire_seconds=settings.token_expire_seconds),
        api_key_prefix=settings.api_key_prefix,
        activity_page_size=settings.activity_page_size,
    )
    logger.info("Directory initialized (backend=%s)", type(store).__name__)
    return directory
