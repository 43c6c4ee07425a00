"""
API request and response models for AuthGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only check shape. Registration policy (lengths, email syntax,
password complexity) belongs to AccountDirectory so every caller gets it, and
its violations surface as 400 rather than FastAPI's 422.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account, AccountStats, ActivityEntry, ApiKey, Session

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    username: str
    email: str
    password: str = Field(max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(min_length=1)
    password: str = Field(min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, max_length=200)


class ApiKeyCreate(BaseModel):
    """Request body for POST /api/v1/user/api-keys.

    expires_in_days is converted to an absolute expires_at at creation time.
    """

    name: str
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=3650)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account -- never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    email: str
    role: str
    created_at: datetime
    last_login: Optional[datetime] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            role=account.role,
            created_at=account.created_at,
            last_login=account.last_login,
        )


class RegisterResponse(BaseModel):
    message: str
    user: AccountResponse


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    session_id: str
    user: AccountResponse


class ProfileResponse(BaseModel):
    user: AccountResponse
    permissions: list[str]


class ActivityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    activity: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[str] = None
    timestamp: datetime

    @classmethod
    def from_entry(cls, entry: ActivityEntry) -> "ActivityResponse":
        return cls(
            id=entry.id,
            activity=entry.activity,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            location=entry.location,
            timestamp=entry.timestamp,
        )


class ApiKeyResponse(BaseModel):
    """An API key as listed to its owner. The hash is never part of the contract."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    key_prefix: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    last_used: Optional[datetime] = None
    is_active: bool

    @classmethod
    def from_api_key(cls, api_key: ApiKey) -> "ApiKeyResponse":
        return cls(
            id=api_key.id,
            name=api_key.name,
            key_prefix=api_key.key_prefix,
            created_at=api_key.created_at,
            expires_at=api_key.expires_at,
            last_used=api_key.last_used,
            is_active=api_key.is_active,
        )


class ApiKeyCreatedResponse(BaseModel):
    """Returned once, at creation. key is the only time the raw secret is shown."""

    message: str
    api_key: ApiKeyResponse
    key: str


class SessionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    device_info: Optional[str] = None
    ip_address: Optional[str] = None
    location: Optional[str] = None
    is_active: bool
    last_activity: datetime
    created_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            device_info=session.device_info,
            ip_address=session.ip_address,
            location=session.location,
            is_active=session.is_active,
            last_activity=session.last_activity,
            created_at=session.created_at,
        )


class RevokeAllResponse(BaseModel):
    message: str
    revoked: int


class StatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_logins: int
    active_sessions: int
    api_keys_count: int
    security_score: int
    account_age_days: int

    @classmethod
    def from_stats(cls, stats: AccountStats) -> "StatsResponse":
        return cls(
            total_logins=stats.total_logins,
            active_sessions=stats.active_sessions,
            api_keys_count=stats.api_keys_count,
            security_score=stats.security_score,
            account_age_days=stats.account_age_days,
        )


class MessageResponse(BaseModel):
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
