"""
api/routes/v1/user.py -- Account dashboard REST endpoints (authenticated).

Routes:
  GET    /api/v1/user/profile                  -- current account + permissions
  GET    /api/v1/user/security-activities      -- recent audit entries (?limit=)
  GET    /api/v1/user/api-keys                 -- active API keys (no secrets)
  POST   /api/v1/user/api-keys                 -- mint a key; raw key shown ONCE
  DELETE /api/v1/user/api-keys/{key_id}        -- revoke (ownership checked)
  GET    /api/v1/user/sessions                 -- active sessions
  DELETE /api/v1/user/sessions/{session_id}    -- revoke one (ownership checked)
  DELETE /api/v1/user/sessions                 -- revoke all
  GET    /api/v1/user/stats                    -- counts + security score

IDOR guard: every mutating call passes current_account.id to the registry,
which answers "not found" for resources owned by someone else.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from api.models import (
    AccountResponse,
    ActivityResponse,
    ApiKeyCreate,
    ApiKeyCreatedResponse,
    ApiKeyResponse,
    MessageResponse,
    ProfileResponse,
    RevokeAllResponse,
    SessionResponse,
    StatsResponse,
)
from auth.dependencies import get_current_account, get_directory
from auth.directory import AccountDirectory
from auth.errors import NotFoundError
from auth.models import Account

# Auth policy: every route here requires auth (get_current_account).
router = APIRouter()

_DEFAULT_PERMISSIONS = ["read", "write"]


@router.get("/user/profile", response_model=ProfileResponse)
def profile(current_account: Account = Depends(get_current_account)) -> ProfileResponse:
    """Return the authenticated account with its permission set."""
    return ProfileResponse(user=AccountResponse.from_account(current_account), permissions=_DEFAULT_PERMISSIONS)


@router.get("/user/security-activities", response_model=list[ActivityResponse])
def security_activities(
    limit: int | None = Query(default=None, ge=0, le=500),
    current_account: Account = Depends(get_current_account),
    directory: AccountDirectory = Depends(get_directory),
) -> list[ActivityResponse]:
    """Newest activity first. Defaults to the configured page size (50)."""
    entries = directory.activity.list_recent(current_account.id, limit=limit)
    return [ActivityResponse.from_entry(e) for e in entries]


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


@router.get("/user/api-keys", response_model=list[ApiKeyResponse])
def list_api_keys(
    current_account: Account = Depends(get_current_account),
    directory: AccountDirectory = Depends(get_directory),
) -> list[ApiKeyResponse]:
    """List active API keys. Raw key values and hashes are never returned."""
    return [ApiKeyResponse.from_api_key(k) for k in directory.api_keys.list(current_account.id)]


@router.post("/user/api-keys", response_model=ApiKeyCreatedResponse, status_code=201)
def create_api_key(
    body: ApiKeyCreate,
    current_account: Account = Depends(get_current_account),
    directory: AccountDirectory = Depends(get_directory),
) -> JSONResponse:
    """Generate a new API key. The raw key is shown ONCE and never stored in plaintext."""
    expires_at: datetime | None = None
    if body.expires_in_days is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(days=body.expires_in_days)
    api_key, raw_key = directory.api_keys.create(current_account.id, body.name, expires_at=expires_at)
    resp = JSONResponse(
        status_code=201,
        content=ApiKeyCreatedResponse(
            message="API key created successfully",
            api_key=ApiKeyResponse.from_api_key(api_key),
            key=raw_key,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/user/api-keys/{key_id}", response_model=MessageResponse)
def revoke_api_key(
    key_id: str,
    current_account: Account = Depends(get_current_account),
    directory: AccountDirectory = Depends(get_directory),
) -> MessageResponse:
    """Revoke an API key owned by the caller."""
    if not directory.api_keys.revoke(current_account.id, key_id):
        raise NotFoundError("API key not found")
    return MessageResponse(message="API key revoked successfully")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.get("/user/sessions", response_model=list[SessionResponse])
def list_sessions(
    current_account: Account = Depends(get_current_account),
    directory: AccountDirectory = Depends(get_directory),
) -> list[SessionResponse]:
    return [SessionResponse.from_session(s) for s in directory.sessions.list(current_account.id)]


@router.delete("/user/sessions/{session_id}", response_model=MessageResponse)
def revoke_session(
    session_id: str,
    current_account: Account = Depends(get_current_account),
    directory: AccountDirectory = Depends(get_directory),
) -> MessageResponse:
    if not directory.sessions.revoke(current_account.id, session_id):
        raise NotFoundError("Session not found")
    return MessageResponse(message="Session revoked successfully")


@router.delete("/user/sessions", response_model=RevokeAllResponse)
def revoke_all_sessions(
    current_account: Account = Depends(get_current_account),
    directory: AccountDirectory = Depends(get_directory),
) -> RevokeAllResponse:
    """Revoke every active session. Already-issued tokens stay valid until expiry."""
    count = directory.sessions.revoke_all(current_account.id)
    return RevokeAllResponse(message="All sessions revoked successfully", revoked=count)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@router.get("/user/stats", response_model=StatsResponse)
def stats(
    current_account: Account = Depends(get_current_account),
    directory: AccountDirectory = Depends(get_directory),
) -> StatsResponse:
    return StatsResponse.from_stats(directory.scorer.stats(current_account.id))
