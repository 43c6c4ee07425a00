"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two auth methods are checked in priority order:
  1. Authorization: Bearer <token> header -- clients holding a login JWT.
  2. X-API-Key header -- scripts and CI using long-lived API keys.

Both converge on a redacted Account after successful verification.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises:
  AuthenticationError (401) when no credential was presented at all,
  InvalidTokenError   (403) when a credential was presented but rejected.

Token verification does not consult SessionRegistry: a token issued for a
session that was later revoked keeps working until it expires.

Layer rule: may import from fastapi because this module is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.directory import AccountDirectory
from auth.errors import AuthenticationError, InvalidTokenError
from auth.models import Account


def get_directory(request: Request) -> AccountDirectory:
    return request.app.state.directory


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split(" ")
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1]:
        return parts[1]
    return None


def try_get_current_account(request: Request) -> Account | None:
    """Attempt to authenticate the request via Bearer token or API key.

    Returns the Account on success, None on any failure. Never raises.
    """
    directory = get_directory(request)

    token = _bearer_token(request)
    if token:
        claims = directory.tokens.verify(token)
        if claims is not None:
            account = directory.get_by_id(claims.id)
            if account is not None:
                return account

    raw_key = request.headers.get("X-API-Key", "")
    if raw_key:
        mapping = directory.api_keys.validate(raw_key)
        if mapping is not None:
            return directory.get_by_id(mapping[0])

    return None


def get_current_account(request: Request) -> Account:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(account: Account = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is not None:
        return account
    if _bearer_token(request) is None and not request.headers.get("X-API-Key"):
        raise AuthenticationError("Access token is required")
    raise InvalidTokenError()
